#!/usr/bin/env python3
"""Run the buffered and streaming pipelines over a local gzip JSON payload."""

import argparse, asyncio, pathlib, logging, sys
from dataclasses import replace
from typing import Callable, Dict, Iterator, Optional, Tuple
sys.path.append(str(pathlib.Path(__file__).parent.parent))
from memory_profiler import memory_usage
from op1_large.json_worker.streaming_parser import StreamingJSONParser
from shared.config import Settings
from shared.errors import PipelineError
from shared.memory_guard import MemoryMonitor
from shared.payload_generator import write_payload_files
from shared.pipelines import PipelineResult, process_buffered, process_streaming

logger = logging.getLogger(__name__)
parser = StreamingJSONParser()

DEFAULT_READ_SIZE = 64 * 1024
MODES = ("buffered", "streaming")

def read_chunks(path: pathlib.Path, read_size: int = DEFAULT_READ_SIZE) -> Iterator[bytes]:
    """Yield the file in ``read_size`` pieces, like a request body arriving."""
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(read_size)
            if not chunk:
                return
            yield chunk

def run_buffered(path: pathlib.Path, settings: Settings, monitor: MemoryMonitor,
                 read_size: int = DEFAULT_READ_SIZE) -> PipelineResult:
    body = b"".join(read_chunks(path, read_size))
    return process_buffered(body, settings, monitor)

def run_streaming(path: pathlib.Path, settings: Settings, monitor: MemoryMonitor,
                  read_size: int = DEFAULT_READ_SIZE) -> PipelineResult:
    return process_streaming(read_chunks(path, read_size), settings, monitor)

RUNNERS: Dict[str, Callable[..., PipelineResult]] = {
    "buffered": run_buffered,
    "streaming": run_streaming,
}

def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number

def measure_peak(func, *args) -> Tuple[float, PipelineResult]:
    """Run ``func`` and return (peak process memory in MB, result)."""
    mem, result = memory_usage((func, args, {}), max_usage=True, retval=True, interval=0.05)
    peak = max(mem) if isinstance(mem, (list, tuple)) else mem
    return float(peak), result

def process(path: pathlib.Path, mode: str, settings: Settings, read_size: int = DEFAULT_READ_SIZE,
            profile_memory: bool = False) -> Tuple[PipelineResult, Optional[float]]:
    monitor = MemoryMonitor(settings.memory_log_interval)
    runner = RUNNERS[mode]
    logger.info("=== %s pipeline: %s ===", mode, path)
    if profile_memory:
        peak, result = measure_peak(runner, path, settings, monitor, read_size)
        logger.info("%s peak memory %.1f MB", mode, peak)
    else:
        peak, result = None, runner(path, settings, monitor, read_size)
    logger.info("%s: %d items, %d bytes, %s", mode, result.item_count,
                result.processed_bytes, result.process_time)
    return result, peak

def cli(argv=None) -> int:
    ap = argparse.ArgumentParser(description=__doc__)
    ap.add_argument("file", type=pathlib.Path)
    ap.add_argument("--mode", choices=MODES + ("both",), default="both")
    ap.add_argument("--threshold", type=positive_int, help="streaming flush threshold in characters")
    ap.add_argument("--slice-size", type=positive_int, help="buffered slice size in bytes")
    ap.add_argument("--read-size", type=positive_int, default=DEFAULT_READ_SIZE, help="file read size in bytes")
    ap.add_argument("--marker", help="record marker to count")
    ap.add_argument("--generate", type=positive_int, metavar="N", help="write a payload with N records to FILE's directory first")
    ap.add_argument("--decoys", type=int, default=0, help="decoy substrings per generated record")
    ap.add_argument("--profile-memory", action="store_true", help="report peak process memory")
    ap.add_argument("--exact", action="store_true", help="also count records structurally with ijson")
    args = ap.parse_args(argv)

    settings = Settings.from_env()
    overrides = {}
    if args.threshold is not None:
        overrides["flush_threshold"] = args.threshold
    if args.slice_size is not None:
        overrides["slice_size"] = args.slice_size
    if args.marker:
        overrides["marker"] = args.marker
    settings = replace(settings, **overrides)
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.generate:
        files = asyncio.run(write_payload_files(args.file.parent, args.generate, args.decoys))
        args.file = pathlib.Path(files["gzip"]["path"])
    elif not args.file.is_file():
        ap.error(f"no such file: {args.file}")

    modes = MODES if args.mode == "both" else (args.mode,)
    results = {}
    for mode in modes:
        try:
            results[mode], peak = process(args.file, mode, settings, args.read_size, args.profile_memory)
        except PipelineError as e:
            logger.error("%s pipeline failed: %s", mode, e)
            return 1
        print(f"{mode}: approximateItems={results[mode].item_count} "
              f"processedBytes={results[mode].processed_bytes} "
              f"processTime={results[mode].process_time}"
              + (f" peakMemory={peak:.1f}MB" if peak is not None else ""))

    if args.exact:
        exact = parser.count_records(args.file)
        approx = next(iter(results.values())).item_count
        print(f"exact: records={exact} markerError={approx - exact:+d}")
        if approx != exact:
            logger.warning("marker count differs from structural count by %+d", approx - exact)
    return 0

if __name__ == "__main__":
    sys.exit(cli())
