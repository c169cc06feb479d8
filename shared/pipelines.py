#!/usr/bin/env python3
"""Buffered and streaming gzip-to-count pipelines.

Both produce the same ``PipelineResult`` for the same payload; they differ
in how much of it has to sit in memory at once.
"""
import codecs
import enum
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterable, Callable, Iterable, Optional

from shared.boundary_guard import ChunkBoundaryGuard, ScanState
from shared.config import Settings
from shared.decompressor import GzipDecompressor, decompress_all
from shared.errors import DecodeError, PipelineError, PipelineStateError, SourceError
from shared.marker_scanner import MarkerScanner
from shared.memory_guard import MemoryMonitor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    item_count: int
    processed_bytes: int
    elapsed_millis: float
    compressed_bytes: int = 0
    peak_window: int = 0

    @property
    def process_time(self) -> str:
        return f"{self.elapsed_millis:.2f}ms"


class PipelineState(enum.Enum):
    IDLE = "idle"
    RECEIVING = "receiving"
    FLUSHING = "flushing"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = (PipelineState.DONE, PipelineState.FAILED)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _decode(decoder, data: bytes, final: bool = False) -> str:
    try:
        return decoder.decode(data, final)
    except UnicodeDecodeError as e:
        raise DecodeError(f"invalid utf-8 in payload: {e}") from e


def process_buffered(compressed: bytes, settings: Optional[Settings] = None,
                     monitor: Optional[MemoryMonitor] = None) -> PipelineResult:
    """Decompress the whole block, then count markers slice by slice.

    Peak memory grows with the decompressed size: nothing is scanned until
    the full payload has been materialised.
    """
    settings = settings or Settings()
    monitor = monitor or MemoryMonitor(settings.memory_log_interval, enabled=False)
    start = time.perf_counter()
    monitor.log_usage("buffered: start")

    unzipped = decompress_all(compressed)
    monitor.log_usage("buffered: decompressed")

    state = ScanState()
    guard = ChunkBoundaryGuard(MarkerScanner(settings.marker), settings.flush_threshold, state)
    decoder = codecs.getincrementaldecoder("utf-8")(errors=settings.decode_errors)
    slice_size = settings.slice_size

    for pos in range(0, len(unzipped), slice_size):
        chunk = unzipped[pos:pos + slice_size]
        guard.feed(_decode(decoder, chunk))
        state.bytes_processed += len(chunk)
        monitor.checkpoint(state.bytes_processed)
    guard.feed(_decode(decoder, b"", final=True))
    guard.flush(final=True)

    result = PipelineResult(
        item_count=state.running_total,
        processed_bytes=len(unzipped),
        elapsed_millis=_elapsed_ms(start),
        compressed_bytes=len(compressed),
        peak_window=state.peak_window,
    )
    monitor.log_usage("buffered: done")
    logger.info("buffered pipeline: %d items in %s (%d -> %d bytes)",
                result.item_count, result.process_time, len(compressed), len(unzipped))
    return result


class StreamingPipeline:
    """Push-driven gzip scan with a bounded text buffer.

    Call ``feed`` for every compressed fragment in arrival order, then
    ``finish``.  Any error moves the pipeline to ``FAILED`` and drops all
    buffered data; a failed or finished pipeline rejects further input.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 monitor: Optional[MemoryMonitor] = None,
                 on_flush: Optional[Callable[[int], None]] = None):
        self.settings = settings or Settings()
        self.monitor = monitor or MemoryMonitor(self.settings.memory_log_interval, enabled=False)
        self.scan_state = ScanState()
        self._on_flush = on_flush
        self._guard = ChunkBoundaryGuard(MarkerScanner(self.settings.marker),
                                         self.settings.flush_threshold,
                                         self.scan_state, on_flush=self._flushed)
        self._decompressor = GzipDecompressor(max_output=self.settings.decompress_chunk_size)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors=self.settings.decode_errors)
        self._state = PipelineState.IDLE
        self._start = time.perf_counter()
        self.result: Optional[PipelineResult] = None
        self.error: Optional[BaseException] = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def feed(self, fragment: bytes):
        """Decompress, decode and scan one compressed fragment."""
        if self._state not in (PipelineState.IDLE, PipelineState.RECEIVING):
            raise PipelineStateError(f"cannot feed a pipeline in state {self._state.value}")
        if self._state is PipelineState.IDLE:
            self._state = PipelineState.RECEIVING
            self.monitor.log_usage("streaming: start")
        try:
            for out in self._decompressor.feed(fragment):
                self._consume(out)
        except PipelineError as e:
            self.abort(e)
            raise

    def finish(self) -> PipelineResult:
        """Flush everything that is left and produce the result."""
        if self._state not in (PipelineState.IDLE, PipelineState.RECEIVING):
            raise PipelineStateError(f"cannot finish a pipeline in state {self._state.value}")
        self._state = PipelineState.FINALIZING
        try:
            for out in self._decompressor.finish():
                self._consume(out)
            self._guard.feed(_decode(self._decoder, b"", final=True))
            self._guard.flush(final=True)
        except PipelineError as e:
            self.abort(e)
            raise

        self.result = PipelineResult(
            item_count=self.scan_state.running_total,
            processed_bytes=self.scan_state.bytes_processed,
            elapsed_millis=_elapsed_ms(self._start),
            compressed_bytes=self._decompressor.compressed_bytes,
            peak_window=self.scan_state.peak_window,
        )
        self._state = PipelineState.DONE
        self._release()
        self.monitor.log_usage("streaming: done")
        logger.info("streaming pipeline: %d items in %s (%d bytes)",
                    self.result.item_count, self.result.process_time,
                    self.result.processed_bytes)
        return self.result

    def abort(self, error: Optional[BaseException] = None):
        """Move to ``FAILED`` and release buffers. No-op once terminal."""
        if self.terminal:
            return
        self._state = PipelineState.FAILED
        self.error = error
        self._release()
        self.scan_state.reset()
        if error is not None:
            logger.error(f"streaming pipeline failed: {error}")

    def _consume(self, data: bytes):
        self.scan_state.bytes_processed += len(data)
        self._guard.feed(_decode(self._decoder, data))
        if self._state is PipelineState.FLUSHING:
            self._state = PipelineState.RECEIVING
        self.monitor.checkpoint(self.scan_state.bytes_processed)

    def _flushed(self, window_length: int):
        if self._state is PipelineState.RECEIVING:
            self._state = PipelineState.FLUSHING
        if self._on_flush is not None:
            self._on_flush(window_length)

    def _release(self):
        self._guard.discard()
        self._decompressor = None
        self._decoder = None


def process_streaming(source: Iterable[bytes], settings: Optional[Settings] = None,
                      monitor: Optional[MemoryMonitor] = None,
                      on_flush: Optional[Callable[[int], None]] = None) -> PipelineResult:
    """Pull fragments from ``source`` until it is exhausted."""
    pipeline = StreamingPipeline(settings, monitor, on_flush)
    iterator = iter(source)
    try:
        while True:
            try:
                fragment = next(iterator)
            except StopIteration:
                break
            except Exception as e:
                raise SourceError(f"byte source failed: {e}") from e
            pipeline.feed(fragment)
        return pipeline.finish()
    except SourceError as e:
        pipeline.abort(e)
        raise
    finally:
        pipeline.abort()


async def process_stream_async(source: AsyncIterable[bytes], settings: Optional[Settings] = None,
                               monitor: Optional[MemoryMonitor] = None,
                               on_flush: Optional[Callable[[int], None]] = None) -> PipelineResult:
    """Async variant: yields to the event loop between fragments."""
    pipeline = StreamingPipeline(settings, monitor, on_flush)
    iterator = source.__aiter__()
    try:
        while True:
            try:
                fragment = await iterator.__anext__()
            except StopAsyncIteration:
                break
            except Exception as e:
                raise SourceError(f"byte source failed: {e}") from e
            pipeline.feed(fragment)
        return pipeline.finish()
    except SourceError as e:
        pipeline.abort(e)
        raise
    finally:
        pipeline.abort()
