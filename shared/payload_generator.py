#!/usr/bin/env python3
"""Synthetic gzip JSON payloads for exercising the two pipelines."""
import json
import logging
import pathlib
import random
import zlib
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, Optional

import aiofiles
from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

SAMPLE_TEXT = "測試資料"
WRITE_BATCH = 64 * 1024

# Near-miss fields: they look like the marker but never match it.
DECOY_FIELDS = (
    ("uid", lambda i: i),
    ("note", lambda i: f"id: {i}"),
    ("ref", lambda i: f"record-id-{i}"),
)


def make_record(index: int, decoys: int = 0, rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """Build one item; it contains the marker exactly once."""
    rng = rng or random
    record = {
        "id": index,
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "data": SAMPLE_TEXT * 10,
        "numbers": [rng.random() for _ in range(10)],
    }
    for j in range(decoys):
        name, value = DECOY_FIELDS[j % len(DECOY_FIELDS)]
        key = name if j < len(DECOY_FIELDS) else f"{name}{j}"
        record[key] = value(index)
    return record


def iter_payload_text(records: int, decoys: int = 0, rng: Optional[random.Random] = None,
                      progress_every: int = 1000) -> Iterator[str]:
    """Yield the JSON document piece by piece.

    The header object carries ``"id" : 1`` with a space before the colon, so
    only the items are matched by the compact marker.
    """
    yield '{\n"id" : 1,\n"name": "%s",\n"items": [\n' % SAMPLE_TEXT
    for i in range(records):
        item = json.dumps(make_record(i, decoys, rng), ensure_ascii=False, separators=(",", ":"))
        yield item if i == 0 else ",\n" + item
        if progress_every and (i + 1) % progress_every == 0:
            logger.info(f"generated {i + 1} records...")
    yield "\n]}"


def _batched(text_chunks: Iterable[str], batch_size: int = WRITE_BATCH) -> Iterator[bytes]:
    batch = []
    size = 0
    for chunk in text_chunks:
        data = chunk.encode("utf-8")
        batch.append(data)
        size += len(data)
        if size >= batch_size:
            yield b"".join(batch)
            batch = []
            size = 0
    if batch:
        yield b"".join(batch)


def gzip_chunks(data_chunks: Iterable[bytes], level: int = 6) -> Iterator[bytes]:
    """Gzip a byte stream incrementally."""
    compressor = zlib.compressobj(level, zlib.DEFLATED, 16 + zlib.MAX_WBITS)
    for chunk in data_chunks:
        out = compressor.compress(chunk)
        if out:
            yield out
    yield compressor.flush()


def generate_payload(records: int, decoys: int = 0, rng: Optional[random.Random] = None) -> bytes:
    """Return a complete gzip payload with ``records`` items."""
    text = iter_payload_text(records, decoys, rng, progress_every=0)
    return b"".join(gzip_chunks(_batched(text)))


async def write_payload_files(directory, records: int, decoys: int = 0) -> Dict[str, Dict[str, Any]]:
    """Write ``test.json`` and ``test.json.gz`` into ``directory``."""
    output_dir = pathlib.Path(directory)
    output_dir.mkdir(parents=True, exist_ok=True)
    json_path = output_dir / "test.json"
    gzip_path = output_dir / "test.json.gz"

    # CPU-bound steps go to the threadpool.
    batches = _batched(iter_payload_text(records, decoys))
    async with aiofiles.open(json_path, "wb") as f:
        while True:
            data = await run_in_threadpool(next, batches, None)
            if data is None:
                break
            await f.write(data)
    logger.info("JSON written, compressing...")

    compressor = zlib.compressobj(6, zlib.DEFLATED, 16 + zlib.MAX_WBITS)
    async with aiofiles.open(json_path, "rb") as src, aiofiles.open(gzip_path, "wb") as dst:
        while True:
            data = await src.read(WRITE_BATCH)
            if not data:
                break
            await dst.write(await run_in_threadpool(compressor.compress, data))
        await dst.write(await run_in_threadpool(compressor.flush))

    json_size = json_path.stat().st_size
    gzip_size = gzip_path.stat().st_size
    logger.info(f"done: JSON {json_size / 1024 / 1024:.2f}MB, gzip {gzip_size / 1024 / 1024:.2f}MB")
    return {
        "json": {"path": str(json_path), "size": json_size},
        "gzip": {"path": str(gzip_path), "size": gzip_size},
    }
