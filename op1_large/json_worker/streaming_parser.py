#!/usr/bin/env python3
"""Constant-memory structural record counter for gzip JSON payloads."""
import gzip, ijson, logging, pathlib
from typing import Iterator, Any

logger = logging.getLogger(__name__)

GZIP_MAGIC = b'\x1f\x8b'

def open_payload(path):
    """Open ``path`` for binary reading, transparently gunzipping it."""
    with open(path, 'rb') as f:
        magic = f.read(2)
    if magic == GZIP_MAGIC:
        return gzip.open(path, 'rb')
    return open(path, 'rb')

class StreamingJSONParser:
    def auto_detect_json_structure(self, path) -> str:
        """Return 'array', 'object', or 'unknown'."""
        try:
            with open_payload(path) as f:
                while True:
                    ch = f.read(1)
                    if not ch:
                        return 'unknown'
                    if not ch.isspace():
                        if ch == b'[':
                            return 'array'
                        if ch == b'{':
                            return 'object'
                        return 'unknown'
        except (OSError, EOFError) as e:
            logger.error(f"detect structure failed: {e}")
            return 'unknown'

    def records_pointer(self, path) -> str:
        """ijson prefix of the record list: top-level array or the ``items`` field."""
        return 'item' if self.auto_detect_json_structure(path) == 'array' else 'items.item'

    def iter_records(self, path, pointer: str = 'item') -> Iterator[Any]:
        """Yield parsed objects without loading full file."""
        try:
            with open_payload(path) as f:
                for obj in ijson.items(f, pointer):
                    yield obj
        except Exception as e:
            logger.error(f"stream parse failed: {e}")
            raise

    def count_records(self, path, pointer: str = None) -> int:
        """Exact number of records, for comparison with the marker estimate."""
        ptr = pointer if pointer is not None else self.records_pointer(path)
        return sum(1 for _ in self.iter_records(path, pointer=ptr))
