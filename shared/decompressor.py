#!/usr/bin/env python3
"""Incremental gzip decoding shared by the buffered and streaming pipelines."""
import logging
import zlib
from typing import Iterator

from shared.errors import DecompressionError

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
GZIP_WBITS = 16 + zlib.MAX_WBITS


class GzipDecompressor:
    """Feed gzip bytes in any fragmentation, get decompressed bytes back.

    Concatenated gzip members are decoded one after another.  ``finish`` must
    be called after the last fragment; it raises ``DecompressionError`` when
    the input stopped in the middle of a member or no input was seen at all.
    """

    def __init__(self, max_output: int = 0):
        self.max_output = max_output
        self.compressed_bytes = 0
        self.decompressed_bytes = 0
        self._obj = zlib.decompressobj(GZIP_WBITS)
        self._finished = False

    def feed(self, data: bytes) -> Iterator[bytes]:
        """Yield decompressed output for ``data``.

        With ``max_output`` set, no yielded piece is larger than it.
        """
        if self._finished:
            raise DecompressionError("decompressor already finished")
        self.compressed_bytes += len(data)
        pending = data
        while pending:
            if self._obj.eof:
                pending = self._next_member(pending)
                if not pending:
                    break
            try:
                out = self._obj.decompress(pending, self.max_output)
            except zlib.error as e:
                raise DecompressionError(f"invalid gzip data: {e}") from e
            if out:
                self.decompressed_bytes += len(out)
                yield out
            if self._obj.eof:
                pending = self._obj.unused_data
            else:
                pending = self._obj.unconsumed_tail

    def finish(self) -> Iterator[bytes]:
        """Drain remaining output and verify the stream ended cleanly."""
        if self._finished:
            return
        self._finished = True
        try:
            out = self._obj.flush()
        except zlib.error as e:
            raise DecompressionError(f"invalid gzip data: {e}") from e
        if out:
            self.decompressed_bytes += len(out)
            yield out
        if self.compressed_bytes == 0:
            raise DecompressionError("unexpected end of file: no compressed data received")
        if not self._obj.eof:
            raise DecompressionError("unexpected end of file: gzip stream truncated")
        logger.debug("gzip stream done: %d -> %d bytes",
                     self.compressed_bytes, self.decompressed_bytes)

    def _next_member(self, data: bytes) -> bytes:
        # Trailing zero padding after the last member is tolerated, as gzip(1) does.
        if not data.strip(b"\x00"):
            return b""
        if not data.startswith(GZIP_MAGIC[:len(data)]):
            raise DecompressionError("trailing garbage after gzip member")
        self._obj = zlib.decompressobj(GZIP_WBITS)
        return data


def decompress_all(compressed: bytes) -> bytes:
    """Decompress a complete gzip block in one go."""
    decompressor = GzipDecompressor()
    parts = list(decompressor.feed(compressed))
    parts.extend(decompressor.finish())
    return b"".join(parts)
