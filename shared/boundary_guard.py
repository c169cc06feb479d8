#!/usr/bin/env python3
"""Windowing that keeps marker counts independent of how text was chunked."""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from shared.marker_scanner import MarkerScanner

logger = logging.getLogger(__name__)


@dataclass
class ScanState:
    """Per-run accumulator. Never shared between requests."""

    running_total: int = 0
    carry: str = ""
    bytes_processed: int = 0
    windows_scanned: int = 0
    peak_window: int = 0

    def reset(self):
        self.running_total = 0
        self.carry = ""
        self.bytes_processed = 0
        self.windows_scanned = 0
        self.peak_window = 0


class ChunkBoundaryGuard:
    """Split incoming text into windows the scanner can count safely.

    The last ``len(marker) - 1`` characters of every window are carried into
    the next one, but never characters that belong to a match already
    counted.  Pending text is flushed as soon as it reaches ``threshold``
    characters and once more when the stream ends.
    """

    def __init__(self, scanner: MarkerScanner, threshold: int,
                 state: Optional[ScanState] = None,
                 on_flush: Optional[Callable[[int], None]] = None):
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self.scanner = scanner
        self.threshold = threshold
        self.state = state if state is not None else ScanState()
        self.on_flush = on_flush
        self._carry_len = len(scanner) - 1
        self._pending = []
        self._pending_len = 0

    @property
    def pending_length(self) -> int:
        return self._pending_len

    def feed(self, text: str) -> int:
        """Append decoded text, flushing every time the threshold is reached.

        Returns the number of flushes triggered.
        """
        flushes = 0
        pos = 0
        while pos < len(text):
            room = self.threshold - self._pending_len
            piece = text[pos:pos + room]
            self._pending.append(piece)
            self._pending_len += len(piece)
            pos += len(piece)
            if self._pending_len >= self.threshold:
                self._scan_window()
                flushes += 1
        return flushes

    def flush(self, final: bool = False) -> int:
        """Scan pending text now. With ``final`` the carry is consumed too."""
        if self._pending_len or (final and self.state.carry):
            self._scan_window()
        if final:
            self.state.carry = ""
        return self.state.running_total

    def discard(self):
        """Drop all buffered text without counting it."""
        self._pending = []
        self._pending_len = 0
        self.state.carry = ""

    def _scan_window(self):
        window = self.state.carry + "".join(self._pending)
        self._pending = []
        self._pending_len = 0

        found, end = self.scanner.count_with_end(window)
        self.state.running_total += found
        self.state.windows_scanned += 1
        if len(window) > self.state.peak_window:
            self.state.peak_window = len(window)
        if self.on_flush is not None:
            self.on_flush(len(window))

        if self._carry_len:
            start = max(end, len(window) - self._carry_len)
            self.state.carry = window[start:]
        logger.debug("scanned window of %d chars, %d markers, total %d",
                     len(window), found, self.state.running_total)
