#!/usr/bin/env python3
"""Marker counting used as a cheap stand-in for "number of records".

The marker is a literal token that opens every record (by default the
compact field name ``"id":``).  Counting it is an approximation: a marker
that happens to sit inside string data is counted too.
"""
import re
from typing import Tuple

from shared.config import DEFAULT_MARKER


class MarkerScanner:
    """Count non-overlapping marker occurrences with a global regex search."""

    def __init__(self, marker: str = DEFAULT_MARKER):
        if not marker:
            raise ValueError("marker must be a non-empty string")
        self.marker = marker
        self._pattern = re.compile(re.escape(marker))

    def __len__(self) -> int:
        return len(self.marker)

    def count(self, text: str) -> int:
        """Return how many times the marker occurs in ``text``."""
        if not text:
            return 0
        return len(self._pattern.findall(text))

    def count_with_end(self, text: str) -> Tuple[int, int]:
        """Return ``(count, end)`` where ``end`` is the offset just past the last match.

        ``end`` is 0 when nothing matched.
        """
        found = 0
        end = 0
        for match in self._pattern.finditer(text):
            found += 1
            end = match.end()
        return found, end


_default_scanner = MarkerScanner()


def scan(text: str, marker: str = DEFAULT_MARKER) -> int:
    """Count marker occurrences in a single, already delimited piece of text."""
    if marker == DEFAULT_MARKER:
        return _default_scanner.count(text)
    return MarkerScanner(marker).count(text)
