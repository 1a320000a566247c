# splitter.py
# SPDX-License-Identifier: MIT
"""Boundary-safe extraction of delimited record fragments from a text buffer."""

from __future__ import annotations

from .accumulator import ChunkAccumulator
from .config import MarkerConfig
from .log import get_logger

__all__ = ["RecordSplitter"]

log = get_logger(__name__)


class RecordSplitter:
    """Pull complete ``start ... end`` fragments out of a :class:`ChunkAccumulator`.

    Only text up to an end marker is ever consumed, so a record whose
    delimiters straddle chunk boundaries stays buffered until its end
    marker arrives. For any chunking of the same bytes the sequence of
    fragments is identical.

    An end marker with no start marker before it marks a corrupted region.
    The splitter skips ahead to the next start marker already buffered, or
    past the end marker when none is, and keeps going.
    """

    def __init__(self, markers: MarkerConfig | None = None) -> None:
        self.markers = markers or MarkerConfig()
        self.corrupted_regions = 0

    def next_fragment(self, acc: ChunkAccumulator) -> str | None:
        """Return the next wrapped fragment, or None when no end marker is buffered."""
        start, end = self.markers.start, self.markers.end
        while True:
            buf = acc.text
            end_idx = buf.find(end, acc.scan_from)
            if end_idx == -1:
                acc.mark_scanned(end)
                return None
            stop = end_idx + len(end)

            start_idx = buf.rfind(start, acc.pos, end_idx)
            if start_idx == -1:
                self.corrupted_regions += 1
                next_start = buf.find(start, stop)
                skip_to = next_start if next_start != -1 else stop
                log.debug(
                    "Skipping %d chars of corrupted data (end marker without start)",
                    skip_to - acc.pos,
                )
                acc.discard(skip_to)
                continue

            fragment = buf[start_idx:stop]
            acc.consume(stop)
            return self.markers.wrap(fragment)
