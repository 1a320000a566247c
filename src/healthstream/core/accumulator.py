# accumulator.py
# SPDX-License-Identifier: MIT
"""Growable text buffer fed by raw byte chunks.

Chunks are decoded incrementally, so a multi-byte character split across two
network reads is reassembled before it reaches the buffer. Consumed text is
tracked with a cursor and only physically dropped on the next append, which
keeps per-record consumption O(1).
"""

from __future__ import annotations

import codecs

from .log import get_logger

__all__ = ["ChunkAccumulator"]

log = get_logger(__name__)


class ChunkAccumulator:
    """Text buffer holding everything read but not yet turned into records.

    Attributes:
        max_size (int): Bound, in characters, on unconsumed text after an
            extraction pass (see :meth:`enforce_limit`).
        discarded_chars (int): Characters dropped by size enforcement or by
            the splitter's corruption salvage.
    """

    def __init__(self, *, max_size: int, encoding: str = "utf-8") -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self.max_size = max_size
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buf = ""
        self._pos = 0
        # Offset where text not yet searched for an end marker begins.
        self._scan_from = 0
        self.bytes_in = 0
        self.chunks_in = 0
        self.discarded_chars = 0

    def __len__(self) -> int:
        return len(self._buf) - self._pos

    @property
    def text(self) -> str:
        """The full backing string; valid indices start at :attr:`pos`."""
        return self._buf

    @property
    def pos(self) -> int:
        return self._pos

    @property
    def scan_from(self) -> int:
        return max(self._scan_from, self._pos)

    def append(self, chunk: bytes) -> None:
        """Decode ``chunk`` and add it to the end of the buffer."""
        self.bytes_in += len(chunk)
        self.chunks_in += 1
        self._extend(self._decoder.decode(chunk))

    def finish(self) -> None:
        """Flush any bytes still held by the incremental decoder."""
        self._extend(self._decoder.decode(b"", final=True))

    def _extend(self, text: str) -> None:
        if not text:
            return
        if self._pos:
            self._scan_from = max(0, self._scan_from - self._pos)
            self._buf = self._buf[self._pos:]
            self._pos = 0
        self._buf += text

    def mark_scanned(self, end_marker: str) -> None:
        """Record that no end marker starts before the last ``len(marker) - 1`` chars."""
        self._scan_from = max(self._pos, len(self._buf) - len(end_marker) + 1)

    def consume(self, upto: int) -> None:
        """Drop buffered text before absolute index ``upto``."""
        if upto < self._pos or upto > len(self._buf):
            raise ValueError(f"consume offset {upto} outside [{self._pos}, {len(self._buf)}]")
        self._pos = upto

    def discard(self, upto: int) -> None:
        """Drop text before ``upto`` and count it as lost."""
        self.discarded_chars += upto - self._pos
        self.consume(upto)

    def clear(self) -> None:
        self._buf = ""
        self._pos = 0
        self._scan_from = 0

    def enforce_limit(self, end_marker: str) -> int:
        """Trim the buffer when unconsumed text exceeds :attr:`max_size`.

        Keeps everything after the last end marker when one exists;
        otherwise clears the buffer with a warning. Returns the number of
        characters dropped.
        """
        size = len(self)
        if size <= self.max_size:
            return 0
        last_end = self._buf.rfind(end_marker, self._pos)
        if last_end != -1:
            cut = last_end + len(end_marker)
            dropped = cut - self._pos
            self.discard(cut)
            log.info("Trimmed buffer by %d chars, keeping partial record of %d chars", dropped, len(self))
            return dropped
        log.warning(
            "Clearing %d buffered chars with no complete record (limit %d)",
            size,
            self.max_size,
        )
        self.discarded_chars += size
        self.clear()
        return size
