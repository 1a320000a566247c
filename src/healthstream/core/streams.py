# streams.py
# SPDX-License-Identifier: MIT
"""Async byte-stream adapters over blocking readers and in-memory chunks."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import IO, Any

from .log import get_logger

__all__ = ["ThreadedByteStream", "ChunkListStream"]

log = get_logger(__name__)


class ThreadedByteStream:
    """Expose a blocking ``read(n)`` reader as an async byte stream.

    Each read runs in a worker thread via :func:`asyncio.to_thread`. Reads
    are awaited one at a time, so the reader never sees concurrent calls.

    Args:
        reader: Object with ``read(n) -> bytes`` and ``close()``.
        read_size (int): Bytes requested per read.
        map_error: Optional translator applied to exceptions raised by
            ``read`` (e.g. SDK errors -> StorageError).
    """

    def __init__(
        self,
        reader: IO[bytes] | Any,
        *,
        read_size: int = 64 * 1024,
        map_error: Callable[[Exception], Exception] | None = None,
    ) -> None:
        if read_size <= 0:
            raise ValueError("read_size must be > 0")
        self._reader = reader
        self._read_size = read_size
        self._map_error = map_error
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> ThreadedByteStream:
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        try:
            chunk = await asyncio.to_thread(self._reader.read, self._read_size)
        except Exception as exc:
            if self._map_error is None:
                raise
            raise self._map_error(exc) from exc
        if not chunk:
            raise StopAsyncIteration
        return bytes(chunk)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._reader.close()
        except Exception as exc:  # noqa: BLE001
            log.warning("Error while closing %s: %s", type(self._reader).__name__, exc)


class ChunkListStream:
    """Serve pre-split chunks; optionally raise after a given chunk index."""

    def __init__(self, chunks: Iterable[bytes], *, fail_after: int | None = None, error: Exception | None = None):
        self._chunks = list(chunks)
        self._index = 0
        self._fail_after = fail_after
        self._error = error
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    def __aiter__(self) -> ChunkListStream:
        return self

    async def __anext__(self) -> bytes:
        if self.closed:
            raise StopAsyncIteration
        if self._fail_after is not None and self._index >= self._fail_after:
            raise self._error or ConnectionResetError("stream interrupted")
        if self._index >= len(self._chunks):
            raise StopAsyncIteration
        chunk = self._chunks[self._index]
        self._index += 1
        # Yield control so interleavings resemble a real network stream.
        await asyncio.sleep(0)
        return chunk

    async def aclose(self) -> None:
        self.close_calls += 1
