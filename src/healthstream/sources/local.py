# local.py
# SPDX-License-Identifier: MIT
"""Blob openers backed by the local filesystem and by memory."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from ..core.errors import StorageError, StorageNotFoundError, StoragePermissionError
from ..core.log import get_logger
from ..core.streams import ChunkListStream, ThreadedByteStream

__all__ = ["LocalFileOpener", "MemoryBlobOpener"]

log = get_logger(__name__)


class LocalFileOpener:
    """Open files beneath ``root`` as async byte streams.

    Keys are paths relative to ``root``; absolute keys and keys that
    resolve outside the root are refused.
    """

    def __init__(self, root: str | Path = ".", *, read_size: int = 64 * 1024) -> None:
        self.root = Path(root)
        self._root_resolved = self.root.resolve()
        self._read_size = read_size

    def resolve(self, key: str) -> Path:
        """Return the absolute path for ``key``, enforcing root containment."""
        rel = Path(key)
        if rel.is_absolute() or any(part == ".." for part in rel.parts):
            raise StoragePermissionError(f"Key escapes root: {key}")
        candidate = (self._root_resolved / rel).resolve()
        try:
            candidate.relative_to(self._root_resolved)
        except ValueError:
            raise StoragePermissionError(f"Key escapes root: {key}") from None
        return candidate

    async def open(self, key: str) -> ThreadedByteStream:
        path = self.resolve(key)
        try:
            fh = open(path, "rb")
        except FileNotFoundError:
            raise StorageNotFoundError(key) from None
        except PermissionError as exc:
            raise StoragePermissionError(f"Cannot read {key}: {exc}") from exc
        except OSError as exc:
            raise StorageError(f"Cannot open {key}: {exc}") from exc
        log.debug("Opened %s", path)
        return ThreadedByteStream(fh, read_size=self._read_size)


class MemoryBlobOpener:
    """Serve in-memory blobs split into fixed-size chunks.

    Args:
        blobs: Mapping of key to raw bytes.
        chunk_size (int): Bytes per chunk handed to the pipeline.
        failures: Optional ``key -> [fail_after, ...]``; the n-th open of a
            key raises after that many chunks (``None`` entries succeed).
    """

    def __init__(
        self,
        blobs: Mapping[str, bytes],
        *,
        chunk_size: int = 64 * 1024,
        failures: Mapping[str, list[int | None]] | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self.blobs = dict(blobs)
        self.chunk_size = chunk_size
        self._failures = {k: list(v) for k, v in (failures or {}).items()}
        self.opened: list[ChunkListStream] = []

    async def open(self, key: str) -> ChunkListStream:
        if key not in self.blobs:
            raise StorageNotFoundError(key)
        data = self.blobs[key]
        chunks = [data[i : i + self.chunk_size] for i in range(0, len(data), self.chunk_size)]
        plan = self._failures.get(key)
        fail_after = plan.pop(0) if plan else None
        stream = ChunkListStream(chunks, fail_after=fail_after)
        self.opened.append(stream)
        return stream
