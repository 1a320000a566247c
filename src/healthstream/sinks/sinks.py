# sinks.py
# SPDX-License-Identifier: MIT
"""Sinks for writing parsed health records as JSON lines."""
from __future__ import annotations

import gzip
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Self, TextIO

from ..core.log import get_logger

log = get_logger(__name__)


class _BaseJSONLSink:
    """Shared JSONL sink logic: write to ``<name>.tmp`` then move into place."""

    def __init__(self, out_path: str | os.PathLike[str]):
        """Configure a JSONL sink.

        Args:
            out_path (str | os.PathLike[str]): Destination file path.
        """
        self._path = Path(out_path)
        self._fp: TextIO | None = None
        self._tmp_path: Path | None = None
        self.records_written = 0

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        """Create the temp file that receives records until :meth:`close`."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._tmp_path = self._path.parent / f"{self._path.name}.tmp"
        self._fp = self._open_handle(self._tmp_path)
        self.records_written = 0

    def write(self, record: Mapping[str, Any]) -> None:
        """Write a single JSON record as a compact line."""
        if self._fp is None:
            raise RuntimeError(f"{type(self).__name__} is not open")
        self._fp.write(json.dumps(dict(record), ensure_ascii=False, separators=(",", ":")) + "\n")
        self.records_written += 1

    def close(self) -> None:
        """Close any open handle and move the temp file into place."""
        if not self._fp:
            return
        try:
            self._fp.close()
        finally:
            self._fp = None
        if self._tmp_path:
            os.replace(self._tmp_path, self._path)
            self._tmp_path = None
        log.debug("Wrote %d records to %s", self.records_written, self._path)

    def abort(self) -> None:
        """Close the handle and delete the temp file; the target is not touched."""
        try:
            if self._fp:
                self._fp.close()
        finally:
            self._fp = None
            if self._tmp_path:
                self._tmp_path.unlink(missing_ok=True)
                self._tmp_path = None
        log.debug("Discarded partial output for %s", self._path)

    def __enter__(self) -> Self:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        """Ensure resources are closed when used as a context manager."""
        if exc_type is None:
            self.close()
        else:
            self.abort()

    def _open_handle(self, path: Path):
        """Return a write handle for a fresh file path."""
        raise NotImplementedError


class JSONLSink(_BaseJSONLSink):
    """Simple streaming JSONL sink (one record per line)."""

    def _open_handle(self, path: Path):
        return open(path, "w", encoding="utf-8", newline="")


class GzipJSONLSink(_BaseJSONLSink):
    """Streaming JSONL sink that gzip-compresses its output."""

    def _open_handle(self, path: Path):
        return gzip.open(path, "wt", encoding="utf-8", newline="")


__all__ = ["JSONLSink", "GzipJSONLSink"]
