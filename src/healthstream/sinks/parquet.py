# parquet.py
# SPDX-License-Identifier: MIT
"""Parquet sink for parsed health records."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Optional

import pyarrow as pa
import pyarrow.parquet as pq

from ..core.interfaces import Record
from ..core.log import get_logger

log = get_logger(__name__)

# Attributes Apple Health puts on <Record>; anything else lands in ``extra``.
RECORD_COLUMNS = (
    "type",
    "sourceName",
    "sourceVersion",
    "device",
    "unit",
    "creationDate",
    "startDate",
    "endDate",
    "value",
)

SCHEMA = pa.schema(
    [pa.field(name, pa.string()) for name in RECORD_COLUMNS]
    + [pa.field("metadata", pa.string()), pa.field("extra", pa.string())]
)


class ParquetSink:
    """Write records to a single Parquet file in buffered row groups.

    Every column is a string so batches share one schema regardless of
    which attributes a given record carries. ``metadata`` and ``extra``
    hold JSON objects (or null).
    """

    def __init__(
        self,
        path: str | Path,
        *,
        batch_size: int = 10_000,
        compression: str = "snappy",
    ) -> None:
        """Initialize the sink configuration.

        Args:
            path (str | Path): Target ``.parquet`` file; replaced on a clean close.
            batch_size (int): Records buffered per row group.
            compression (str): Parquet compression codec name.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._target = Path(path)
        self._batch_size = batch_size
        self._compression = compression or "snappy"
        self._buffer: list[Record] = []
        self._writer: Optional[pq.ParquetWriter] = None
        self._tmp_path: Optional[Path] = None
        self._closed = True
        self.records_written = 0

    @property
    def path(self) -> Path:
        return self._target

    def open(self) -> None:
        """Start writing to ``<name>.tmp``; the target is replaced on :meth:`close`."""
        self._target.parent.mkdir(parents=True, exist_ok=True)
        self._buffer.clear()
        self._tmp_path = self._target.parent / f"{self._target.name}.tmp"
        self._writer = pq.ParquetWriter(self._tmp_path, SCHEMA, compression=self._compression)
        self._closed = False
        self.records_written = 0

    def write(self, record: Record) -> None:
        """Buffer a record and flush when the row group is full.

        Calls are ignored after the sink is closed.
        """
        if self._closed:
            log.warning("Write called on closed ParquetSink; ignoring record.")
            return
        self._buffer.append(record)
        if len(self._buffer) >= self._batch_size:
            self._flush_buffer()

    def close(self) -> None:
        """Flush buffered rows, finish the file and move it into place."""
        if self._closed:
            return
        try:
            if self._buffer:
                self._flush_buffer()
        except BaseException:
            self.abort()
            raise
        self._close_writer()
        if self._tmp_path is not None:
            os.replace(self._tmp_path, self._target)
            self._tmp_path = None
        log.debug("Wrote %d records to %s", self.records_written, self._target)

    def abort(self) -> None:
        """Drop buffered rows and the temp file, keeping any previous target."""
        if self._closed:
            return
        self._buffer.clear()
        try:
            self._close_writer()
        finally:
            if self._tmp_path is not None:
                self._tmp_path.unlink(missing_ok=True)
                self._tmp_path = None
        log.debug("Discarded partial output for %s", self._target)

    def __enter__(self) -> "ParquetSink":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()

    def _close_writer(self) -> None:
        try:
            if self._writer is not None:
                self._writer.close()
        finally:
            self._writer = None
            self._closed = True

    def _flush_buffer(self) -> None:
        if not self._buffer or self._writer is None:
            return
        table = _build_table(self._buffer)
        self._writer.write_table(table)
        self.records_written += table.num_rows
        self._buffer.clear()


def _build_table(rows: Sequence[Record]) -> pa.Table:
    """Convert buffered records into an Arrow table matching :data:`SCHEMA`."""
    out_rows: list[dict[str, Any]] = []
    for rec in rows:
        row: dict[str, Any] = {}
        for name in RECORD_COLUMNS:
            value = rec.get(name)
            row[name] = None if value is None else str(value)
        metadata = rec.get("metadata")
        row["metadata"] = _json_or_none(metadata if isinstance(metadata, Mapping) else None)
        extra = {k: v for k, v in rec.items() if k not in RECORD_COLUMNS and k != "metadata"}
        row["extra"] = _json_or_none(extra)
        out_rows.append(row)
    return pa.Table.from_pylist(out_rows, schema=SCHEMA)


def _json_or_none(value: Mapping[str, Any] | None) -> str | None:
    if not value:
        return None
    return json.dumps(dict(value), ensure_ascii=False, sort_keys=True)


__all__ = ["ParquetSink", "RECORD_COLUMNS", "SCHEMA"]
