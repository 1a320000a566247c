from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path

import pyarrow.parquet as pq
import pytest

from healthstream.sinks.parquet import RECORD_COLUMNS, ParquetSink
from healthstream.sinks.sinks import GzipJSONLSink, JSONLSink

RECORDS = [
    {"type": "HKQuantityTypeIdentifierStepCount", "value": "12", "unit": "count", "metadata": {"k": "v"}},
    {"type": "HKQuantityTypeIdentifierHeartRate", "value": "61", "sourceName": "Montre ⌚"},
    {"type": "HKCategoryTypeIdentifierSleepAnalysis", "value": "HKCategoryValueSleepAnalysisAsleep", "custom": "x"},
]


def test_jsonl_sink_writes_temp_then_replaces(tmp_path: Path) -> None:
    path = tmp_path / "out" / "data.jsonl"
    sink = JSONLSink(path)
    sink.open()
    sink.write(RECORDS[0])
    assert not path.exists()
    assert (path.parent / "data.jsonl.tmp").exists()
    sink.close()

    assert path.exists()
    assert not (path.parent / "data.jsonl.tmp").exists()
    assert [json.loads(line) for line in path.read_text("utf-8").splitlines()] == [RECORDS[0]]
    assert sink.records_written == 1


def test_gzip_jsonl_sink_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "data.jsonl.gz"
    with GzipJSONLSink(path) as sink:
        for rec in RECORDS:
            sink.write(rec)

    with gzip.open(path, "rt", encoding="utf-8") as fp:
        lines = fp.read().splitlines()
    assert [json.loads(line) for line in lines] == RECORDS
    assert "Montre ⌚" in lines[1]


def test_write_before_open_raises(tmp_path: Path) -> None:
    sink = JSONLSink(tmp_path / "x.jsonl")
    with pytest.raises(RuntimeError):
        sink.write({"a": 1})


def test_parquet_sink_batches_and_schema(tmp_path: Path) -> None:
    path = tmp_path / "records.parquet"
    with ParquetSink(path, batch_size=2) as sink:
        for rec in RECORDS:
            sink.write(rec)
    assert sink.records_written == 3

    pf = pq.ParquetFile(path)
    assert pf.metadata.num_row_groups == 2
    table = pf.read()
    assert table.column_names == [*RECORD_COLUMNS, "metadata", "extra"]
    rows = table.to_pylist()
    assert [r["value"] for r in rows] == ["12", "61", "HKCategoryValueSleepAnalysisAsleep"]
    assert json.loads(rows[0]["metadata"]) == {"k": "v"}
    assert rows[1]["metadata"] is None
    assert rows[1]["sourceName"] == "Montre ⌚"
    assert json.loads(rows[2]["extra"]) == {"custom": "x"}


def test_parquet_sink_replaces_existing_file(tmp_path: Path) -> None:
    path = tmp_path / "records.parquet"
    for batch in (RECORDS, RECORDS[:1]):
        with ParquetSink(path) as sink:
            for rec in batch:
                sink.write(rec)
    assert pq.read_table(path).num_rows == 1


def test_parquet_write_after_close_is_ignored(tmp_path: Path, caplog) -> None:
    caplog.set_level(logging.WARNING, logger="healthstream")
    sink = ParquetSink(tmp_path / "r.parquet")
    sink.open()
    sink.close()
    sink.write(RECORDS[0])
    assert any("closed ParquetSink" in r.getMessage() for r in caplog.records)
    assert pq.read_table(tmp_path / "r.parquet").num_rows == 0


def test_jsonl_abort_keeps_previous_output(tmp_path: Path) -> None:
    path = tmp_path / "data.jsonl"
    path.write_text("previous\n", encoding="utf-8")
    sink = JSONLSink(path)
    sink.open()
    sink.write(RECORDS[0])
    sink.abort()

    assert path.read_text("utf-8") == "previous\n"
    assert not (tmp_path / "data.jsonl.tmp").exists()


def test_jsonl_context_manager_aborts_on_error(tmp_path: Path) -> None:
    path = tmp_path / "data.jsonl"
    with pytest.raises(ValueError):
        with JSONLSink(path) as sink:
            sink.write(RECORDS[0])
            raise ValueError("boom")
    assert not path.exists()
    assert not (tmp_path / "data.jsonl.tmp").exists()


def test_parquet_sink_writes_temp_until_close(tmp_path: Path) -> None:
    path = tmp_path / "records.parquet"
    with ParquetSink(path) as sink:
        sink.write(RECORDS[0])
    sink = ParquetSink(path)
    sink.open()
    sink.write(RECORDS[1])
    assert (tmp_path / "records.parquet.tmp").exists()
    assert pq.read_table(path).num_rows == 1
    sink.close()

    assert not (tmp_path / "records.parquet.tmp").exists()
    assert pq.read_table(path).column("value").to_pylist() == ["61"]


def test_parquet_abort_keeps_previous_output(tmp_path: Path) -> None:
    path = tmp_path / "records.parquet"
    with ParquetSink(path) as sink:
        for rec in RECORDS:
            sink.write(rec)
    sink = ParquetSink(path, batch_size=1)
    sink.open()
    sink.write(RECORDS[0])
    sink.abort()

    assert pq.read_table(path).num_rows == 3
    assert not (tmp_path / "records.parquet.tmp").exists()
    sink.write(RECORDS[0])
    assert pq.read_table(path).num_rows == 3
