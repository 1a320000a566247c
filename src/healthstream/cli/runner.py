# runner.py
# SPDX-License-Identifier: MIT

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from ..core.config import HealthStreamConfig
from ..core.interfaces import BlobStreamOpener, RecordSink
from ..core.log import get_logger
from ..core.pipeline import RecordWriter, TypeCounter, run_process_blob
from ..sinks.parquet import ParquetSink
from ..sinks.sinks import GzipJSONLSink, JSONLSink
from ..sources.local import LocalFileOpener
from ..sources.s3 import S3BlobOpener

log = get_logger(__name__)


@dataclass(slots=True)
class SourceSpec:
    """Where a blob lives: ``scheme`` is ``s3`` or ``file``."""

    scheme: str
    key: str
    bucket: str | None = None
    root: Path | None = None


def parse_source(source: str) -> SourceSpec:
    """Split ``s3://bucket/key`` or a local path into a :class:`SourceSpec`.

    Raises:
        ValueError: If an ``s3://`` URI lacks a bucket or key, or another
            URI scheme is used.
    """
    parts = urlsplit(source)
    if parts.scheme == "s3":
        key = parts.path.lstrip("/")
        if not parts.netloc or not key:
            raise ValueError(f"S3 source must look like s3://bucket/key; got {source!r}")
        return SourceSpec(scheme="s3", bucket=parts.netloc, key=key)
    if parts.scheme and len(parts.scheme) > 1:
        raise ValueError(f"Unsupported source scheme {parts.scheme!r}")
    path = Path(source).expanduser().resolve()
    return SourceSpec(scheme="file", key=path.name, root=path.parent)


def make_opener(src: SourceSpec, cfg: HealthStreamConfig, *, s3_client: Any = None) -> BlobStreamOpener:
    """Build the opener for ``src``; S3 settings fall back to ``AWS_*`` env vars."""
    if src.scheme == "s3":
        s3_cfg = replace(cfg.s3.merged_with_env(), bucket=src.bucket)
        return S3BlobOpener(s3_cfg, client=s3_client, read_size=cfg.stream.read_size)
    return LocalFileOpener(src.root or Path("."), read_size=cfg.stream.read_size)


def make_sink(path: str | Path, cfg: HealthStreamConfig) -> RecordSink:
    fmt = cfg.sinks.format
    if fmt == "parquet":
        return ParquetSink(path, batch_size=cfg.sinks.parquet_batch_size)
    if fmt == "jsonl.gz":
        return GzipJSONLSink(path)
    return JSONLSink(path)


def extract(
    source: str,
    output: str | Path,
    cfg: HealthStreamConfig | None = None,
    *,
    limit: int | None = None,
    s3_client: Any = None,
) -> dict[str, Any]:
    """Stream ``source`` into ``output`` using the configured sink format.

    Returns:
        dict[str, Any]: Outcome stats plus the writer's counters.
    """
    cfg = cfg or HealthStreamConfig()
    cfg.validate()
    src = parse_source(source)
    opener = make_opener(src, cfg, s3_client=s3_client)
    sink = make_sink(output, cfg)
    writer = RecordWriter(sink, types=cfg.sinks.record_types, limit=limit)
    sink.open()
    try:
        outcome = run_process_blob(src.key, writer, opener=opener, config=cfg)
    except BaseException:
        sink.abort()
        raise
    sink.close()
    result: dict[str, Any] = outcome.as_dict()
    result.update(writer.as_dict())
    result["output"] = str(output)
    log.info("extract complete: %s", result)
    return result


def count(
    source: str,
    cfg: HealthStreamConfig | None = None,
    *,
    s3_client: Any = None,
) -> dict[str, Any]:
    """Count records per type in ``source`` without writing anything."""
    cfg = cfg or HealthStreamConfig()
    cfg.validate()
    src = parse_source(source)
    opener = make_opener(src, cfg, s3_client=s3_client)
    counter = TypeCounter(types=cfg.sinks.record_types)
    outcome = run_process_blob(src.key, counter, opener=opener, config=cfg)
    result: dict[str, Any] = outcome.as_dict()
    result["total"] = counter.total
    result["unparsable"] = counter.unparsable
    result["types"] = dict(sorted(counter.counts.items()))
    return result


__all__ = ["SourceSpec", "parse_source", "make_opener", "make_sink", "extract", "count"]
