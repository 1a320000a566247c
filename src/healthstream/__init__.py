# __init__.py
# SPDX-License-Identifier: MIT
"""
Top-level package exports for :mod:`healthstream`.

healthstream pulls ``<Record>`` elements out of very large health-data XML
exports (Apple Health ``export.xml`` and friends) without ever holding the
whole document in memory. Bytes arrive in chunks from S3 or the local
filesystem, are decoded incrementally, split on record markers, and handed
one wrapped record at a time to a caller-supplied processor.

Public surface
--------------
- :func:`process_blob` / :func:`run_process_blob`: stream one blob through
  a processor with whole-stream retries, returning a :class:`StreamOutcome`.
- :class:`HealthStreamConfig` and :func:`load_config_from_path` for
  declarative settings (TOML/JSON).
- Openers: :class:`S3BlobOpener`, :class:`LocalFileOpener`,
  :class:`MemoryBlobOpener`.
- :func:`parse_record` plus the JSONL and Parquet sinks for turning
  records into datasets.

Examples:
    Count step records in a local export::

        >>> from healthstream import LocalFileOpener, run_process_blob
        >>> seen = []
        >>> outcome = run_process_blob(
        ...     "export.xml",
        ...     seen.append,
        ...     opener=LocalFileOpener("path/to/export"),
        ... )
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Package version
# ---------------------------------------------------------------------------
try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("healthstream")
except Exception:  # PackageNotFoundError or runtime env oddities
    __version__ = "0.0.0+unknown"


from .core.config import (
    HealthStreamConfig,
    LoggingConfig,
    MarkerConfig,
    S3Config,
    SinkConfig,
    StreamConfig,
    load_config_from_path,
)
from .core.coordinator import StreamCoordinator, StreamOutcome, StreamState
from .core.errors import (
    HealthStreamError,
    StorageConfigurationError,
    StorageError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageUnavailableError,
)
from .core.interfaces import BlobStreamOpener, ByteStream, ProcessingDecision, RecordSink
from .core.log import configure_logging, get_logger, temp_level
from .core.pipeline import RecordWriter, TypeCounter, process_blob, run_process_blob
from .core.records import parse_record
from .core.retry import RetryingFetcher
from .sinks.sinks import GzipJSONLSink, JSONLSink
from .sources.local import LocalFileOpener, MemoryBlobOpener
from .sources.s3 import S3BlobOpener

__all__ = [
    "__version__",
    "process_blob",
    "run_process_blob",
    "HealthStreamConfig",
    "StreamConfig",
    "MarkerConfig",
    "S3Config",
    "SinkConfig",
    "LoggingConfig",
    "load_config_from_path",
    "StreamCoordinator",
    "StreamOutcome",
    "StreamState",
    "RetryingFetcher",
    "ProcessingDecision",
    "ByteStream",
    "BlobStreamOpener",
    "RecordSink",
    "RecordWriter",
    "TypeCounter",
    "parse_record",
    "JSONLSink",
    "GzipJSONLSink",
    "S3BlobOpener",
    "LocalFileOpener",
    "MemoryBlobOpener",
    "HealthStreamError",
    "StorageError",
    "StorageConfigurationError",
    "StorageNotFoundError",
    "StoragePermissionError",
    "StorageUnavailableError",
    "configure_logging",
    "get_logger",
    "temp_level",
]
