# config.py
# SPDX-License-Identifier: MIT
"""Configuration models and helpers for healthstream runs.

Declarative dataclasses cover stream tuning, record markers, S3 access,
sinks, and logging, along with helpers for serializing configurations and
loading them from JSON or TOML.
"""
from __future__ import annotations

import json
import os
try:  # pragma: no cover - optional dependency
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    try:
        import tomli as tomllib  # type: ignore[assignment]
    except Exception:  # pragma: no cover
        tomllib = None  # type: ignore[assignment]
from collections.abc import Sequence as ABCSequence
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from .log import PACKAGE_LOGGER_NAME, configure_logging

MiB = 1024 * 1024


# ---------------------------------------------------------------------------
# Stream + marker configs
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class StreamConfig:
    """Tuning knobs for one streaming extraction.

    Attributes:
        max_retries (int): Additional whole-stream attempts after the first
            failure. The default of 3 allows four attempts in total.
        retry_delay (float): Fixed delay in seconds between attempts.
        max_chunk_size (int): Upper bound, in characters, on buffered text
            that has not yet been turned into records.
        read_size (int): Bytes requested per read from the underlying store.
        progress_interval (float): Seconds of wall-clock time between
            progress log lines.
        collect_garbage (bool): Run ``gc.collect()`` at each progress tick.
        encoding (str): Text encoding of the exported document.
    """
    max_retries: int = 3
    retry_delay: float = 2.0
    max_chunk_size: int = 50 * MiB
    read_size: int = 64 * 1024
    progress_interval: float = 30.0
    collect_garbage: bool = False
    encoding: str = "utf-8"

    def validate(self) -> None:
        if self.max_retries < 0:
            raise ValueError("stream.max_retries must be >= 0.")
        if self.retry_delay < 0:
            raise ValueError("stream.retry_delay must be >= 0.")
        if self.max_chunk_size <= 0:
            raise ValueError("stream.max_chunk_size must be > 0.")
        if self.read_size <= 0:
            raise ValueError("stream.read_size must be > 0.")
        if self.progress_interval <= 0:
            raise ValueError("stream.progress_interval must be > 0.")


@dataclass(slots=True)
class MarkerConfig:
    """Record delimiters and the synthetic root used to wrap fragments."""
    start: str = "<Record"
    end: str = "</Record>"
    prolog: str = '<?xml version="1.0" encoding="UTF-8"?>'
    root_tag: str = "HealthData"

    def validate(self) -> None:
        if not self.start or not self.end:
            raise ValueError("markers.start and markers.end must be non-empty.")
        if not self.root_tag:
            raise ValueError("markers.root_tag must be non-empty.")

    def wrap(self, fragment: str) -> str:
        """Wrap a record fragment so it parses as a standalone document."""
        return f"{self.prolog}<{self.root_tag}>{fragment}</{self.root_tag}>"


# ---------------------------------------------------------------------------
# Storage, sinks, logging
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class S3Config:
    """S3-compatible storage settings.

    ``endpoint_url`` allows MinIO or other S3-compatible stores. Credentials
    are optional; when omitted boto3 resolves them from its default chain.
    Credentials are never serialized by :meth:`HealthStreamConfig.to_dict`.
    """
    bucket: Optional[str] = None
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "S3Config":
        """Build settings from the usual ``AWS_*`` environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            bucket=env.get("AWS_BUCKET_NAME") or None,
            region=env.get("AWS_REGION") or None,
            endpoint_url=env.get("AWS_ENDPOINT_URL") or None,
            access_key=env.get("AWS_ACCESS_KEY_ID") or None,
            secret_key=env.get("AWS_SECRET_ACCESS_KEY") or None,
        )

    def merged_with_env(self, environ: Mapping[str, str] | None = None) -> "S3Config":
        """Fill unset fields from the environment, keeping explicit values."""
        env_cfg = S3Config.from_env(environ)
        return S3Config(
            bucket=self.bucket or env_cfg.bucket,
            region=self.region or env_cfg.region,
            endpoint_url=self.endpoint_url or env_cfg.endpoint_url,
            access_key=self.access_key or env_cfg.access_key,
            secret_key=self.secret_key or env_cfg.secret_key,
        )


SINK_FORMATS = ("jsonl", "jsonl.gz", "parquet")


@dataclass(slots=True)
class SinkConfig:
    """Output settings for the CLI extract command.

    Attributes:
        format (str): One of ``jsonl``, ``jsonl.gz`` or ``parquet``.
        parquet_batch_size (int): Rows buffered before a Parquet row group
            is flushed.
        record_types (tuple[str, ...]): Only keep records whose ``type``
            attribute is listed. Empty keeps everything.
    """
    format: str = "jsonl"
    parquet_batch_size: int = 10_000
    record_types: Tuple[str, ...] = ()

    def validate(self) -> None:
        fmt = (self.format or "").strip().lower()
        if fmt not in SINK_FORMATS:
            raise ValueError(f"sinks.format must be one of {list(SINK_FORMATS)}; got {self.format!r}.")
        self.format = fmt
        if self.parquet_batch_size <= 0:
            raise ValueError("sinks.parquet_batch_size must be > 0.")


@dataclass(slots=True)
class LoggingConfig:
    """Controls the package logger.

    ``propagate=None`` leaves records flowing to ancestor loggers; set it to
    ``False`` to keep them on the package handler only.
    """
    level: int | str = "INFO"
    propagate: Optional[bool] = None
    fmt: Optional[str] = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    logger_name: str = PACKAGE_LOGGER_NAME

    def apply(self) -> None:
        """Apply this logging configuration to the package logger."""
        configure_logging(
            level=self.level,
            propagate=self.propagate,
            fmt=self.fmt,
            logger_name=self.logger_name or PACKAGE_LOGGER_NAME,
        )


# ---------------------------------------------------------------------------
# Master config
# ---------------------------------------------------------------------------

T = TypeVar("T")


@dataclass(slots=True)
class HealthStreamConfig:
    """Declarative spec for a healthstream run.

    Only serializable knobs live here. Openers, processors, sinks and
    clients are runtime wiring and are passed separately.
    """
    stream: StreamConfig = field(default_factory=StreamConfig)
    markers: MarkerConfig = field(default_factory=MarkerConfig)
    s3: S3Config = field(default_factory=S3Config)
    sinks: SinkConfig = field(default_factory=SinkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        """Validate nested sections, normalizing values in place."""
        self.stream.validate()
        self.markers.validate()
        self.sinks.validate()

    # -------------------------
    # Serialization helpers
    # -------------------------
    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation (credentials omitted)."""
        return _dataclass_to_dict(self)

    def to_json(self, path: Path | str, *, indent: int = 2) -> str:
        """Serialize the configuration to JSON at ``path`` and return the path."""
        target = Path(path)
        target.write_text(json.dumps(self.to_dict(), indent=indent, sort_keys=True), encoding="utf-8")
        return str(target)

    @classmethod
    def from_dict(cls: Type[T], data: Mapping[str, Any]) -> T:
        return _dataclass_from_dict(cls, data)

    @classmethod
    def from_json(cls: Type[T], path: Path | str) -> T:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_dict(payload)

    @classmethod
    def from_toml(cls: Type[T], path: Path | str) -> T:
        """
        Load a config from TOML.

        The layout mirrors this dataclass: top-level tables [stream],
        [markers], [s3], [sinks] and [logging].
        """
        if tomllib is None:
            raise RuntimeError(
                "TOML support requires Python 3.11+ (tomllib) or installing the 'tomli' package."
            )
        data = tomllib.loads(Path(path).read_bytes().decode("utf-8"))
        if not isinstance(data, Mapping):
            raise TypeError(f"Top-level TOML document must be a mapping; got {type(data).__name__}.")
        return cls.from_dict(data)


def load_config_from_path(path: str | Path) -> HealthStreamConfig:
    """Load a HealthStreamConfig from a ``.toml`` or ``.json`` file.

    Raises:
        ValueError: If the file extension is not ``.toml`` or ``.json``.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".toml":
        return HealthStreamConfig.from_toml(p)
    if suffix == ".json":
        return HealthStreamConfig.from_json(p)
    raise ValueError(f"Unsupported config extension {p.suffix!r}; expected .toml or .json.")


_SKIP_FIELDS: Dict[Type[Any], set[str]] = {
    S3Config: {"access_key", "secret_key"},
}


def _dataclass_to_dict(obj: Any) -> Dict[str, Any]:
    """Serialize dataclasses to JSON-friendly dicts, skipping None values."""
    result: Dict[str, Any] = {}
    skip = _SKIP_FIELDS.get(type(obj), set())
    for f in fields(obj):
        if f.name in skip:
            continue
        value = getattr(obj, f.name)
        if value is None:
            continue
        serialized = _serialize_value(value)
        if serialized is not None:
            result[f.name] = serialized
    return result


def _serialize_value(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _serialize_value(v) for k, v in value.items() if v is not None}
    if is_dataclass(value):
        return _dataclass_to_dict(value)
    return None


def _dataclass_from_dict(cls: Type[T], data: Mapping[str, Any] | None) -> T:
    """Instantiate dataclass ``cls`` from a mapping, recursing into nested sections."""
    if data is None:
        return cls()  # type: ignore[call-arg]
    type_hints = get_type_hints(cls)
    known = {f.name for f in fields(cls)}
    unknown = sorted(k for k in data if k not in known)
    if unknown:
        raise ValueError(f"Unsupported options for {cls.__name__}: {', '.join(unknown)}")
    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        try:
            kwargs[f.name] = _coerce_value(type_hints.get(f.name, f.type), data[f.name])
        except ValueError as exc:
            raise ValueError(f"{cls.__name__}.{f.name}: {exc}") from exc
    return cls(**kwargs)  # type: ignore[arg-type]


def _coerce_value(expected_type: Any, value: Any) -> Any:
    """Coerce ``value`` into the shape implied by ``expected_type``."""
    base_type = _strip_optional(expected_type)
    if value is None:
        return None
    if isinstance(base_type, type) and is_dataclass(base_type):
        return _dataclass_from_dict(base_type, value)
    origin = get_origin(base_type)
    if origin in (list, tuple, ABCSequence):
        args = [a for a in get_args(base_type) if a is not Ellipsis]
        inner = args[0] if args else Any
        items = [_coerce_value(inner, v) for v in value]
        return tuple(items) if origin is tuple else items
    if base_type is Path:
        return Path(value)
    if base_type in _SCALARS:
        return _coerce_scalar(base_type, value)
    return value


_SCALARS = (str, int, float, bool)
_TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "off", "0"})


def _coerce_scalar(base_type: type, value: Any) -> Any:
    """Convert ``value`` to ``base_type`` without lossy casts.

    Raises:
        ValueError: If ``value`` does not represent a ``base_type`` exactly,
            e.g. ``"maybe"`` for a bool or ``2.5`` for an int.
    """
    if base_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
            return value.strip().lower() in _TRUE_STRINGS
    elif base_type is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                pass
    elif base_type is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                pass
    elif isinstance(value, str):
        return value
    raise ValueError(f"Expected {base_type.__name__}, got {value!r}")


def _strip_optional(typ: Any) -> Any:
    """Return the non-None member of ``Optional[X]``; other types pass through."""
    if get_origin(typ) is Union:
        args = [arg for arg in get_args(typ) if arg is not type(None)]
        if len(args) == 1:
            return _strip_optional(args[0])
    return typ


__all__ = [
    "HealthStreamConfig",
    "StreamConfig",
    "MarkerConfig",
    "S3Config",
    "SinkConfig",
    "LoggingConfig",
    "SINK_FORMATS",
    "load_config_from_path",
]
