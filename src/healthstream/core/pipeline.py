# pipeline.py
# SPDX-License-Identifier: MIT
"""Programmatic entry points and ready-made processors."""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable

from .config import HealthStreamConfig
from .coordinator import StreamOutcome
from .interfaces import BlobStreamOpener, ProcessingDecision, RecordProcessor, RecordSink
from .log import get_logger
from .records import parse_record, record_type, type_filter
from .retry import RetryingFetcher

__all__ = ["process_blob", "run_process_blob", "RecordWriter", "TypeCounter"]

log = get_logger(__name__)


async def process_blob(
    key: str,
    processor: RecordProcessor,
    *,
    opener: BlobStreamOpener,
    config: HealthStreamConfig | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> StreamOutcome:
    """Stream every record of ``key`` through ``processor`` with retries.

    Args:
        key (str): Storage key understood by ``opener``.
        processor (RecordProcessor): Called once per wrapped record, in
            document order. Return ``False`` to stop early. Processors
            exposing ``begin_attempt(n)`` are told when a retry starts.
        opener (BlobStreamOpener): Where the bytes come from.
        config (HealthStreamConfig | None): Stream and marker settings;
            validated before any I/O.
        sleep: Delay function between retries.
        clock: Monotonic clock for progress reporting.

    Returns:
        StreamOutcome: ``completed`` or ``stopped`` plus run stats.

    Raises:
        ValueError: If the configuration is invalid.
        Exception: The last attempt's error once retries are exhausted.
    """
    cfg = config or HealthStreamConfig()
    cfg.validate()
    fetcher = RetryingFetcher(
        opener,
        stream=cfg.stream,
        markers=cfg.markers,
        sleep=sleep,
        clock=clock,
    )
    return await fetcher.fetch(key, processor, on_attempt=getattr(processor, "begin_attempt", None))


def run_process_blob(key: str, processor: RecordProcessor, **kwargs) -> StreamOutcome:
    """Blocking wrapper around :func:`process_blob` for scripts and the CLI."""
    return asyncio.run(process_blob(key, processor, **kwargs))


class RecordWriter:
    """Processor that parses records and writes the matching ones to a sink.

    A retry replays the blob from the start. Records up to the number
    already written are skipped on replay, so the sink sees each record
    once even across attempts.

    Args:
        sink (RecordSink): Open sink receiving parsed records.
        types: Record ``type`` values to keep; empty keeps all.
        limit (int | None): Stop the stream after this many written records.
    """

    def __init__(self, sink: RecordSink, *, types: Iterable[str] | None = None, limit: int | None = None):
        if limit is not None and limit <= 0:
            raise ValueError("limit must be > 0")
        self._sink = sink
        self._keep = type_filter(types)
        self.limit = limit
        self.written = 0
        self.skipped = 0
        self.unparsable = 0
        self._kept_this_attempt = 0

    def begin_attempt(self, attempt: int) -> None:
        self._kept_this_attempt = 0
        self.skipped = 0
        self.unparsable = 0
        if attempt:
            log.info("Replaying from the start; %d records already written", self.written)

    def __call__(self, document: str) -> ProcessingDecision:
        record = parse_record(document)
        if record is None:
            self.unparsable += 1
            return ProcessingDecision.CONTINUE
        if not self._keep(record):
            self.skipped += 1
            return ProcessingDecision.CONTINUE
        self._kept_this_attempt += 1
        if self._kept_this_attempt > self.written:
            self._sink.write(record)
            self.written += 1
        if self.limit is not None and self.written >= self.limit:
            return ProcessingDecision.STOP
        return ProcessingDecision.CONTINUE

    def as_dict(self) -> dict[str, int]:
        return {"written": self.written, "skipped": self.skipped, "unparsable": self.unparsable}


class TypeCounter:
    """Processor that tallies records per ``type`` without keeping them."""

    def __init__(self, *, types: Iterable[str] | None = None):
        self._keep = type_filter(types)
        self.counts: Counter[str] = Counter()
        self.unparsable = 0

    def begin_attempt(self, attempt: int) -> None:
        self.counts.clear()
        self.unparsable = 0

    def __call__(self, document: str) -> None:
        record = parse_record(document)
        if record is None:
            self.unparsable += 1
            return
        if self._keep(record):
            self.counts[record_type(record) or "<untyped>"] += 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())
