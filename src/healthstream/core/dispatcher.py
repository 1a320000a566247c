# dispatcher.py
# SPDX-License-Identifier: MIT
"""Sequential hand-off of record fragments to the caller's processor."""

from __future__ import annotations

import gc
import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass

from .interfaces import ProcessingDecision, RecordProcessor
from .log import get_logger

__all__ = ["PipelineStats", "RecordDispatcher"]

log = get_logger(__name__)


@dataclass(slots=True)
class PipelineStats:
    """Diagnostics for one extraction attempt; never used for control flow.

    ``records`` counts processor invocations, including ones that raised;
    ``processor_errors`` counts the failures among them.
    """

    records: int = 0
    processor_errors: int = 0
    started_at: float = 0.0
    last_maintenance: float = 0.0

    def as_dict(self) -> dict[str, object]:
        return {
            "records": int(self.records),
            "processor_errors": int(self.processor_errors),
        }


class RecordDispatcher:
    """Invoke the processor one fragment at a time and track stop requests.

    Args:
        processor: Coroutine function or plain callable taking the wrapped
            record text. Returning ``False`` (or ``ProcessingDecision.STOP``)
            stops the stream; exceptions are logged and skipped.
        progress_interval (float): Seconds between progress log lines.
        collect_garbage (bool): Run ``gc.collect()`` at each progress tick.
        buffer_size: Optional callable reporting buffered characters for
            progress lines.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        processor: RecordProcessor,
        *,
        progress_interval: float = 30.0,
        collect_garbage: bool = False,
        buffer_size: Callable[[], int] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._processor = processor
        self._interval = progress_interval
        self._collect_garbage = collect_garbage
        self._buffer_size = buffer_size
        self._clock = clock
        now = clock()
        self.stats = PipelineStats(started_at=now, last_maintenance=now)
        self._should_stop = False

    @property
    def should_stop(self) -> bool:
        return self._should_stop

    async def dispatch(self, fragment: str) -> ProcessingDecision:
        """Run the processor on ``fragment`` and return the resulting decision."""
        if self._should_stop:
            return ProcessingDecision.STOP
        self.stats.records += 1
        try:
            result = self._processor(fragment)
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self.stats.processor_errors += 1
            log.exception("Processor failed on record %d; skipping it", self.stats.records)
            decision = ProcessingDecision.CONTINUE
        else:
            decision = ProcessingDecision.from_result(result)

        if decision is ProcessingDecision.STOP:
            self._should_stop = True
            log.info("Processor requested stop after %d records", self.stats.records)
        self._maybe_maintain()
        return decision

    def _maybe_maintain(self) -> None:
        now = self._clock()
        if now - self.stats.last_maintenance < self._interval:
            return
        self.stats.last_maintenance = now
        elapsed = max(now - self.stats.started_at, 1e-9)
        buffered = self._buffer_size() if self._buffer_size is not None else 0
        log.info(
            "Processing status: %d records (%.0f/s), %d processor errors, %d chars buffered",
            self.stats.records,
            self.stats.records / elapsed,
            self.stats.processor_errors,
            buffered,
        )
        if self._collect_garbage:
            gc.collect()
