# retry.py
# SPDX-License-Identifier: MIT
"""Whole-stream retries with a fixed delay between attempts."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .config import MarkerConfig, StreamConfig
from .coordinator import StreamCoordinator, StreamOutcome
from .interfaces import BlobStreamOpener, RecordProcessor
from .log import get_logger

__all__ = ["RetryState", "RetryingFetcher"]

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class RetryState:
    """Zero-based attempt index plus the configured retry budget."""

    attempt: int = 0
    max_retries: int = 3

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_retries


class RetryingFetcher:
    """Run the full extraction pipeline for a key, retrying from the start on failure.

    A retry re-opens the blob and replays every record, so processors must
    be idempotent. Cancellation is never retried.

    Args:
        opener (BlobStreamOpener): Source of fresh byte streams.
        stream (StreamConfig | None): Retry budget, delay and buffer tuning.
        markers (MarkerConfig | None): Record delimiters.
        sleep: Awaitable sleep used between attempts; injectable for tests.
        clock: Monotonic clock handed to each attempt's dispatcher.
        retry_if: Optional predicate; errors it rejects are raised at once.
    """

    def __init__(
        self,
        opener: BlobStreamOpener,
        *,
        stream: StreamConfig | None = None,
        markers: MarkerConfig | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        retry_if: Callable[[Exception], bool] | None = None,
    ) -> None:
        self.opener = opener
        self.stream_config = stream or StreamConfig()
        self.markers = markers or MarkerConfig()
        self._sleep = sleep
        self._clock = clock
        self._retry_if = retry_if

    async def fetch(
        self,
        key: str,
        processor: RecordProcessor,
        *,
        on_attempt: Callable[[int], object] | None = None,
    ) -> StreamOutcome:
        """Stream every record of ``key`` through ``processor``.

        ``on_attempt`` is called with the zero-based attempt index before
        each attempt opens the blob, so stateful processors can rewind.

        Returns:
            StreamOutcome: State ``completed`` or ``stopped``, with the
            number of attempts used and the final attempt's stats.

        Raises:
            Exception: The last attempt's error once retries are exhausted.
        """

        async def attempt(k: str, state: RetryState) -> StreamOutcome:
            if on_attempt is not None:
                on_attempt(state.attempt)
            coordinator = StreamCoordinator(
                self.opener,
                processor,
                stream=self.stream_config,
                markers=self.markers,
                clock=self._clock,
            )
            return await coordinator.run(k)

        outcome = await self.run(key, attempt)
        log.info(
            "Finished %s: %s after %d attempt(s), %d records, %d processor errors",
            key,
            outcome.state.value,
            outcome.attempts,
            outcome.records,
            outcome.processor_errors,
        )
        return outcome

    async def run(self, key: str, attempt: Callable[[str, RetryState], Awaitable[T]]) -> T:
        """Call ``attempt(key, state)`` until it succeeds or the budget runs out."""
        state = RetryState(max_retries=self.stream_config.max_retries)
        delay = self.stream_config.retry_delay
        while True:
            log.info("Fetching %s (attempt %d/%d)", key, state.attempt + 1, state.total_attempts)
            try:
                result = await attempt(key, state)
            except Exception as exc:
                if self._retry_if is not None and not self._retry_if(exc):
                    log.error("Not retrying %s after %s: %s", key, type(exc).__name__, exc)
                    raise
                if state.exhausted:
                    log.error(
                        "Giving up on %s after %d attempts: %s",
                        key,
                        state.total_attempts,
                        exc,
                    )
                    raise
                log.warning(
                    "Attempt %d/%d for %s failed: %s; retrying in %.1fs",
                    state.attempt + 1,
                    state.total_attempts,
                    key,
                    exc,
                    delay,
                )
                state.attempt += 1
                await self._sleep(delay)
                continue
            if isinstance(result, StreamOutcome):
                result.attempts = state.attempt + 1
            return result
