# coordinator.py
# SPDX-License-Identifier: MIT
"""Single-attempt orchestration of one blob stream.

The coordinator pulls chunks from the stream, feeds the accumulator, runs
one extraction pass per chunk (or per ``max_chunk_size`` slice of an
oversized chunk), and guarantees that the stream is released
exactly once whichever way the attempt ends.
"""

from __future__ import annotations

import enum
import time
from collections.abc import Callable
from dataclasses import dataclass

from .accumulator import ChunkAccumulator
from .config import MarkerConfig, StreamConfig
from .dispatcher import RecordDispatcher
from .interfaces import BlobStreamOpener, ByteStream, RecordProcessor
from .log import get_logger
from .splitter import RecordSplitter

__all__ = ["StreamState", "StreamOutcome", "StreamCoordinator"]

log = get_logger(__name__)


class StreamState(str, enum.Enum):
    IDLE = "idle"
    OPENING = "opening"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass(slots=True)
class StreamOutcome:
    """Completion signal for a successful run (completed or stopped early)."""

    key: str
    state: StreamState
    attempts: int = 1
    records: int = 0
    processor_errors: int = 0
    bytes_read: int = 0
    chunks_read: int = 0
    discarded_chars: int = 0
    corrupted_regions: int = 0

    @property
    def stopped(self) -> bool:
        return self.state is StreamState.STOPPED

    def as_dict(self) -> dict[str, object]:
        return {
            "key": self.key,
            "state": self.state.value,
            "attempts": self.attempts,
            "records": self.records,
            "processor_errors": self.processor_errors,
            "bytes_read": self.bytes_read,
            "chunks_read": self.chunks_read,
            "discarded_chars": self.discarded_chars,
            "corrupted_regions": self.corrupted_regions,
        }


class StreamCoordinator:
    """Drive ``Idle -> Opening -> Streaming -> {Completed, Failed, Stopped}``.

    A coordinator owns one accumulator and is good for exactly one
    :meth:`run`; retries build a fresh coordinator.
    """

    def __init__(
        self,
        opener: BlobStreamOpener,
        processor: RecordProcessor,
        *,
        stream: StreamConfig | None = None,
        markers: MarkerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._opener = opener
        self._cfg = stream or StreamConfig()
        self._markers = markers or MarkerConfig()
        self.accumulator = ChunkAccumulator(max_size=self._cfg.max_chunk_size, encoding=self._cfg.encoding)
        self.splitter = RecordSplitter(self._markers)
        self.dispatcher = RecordDispatcher(
            processor,
            progress_interval=self._cfg.progress_interval,
            collect_garbage=self._cfg.collect_garbage,
            buffer_size=self.accumulator.__len__,
            clock=clock,
        )
        self.state = StreamState.IDLE
        self._stream: ByteStream | None = None
        self._released = False

    def _transition(self, new_state: StreamState) -> None:
        log.debug("Stream state %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    async def run(self, key: str) -> StreamOutcome:
        """Stream ``key`` to completion, early stop, or failure.

        Raises:
            Exception: Whatever the opener or the stream raised; the state
                is left at ``FAILED``.
        """
        if self.state is not StreamState.IDLE:
            raise RuntimeError(f"StreamCoordinator already used (state={self.state.value})")

        self._transition(StreamState.OPENING)
        try:
            self._stream = await self._opener.open(key)
        except BaseException:
            self._transition(StreamState.FAILED)
            raise

        self._transition(StreamState.STREAMING)
        try:
            async for chunk in self._stream:
                await self._feed(chunk)
                if self.dispatcher.should_stop:
                    break
            else:
                self.accumulator.finish()
                await self._extract()
        except BaseException:
            self._transition(StreamState.FAILED)
            raise
        finally:
            await self._release()

        if self.dispatcher.should_stop:
            self._transition(StreamState.STOPPED)
        else:
            self._transition(StreamState.COMPLETED)
            if len(self.accumulator):
                log.debug("Stream ended with %d chars of trailing data", len(self.accumulator))
        return self._outcome(key)

    async def _feed(self, chunk: bytes) -> None:
        """Append ``chunk`` in slices of at most ``max_chunk_size`` bytes.

        Each slice gets its own extraction pass, so a read larger than the
        limit cannot grow the buffer past twice ``max_chunk_size``.
        """
        step = self._cfg.max_chunk_size
        pieces = [chunk] if len(chunk) <= step else [chunk[i : i + step] for i in range(0, len(chunk), step)]
        for piece in pieces:
            self.accumulator.append(piece)
            await self._extract()
            if self.dispatcher.should_stop:
                return

    async def _extract(self) -> None:
        """One extraction pass: dispatch every complete record, then bound the buffer."""
        while not self.dispatcher.should_stop:
            fragment = self.splitter.next_fragment(self.accumulator)
            if fragment is None:
                break
            await self.dispatcher.dispatch(fragment)
        if not self.dispatcher.should_stop:
            self.accumulator.enforce_limit(self._markers.end)

    async def _release(self) -> None:
        if self._released or self._stream is None:
            return
        self._released = True
        try:
            await self._stream.aclose()
        except Exception as exc:  # noqa: BLE001
            log.warning("Error while releasing stream: %s", exc)

    def _outcome(self, key: str) -> StreamOutcome:
        stats = self.dispatcher.stats
        return StreamOutcome(
            key=key,
            state=self.state,
            records=stats.records,
            processor_errors=stats.processor_errors,
            bytes_read=self.accumulator.bytes_in,
            chunks_read=self.accumulator.chunks_in,
            discarded_chars=self.accumulator.discarded_chars,
            corrupted_regions=self.splitter.corrupted_regions,
        )
