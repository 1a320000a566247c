import asyncio
import logging
import xml.etree.ElementTree as ET

import pytest

from conftest import make_export
from healthstream.core.config import StreamConfig
from healthstream.core.coordinator import StreamState
from healthstream.core.errors import StorageError, StorageNotFoundError
from healthstream.core.retry import RetryingFetcher, RetryState
from healthstream.sources.local import MemoryBlobOpener


def test_retry_state_budget():
    state = RetryState(max_retries=3)
    assert state.total_attempts == 4
    assert not state.exhausted
    state.attempt = 3
    assert state.exhausted


@pytest.mark.asyncio
async def test_recovers_after_transient_failures(step_records, sleeps, fake_sleep, caplog):
    caplog.set_level(logging.INFO, logger="healthstream")
    opener = MemoryBlobOpener({"k": make_export(step_records)}, chunk_size=40, failures={"k": [3, 3]})
    seen = []
    attempts = []

    fetcher = RetryingFetcher(opener, sleep=fake_sleep)
    outcome = await fetcher.fetch("k", seen.append, on_attempt=attempts.append)

    assert outcome.state is StreamState.COMPLETED
    assert outcome.attempts == 3
    assert attempts == [0, 1, 2]
    assert sleeps == [2.0, 2.0]
    assert outcome.records == 5
    # The final attempt replays the whole document from the start.
    assert [ET.fromstring(doc).find("Record").get("value") for doc in seen[-5:]] == ["1", "2", "3", "4", "5"]
    assert len(opener.opened) == 3
    assert all(stream.close_calls == 1 for stream in opener.opened)
    assert sum("retrying in" in r.getMessage() for r in caplog.records) == 2


@pytest.mark.asyncio
async def test_exhausted_retries_reraise_last_error(step_records, sleeps, fake_sleep):
    opener = MemoryBlobOpener({"k": make_export(step_records)}, chunk_size=40, failures={"k": [0, 0, 0, 0]})
    fetcher = RetryingFetcher(opener, stream=StreamConfig(retry_delay=0.5), sleep=fake_sleep)

    with pytest.raises(ConnectionResetError):
        await fetcher.fetch("k", lambda doc: None)

    assert len(opener.opened) == 4
    assert sleeps == [0.5, 0.5, 0.5]


@pytest.mark.asyncio
async def test_open_errors_are_retried(sleeps, fake_sleep):
    fetcher = RetryingFetcher(MemoryBlobOpener({}), sleep=fake_sleep)
    with pytest.raises(StorageNotFoundError):
        await fetcher.fetch("missing", lambda doc: None)
    assert len(sleeps) == 3


@pytest.mark.asyncio
async def test_retry_if_short_circuits(sleeps, fake_sleep):
    fetcher = RetryingFetcher(
        MemoryBlobOpener({}),
        sleep=fake_sleep,
        retry_if=lambda exc: not isinstance(exc, StorageNotFoundError),
    )
    with pytest.raises(StorageNotFoundError):
        await fetcher.fetch("missing", lambda doc: None)
    assert sleeps == []


@pytest.mark.asyncio
async def test_zero_retries_means_single_attempt(sleeps, fake_sleep):
    calls = []

    async def attempt(key, state):
        calls.append(state.attempt)
        raise StorageError("nope")

    fetcher = RetryingFetcher(MemoryBlobOpener({}), stream=StreamConfig(max_retries=0), sleep=fake_sleep)
    with pytest.raises(StorageError):
        await fetcher.run("k", attempt)
    assert calls == [0]
    assert sleeps == []


@pytest.mark.asyncio
async def test_cancellation_is_not_retried(sleeps, fake_sleep):
    calls = []

    async def attempt(key, state):
        calls.append(key)
        raise asyncio.CancelledError()

    fetcher = RetryingFetcher(MemoryBlobOpener({}), sleep=fake_sleep)
    with pytest.raises(asyncio.CancelledError):
        await fetcher.run("k", attempt)
    assert calls == ["k"]
    assert sleeps == []


@pytest.mark.asyncio
async def test_run_returns_attempt_result(fake_sleep):
    results = iter([OSError("flaky"), "done"])

    async def attempt(key, state):
        value = next(results)
        if isinstance(value, Exception):
            raise value
        return f"{key}:{value}:{state.attempt}"

    fetcher = RetryingFetcher(MemoryBlobOpener({}), sleep=fake_sleep)
    assert await fetcher.run("k", attempt) == "k:done:1"
