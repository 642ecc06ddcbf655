"""Tests for the single-lane retry queue."""

from __future__ import annotations

import asyncio

import pytest

from polymarket_sync.scheduler.retry_queue import RetryQueue
from polymarket_sync.utils.errors import AuthenticationError


class RecordingSleep:
    """Records requested delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.mark.asyncio
async def test_always_failing_job_runs_max_retries_plus_one() -> None:
    """Test that a job failing every time runs 1 + max_retries times with doubling delays."""
    sleep = RecordingSleep()
    queue = RetryQueue(sleep=sleep)
    attempts = 0

    async def job() -> None:
        nonlocal attempts
        attempts += 1
        raise RuntimeError("upstream down")

    queue.enqueue(job, max_retries=3, initial_backoff=1.0)
    await queue.join()

    assert attempts == 4
    assert sleep.delays == [1.0, 2.0, 4.0]
    assert queue.dropped == 1
    assert queue.failed_attempts == 4
    assert queue.completed == 0
    assert not queue.is_processing


@pytest.mark.asyncio
async def test_failed_job_finishes_before_later_jobs() -> None:
    """Test that a retried job goes back to the head of the queue."""
    queue = RetryQueue(sleep=RecordingSleep())
    events: list[str] = []
    a_attempts = 0

    async def job_a() -> None:
        nonlocal a_attempts
        a_attempts += 1
        events.append(f"A{a_attempts}")
        if a_attempts == 1:
            raise RuntimeError("transient")

    async def job_b() -> None:
        events.append("B")

    queue.enqueue(job_a, name="A")
    queue.enqueue(job_b, name="B")
    await queue.join()

    assert events == ["A1", "A2", "B"]
    assert queue.completed == 2


@pytest.mark.asyncio
async def test_jobs_never_overlap() -> None:
    """Test that at most one job runs at a time."""
    queue = RetryQueue()
    running = 0
    max_running = 0

    async def job() -> None:
        nonlocal running, max_running
        running += 1
        max_running = max(max_running, running)
        await asyncio.sleep(0)
        running -= 1

    for _ in range(5):
        queue.enqueue(job)
    assert queue.pending == 5

    await queue.join()

    assert max_running == 1
    assert queue.completed == 5
    assert queue.pending == 0


@pytest.mark.asyncio
async def test_enqueue_during_drain_extends_queue() -> None:
    """Test that a job queued while draining runs in the same drain loop."""
    queue = RetryQueue()
    order: list[str] = []

    async def second() -> None:
        order.append("second")

    async def first() -> None:
        order.append("first")
        queue.enqueue(second)

    queue.enqueue(first)
    await queue.join()

    assert order == ["first", "second"]


@pytest.mark.asyncio
async def test_exclusive_blocks_jobs() -> None:
    """Test that queued jobs wait while the exclusive lock is held."""
    queue = RetryQueue()
    ran: list[str] = []

    async def job() -> None:
        ran.append("job")

    async with queue.exclusive():
        queue.enqueue(job)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert ran == []

    await queue.join()
    assert ran == ["job"]


@pytest.mark.asyncio
async def test_authentication_failure_is_not_retried() -> None:
    """Test that a missing credential drops the job at once and later jobs still run."""
    sleep = RecordingSleep()
    queue = RetryQueue(sleep=sleep)
    attempts = 0
    ran: list[str] = []

    async def job_auth() -> None:
        nonlocal attempts
        attempts += 1
        raise AuthenticationError("no token")

    async def job_next() -> None:
        ran.append("next")

    queue.enqueue(job_auth, max_retries=3, initial_backoff=1.0, name="auth")
    queue.enqueue(job_next)
    await queue.join()

    assert attempts == 1
    assert sleep.delays == []
    assert queue.dropped == 1
    assert ran == ["next"]
    assert [name for name, _ in queue.rejected] == ["auth"]
    assert isinstance(queue.rejected[0][1], AuthenticationError)
