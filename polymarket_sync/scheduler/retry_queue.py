"""Single-lane job queue with exponential backoff retries."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from polymarket_sync.utils.config import QUEUE_INITIAL_BACKOFF, QUEUE_MAX_RETRIES
from polymarket_sync.utils.errors import AuthenticationError
from polymarket_sync.utils.logger import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[object]]

BACKOFF_MULTIPLIER = 2

# Failures that cannot succeed on retry
NON_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (AuthenticationError,)


@dataclass
class QueuedJob:
    """A job waiting in the queue together with its retry state."""

    job: Job
    name: str
    retries: int = 0
    max_retries: int = QUEUE_MAX_RETRIES
    backoff: float = QUEUE_INITIAL_BACKOFF


class RetryQueue:
    """
    Runs queued jobs one at a time.

    A failed job sleeps for its current backoff and is put back at the head
    of the queue with the backoff doubled, so it finishes (or is dropped)
    before any job queued after it starts. After max_retries retries the job
    is logged and discarded. Non-retryable errors (a missing or rejected
    credential) drop the job on the first failure and are kept in `rejected`
    so callers can report them.
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        non_retryable: tuple[type[Exception], ...] = NON_RETRYABLE_ERRORS,
    ) -> None:
        """
        Initialize the queue.

        Args:
            sleep: Coroutine used to wait between retries
            non_retryable: Exception types that drop a job without retrying
        """
        self._sleep = sleep
        self._non_retryable = non_retryable
        self._queue: deque[QueuedJob] = deque()
        self._drain_task: asyncio.Task[None] | None = None
        self._job_lock = asyncio.Lock()

        self.completed = 0
        self.failed_attempts = 0
        self.dropped = 0
        self.rejected: list[tuple[str, Exception]] = []

    @property
    def pending(self) -> int:
        """Number of jobs waiting to run (the running job is not counted)."""
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        """True while a drain loop is active."""
        return self._drain_task is not None and not self._drain_task.done()

    def enqueue(
        self,
        job: Job,
        max_retries: int = QUEUE_MAX_RETRIES,
        initial_backoff: float = QUEUE_INITIAL_BACKOFF,
        name: str | None = None,
    ) -> QueuedJob:
        """
        Append a job and start draining if no drain is active.

        Must be called from a running event loop. Returns immediately.

        Args:
            job: Zero-argument coroutine function
            max_retries: Retries after the first failure before the job is dropped
            initial_backoff: Seconds to wait before the first retry
            name: Label for log messages

        Returns:
            The queued entry
        """
        entry = QueuedJob(
            job=job,
            name=name or getattr(job, "__name__", "job"),
            max_retries=max_retries,
            backoff=initial_backoff,
        )
        self._queue.append(entry)
        logger.debug(f"Queued {entry.name} (pending: {len(self._queue)})")

        if not self.is_processing:
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())
        return entry

    async def _drain(self) -> None:
        while self._queue:
            entry = self._queue.popleft()
            try:
                async with self._job_lock:
                    await entry.job()
            except self._non_retryable as e:
                self.failed_attempts += 1
                self.dropped += 1
                self.rejected.append((entry.name, e))
                logger.error(f"{entry.name} failed and will not be retried: {e}")
            except Exception as e:
                self.failed_attempts += 1
                if entry.retries < entry.max_retries:
                    logger.warning(
                        f"{entry.name} failed (attempt {entry.retries + 1}/{entry.max_retries + 1}): {e}. "
                        f"Retrying in {entry.backoff}s...",
                    )
                    await self._sleep(entry.backoff)
                    entry.retries += 1
                    entry.backoff *= BACKOFF_MULTIPLIER
                    self._queue.appendleft(entry)
                else:
                    self.dropped += 1
                    logger.error(f"{entry.name} failed after {entry.retries + 1} attempts, dropping job: {e}")
            else:
                self.completed += 1
                logger.debug(f"{entry.name} completed")

    async def join(self) -> None:
        """Wait until the queue is empty and no drain loop is running."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.shield(self._drain_task)

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """Hold the job lock so that no queued job runs inside the block."""
        async with self._job_lock:
            yield
