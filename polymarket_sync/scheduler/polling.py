"""Periodic polling of Bitquery through the retry queue."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from polymarket_sync.database.repository import EventStore
from polymarket_sync.parser.ingestion import (
    CONDITION_PREPARATION,
    ORDER_FILLED,
    QUESTION_INITIALIZED,
    TOKEN_REGISTERED,
    EventIngestor,
    IngestionStats,
)
from polymarket_sync.scheduler.retry_queue import RetryQueue
from polymarket_sync.utils.config import (
    POLL_INTERVAL_CONDITIONS,
    POLL_INTERVAL_QUESTIONS,
    POLL_INTERVAL_TOKENS,
    POLL_INTERVAL_TRADES,
    QUEUE_MAX_RETRIES,
)
from polymarket_sync.utils.logger import get_logger

logger = get_logger(__name__)

# Parents before children so later stages usually find their parent rows
SYNC_ORDER = (QUESTION_INITIALIZED, CONDITION_PREPARATION, TOKEN_REGISTERED, ORDER_FILLED)

DEFAULT_INTERVALS = {
    QUESTION_INITIALIZED: POLL_INTERVAL_QUESTIONS,
    CONDITION_PREPARATION: POLL_INTERVAL_CONDITIONS,
    TOKEN_REGISTERED: POLL_INTERVAL_TOKENS,
    ORDER_FILLED: POLL_INTERVAL_TRADES,
}


class RepeatingTimer:
    """Calls a callback every `interval` seconds until cancelled."""

    def __init__(
        self,
        interval: float,
        callback: Callable[[], object],
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")
        self.interval = interval
        self.callback = callback
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking; the first tick happens after one interval."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await self._sleep(self.interval)
            try:
                self.callback()
            except Exception:
                logger.exception("Timer callback failed")

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


class PollingService:
    """
    Keeps the event tables up to date.

    On start, runs an initial sync if any table is empty, then polls each
    event kind on its own interval. Every fetch goes through the shared
    RetryQueue, so at most one Bitquery request is in flight.
    """

    def __init__(
        self,
        ingestor: EventIngestor,
        store: EventStore,
        queue: RetryQueue | None = None,
        intervals: dict[str, float] | None = None,
        max_retries: int = QUEUE_MAX_RETRIES,
    ) -> None:
        """
        Initialize the polling service.

        Args:
            ingestor: Ingestion jobs to run
            store: Event store (used for empty-table checks and checkpoints)
            queue: Shared retry queue (a new one is created if None)
            intervals: Poll interval in seconds per event kind (overrides config)
            max_retries: Retries per queued job
        """
        self.ingestor = ingestor
        self.store = store
        self.queue = queue or RetryQueue()
        self.intervals = {**DEFAULT_INTERVALS, **(intervals or {})}
        self.max_retries = max_retries

        self.timers: dict[str, RepeatingTimer] = {}
        self.last_results: dict[str, IngestionStats] = {}
        self._started = False
        self._initial_sync_started_at: float | None = None
        self._initial_sync_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._started

    @property
    def initial_sync_in_progress(self) -> bool:
        return self._initial_sync_started_at is not None

    def _ingest_method(self, kind: str) -> Callable[[], Awaitable[IngestionStats]]:
        return {
            QUESTION_INITIALIZED: self.ingestor.ingest_questions,
            CONDITION_PREPARATION: self.ingestor.ingest_conditions,
            TOKEN_REGISTERED: self.ingestor.ingest_token_pairs,
            ORDER_FILLED: self.ingestor.ingest_trades,
        }[kind]

    def make_job(self, kind: str) -> Callable[[], Awaitable[IngestionStats]]:
        """Build the queue job for one event kind: ingest, then checkpoint the WAL."""
        ingest = self._ingest_method(kind)

        async def job() -> IngestionStats:
            stats = await ingest()
            self.last_results[kind] = stats
            self.store.checkpoint("PASSIVE")
            return stats

        job.__name__ = f"ingest_{kind}"
        return job

    def enqueue_kind(self, kind: str, reason: str = "Polling") -> None:
        """Queue one ingestion job for an event kind."""
        self.queue.enqueue(
            self.make_job(kind),
            max_retries=self.max_retries,
            name=f"{kind} ({reason})",
        )

    def run_initial_sync(self, force: bool = False) -> bool:
        """
        Queue one job per event kind in dependency order if any table is empty.

        Args:
            force: Queue a full cycle even if a sync is running or every
                table has data (used after a reset)

        Returns:
            True if a sync cycle was queued
        """
        already_running = self.initial_sync_in_progress
        if already_running and not force:
            logger.info("Initial sync already in progress")
            return False
        if not force and self.store.are_all_tables_filled():
            logger.info("All tables have data, skipping initial sync")
            return False

        logger.info("Starting initial sync" + (" (forced)" if force else " (some tables are empty)"))
        if not already_running:
            self._initial_sync_started_at = time.time()
        for kind in SYNC_ORDER:
            self.enqueue_kind(kind, reason="Initial Sync")
        if not already_running:
            self._initial_sync_task = asyncio.get_running_loop().create_task(self._finish_initial_sync())
        return True

    async def _finish_initial_sync(self) -> None:
        try:
            await self.queue.join()
            duration = time.time() - (self._initial_sync_started_at or time.time())
            logger.info(f"Initial sync finished in {duration:.1f}s")
        finally:
            self._initial_sync_started_at = None

    def start(self) -> None:
        """Run the initial sync if needed and start one timer per event kind. Idempotent."""
        if self._started:
            logger.info("Polling already started")
            return
        self._started = True

        self.run_initial_sync()
        for kind in SYNC_ORDER:
            interval = self.intervals[kind]
            timer = RepeatingTimer(interval, lambda kind=kind: self.enqueue_kind(kind))
            timer.start()
            self.timers[kind] = timer
            logger.info(f"Polling {kind} every {interval:.0f}s")

    def stop(self) -> None:
        """Cancel all timers. Jobs already queued still run."""
        for timer in self.timers.values():
            timer.cancel()
        self.timers.clear()
        self._started = False
        logger.info("Polling stopped")

    def sync_status(self) -> dict[str, object]:
        """Report initial-sync progress and whether a sync is needed."""
        started_at = self._initial_sync_started_at
        tables_empty = self.store.are_tables_empty()
        return {
            "in_progress": started_at is not None,
            "duration": int(time.time() - started_at) if started_at is not None else 0,
            "tables_empty": tables_empty,
            "needs_sync": tables_empty and started_at is None,
        }
