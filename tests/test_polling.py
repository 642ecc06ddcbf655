"""Tests for the polling service and its timers."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_sync.database.records import (
    BlockInfo,
    ConditionRecord,
    QuestionRecord,
    TokenPairRecord,
    TradeRecord,
)
from polymarket_sync.parser.ingestion import (
    CONDITION_PREPARATION,
    ORDER_FILLED,
    QUESTION_INITIALIZED,
    TOKEN_REGISTERED,
    EventIngestor,
    IngestionStats,
)
from polymarket_sync.scheduler.polling import PollingService, RepeatingTimer
from polymarket_sync.scheduler.retry_queue import RetryQueue

LONG_INTERVALS = {
    QUESTION_INITIALIZED: 3600,
    CONDITION_PREPARATION: 3600,
    TOKEN_REGISTERED: 3600,
    ORDER_FILLED: 3600,
}


async def _no_sleep(seconds: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def calls() -> list[str]:
    return []


@pytest.fixture
def ingestor(calls) -> MagicMock:
    ingestor = MagicMock(spec=EventIngestor)

    def recorder(kind: str) -> AsyncMock:
        async def ingest() -> IngestionStats:
            calls.append(kind)
            return IngestionStats(kind=kind)

        return AsyncMock(side_effect=ingest)

    ingestor.ingest_questions = recorder(QUESTION_INITIALIZED)
    ingestor.ingest_conditions = recorder(CONDITION_PREPARATION)
    ingestor.ingest_token_pairs = recorder(TOKEN_REGISTERED)
    ingestor.ingest_trades = recorder(ORDER_FILLED)
    return ingestor


@pytest.fixture
def service(ingestor, store) -> PollingService:
    return PollingService(ingestor, store, queue=RetryQueue(sleep=_no_sleep), intervals=LONG_INTERVALS)


def _fill_all_tables(store, block: BlockInfo) -> None:
    store.insert_question(QuestionRecord(question_id="0xq", block=block))
    store.insert_condition(ConditionRecord(condition_id="0xc", question_id="0xq", block=block))
    store.insert_token_pair(TokenPairRecord(condition_id="0xc", token0="100", token1="200", block=block))
    store.insert_trade(
        TradeRecord(
            order_hash="0xo",
            maker="0xm",
            taker="0xt",
            maker_asset_id="0",
            taker_asset_id="200",
            maker_amount_filled="1",
            taker_amount_filled="1",
            block=block,
        )
    )


@pytest.mark.asyncio
async def test_initial_sync_runs_in_dependency_order(service, calls) -> None:
    """Test that an empty database is synced questions first, trades last."""
    assert service.run_initial_sync() is True
    assert service.initial_sync_in_progress

    await service.queue.join()
    await service._initial_sync_task

    assert calls == [QUESTION_INITIALIZED, CONDITION_PREPARATION, TOKEN_REGISTERED, ORDER_FILLED]
    assert not service.initial_sync_in_progress
    assert set(service.last_results) == set(calls)


@pytest.mark.asyncio
async def test_initial_sync_is_not_started_twice(service, calls) -> None:
    """Test that a second request while syncing is ignored."""
    assert service.run_initial_sync() is True
    assert service.run_initial_sync() is False

    await service.queue.join()
    assert len(calls) == 4


@pytest.mark.asyncio
async def test_initial_sync_skipped_when_tables_filled(service, store, block, calls) -> None:
    """Test that nothing is queued when every table has rows."""
    _fill_all_tables(store, block)

    assert service.run_initial_sync() is False
    assert service.queue.pending == 0
    assert calls == []


@pytest.mark.asyncio
async def test_forced_sync_requeues_every_kind_while_syncing(service, calls) -> None:
    """Test that a forced cycle during a running initial sync queues all kinds again."""
    assert service.run_initial_sync() is True
    assert service.run_initial_sync(force=True) is True

    await service.queue.join()
    await service._initial_sync_task

    assert calls == [QUESTION_INITIALIZED, CONDITION_PREPARATION, TOKEN_REGISTERED, ORDER_FILLED] * 2
    assert not service.initial_sync_in_progress


@pytest.mark.asyncio
async def test_forced_sync_runs_when_tables_filled(service, store, block, calls) -> None:
    """Test that force ignores the filled-tables check."""
    _fill_all_tables(store, block)

    assert service.run_initial_sync(force=True) is True
    await service.queue.join()
    await service._initial_sync_task

    assert len(calls) == 4


@pytest.mark.asyncio
async def test_job_checkpoints_after_ingest(service, store) -> None:
    """Test that each job checkpoints the WAL after storing."""
    store.checkpoint = MagicMock(return_value=(0, 0, 0))

    job = service.make_job(ORDER_FILLED)
    stats = await job()

    assert stats.kind == ORDER_FILLED
    store.checkpoint.assert_called_once_with("PASSIVE")
    assert job.__name__ == f"ingest_{ORDER_FILLED}"


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_cancels_timers(service) -> None:
    """Test timer lifecycle."""
    service.start()
    timers = dict(service.timers)
    service.start()

    assert service.is_running
    assert service.timers == timers
    assert set(timers) == {QUESTION_INITIALIZED, CONDITION_PREPARATION, TOKEN_REGISTERED, ORDER_FILLED}
    assert all(timer.running for timer in timers.values())

    service.stop()
    await asyncio.sleep(0)

    assert not service.is_running
    assert service.timers == {}
    assert not any(timer.running for timer in timers.values())
    await service.queue.join()
    await service._initial_sync_task


@pytest.mark.asyncio
async def test_sync_status(service, store, block) -> None:
    """Test the status report before and after the tables are filled."""
    status = service.sync_status()
    assert status == {"in_progress": False, "duration": 0, "tables_empty": True, "needs_sync": True}

    _fill_all_tables(store, block)
    status = service.sync_status()
    assert status["tables_empty"] is False
    assert status["needs_sync"] is False


@pytest.mark.asyncio
async def test_repeating_timer_calls_callback_each_interval() -> None:
    """Test that the timer keeps ticking after a failing callback."""
    intervals: list[float] = []
    ticks: list[int] = []

    async def sleep(seconds: float) -> None:
        intervals.append(seconds)
        await asyncio.sleep(0)

    def callback() -> None:
        ticks.append(len(ticks))
        if len(ticks) == 1:
            raise RuntimeError("first tick fails")

    timer = RepeatingTimer(30, callback, sleep=sleep)
    timer.start()
    for _ in range(10):
        await asyncio.sleep(0)
    timer.cancel()

    assert len(ticks) >= 3
    assert set(intervals) == {30}
    assert not timer.running


def test_repeating_timer_rejects_non_positive_interval() -> None:
    """Test interval validation."""
    with pytest.raises(ValueError):
        RepeatingTimer(0, lambda: None)
