"""Tests for the ingestion jobs."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_sync.parser.bitquery_client import AsyncBitqueryClient
from polymarket_sync.parser.ingestion import (
    ORDER_FILLED,
    QUESTION_INITIALIZED,
    TOKEN_REGISTERED,
    EventIngestor,
)
from polymarket_sync.utils.config import CTF_EXCHANGE_ADDRESS, UMA_ADAPTER_ADDRESS
from polymarket_sync.utils.errors import EventSourceError

QUESTION_ID = "0x" + "ab" * 32
CONDITION_ID = "0x" + "cd" * 32
MAKER = "0x" + "11" * 20
TAKER = "0x" + "22" * 20


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock(spec=AsyncBitqueryClient)
    client.fetch_events = AsyncMock(return_value=[])
    client.fetch_events_by_argument = AsyncMock(return_value=[])
    return client


@pytest.fixture
def ingestor(client, store) -> EventIngestor:
    return EventIngestor(client, store)


def _trade(make_event, order_hash: str, maker_asset: int, taker_asset: int, **extra: object) -> dict:
    return make_event(
        orderHash=order_hash,
        maker=MAKER,
        taker=TAKER,
        makerAssetId=maker_asset,
        takerAssetId=taker_asset,
        **extra,
    )


@pytest.mark.asyncio
async def test_ingest_questions_counts_stored_and_skipped(client, ingestor, store, make_event) -> None:
    """Test that valid events are stored and incomplete or malformed ones are skipped."""
    ancillary = "0x" + b"title: T, description: D".hex()
    client.fetch_events.return_value = [
        make_event(questionID=QUESTION_ID, ancillaryData=ancillary),
        make_event(ancillaryData=ancillary),  # no questionID
        {"Block": "not-an-object", "Arguments": []},
        "garbage",
    ]

    stats = await ingestor.ingest_questions(limit=50)

    assert stats.kind == QUESTION_INITIALIZED
    assert (stats.stored, stats.skipped, stats.total) == (1, 3, 4)
    assert store.table_counts()["question_initialized_events"] == 1
    client.fetch_events.assert_awaited_once_with(QUESTION_INITIALIZED, UMA_ADAPTER_ADDRESS, limit=50)


@pytest.mark.asyncio
async def test_ingestion_is_idempotent(client, ingestor, store, make_event) -> None:
    """Test that re-ingesting the same window stores nothing new."""
    client.fetch_events.return_value = [
        _trade(make_event, "0x" + "01" * 32, 0, 200, makerAmountFilled=550000, takerAmountFilled=1000000),
        _trade(make_event, "0x" + "02" * 32, 200, 0, makerAmountFilled=1000000, takerAmountFilled=450000),
    ]

    first = await ingestor.ingest_trades()
    second = await ingestor.ingest_trades()

    assert first.stored == 2
    assert second.stored == 0
    assert second.total == 2
    assert store.table_counts()["order_filled_events"] == 2


@pytest.mark.asyncio
async def test_ingest_trades_skips_invalid_asset_pairs(client, ingestor, store, make_event) -> None:
    """Test that USDC-for-USDC and same-asset trades are not stored."""
    client.fetch_events.return_value = [
        _trade(make_event, "0x" + "01" * 32, 0, 0),
        _trade(make_event, "0x" + "02" * 32, 200, 200),
    ]

    stats = await ingestor.ingest_trades()

    assert (stats.stored, stats.skipped) == (0, 2)
    assert store.table_counts()["order_filled_events"] == 0


@pytest.mark.asyncio
async def test_malformed_arguments_do_not_abort_batch(client, ingestor, store, make_event) -> None:
    """Test that an event with non-object arguments is skipped and the rest of the batch is stored."""
    bad_event = make_event()
    bad_event["Arguments"] = ["garbage", "garbage"]
    client.fetch_events.return_value = [
        make_event(conditionId=CONDITION_ID, questionId=QUESTION_ID),
        bad_event,
        make_event(conditionId="0x" + "ce" * 32, questionId="0x" + "ac" * 32),
    ]

    stats = await ingestor.ingest_conditions()

    assert (stats.stored, stats.skipped, stats.total) == (2, 1, 3)
    assert store.table_counts()["condition_preparation_events"] == 2


@pytest.mark.asyncio
async def test_refresh_token_pair_adds_hex_prefix(client, ingestor, store, make_event) -> None:
    """Test that the condition id is queried with a 0x prefix and the result is stored."""
    client.fetch_events_by_argument.return_value = [
        make_event(conditionId=CONDITION_ID, token0=100, token1=200),
    ]

    stats = await ingestor.refresh_token_pair(CONDITION_ID[2:])

    assert stats.kind == TOKEN_REGISTERED
    assert stats.stored == 1
    args, kwargs = client.fetch_events_by_argument.call_args
    assert args == (TOKEN_REGISTERED, CTF_EXCHANGE_ADDRESS, ["conditionId"], [CONDITION_ID])
    assert kwargs["value_type"] == "Bytes"
    assert store.get_token_pair(CONDITION_ID) is not None


@pytest.mark.asyncio
async def test_refresh_trades_excludes_usdc_and_reads_short_amounts(client, ingestor, store, make_event) -> None:
    """Test the on-demand trade query and the makerAmount/takerAmount fallback."""
    client.fetch_events_by_argument.return_value = [
        _trade(make_event, "0x" + "03" * 32, 0, 200, makerAmount=600000, takerAmount=1000000),
    ]

    stats = await ingestor.refresh_trades("0", "200")

    assert stats.stored == 1
    args, kwargs = client.fetch_events_by_argument.call_args
    assert args == (ORDER_FILLED, CTF_EXCHANGE_ADDRESS, ["makerAssetId", "takerAssetId"], ["200"])
    assert kwargs["value_type"] == "BigInteger"

    trade = store.get_all_trades()[0]
    assert trade["maker_amount_filled"] == "600000"
    assert trade["taker_amount_filled"] == "1000000"


@pytest.mark.asyncio
async def test_refresh_trades_without_outcome_tokens_makes_no_request(client, ingestor) -> None:
    """Test that a USDC-only token pair is never queried."""
    stats = await ingestor.refresh_trades("0", None)

    assert stats.kind == ORDER_FILLED
    assert stats.total == 0
    client.fetch_events_by_argument.assert_not_awaited()


@pytest.mark.asyncio
async def test_fetch_errors_propagate(client, ingestor) -> None:
    """Test that upstream failures reach the caller so the queue can retry."""
    client.fetch_events.side_effect = EventSourceError("Bitquery request failed")

    with pytest.raises(EventSourceError):
        await ingestor.ingest_conditions()
