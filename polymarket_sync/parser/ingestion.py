"""Ingestion jobs: fetch contract events from Bitquery and store them."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from sqlite3 import Connection

from beartype import beartype
from beartype.roar import BeartypeCallHintViolation

from polymarket_sync.database.repository import EventStore
from polymarket_sync.markets.trade_matcher import is_quote_currency
from polymarket_sync.parser.bitquery_client import AsyncBitqueryClient
from polymarket_sync.parser.event_parser import (
    parse_condition_event,
    parse_question_event,
    parse_token_pair_event,
    parse_trade_event,
)
from polymarket_sync.utils.config import (
    CONDITION_PREPARATION_LIMIT,
    CONDITIONAL_TOKENS_ADDRESS,
    CTF_EXCHANGE_ADDRESS,
    ON_DEMAND_TOKEN_LIMIT,
    ON_DEMAND_TRADE_LIMIT,
    ORDER_FILLED_LIMIT,
    QUESTION_INITIALIZED_LIMIT,
    TOKEN_REGISTERED_LIMIT,
    UMA_ADAPTER_ADDRESS,
)
from polymarket_sync.utils.logger import get_logger

logger = get_logger(__name__)

QUESTION_INITIALIZED = "QuestionInitialized"
CONDITION_PREPARATION = "ConditionPreparation"
TOKEN_REGISTERED = "TokenRegistered"
ORDER_FILLED = "OrderFilled"


@dataclass
class IngestionStats:
    """Outcome of one ingestion run."""

    kind: str
    stored: int = 0  # rows newly created
    skipped: int = 0  # events missing required arguments or failing to parse
    total: int = 0  # events returned by Bitquery


class EventIngestor:
    """Pulls one event kind at a time from Bitquery and writes it to the EventStore."""

    def __init__(self, client: AsyncBitqueryClient, store: EventStore) -> None:
        """
        Initialize the ingestor.

        Args:
            client: Bitquery client used for every fetch
            store: Event store receiving the parsed records
        """
        self.client = client
        self.store = store

    def _store_events(
        self,
        kind: str,
        events: list[dict[str, object]],
        parse: Callable[[Mapping[str, object]], object | None],
        insert: Callable[[object, Connection], bool],
    ) -> IngestionStats:
        stats = IngestionStats(kind=kind, total=len(events))
        start_time = time.time()

        conn = self.store.connect()
        try:
            for index, event in enumerate(events, start=1):
                if not isinstance(event, Mapping):
                    stats.skipped += 1
                    continue
                try:
                    record = parse(event)
                except (ValueError, TypeError, KeyError, BeartypeCallHintViolation) as e:
                    logger.debug(f"Skipping malformed {kind} event: {e}")
                    stats.skipped += 1
                    continue

                if record is None:
                    stats.skipped += 1
                    continue

                if insert(record, conn):
                    stats.stored += 1
                logger.log_progress(index, stats.total, f"{kind} events", update_interval=1000)
        finally:
            conn.close()

        elapsed = time.time() - start_time
        logger.increment_metric(f"{kind}_stored_total", stats.stored)
        logger.increment_metric(f"{kind}_skipped_total", stats.skipped)
        logger.record_metric(f"{kind}_seconds", elapsed)
        logger.info(
            f"{kind}: {stats.stored} new, {stats.skipped} skipped, {stats.total} fetched"
        )
        return stats

    async def ingest_questions(self, limit: int = QUESTION_INITIALIZED_LIMIT) -> IngestionStats:
        """Fetch and store recent QuestionInitialized events from the UMA adapter."""
        events = await self.client.fetch_events(QUESTION_INITIALIZED, UMA_ADAPTER_ADDRESS, limit=limit)
        return self._store_events(QUESTION_INITIALIZED, events, parse_question_event, self.store.insert_question)

    async def ingest_conditions(self, limit: int = CONDITION_PREPARATION_LIMIT) -> IngestionStats:
        """Fetch and store recent ConditionPreparation events from the conditional tokens contract."""
        events = await self.client.fetch_events(
            CONDITION_PREPARATION, CONDITIONAL_TOKENS_ADDRESS, limit=limit
        )
        return self._store_events(
            CONDITION_PREPARATION, events, parse_condition_event, self.store.insert_condition
        )

    async def ingest_token_pairs(self, limit: int = TOKEN_REGISTERED_LIMIT) -> IngestionStats:
        """Fetch and store recent TokenRegistered events from the CTF exchange."""
        events = await self.client.fetch_events(TOKEN_REGISTERED, CTF_EXCHANGE_ADDRESS, limit=limit)
        return self._store_events(
            TOKEN_REGISTERED, events, parse_token_pair_event, self.store.insert_token_pair
        )

    async def ingest_trades(self, limit: int = ORDER_FILLED_LIMIT) -> IngestionStats:
        """Fetch and store recent OrderFilled events from the CTF exchange."""
        events = await self.client.fetch_events(ORDER_FILLED, CTF_EXCHANGE_ADDRESS, limit=limit)
        return self._store_events(ORDER_FILLED, events, parse_trade_event, self.store.insert_trade)

    @beartype
    async def refresh_token_pair(self, condition_id: str) -> IngestionStats:
        """
        Fetch the TokenRegistered event of a single condition.

        Args:
            condition_id: Condition id, with or without the 0x prefix

        Returns:
            IngestionStats for the on-demand fetch
        """
        condition_hex = condition_id if condition_id.lower().startswith("0x") else f"0x{condition_id}"
        events = await self.client.fetch_events_by_argument(
            TOKEN_REGISTERED,
            CTF_EXCHANGE_ADDRESS,
            ["conditionId"],
            [condition_hex],
            value_type="Bytes",
            limit=ON_DEMAND_TOKEN_LIMIT,
        )
        return self._store_events(
            TOKEN_REGISTERED, events, parse_token_pair_event, self.store.insert_token_pair
        )

    @beartype
    async def refresh_trades(self, token0: str | None, token1: str | None) -> IngestionStats:
        """
        Fetch the latest OrderFilled events involving a market's tokens.

        USDC ids are never part of the query; if neither token is an outcome
        token no request is made.

        Args:
            token0: First outcome token id
            token1: Second outcome token id

        Returns:
            IngestionStats for the on-demand fetch
        """
        tokens = [token for token in (token0, token1) if token and not is_quote_currency(token)]
        if not tokens:
            logger.warning("No outcome tokens to query, skipping OrderFilled refresh")
            return IngestionStats(kind=ORDER_FILLED)

        events = await self.client.fetch_events_by_argument(
            ORDER_FILLED,
            CTF_EXCHANGE_ADDRESS,
            ["makerAssetId", "takerAssetId"],
            tokens,
            value_type="BigInteger",
            limit=ON_DEMAND_TRADE_LIMIT,
        )
        return self._store_events(
            ORDER_FILLED,
            events,
            lambda event: parse_trade_event(event, accept_short_amounts=True),
            self.store.insert_trade,
        )
