"""Read-side API: markets assembled from stored events, plus maintenance operations.

Every public method returns {"success": True, "data": ...} or
{"success": False, "error": message}; exceptions are logged, never raised.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timezone

from beartype import beartype

from polymarket_sync.database.repository import EventStore
from polymarket_sync.markets.price_calculator import calculate_market_prices
from polymarket_sync.markets.trade_matcher import (
    filter_trades,
    index_trades_by_asset,
    is_quote_currency,
    match_indexed_trades,
)
from polymarket_sync.parser.bitquery_client import AsyncBitqueryClient
from polymarket_sync.parser.ingestion import EventIngestor
from polymarket_sync.scheduler.polling import PollingService
from polymarket_sync.scheduler.retry_queue import RetryQueue
from polymarket_sync.utils.config import MARKET_CHAIN_LIMIT, MARKET_LIST_LIMIT, get_bitquery_token
from polymarket_sync.utils.errors import EventSourceError
from polymarket_sync.utils.logger import get_logger

logger = get_logger(__name__)

Result = dict[str, object]


def _ok(data: object, **extra: object) -> Result:
    return {"success": True, "data": data, **extra}


def _fail(error: str) -> Result:
    return {"success": False, "error": error}


def parse_decoded_ancillary(value: object) -> dict[str, object]:
    """Load the stored ancillary JSON; anything unreadable becomes an empty dict."""
    if not value:
        return {}
    try:
        parsed = json.loads(str(value))
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _outcome_labels(decoded: Mapping[str, object]) -> tuple[str, str]:
    return str(decoded.get("p1") or ""), str(decoded.get("p2") or "")


def _holder_from_balance(update: Mapping[str, object]) -> dict[str, object]:
    balance_update = update.get("BalanceUpdate") or {}
    currency = update.get("Currency") or {}
    if not isinstance(balance_update, Mapping):
        balance_update = {}
    if not isinstance(currency, Mapping):
        currency = {}
    return {
        "address": str(balance_update.get("Address") or ""),
        "token_id": str(balance_update.get("Id") or ""),
        "balance": str(update.get("balance") or "0"),
        "currency": {
            "name": str(currency.get("Name") or ""),
            "symbol": str(currency.get("Symbol") or ""),
            "contract": str(currency.get("SmartContract") or ""),
        },
    }


def _has_positive_balance(holder: Mapping[str, object]) -> bool:
    try:
        balance = float(str(holder.get("balance")))
    except ValueError:
        return False
    return balance > 0 and bool(holder.get("address"))


class MarketService:
    """Assembles markets from the event chain and exposes maintenance operations."""

    def __init__(
        self,
        store: EventStore,
        ingestor: EventIngestor | None = None,
        polling: PollingService | None = None,
        queue: RetryQueue | None = None,
    ) -> None:
        """
        Initialize the market service.

        Args:
            store: Event store to read from
            ingestor: Used for on-demand token/trade fetches (holders, refresh)
            polling: Polling service, asked for a fresh sync after a reset
            queue: Retry queue whose lock guards resets (defaults to polling.queue)
        """
        self.store = store
        self.ingestor = ingestor
        self.polling = polling
        self.queue = queue or (polling.queue if polling else None)

    @property
    def client(self) -> AsyncBitqueryClient | None:
        return self.ingestor.client if self.ingestor else None

    @beartype
    def list_markets(self, limit: int = MARKET_LIST_LIMIT) -> Result:
        """
        List markets with a complete question -> condition -> token chain.

        Markets with trades come first, then newest question first.

        Args:
            limit: Maximum number of markets returned

        Returns:
            Result whose data is a list of market dicts, with count,
            with_trades and without_trades alongside
        """
        try:
            chain_rows = self.store.get_markets_with_chain(limit=max(limit, MARKET_CHAIN_LIMIT))
            trade_index = index_trades_by_asset(self.store.get_all_trades())

            markets: list[dict[str, object]] = []
            for row in chain_rows:
                decoded = parse_decoded_ancillary(row.get("ancillary_data_decoded"))
                trades = match_indexed_trades(trade_index, row.get("token0"), row.get("token1"))
                p1, p2 = _outcome_labels(decoded)
                prices = calculate_market_prices(
                    trades,
                    str(row["token0"]) if row.get("token0") else None,
                    str(row["token1"]) if row.get("token1") else None,
                    p1,
                    p2,
                )
                markets.append(
                    {
                        "question_id": row.get("question_id"),
                        "ancillary_data_decoded": decoded,
                        "question_time": row.get("question_time"),
                        "condition_id": row.get("condition_id"),
                        "outcome_slot_count": row.get("outcome_slot_count"),
                        "token0": row.get("token0"),
                        "token1": row.get("token1"),
                        "trade_count": len(trades),
                        "prices": prices.to_dict(),
                    }
                )

            markets.sort(key=lambda market: str(market["question_time"] or ""), reverse=True)
            markets.sort(key=lambda market: market["trade_count"] == 0)
            markets = markets[:limit]

            with_trades = sum(1 for market in markets if market["trade_count"])
            return _ok(
                markets,
                count=len(markets),
                with_trades=with_trades,
                without_trades=len(markets) - with_trades,
            )
        except Exception:
            logger.exception("Failed to list markets")
            return _fail("Failed to fetch markets")

    @beartype
    def get_market(self, question_id: str) -> Result:
        """
        Get one market with its matched trades and prices.

        A question without a condition is still returned, with
        condition_id None and no trades.
        """
        try:
            details = self.store.get_market_details(question_id)
            if details is None:
                return _fail("Market not found")

            market = dict(details["market"])
            decoded = parse_decoded_ancillary(market.get("ancillary_data_decoded"))
            market["ancillary_data_decoded"] = decoded
            trades = list(details["trades"])

            token0 = details.get("token0")
            token1 = details.get("token1")
            p1, p2 = _outcome_labels(decoded)
            prices = calculate_market_prices(
                trades,
                str(token0) if token0 else None,
                str(token1) if token1 else None,
                p1,
                p2,
            )
            return _ok({"market": market, "trades": trades, "prices": prices.to_dict()})
        except Exception:
            logger.exception(f"Failed to fetch market {question_id[:16]}...")
            return _fail("Failed to fetch market details")

    async def _resolve_token_pair(self, condition_id: str) -> tuple[str | None, str | None, bool]:
        """Token pair from the store, fetched on demand if missing. Third item: fetched from Bitquery."""
        token_pair = self.store.get_token_pair(condition_id)
        if token_pair and token_pair.get("token0") and token_pair.get("token1"):
            return str(token_pair["token0"]), str(token_pair["token1"]), False

        if self.ingestor is None:
            return None, None, False

        logger.info(f"Token pair missing for {condition_id[:16]}..., fetching from Bitquery")
        await self.ingestor.refresh_token_pair(condition_id)
        token_pair = self.store.get_token_pair(condition_id)
        if token_pair and token_pair.get("token0") and token_pair.get("token1"):
            return str(token_pair["token0"]), str(token_pair["token1"]), True
        return None, None, True

    @beartype
    async def get_holders(self, question_id: str) -> Result:
        """
        Get holders with a positive balance of the market's outcome tokens.

        Args:
            question_id: Question id of the market

        Returns:
            Result with holders, count, token0 and token1
        """
        try:
            details = self.store.get_market_details(question_id)
            if details is None:
                return _fail("Market not found")

            condition_id = details["market"].get("condition_id")
            if not condition_id:
                return _fail("No condition_id found for this market")
            if self.client is None:
                return _fail("Bitquery client is not configured")

            token0, token1, _ = await self._resolve_token_pair(str(condition_id))
            if not token0 or not token1:
                return _fail("Tokens not found for this market")

            token_ids = [token for token in (token0, token1) if not is_quote_currency(token)]
            balances = await self.client.fetch_balances_by_ids(token_ids)
            holders = [
                holder
                for holder in (_holder_from_balance(update) for update in balances)
                if _has_positive_balance(holder)
            ]
            logger.info(f"Found {len(holders)} holders for {question_id[:16]}...")
            return _ok({"holders": holders, "count": len(holders), "token0": token0, "token1": token1})
        except Exception as e:
            logger.exception(f"Failed to fetch holders for {question_id[:16]}...")
            return _fail(f"Failed to fetch holders: {e}")

    @beartype
    async def refresh_market(self, question_id: str) -> Result:
        """
        Fetch the latest token pair and trades of one market from Bitquery.

        A failed trade fetch is logged and the stored trades are returned.
        """
        try:
            details = self.store.get_market_details(question_id)
            if details is None:
                return _fail("Market not found")

            condition_id = details["market"].get("condition_id")
            if not condition_id:
                return _fail("No condition_id found for this market")
            if self.ingestor is None:
                return _fail("Bitquery client is not configured")

            token0, token1, tokens_fetched = await self._resolve_token_pair(str(condition_id))
            if not token0 or not token1:
                return _fail("Could not determine token0 and token1 for this market")

            trades_fetched = True
            try:
                await self.ingestor.refresh_trades(token0, token1)
            except EventSourceError as e:
                trades_fetched = False
                logger.warning(f"Trade refresh failed, using stored trades: {e}")

            trades = filter_trades(self.store.get_all_trades(), [(token0, token1)])
            return _ok(
                {
                    "trades": trades,
                    "count": len(trades),
                    "tokens_fetched": tokens_fetched,
                    "trades_fetched": trades_fetched,
                }
            )
        except Exception as e:
            logger.exception(f"Failed to refresh market {question_id[:16]}...")
            return _fail(f"Failed to refresh market data: {e}")

    def sync_status(self) -> Result:
        """Report whether an initial sync is running or needed."""
        try:
            if self.polling is not None:
                return _ok(self.polling.sync_status())
            tables_empty = self.store.are_tables_empty()
            return _ok(
                {"in_progress": False, "duration": 0, "tables_empty": tables_empty, "needs_sync": tables_empty}
            )
        except Exception:
            logger.exception("Failed to fetch sync status")
            return _fail("Failed to fetch sync status")

    def db_check(self) -> Result:
        """Database diagnostics: file, table counts, sample rows and credential presence."""
        try:
            db_path = self.store.db_path
            exists = db_path.exists()
            size = db_path.stat().st_size if exists else 0
            token = self.client.token if self.client and self.client.token is not None else get_bitquery_token()
            return _ok(
                {
                    "database": {
                        "path": str(db_path),
                        "exists": exists,
                        "size": size,
                        "size_human": f"{size / 1024 / 1024:.2f} MB",
                    },
                    "tables": self.store.table_counts(),
                    "samples": self.store.get_sample_rows(),
                    "token_present": bool(token),
                }
            )
        except Exception as e:
            logger.exception("Database check failed")
            return _fail(str(e))

    def health(self) -> Result:
        """Liveness report; does not touch the database."""
        return _ok({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})

    async def clear_and_sync(self) -> Result:
        """
        Delete all stored events and start a fresh initial sync.

        The reset waits for the running ingestion job (if any) to finish and
        blocks queued jobs until the tables are empty.
        """
        try:
            if self.queue is not None:
                async with self.queue.exclusive():
                    counts = self.store.reset()
            else:
                counts = self.store.reset()

            sync_started = False
            if self.polling is not None:
                sync_started = self.polling.run_initial_sync(force=True)
            return _ok(
                {
                    "message": "Database cleared and sync started" if sync_started else "Database cleared",
                    "counts": counts,
                    "sync_started": sync_started,
                }
            )
        except Exception as e:
            logger.exception("Failed to clear database")
            return _fail(f"Failed to clear database and start sync: {e}")
