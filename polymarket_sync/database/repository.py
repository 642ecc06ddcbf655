"""Data access layer for on-chain event storage."""

from __future__ import annotations

from pathlib import Path
from sqlite3 import Connection

from beartype import beartype

from polymarket_sync.database.connection import checkpoint, get_connection, initialize_database
from polymarket_sync.database.models import (
    CONDITION_PREPARATION_TABLE,
    EVENT_TABLES,
    ORDER_FILLED_TABLE,
    QUESTION_INITIALIZED_TABLE,
    TOKEN_REGISTERED_TABLE,
)
from polymarket_sync.database.records import (
    ConditionRecord,
    QuestionRecord,
    TokenPairRecord,
    TradeRecord,
)
from polymarket_sync.markets.trade_matcher import filter_trades
from polymarket_sync.utils.config import DB_PATH, MARKET_CHAIN_LIMIT
from polymarket_sync.utils.logger import get_logger

logger = get_logger(__name__)


class EventStore:
    """
    Idempotent store for the four Polymarket event kinds.

    Relationships are encoded in the queries:
    1. question_initialized_events.question_id -> condition_preparation_events.question_id
    2. condition_preparation_events.condition_id -> token_registered_events.condition_id
    3. token0/token1 -> order_filled_events.maker_asset_id/taker_asset_id ("0" = USDC)
    """

    def __init__(self, db_path: Path = DB_PATH, initialize: bool = True) -> None:
        """
        Initialize the event store.

        Args:
            db_path: SQLite database file
            initialize: Create tables and run migrations on construction
        """
        self.db_path = db_path
        if initialize:
            logger.info(f"Initializing database at: {db_path}")
            initialize_database(db_path)

    def connect(self) -> Connection:
        """Open a new connection to the store's database."""
        return get_connection(self.db_path)

    def _insert(self, sql: str, params: tuple[object, ...], conn: Connection | None) -> bool:
        should_close = conn is None
        if conn is None:
            conn = self.connect()

        try:
            cursor = conn.cursor()
            cursor.execute(sql, params)
            conn.commit()
            return cursor.rowcount > 0
        finally:
            if should_close:
                conn.close()

    @beartype
    def insert_question(self, record: QuestionRecord, conn: Connection | None = None) -> bool:
        """
        Insert a QuestionInitialized event unless its question_id is already stored.

        Args:
            record: Question event to store
            conn: Optional database connection (creates new if None)

        Returns:
            True if a new row was created, False if the key already existed
        """
        created = self._insert(
            f"""
            INSERT OR IGNORE INTO {QUESTION_INITIALIZED_TABLE}
            (question_id, request_timestamp, creator, ancillary_data, ancillary_data_decoded,
             reward_token, reward, proposal_bond, block_time, block_number, transaction_hash)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.question_id,
                record.request_timestamp,
                record.creator,
                record.ancillary_data,
                record.ancillary_data_decoded,
                record.reward_token,
                record.reward,
                record.proposal_bond,
                record.block.block_time,
                record.block.block_number,
                record.block.transaction_hash,
            ),
            conn,
        )
        if created:
            logger.debug(f"Inserted QuestionInitialized: questionId={record.question_id[:16]}...")
        return created

    @beartype
    def insert_condition(self, record: ConditionRecord, conn: Connection | None = None) -> bool:
        """Insert a ConditionPreparation event; returns True if a row was created."""
        created = self._insert(
            f"""
            INSERT OR IGNORE INTO {CONDITION_PREPARATION_TABLE}
            (condition_id, question_id, outcome_slot_count, oracle,
             block_time, block_number, transaction_hash)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.condition_id,
                record.question_id,
                record.outcome_slot_count,
                record.oracle,
                record.block.block_time,
                record.block.block_number,
                record.block.transaction_hash,
            ),
            conn,
        )
        if created:
            logger.debug(f"Inserted ConditionPreparation: conditionId={record.condition_id[:16]}...")
        return created

    @beartype
    def insert_token_pair(self, record: TokenPairRecord, conn: Connection | None = None) -> bool:
        """Insert a TokenRegistered event; returns True if a row was created."""
        created = self._insert(
            f"""
            INSERT OR IGNORE INTO {TOKEN_REGISTERED_TABLE}
            (condition_id, token0, token1, block_time, block_number, transaction_hash)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.condition_id,
                record.token0,
                record.token1,
                record.block.block_time,
                record.block.block_number,
                record.block.transaction_hash,
            ),
            conn,
        )
        if created:
            logger.debug(f"Inserted TokenRegistered: conditionId={record.condition_id[:16]}...")
        return created

    @beartype
    def insert_trade(self, record: TradeRecord, conn: Connection | None = None) -> bool:
        """Insert an OrderFilled event; returns True if a row was created."""
        created = self._insert(
            f"""
            INSERT OR IGNORE INTO {ORDER_FILLED_TABLE}
            (order_hash, maker, taker, maker_asset_id, taker_asset_id,
             maker_amount_filled, taker_amount_filled, fee,
             block_time, block_number, transaction_hash)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.order_hash,
                record.maker,
                record.taker,
                record.maker_asset_id,
                record.taker_asset_id,
                record.maker_amount_filled,
                record.taker_amount_filled,
                record.fee,
                record.block.block_time,
                record.block.block_number,
                record.block.transaction_hash,
            ),
            conn,
        )
        if created:
            logger.debug(f"Inserted OrderFilled: orderHash={record.order_hash[:16]}...")
        return created

    @beartype
    def get_markets_with_chain(self, limit: int = MARKET_CHAIN_LIMIT) -> list[dict[str, object]]:
        """
        Get questions with decoded data that have a full question -> condition -> token chain.

        Args:
            limit: Maximum number of rows to return (newest questions first)

        Returns:
            List of dicts with keys: question_id, ancillary_data_decoded, question_time,
            condition_id, outcome_slot_count, token0, token1
        """
        conn = self.connect()
        try:
            rows = conn.execute(
                f"""
                SELECT DISTINCT
                    q.question_id,
                    q.ancillary_data_decoded,
                    q.block_time AS question_time,
                    c.condition_id,
                    c.outcome_slot_count,
                    t.token0,
                    t.token1
                FROM {QUESTION_INITIALIZED_TABLE} q
                INNER JOIN {CONDITION_PREPARATION_TABLE} c ON q.question_id = c.question_id
                INNER JOIN {TOKEN_REGISTERED_TABLE} t ON c.condition_id = t.condition_id
                WHERE q.ancillary_data_decoded IS NOT NULL
                  AND q.ancillary_data_decoded != ''
                  AND q.ancillary_data_decoded != 'null'
                ORDER BY q.block_time DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    @beartype
    def get_all_trades(self, limit: int | None = None) -> list[dict[str, object]]:
        """Get stored trades, newest first."""
        conn = self.connect()
        try:
            query = f"SELECT * FROM {ORDER_FILLED_TABLE} ORDER BY block_time DESC"
            params: tuple[object, ...] = ()
            if limit:
                query += " LIMIT ?"
                params = (limit,)
            return [dict(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()

    @beartype
    def get_token_pair(self, condition_id: str) -> dict[str, object] | None:
        """Get the token pair registered for a condition, or None if not synced yet."""
        conn = self.connect()
        try:
            row = conn.execute(
                f"SELECT * FROM {TOKEN_REGISTERED_TABLE} WHERE condition_id = ?",
                (condition_id,),
            ).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    @beartype
    def get_market_details(self, question_id: str) -> dict[str, object] | None:
        """
        Assemble a market from the relationship chain.

        Args:
            question_id: Question id (root of the chain)

        Returns:
            None if the question is unknown, otherwise a dict with keys:
            market (question row plus condition_id, outcome_slot_count, oracle),
            token0, token1, trades. Missing links yield None / empty trades.
        """
        conn = self.connect()
        try:
            row = conn.execute(
                f"""
                SELECT
                    q.*,
                    c.condition_id,
                    c.outcome_slot_count,
                    c.oracle
                FROM {QUESTION_INITIALIZED_TABLE} q
                LEFT JOIN {CONDITION_PREPARATION_TABLE} c ON q.question_id = c.question_id
                WHERE q.question_id = ?
                """,
                (question_id,),
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            logger.warning(f"Market not found for questionId: {question_id[:16]}...")
            return None

        market = dict(row)
        details: dict[str, object] = {"market": market, "token0": None, "token1": None, "trades": []}

        condition_id = market.get("condition_id")
        if not condition_id:
            logger.debug("No conditionId found for market (no condition_preparation_events match)")
            return details

        token_pair = self.get_token_pair(str(condition_id))
        if token_pair is None:
            logger.debug(f"No tokens found for conditionId: {str(condition_id)[:16]}...")
            return details

        details["token0"] = token_pair.get("token0")
        details["token1"] = token_pair.get("token1")
        details["trades"] = filter_trades(
            self.get_all_trades(),
            [(token_pair.get("token0"), token_pair.get("token1"))],
        )
        return details

    @beartype
    def get_trades_for_condition(
        self,
        condition_id: str,
        scan_limit: int = 1000,
        limit: int = 100,
    ) -> list[dict[str, object]]:
        """
        Get recent trades for a condition via its token pair.

        Args:
            condition_id: Condition id
            scan_limit: Number of most recent trades to scan
            limit: Maximum number of matching trades to return

        Returns:
            Matching trades, newest first (empty if the condition has no token pair)
        """
        token_pair = self.get_token_pair(condition_id)
        if token_pair is None:
            return []
        trades = filter_trades(
            self.get_all_trades(limit=scan_limit),
            [(token_pair.get("token0"), token_pair.get("token1"))],
        )
        return trades[:limit]

    def table_counts(self) -> dict[str, int]:
        """Get row counts for every event table."""
        conn = self.connect()
        try:
            return {
                table: int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
                for table in EVENT_TABLES
            }
        finally:
            conn.close()

    def are_tables_empty(self) -> bool:
        """True if at least one event table has no rows."""
        counts = self.table_counts()
        logger.debug(f"Table counts: {counts}")
        return any(count == 0 for count in counts.values())

    def are_all_tables_filled(self) -> bool:
        """True if every event table has at least one row."""
        return not self.are_tables_empty()

    def get_sample_rows(self) -> dict[str, dict[str, object] | None]:
        """Get one question and one condition row for diagnostics."""
        conn = self.connect()
        try:
            question = conn.execute(f"SELECT * FROM {QUESTION_INITIALIZED_TABLE} LIMIT 1").fetchone()
            condition = conn.execute(f"SELECT * FROM {CONDITION_PREPARATION_TABLE} LIMIT 1").fetchone()
            return {
                "question": dict(question) if question else None,
                "condition": dict(condition) if condition else None,
            }
        finally:
            conn.close()

    @beartype
    def checkpoint(self, mode: str = "PASSIVE") -> tuple[int, int, int]:
        """Make outstanding writes visible to readers of the main database file."""
        conn = self.connect()
        try:
            return checkpoint(conn, mode)
        finally:
            conn.close()

    def reset(self) -> dict[str, int]:
        """
        Delete every row from all event tables and reset their id sequences.

        Runs in a single write transaction. Callers must make sure no ingestion
        job is running (see RetryQueue.exclusive()).

        Returns:
            Table counts after the reset
        """
        conn = self.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for table in EVENT_TABLES:
                    conn.execute(f"DELETE FROM {table}")
                placeholders = ", ".join("?" for _ in EVENT_TABLES)
                conn.execute(
                    f"DELETE FROM sqlite_sequence WHERE name IN ({placeholders})",
                    EVENT_TABLES,
                )
            except Exception:
                conn.rollback()
                raise
            conn.commit()
            checkpoint(conn, "RESTART")
        finally:
            conn.close()

        counts = self.table_counts()
        logger.info(f"Database cleared. Counts: {counts}")
        return counts
