"""Database connection management and initialization."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from sqlite3 import Connection

from beartype import beartype

from polymarket_sync.database.models import (
    EVENT_INDEXES,
    TABLE_SCHEMAS,
    TOKEN_REGISTERED_ADDED_COLUMNS,
    TOKEN_REGISTERED_COPY_COLUMNS,
    TOKEN_REGISTERED_LEGACY_COLUMN,
    TOKEN_REGISTERED_TABLE,
    TOKEN_REGISTERED_TABLE_SCHEMA,
)
from polymarket_sync.utils.config import DB_PATH
from polymarket_sync.utils.logger import get_logger

logger = get_logger(__name__)

WAL_CHECKPOINT_MODES = ("PASSIVE", "FULL", "RESTART", "TRUNCATE")


@beartype
def get_connection(db_path: Path = DB_PATH) -> Connection:
    """Create and return a database connection in WAL mode."""
    conn = sqlite3.connect(str(db_path), timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA foreign_keys = OFF")
    return conn


def _table_columns(conn: Connection, table: str) -> list[str]:
    return [row["name"] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]


def _migrate_token_registered(conn: Connection) -> None:
    """Bring an older token_registered_events table up to the current layout."""
    columns = _table_columns(conn, TOKEN_REGISTERED_TABLE)

    for column in TOKEN_REGISTERED_ADDED_COLUMNS:
        if column in columns:
            continue
        try:
            conn.execute(f"ALTER TABLE {TOKEN_REGISTERED_TABLE} ADD COLUMN {column} TEXT")
            logger.info(f"Added column: {TOKEN_REGISTERED_TABLE}.{column}")
        except sqlite3.OperationalError as e:
            if "duplicate column" not in str(e).lower():
                raise

    if TOKEN_REGISTERED_LEGACY_COLUMN not in _table_columns(conn, TOKEN_REGISTERED_TABLE):
        return

    # SQLite cannot drop a column in place on older versions, so rebuild
    logger.info(f"Removing {TOKEN_REGISTERED_LEGACY_COLUMN} column (recreating table)...")
    new_table = f"{TOKEN_REGISTERED_TABLE}_new"
    conn.execute(f"DROP TABLE IF EXISTS {new_table}")
    conn.execute(
        TOKEN_REGISTERED_TABLE_SCHEMA.replace(
            f"IF NOT EXISTS {TOKEN_REGISTERED_TABLE} ", f"{new_table} "
        )
    )
    conn.execute(
        f"""
        INSERT OR IGNORE INTO {new_table} ({TOKEN_REGISTERED_COPY_COLUMNS})
        SELECT {TOKEN_REGISTERED_COPY_COLUMNS} FROM {TOKEN_REGISTERED_TABLE}
        """
    )
    conn.execute(f"DROP TABLE {TOKEN_REGISTERED_TABLE}")
    conn.execute(f"ALTER TABLE {new_table} RENAME TO {TOKEN_REGISTERED_TABLE}")
    logger.info(f"Removed {TOKEN_REGISTERED_LEGACY_COLUMN} column")


@beartype
def initialize_database(db_path: Path = DB_PATH) -> None:
    """Initialize the database with required tables, migrations and indexes."""
    # Ensure database directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = get_connection(db_path)
    try:
        cursor = conn.cursor()

        for schema_sql in TABLE_SCHEMAS:
            cursor.execute(schema_sql)

        _migrate_token_registered(conn)

        for index_sql in EVENT_INDEXES:
            cursor.execute(index_sql)

        conn.commit()
    finally:
        conn.close()


@beartype
def checkpoint(conn: Connection, mode: str = "PASSIVE") -> tuple[int, int, int]:
    """
    Force outstanding WAL frames into the main database file.

    Args:
        conn: Open database connection
        mode: SQLite checkpoint mode (PASSIVE, FULL, RESTART or TRUNCATE)

    Returns:
        Tuple of (busy, wal_frames, checkpointed_frames) as reported by SQLite
    """
    mode = mode.upper()
    if mode not in WAL_CHECKPOINT_MODES:
        raise ValueError(f"Unknown checkpoint mode: {mode}")
    row = conn.execute(f"PRAGMA wal_checkpoint({mode})").fetchone()
    return (int(row[0]), int(row[1]), int(row[2]))
