"""Database schema definitions for on-chain event data."""

from __future__ import annotations

# Natural keys carry UNIQUE constraints; repository.py relies on them
# together with INSERT OR IGNORE for idempotent writes.
QUESTION_INITIALIZED_TABLE = "question_initialized_events"
CONDITION_PREPARATION_TABLE = "condition_preparation_events"
TOKEN_REGISTERED_TABLE = "token_registered_events"
ORDER_FILLED_TABLE = "order_filled_events"

EVENT_TABLES = (
    QUESTION_INITIALIZED_TABLE,
    CONDITION_PREPARATION_TABLE,
    TOKEN_REGISTERED_TABLE,
    ORDER_FILLED_TABLE,
)

QUESTION_INITIALIZED_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS question_initialized_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    question_id TEXT UNIQUE NOT NULL,
    request_timestamp TEXT,
    creator TEXT,
    ancillary_data TEXT,
    ancillary_data_decoded TEXT,
    reward_token TEXT,
    reward TEXT,
    proposal_bond TEXT,
    block_time TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    transaction_hash TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

CONDITION_PREPARATION_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS condition_preparation_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    condition_id TEXT UNIQUE NOT NULL,
    question_id TEXT NOT NULL,
    outcome_slot_count TEXT,
    oracle TEXT,
    block_time TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    transaction_hash TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

TOKEN_REGISTERED_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS token_registered_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    condition_id TEXT UNIQUE NOT NULL,
    token0 TEXT,
    token1 TEXT,
    block_time TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    transaction_hash TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

ORDER_FILLED_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS order_filled_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_hash TEXT UNIQUE NOT NULL,
    maker TEXT NOT NULL,
    taker TEXT NOT NULL,
    maker_asset_id TEXT NOT NULL,
    taker_asset_id TEXT NOT NULL,
    maker_amount_filled TEXT NOT NULL,
    taker_amount_filled TEXT NOT NULL,
    fee TEXT,
    block_time TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    transaction_hash TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

TABLE_SCHEMAS = [
    QUESTION_INITIALIZED_TABLE_SCHEMA,
    CONDITION_PREPARATION_TABLE_SCHEMA,
    TOKEN_REGISTERED_TABLE_SCHEMA,
    ORDER_FILLED_TABLE_SCHEMA,
]

# Indexes for the relationship-chain joins
EVENT_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_token_registered_condition_id ON token_registered_events(condition_id)",
    "CREATE INDEX IF NOT EXISTS idx_order_filled_maker_asset ON order_filled_events(maker_asset_id)",
    "CREATE INDEX IF NOT EXISTS idx_order_filled_taker_asset ON order_filled_events(taker_asset_id)",
    "CREATE INDEX IF NOT EXISTS idx_order_filled_block_time ON order_filled_events(block_time)",
    "CREATE INDEX IF NOT EXISTS idx_condition_prep_question_id ON condition_preparation_events(question_id)",
    "CREATE INDEX IF NOT EXISTS idx_condition_prep_condition_id ON condition_preparation_events(condition_id)",
    "CREATE INDEX IF NOT EXISTS idx_question_init_block_time ON question_initialized_events(block_time)",
]

# Columns added to token_registered_events after the first release
TOKEN_REGISTERED_ADDED_COLUMNS = ["token0", "token1"]

# Column dropped from token_registered_events (table is rebuilt without it)
TOKEN_REGISTERED_LEGACY_COLUMN = "asset_id"

TOKEN_REGISTERED_COPY_COLUMNS = (
    "id, condition_id, token0, token1, block_time, block_number, transaction_hash, created_at"
)
