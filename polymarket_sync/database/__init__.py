"""SQLite storage for Polymarket contract events."""

from __future__ import annotations

from polymarket_sync.database.records import (
    BlockInfo,
    ConditionRecord,
    QuestionRecord,
    TokenPairRecord,
    TradeRecord,
)
from polymarket_sync.database.repository import EventStore

__all__ = [
    "BlockInfo",
    "ConditionRecord",
    "EventStore",
    "QuestionRecord",
    "TokenPairRecord",
    "TradeRecord",
]
