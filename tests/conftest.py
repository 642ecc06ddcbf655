"""Shared fixtures for the test suite."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from polymarket_sync.database.records import BlockInfo
from polymarket_sync.database.repository import EventStore


@pytest.fixture
def store(tmp_path: Path) -> EventStore:
    """Fresh event store backed by a temporary SQLite file."""
    return EventStore(tmp_path / "events.db")


@pytest.fixture
def block() -> BlockInfo:
    """Block metadata shared by records built in tests."""
    return BlockInfo(block_time="2024-05-01T12:00:00Z", block_number=100, transaction_hash="0xtx")


def _argument(name: str, value: object) -> dict[str, object]:
    if isinstance(value, bool):
        return {"Name": name, "Value": {"bool": value}}
    if isinstance(value, int):
        return {"Name": name, "Value": {"bigInteger": str(value)}}
    text = str(value)
    if text.startswith("0x") and len(text) == 42:
        return {"Name": name, "Value": {"address": text}}
    if text.startswith("0x"):
        return {"Name": name, "Value": {"hex": text}}
    return {"Name": name, "Value": {"string": text}}


@pytest.fixture
def make_event() -> Callable[..., dict[str, object]]:
    """Factory for raw Bitquery events: make_event(block_time=..., conditionId="0x..", ...)."""

    def factory(block_time: str = "2024-05-01T12:00:00Z", block_number: int = 100, **arguments: object) -> dict:
        return {
            "Block": {"Time": block_time, "Number": str(block_number), "Hash": "0xblock"},
            "Transaction": {"Hash": f"0xtx{block_number}", "From": "0xfrom", "To": "0xto"},
            "Arguments": [_argument(name, value) for name, value in arguments.items()],
        }

    return factory
