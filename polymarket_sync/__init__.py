"""Polymarket on-chain event sync: Bitquery ingestion, SQLite storage and market pricing."""

from __future__ import annotations

__version__ = "0.1.0"
