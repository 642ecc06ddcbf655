"""Fetching, decoding and ingesting Polymarket events from Bitquery."""

from __future__ import annotations

from polymarket_sync.parser.ancillary_decoder import decode_and_parse
from polymarket_sync.parser.bitquery_client import AsyncBitqueryClient
from polymarket_sync.parser.ingestion import EventIngestor, IngestionStats

__all__ = ["AsyncBitqueryClient", "EventIngestor", "IngestionStats", "decode_and_parse"]
