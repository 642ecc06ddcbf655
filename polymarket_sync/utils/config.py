"""Configuration constants for Polymarket event sync."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent.parent.parent

# .env.local wins over .env; real environment variables win over both
load_dotenv(PROJECT_ROOT / ".env.local", override=False)
load_dotenv(PROJECT_ROOT / ".env", override=False)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


# Database configuration
DB_PATH = Path(
    os.getenv("DATABASE_PATH") or os.getenv("DB_PATH") or PROJECT_ROOT / "data" / "polymarket.db"
)

# Logging configuration
LOGS_DIR = Path(os.getenv("LOGS_DIR") or PROJECT_ROOT / "logs")
LOG_FILE_NAME = "polymarket_sync.log"
CONSOLE_LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()

# Bitquery API configuration
BITQUERY_ENDPOINT = os.getenv("BITQUERY_ENDPOINT") or "https://streaming.bitquery.io/graphql"
BITQUERY_NETWORK = "matic"
BITQUERY_DATASET = "combined"
API_RATE_LIMIT = _env_float("BITQUERY_RATE_LIMIT", 2.0)  # requests per second
API_TIMEOUT = _env_float("BITQUERY_TIMEOUT", 120.0)

# Polymarket contracts on Polygon
CTF_EXCHANGE_ADDRESS = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"
CONDITIONAL_TOKENS_ADDRESS = "0x4d97dcd97ec945f40cf65f87097ace5ea0476045"
UMA_ADAPTER_ADDRESS = "0x65070BE91477460D8A7AeEb94ef92fe056C2f2A7"

# Event fetching windows and limits
EVENT_WINDOW_HOURS = _env_int("EVENT_WINDOW_HOURS", 72)
ON_DEMAND_WINDOW_DAYS = _env_int("ON_DEMAND_WINDOW_DAYS", 6)
TOKEN_REGISTERED_LIMIT = _env_int("TOKEN_REGISTERED_LIMIT", 20000)
ORDER_FILLED_LIMIT = _env_int("ORDER_FILLED_LIMIT", 10000)
CONDITION_PREPARATION_LIMIT = _env_int("CONDITION_PREPARATION_LIMIT", 10000)
QUESTION_INITIALIZED_LIMIT = _env_int("QUESTION_INITIALIZED_LIMIT", 10000)
ON_DEMAND_TOKEN_LIMIT = 10
ON_DEMAND_TRADE_LIMIT = 100

# Retry queue settings
QUEUE_MAX_RETRIES = _env_int("QUEUE_MAX_RETRIES", 3)
QUEUE_INITIAL_BACKOFF = _env_float("QUEUE_INITIAL_BACKOFF", 1.0)  # seconds, doubled per retry

# Polling cadence (seconds)
POLL_INTERVAL_QUESTIONS = _env_float("POLL_INTERVAL_QUESTIONS", 15 * 60)
POLL_INTERVAL_CONDITIONS = _env_float("POLL_INTERVAL_CONDITIONS", 15 * 60)
POLL_INTERVAL_TOKENS = _env_float("POLL_INTERVAL_TOKENS", 5 * 60)
POLL_INTERVAL_TRADES = _env_float("POLL_INTERVAL_TRADES", 60)

# Market listing
MARKET_CHAIN_LIMIT = 100
MARKET_LIST_LIMIT = 200

# Quote currency (USDC) as it appears in asset id fields
QUOTE_CURRENCY_SYMBOL = "USDC"
QUOTE_CURRENCY_DECIMALS = 6


def get_bitquery_token() -> str:
    """
    Read the Bitquery OAuth token from the environment.

    Supports both BITQUERY_OAUTH_TOKEN and BITQUERY_API_KEY. Surrounding
    quotes, whitespace and newlines are stripped.

    Returns:
        Cleaned token, or an empty string when none is configured
    """
    token = os.getenv("BITQUERY_OAUTH_TOKEN") or os.getenv("BITQUERY_API_KEY") or ""
    token = token.strip().replace("\n", "").replace("\r", "")
    return token.strip("\"'").strip()
