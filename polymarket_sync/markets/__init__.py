"""Trade matching and price calculation for binary markets."""

from __future__ import annotations

from polymarket_sync.markets.models import MarketPrices, PriceInfo
from polymarket_sync.markets.price_calculator import calculate_market_prices, calculate_token_price
from polymarket_sync.markets.trade_matcher import filter_trades, is_quote_currency, matches

__all__ = [
    "MarketPrices",
    "PriceInfo",
    "calculate_market_prices",
    "calculate_token_price",
    "filter_trades",
    "is_quote_currency",
    "matches",
]
