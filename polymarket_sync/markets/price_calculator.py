"""Calculate YES/NO token prices from matched trades."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from beartype import beartype

from polymarket_sync.markets.models import MarketPrices, PriceInfo
from polymarket_sync.markets.trade_matcher import is_quote_currency, normalize_asset_id
from polymarket_sync.utils.config import QUOTE_CURRENCY_DECIMALS, QUOTE_CURRENCY_SYMBOL

AMOUNT_SCALE = 10**QUOTE_CURRENCY_DECIMALS

YES_LABELS = frozenset({"yes", "1"})
NO_LABELS = frozenset({"no", "0"})


def _block_timestamp(trade: Mapping[str, object]) -> float:
    value = str(trade.get("block_time") or "").strip()
    if not value:
        return 0.0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _scaled_amount(value: object) -> float | None:
    try:
        amount = float(str(value)) / AMOUNT_SCALE
    except (TypeError, ValueError):
        return None
    if amount != amount or amount == 0:  # NaN or zero
        return None
    return amount


def _trade_price(trade: Mapping[str, object], token_id: str) -> float | None:
    """USDC per token for a token-vs-USDC trade, None if the trade is not one or is unusable."""
    maker_id = normalize_asset_id(trade.get("maker_asset_id"))
    taker_id = normalize_asset_id(trade.get("taker_asset_id"))

    if maker_id == token_id and is_quote_currency(taker_id):
        quote_raw, token_raw = trade.get("taker_amount_filled"), trade.get("maker_amount_filled")
    elif taker_id == token_id and is_quote_currency(maker_id):
        quote_raw, token_raw = trade.get("maker_amount_filled"), trade.get("taker_amount_filled")
    else:
        return None

    quote_amount = _scaled_amount(quote_raw)
    token_amount = _scaled_amount(token_raw)
    if quote_amount is None or token_amount is None:
        return None

    price = quote_amount / token_amount
    return price if price > 0 else None


def format_price(price: float, last_trade_time: str | None = None) -> PriceInfo:
    """Build the display form of a price: 4 decimals in USDC and 1 decimal in cents."""
    return PriceInfo(
        price=price,
        formatted=f"{price:.4f} {QUOTE_CURRENCY_SYMBOL}",
        formatted_cents=f"{price * 100:.1f}¢",
        last_trade_time=last_trade_time,
    )


@beartype
def calculate_token_price(trades: Iterable[Mapping[str, object]], token_id: str) -> PriceInfo | None:
    """
    Price of one outcome token from its most recent valid trade against USDC.

    Token-vs-token trades are ignored. Trades are scanned newest first and the
    first one with non-zero numeric amounts wins; prices are not averaged.

    Args:
        trades: Matched trades of the market
        token_id: Outcome token id

    Returns:
        PriceInfo, or None if no valid trade exists
    """
    normalized_token = normalize_asset_id(token_id)
    if normalized_token is None or is_quote_currency(normalized_token):
        return None

    ordered = sorted(trades, key=_block_timestamp, reverse=True)
    for trade in ordered:
        price = _trade_price(trade, normalized_token)
        if price is not None:
            block_time = trade.get("block_time")
            return format_price(price, str(block_time) if block_time else None)
    return None


def resolve_token0_is_yes(p1: str, p2: str) -> bool | None:
    """
    Work out whether token0 is the YES outcome from the p1/p2 labels.

    Returns:
        False when p1 is No/0 and p2 is Yes/1 (token0 = NO, token1 = YES),
        otherwise inferred from whichever single label is Yes/1,
        None when no reliable mapping exists.
    """
    p1_label = (p1 or "").strip().lower()
    p2_label = (p2 or "").strip().lower()

    if p1_label in NO_LABELS and p2_label in YES_LABELS:
        return False
    p1_yes = p1_label in YES_LABELS
    p2_yes = p2_label in YES_LABELS
    if p1_yes and not p2_yes:
        return True
    if p2_yes and not p1_yes:
        return False
    return None


@beartype
def calculate_market_prices(
    trades: Iterable[Mapping[str, object]],
    token0: str | None,
    token1: str | None,
    p1: str,
    p2: str,
) -> MarketPrices:
    """
    Calculate prices for both YES and NO tokens.

    Args:
        trades: Trades already matched to the market
        token0: First registered outcome token (may be missing)
        token1: Second registered outcome token (may be missing)
        p1: Outcome label for token0 from the ancillary data
        p2: Outcome label for token1 from the ancillary data

    Returns:
        MarketPrices; both prices are None when the YES/NO mapping is unclear
    """
    token0_is_yes = resolve_token0_is_yes(p1, p2)
    if token0_is_yes is None:
        return MarketPrices(yes=None, no=None, token0_is_yes=None)

    trade_list = list(trades)
    yes_token = token0 if token0_is_yes else token1
    no_token = token1 if token0_is_yes else token0

    yes_price = calculate_token_price(trade_list, yes_token) if yes_token else None
    no_price = calculate_token_price(trade_list, no_token) if no_token else None
    return MarketPrices(yes=yes_price, no=no_price, token0_is_yes=token0_is_yes)
