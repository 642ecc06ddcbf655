"""Matching of OrderFilled trades to a market's outcome tokens.

"0", "0x0" and the zero address all mean USDC in maker_asset_id /
taker_asset_id. A USDC side only counts as a match when the market itself
lists USDC as one of its tokens; otherwise every USDC trade on the exchange
would be attributed to every market.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from collections.abc import Set as AbstractSet

from beartype import beartype
from web3.constants import ADDRESS_ZERO

QUOTE_CURRENCY_IDS = frozenset({"0", "0x0", ADDRESS_ZERO.lower()})


def normalize_asset_id(asset_id: object) -> str | None:
    """Lowercase an asset id for comparison; empty values become None."""
    if asset_id is None:
        return None
    normalized = str(asset_id).strip().lower()
    return normalized or None


def is_quote_currency(asset_id: object) -> bool:
    """True if the asset id is one of the USDC representations."""
    normalized = normalize_asset_id(asset_id)
    return normalized is not None and normalized in QUOTE_CURRENCY_IDS


def build_token_set(token0: object, token1: object) -> frozenset[str]:
    """Normalized set of a market's token ids (missing tokens are left out)."""
    return frozenset(
        token for token in (normalize_asset_id(token0), normalize_asset_id(token1)) if token
    )


def _side_matches(asset_id: str | None, token_set: AbstractSet[str], market_has_quote: bool) -> bool:
    if asset_id is None:
        return False
    if asset_id in token_set:
        return True
    return market_has_quote and asset_id in QUOTE_CURRENCY_IDS


@beartype
def matches(trade: Mapping[str, object], token_set: AbstractSet[str]) -> bool:
    """
    Decide whether a trade belongs to a market.

    Args:
        trade: Trade row with maker_asset_id and taker_asset_id
        token_set: Normalized {token0, token1} of the market (see build_token_set)

    Returns:
        True if the maker side or the taker side matches the market;
        always False when both sides are USDC
    """
    market_has_quote = any(token in QUOTE_CURRENCY_IDS for token in token_set)
    maker_asset_id = normalize_asset_id(trade.get("maker_asset_id"))
    taker_asset_id = normalize_asset_id(trade.get("taker_asset_id"))
    if is_quote_currency(maker_asset_id) and is_quote_currency(taker_asset_id):
        return False
    return _side_matches(maker_asset_id, token_set, market_has_quote) or _side_matches(
        taker_asset_id, token_set, market_has_quote
    )


@beartype
def filter_trades(
    trades: Iterable[Mapping[str, object]],
    token_pairs: Sequence[tuple[object, object]],
) -> list[Mapping[str, object]]:
    """
    Keep only trades that belong to any of the given token pairs.

    Args:
        trades: Trade rows (order is preserved)
        token_pairs: (token0, token1) tuples registered for the market

    Returns:
        Matching trades
    """
    token_set: frozenset[str] = frozenset()
    for token0, token1 in token_pairs:
        token_set |= build_token_set(token0, token1)

    if not token_set:
        return []
    return [trade for trade in trades if matches(trade, token_set)]


def index_trades_by_asset(trades: Iterable[Mapping[str, object]]) -> dict[str, list[Mapping[str, object]]]:
    """Group trades by normalized maker and taker asset id for fast per-market lookup."""
    index: dict[str, list[Mapping[str, object]]] = {}
    for trade in trades:
        maker_id = normalize_asset_id(trade.get("maker_asset_id"))
        taker_id = normalize_asset_id(trade.get("taker_asset_id"))
        if maker_id:
            index.setdefault(maker_id, []).append(trade)
        if taker_id and taker_id != maker_id:
            index.setdefault(taker_id, []).append(trade)
    return index


def match_indexed_trades(
    index: Mapping[str, list[Mapping[str, object]]],
    token0: object,
    token1: object,
) -> list[Mapping[str, object]]:
    """
    Look up a market's trades in an index built by index_trades_by_asset.

    Trades are de-duplicated by order_hash and re-checked with matches().
    """
    token_set = build_token_set(token0, token1)
    candidates: list[Mapping[str, object]] = []
    for token in token_set:
        candidates.extend(index.get(token, []))
    if any(token in QUOTE_CURRENCY_IDS for token in token_set):
        for quote_id in QUOTE_CURRENCY_IDS - token_set:
            candidates.extend(index.get(quote_id, []))

    seen: set[object] = set()
    matched: list[Mapping[str, object]] = []
    for trade in candidates:
        key = trade.get("order_hash") or id(trade)
        if key in seen:
            continue
        seen.add(key)
        if matches(trade, token_set):
            matched.append(trade)
    matched.sort(key=lambda trade: str(trade.get("block_time") or ""), reverse=True)
    return matched
