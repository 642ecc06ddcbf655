"""Tests for YES/NO price calculation."""

from __future__ import annotations

import pytest

from polymarket_sync.markets.price_calculator import (
    calculate_market_prices,
    calculate_token_price,
    resolve_token0_is_yes,
)


def _trade(
    maker_asset_id: str,
    taker_asset_id: str,
    maker_amount: str,
    taker_amount: str,
    block_time: str,
) -> dict:
    return {
        "maker_asset_id": maker_asset_id,
        "taker_asset_id": taker_asset_id,
        "maker_amount_filled": maker_amount,
        "taker_amount_filled": taker_amount,
        "block_time": block_time,
    }


def test_latest_trade_wins() -> None:
    """Test that the most recent valid trade sets the price, not an average."""
    trades = [
        # USDC maker pays 0.40 for 1 token
        _trade("0", "200", "400000", "1000000", "2024-01-01T10:00:00Z"),
        # token maker sells 2 tokens for 1.10 USDC
        _trade("200", "0", "2000000", "1100000", "2024-01-01T11:00:00Z"),
    ]

    price = calculate_token_price(trades, "200")

    assert price is not None
    assert price.price == pytest.approx(0.55)
    assert price.formatted == "0.5500 USDC"
    assert price.formatted_cents == "55.0¢"
    assert price.last_trade_time == "2024-01-01T11:00:00Z"


def test_input_order_does_not_matter() -> None:
    """Test that trades are sorted by block time before scanning."""
    trades = [
        _trade("200", "0", "2000000", "1100000", "2024-01-01T11:00:00Z"),
        _trade("0", "200", "400000", "1000000", "2024-01-01T10:00:00Z"),
    ]

    price = calculate_token_price(list(reversed(trades)), "200")

    assert price is not None
    assert price.price == pytest.approx(0.55)


def test_zero_and_non_numeric_amounts_are_skipped() -> None:
    """Test that unusable trades fall through to the next most recent one."""
    trades = [
        _trade("0", "200", "300000", "1000000", "2024-01-01T09:00:00Z"),
        _trade("0", "200", "0", "1000000", "2024-01-01T10:00:00Z"),
        _trade("0", "200", "abc", "1000000", "2024-01-01T11:00:00Z"),
    ]

    price = calculate_token_price(trades, "200")

    assert price is not None
    assert price.price == pytest.approx(0.30)


def test_token_vs_token_trades_are_ignored() -> None:
    """Test that only trades against USDC produce a price."""
    trades = [_trade("100", "200", "1000000", "1000000", "2024-01-01T10:00:00Z")]

    assert calculate_token_price(trades, "200") is None
    assert calculate_token_price([], "200") is None


@pytest.mark.parametrize(
    ("p1", "p2", "expected"),
    [
        ("No", "Yes", False),
        ("0", "1", False),
        ("Yes", "No", True),
        ("1", "0", True),
        ("YES", "", True),
        ("", "yes", False),
        ("Up", "Down", None),
        ("Yes", "Yes", None),
        ("", "", None),
    ],
)
def test_resolve_token0_is_yes(p1: str, p2: str, expected: bool | None) -> None:
    """Test the YES/NO mapping from outcome labels."""
    assert resolve_token0_is_yes(p1, p2) is expected


def test_market_prices_no_yes_mapping() -> None:
    """Test that p1=No, p2=Yes maps token1 to YES and leaves NO empty without trades."""
    trades = [_trade("0", "200", "550000", "1000000", "2024-01-01T10:00:00Z")]

    prices = calculate_market_prices(trades, "100", "200", "No", "Yes")

    assert prices.token0_is_yes is False
    assert prices.yes is not None
    assert prices.yes.formatted == "0.5500 USDC"
    assert prices.no is None


def test_market_prices_unclear_labels() -> None:
    """Test that no prices are reported when the labels give no mapping."""
    trades = [_trade("0", "200", "550000", "1000000", "2024-01-01T10:00:00Z")]

    prices = calculate_market_prices(trades, "100", "200", "Up", "Down")

    assert prices.yes is None
    assert prices.no is None
    assert prices.token0_is_yes is None
    assert prices.to_dict() == {"yes": None, "no": None}
