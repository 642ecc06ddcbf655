"""Data models for assembled market views."""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class PriceInfo:
    """Latest price of one outcome token in USDC."""

    price: float
    formatted: str
    formatted_cents: str
    last_trade_time: str | None = None

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class MarketPrices:
    """YES/NO prices of a binary market; token0_is_yes is None when the labels are unclear."""

    yes: PriceInfo | None
    no: PriceInfo | None
    token0_is_yes: bool | None

    def to_dict(self) -> dict[str, object]:
        return {
            "yes": self.yes.to_dict() if self.yes else None,
            "no": self.no.to_dict() if self.no else None,
        }

