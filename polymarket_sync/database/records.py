"""Data models for stored on-chain events."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BlockInfo:
    """Block and transaction metadata shared by every event."""

    block_time: str
    block_number: int
    transaction_hash: str


@dataclass(frozen=True)
class QuestionRecord:
    """QuestionInitialized event from the UMA adapter (root of the chain)."""

    question_id: str
    block: BlockInfo
    request_timestamp: str | None = None
    creator: str | None = None
    ancillary_data: str | None = None
    ancillary_data_decoded: str | None = None  # JSON text
    reward_token: str | None = None
    reward: str | None = None
    proposal_bond: str | None = None


@dataclass(frozen=True)
class ConditionRecord:
    """ConditionPreparation event linking a condition to its question."""

    condition_id: str
    question_id: str
    block: BlockInfo
    outcome_slot_count: str | None = None
    oracle: str | None = None


@dataclass(frozen=True)
class TokenPairRecord:
    """TokenRegistered event: the two outcome token ids of a condition."""

    condition_id: str
    token0: str
    token1: str
    block: BlockInfo


@dataclass(frozen=True)
class TradeRecord:
    """OrderFilled event from the CTF exchange."""

    order_hash: str
    maker: str
    taker: str
    maker_asset_id: str
    taker_asset_id: str
    maker_amount_filled: str
    taker_amount_filled: str
    block: BlockInfo
    fee: str | None = None
