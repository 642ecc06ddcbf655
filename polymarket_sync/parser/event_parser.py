"""Conversion of raw Bitquery events into storable records."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence

from beartype import beartype

from polymarket_sync.database.records import (
    BlockInfo,
    ConditionRecord,
    QuestionRecord,
    TokenPairRecord,
    TradeRecord,
)
from polymarket_sync.markets.trade_matcher import is_quote_currency, normalize_asset_id
from polymarket_sync.parser.ancillary_decoder import decode_and_parse

# Value union members in the order they are preferred
ARGUMENT_VALUE_KEYS = ("hex", "address", "string", "bigInteger", "integer")


@beartype
def get_argument_value(arguments: Sequence[Mapping[str, object]], name: str) -> str | None:
    """
    Get a named event argument as a string.

    Args:
        arguments: Event "Arguments" list ({"Name": ..., "Value": {...}})
        name: Argument name (case-sensitive, e.g. "conditionId")

    Returns:
        First non-empty of hex, address, string, bigInteger, integer, bool
        ("true"/"false"), or None if the argument is missing or empty
    """
    argument = next((arg for arg in arguments if arg.get("Name") == name), None)
    if argument is None:
        return None

    value = argument.get("Value")
    if not isinstance(value, Mapping):
        return None

    for key in ARGUMENT_VALUE_KEYS:
        item = value.get(key)
        if item is not None and item != "":
            return str(item)

    flag = value.get("bool")
    if isinstance(flag, bool):
        return "true" if flag else "false"
    return None


def _first_argument(arguments: Sequence[Mapping[str, object]], *names: str) -> str | None:
    for name in names:
        value = get_argument_value(arguments, name)
        if value is not None:
            return value
    return None


def parse_block_info(event: Mapping[str, object]) -> BlockInfo:
    """
    Extract block time, block number and transaction hash from an event.

    Raises:
        ValueError: If the block number is not numeric
    """
    block = event.get("Block") or {}
    transaction = event.get("Transaction") or {}
    if not isinstance(block, Mapping) or not isinstance(transaction, Mapping):
        raise TypeError("Block and Transaction must be objects")

    block_number = block.get("Number")
    return BlockInfo(
        block_time=str(block.get("Time") or ""),
        block_number=int(block_number) if block_number not in (None, "") else 0,
        transaction_hash=str(transaction.get("Hash") or ""),
    )


def _arguments(event: Mapping[str, object]) -> Sequence[Mapping[str, object]]:
    arguments = event.get("Arguments") or []
    if not isinstance(arguments, Sequence) or isinstance(arguments, str):
        raise TypeError("Arguments must be a list")
    for argument in arguments:
        if not isinstance(argument, Mapping):
            raise TypeError(f"Argument must be an object, got {type(argument).__name__}")
    return arguments


@beartype
def parse_question_event(event: Mapping[str, object]) -> QuestionRecord | None:
    """
    Parse a QuestionInitialized event.

    Args:
        event: Raw event from the Bitquery Events query

    Returns:
        QuestionRecord, or None if questionID is missing
    """
    arguments = _arguments(event)
    question_id = get_argument_value(arguments, "questionID")
    if not question_id:
        return None

    ancillary_data = get_argument_value(arguments, "ancillaryData")
    decoded = json.dumps(decode_and_parse(ancillary_data)) if ancillary_data else None

    return QuestionRecord(
        question_id=question_id,
        block=parse_block_info(event),
        request_timestamp=get_argument_value(arguments, "requestTimestamp"),
        creator=get_argument_value(arguments, "creator"),
        ancillary_data=ancillary_data,
        ancillary_data_decoded=decoded,
        reward_token=get_argument_value(arguments, "rewardToken"),
        reward=get_argument_value(arguments, "reward"),
        proposal_bond=get_argument_value(arguments, "proposalBond"),
    )


@beartype
def parse_condition_event(event: Mapping[str, object]) -> ConditionRecord | None:
    """Parse a ConditionPreparation event; None if conditionId or questionId is missing."""
    arguments = _arguments(event)
    condition_id = get_argument_value(arguments, "conditionId")
    question_id = get_argument_value(arguments, "questionId")
    if not condition_id or not question_id:
        return None

    return ConditionRecord(
        condition_id=condition_id,
        question_id=question_id,
        block=parse_block_info(event),
        outcome_slot_count=get_argument_value(arguments, "outcomeSlotCount"),
        oracle=get_argument_value(arguments, "oracle"),
    )


@beartype
def parse_token_pair_event(event: Mapping[str, object]) -> TokenPairRecord | None:
    """Parse a TokenRegistered event; None if conditionId, token0 or token1 is missing."""
    arguments = _arguments(event)
    condition_id = get_argument_value(arguments, "conditionId")
    token0 = get_argument_value(arguments, "token0")
    token1 = get_argument_value(arguments, "token1")
    if not condition_id or not token0 or not token1:
        return None

    return TokenPairRecord(
        condition_id=condition_id,
        token0=token0,
        token1=token1,
        block=parse_block_info(event),
    )


@beartype
def parse_trade_event(event: Mapping[str, object], accept_short_amounts: bool = False) -> TradeRecord | None:
    """
    Parse an OrderFilled event.

    Trades whose two asset ids are both USDC, or identical, are rejected.

    Args:
        event: Raw event from the Bitquery Events query
        accept_short_amounts: Also read makerAmount/takerAmount when the
            *Filled arguments are missing

    Returns:
        TradeRecord, or None if a required argument is missing or the asset ids are invalid
    """
    arguments = _arguments(event)
    order_hash = get_argument_value(arguments, "orderHash")
    maker = get_argument_value(arguments, "maker")
    taker = get_argument_value(arguments, "taker")
    maker_asset_id = get_argument_value(arguments, "makerAssetId")
    taker_asset_id = get_argument_value(arguments, "takerAssetId")
    if not all((order_hash, maker, taker, maker_asset_id, taker_asset_id)):
        return None

    if is_quote_currency(maker_asset_id) and is_quote_currency(taker_asset_id):
        return None
    if normalize_asset_id(maker_asset_id) == normalize_asset_id(taker_asset_id):
        return None

    maker_amount_names = ("makerAmountFilled", "makerAmount") if accept_short_amounts else ("makerAmountFilled",)
    taker_amount_names = ("takerAmountFilled", "takerAmount") if accept_short_amounts else ("takerAmountFilled",)

    return TradeRecord(
        order_hash=order_hash,
        maker=maker,
        taker=taker,
        maker_asset_id=maker_asset_id,
        taker_asset_id=taker_asset_id,
        maker_amount_filled=_first_argument(arguments, *maker_amount_names) or "0",
        taker_amount_filled=_first_argument(arguments, *taker_amount_names) or "0",
        block=parse_block_info(event),
        fee=get_argument_value(arguments, "fee"),
    )
