"""Decoder for UMA ancillary data attached to QuestionInitialized events.

Ancillary data is hex-encoded text of the form::

    q: title: Will X happen?, description: Some text, market_id: 123, p1: No, p2: Yes
"""

from __future__ import annotations

import re

from beartype import beartype
from web3 import Web3

from polymarket_sync.utils.logger import get_logger

logger = get_logger(__name__)

DESCRIPTION_END_KEYS = ("market_id", "res_data", "p1", "p2", "p3", "initializer")
OPTIONAL_FIELDS = ("market_id", "res_data", "p1", "p2", "p3", "initializer")

TITLE_PATTERN = re.compile(r"(?:q:\s*)?title:\s*(.*?)\s*,?\s*description:", re.IGNORECASE | re.DOTALL)
DESCRIPTION_PATTERN = re.compile(r"description:", re.IGNORECASE)
DESCRIPTION_END_PATTERN = re.compile(
    r"\s*(?:" + "|".join(DESCRIPTION_END_KEYS) + r"):",
    re.IGNORECASE,
)
FIELD_PATTERNS = {
    field: re.compile(rf"{field}:\s*([^,]+)", re.IGNORECASE) for field in OPTIONAL_FIELDS
}


def _hex_to_bytes(hex_digits: str) -> bytes:
    """Convert hex digits to bytes, skipping pairs that are not valid hex."""
    if len(hex_digits) % 2 == 0:
        try:
            return Web3.to_bytes(hexstr=hex_digits)
        except ValueError:
            pass

    values = bytearray()
    for i in range(0, len(hex_digits), 2):
        try:
            values.append(int(hex_digits[i : i + 2], 16))
        except ValueError:
            continue
    return bytes(values)


@beartype
def decode_bytes(hex_data: str | None) -> str:
    """
    Decode hex-encoded ancillary data to text.

    Zero bytes are dropped before decoding. Invalid UTF-8 falls back to one
    character per byte; this function never raises.

    Args:
        hex_data: Hex string, with or without the 0x prefix

    Returns:
        Decoded text ("" for empty input or "0x")
    """
    if not hex_data:
        return ""

    hex_digits = hex_data.strip()
    if hex_digits[:2].lower() == "0x":
        hex_digits = hex_digits[2:]
    if not hex_digits:
        return ""

    raw = bytes(byte for byte in _hex_to_bytes(hex_digits) if byte != 0)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        logger.debug("Ancillary data is not valid UTF-8, falling back to per-byte decoding")
        return raw.decode("latin-1")


@beartype
def parse_fields(text: str | None) -> dict[str, str]:
    """
    Extract the known key/value fields from decoded ancillary text.

    Args:
        text: Decoded ancillary data

    Returns:
        Dict with title and description (default "") plus any of market_id,
        res_data, p1, p2, p3, initializer that are present
    """
    result: dict[str, str] = {"title": "", "description": ""}
    if not text:
        return result

    title_match = TITLE_PATTERN.search(text)
    if title_match:
        result["title"] = title_match.group(1).strip()

    description_match = DESCRIPTION_PATTERN.search(text)
    if description_match:
        after = text[description_match.end() :]
        end_match = DESCRIPTION_END_PATTERN.search(after)
        description = after[: end_match.start()] if end_match else after
        result["description"] = description.strip().rstrip(",").rstrip()

    for field, pattern in FIELD_PATTERNS.items():
        match = pattern.search(text)
        if match:
            value = match.group(1).strip()
            if value:
                result[field] = value

    return result


@beartype
def decode_and_parse(hex_data: str | None) -> dict[str, str]:
    """Decode hex ancillary data and parse it into fields."""
    return parse_fields(decode_bytes(hex_data))
