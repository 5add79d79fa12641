"""Conversion between abbreviated token amounts ("1.2M") and exact integers."""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal

logger = logging.getLogger(__name__)

_AMOUNT_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMB]?)$", re.IGNORECASE)

_UNIT_MULTIPLIERS = {
    "": 1,
    "K": 1_000,
    "M": 1_000_000,
    "B": 1_000_000_000,
}


def parse_token_amount(raw: str) -> int | str:
    """
    Parse an abbreviated token amount into an exact integer.

    Supported formats: ``42``, ``900K``, ``2.5M``, ``1B`` (unit case-insensitive).

    Args:
        raw: Amount as displayed on the listing page.

    Returns:
        The integer amount, or *raw* unchanged if it does not look like an amount.
    """
    match = _AMOUNT_RE.match(raw.strip())
    if not match:
        logger.debug(f"Keeping unparseable token amount as-is: {raw!r}")
        return raw

    number = Decimal(match.group(1))
    multiplier = _UNIT_MULTIPLIERS[match.group(2).upper()]
    return int((number * multiplier).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_token_amount(value: int | str) -> str:
    """Render an amount with grouping separators; raw strings pass through."""
    if isinstance(value, int):
        return f"{value:,}"
    return value


def to_storage(value: int | str) -> str:
    """Text form persisted in the database (plain digits, no separators)."""
    return str(value)


def from_storage(text: str | None) -> int:
    """
    Read a persisted amount back as an integer.

    Comma-grouped text is accepted; anything else counts as zero.
    """
    if not text:
        return 0
    cleaned = text.replace(",", "").strip()
    if not cleaned.isdecimal():
        return 0
    return int(cleaned)
