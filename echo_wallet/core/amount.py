"""
Transfer amount validation.

Spoken amounts arrive as loosely formatted strings ("0.1", "0.1eth", "1,000").
This module decides whether such a string is a usable transfer amount and
renders it canonically. All arithmetic uses Decimal so the same input always
produces the same canonical string.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from .types import AmountAccepted, AmountCheck, AmountRejected, AmountRejection, DialogueLimits

MAX_FRACTION_DIGITS = 6
_QUANTUM = Decimal(1).scaleb(-MAX_FRACTION_DIGITS)

NON_NUMERIC_PATTERN = re.compile(r"[^\d.]")
# A standalone number: "0.5", ".5", "1,000" or "1,000.25". Never the leading
# digit of a "0x..." address or a fragment of a longer word.
AMOUNT_REGEX = r"(?<![\w.])(?:\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?|\.\d+)(?!\d|x[0-9a-f])"
AMOUNT_PATTERN = re.compile(AMOUNT_REGEX)

REJECTION_REASONS = {
    AmountRejection.MISSING: "Please say the transfer amount.",
    AmountRejection.INVALID: "The amount format is not valid. Please say it again.",
    AmountRejection.NOT_POSITIVE: "The amount must be greater than zero.",
    AmountRejection.BELOW_MINIMUM: "The amount is too small. The minimum is {limit} ETH.",
    AmountRejection.ABOVE_MAXIMUM: "The amount is too large. The maximum is {limit} ETH.",
}


def format_decimal(value: Decimal) -> str:
    """Plain notation without trailing zeros ("0.10" -> "0.1", "1E+3" -> "1000")."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def _reject(code: AmountRejection, limit: Optional[Decimal] = None) -> AmountRejected:
    reason = REJECTION_REASONS[code]
    if limit is not None:
        reason = reason.format(limit=format_decimal(limit))
    return AmountRejected(code=code, reason=reason)


def validate_amount(text: Optional[str], limits: Optional[DialogueLimits] = None) -> AmountCheck:
    """
    Validate and canonicalize a transfer amount.

    Everything except digits and '.' is stripped first. More than six
    fractional digits are rounded half-up to six, then trailing zeros are
    dropped.

    Args:
        text: Amount as spoken or typed
        limits: Range limits (defaults: 0.000001 to 1000)

    Returns:
        AmountAccepted with the canonical string, or AmountRejected with a
        reason code and a user-facing sentence
    """
    limits = limits or DialogueLimits()

    cleaned = NON_NUMERIC_PATTERN.sub("", text or "")
    if not cleaned.strip("."):
        return _reject(AmountRejection.MISSING if not cleaned else AmountRejection.INVALID)

    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return _reject(AmountRejection.INVALID)

    if not value.is_finite():
        return _reject(AmountRejection.INVALID)
    if value <= 0:
        return _reject(AmountRejection.NOT_POSITIVE)
    if value < limits.min_amount:
        return _reject(AmountRejection.BELOW_MINIMUM, limits.min_amount)
    if value > limits.max_amount:
        return _reject(AmountRejection.ABOVE_MAXIMUM, limits.max_amount)

    if -value.as_tuple().exponent > MAX_FRACTION_DIGITS:  # type: ignore[operator]
        value = value.quantize(_QUANTUM, rounding=ROUND_HALF_UP)

    return AmountAccepted(canonical=format_decimal(value))


def extract_amount(text: str) -> Optional[str]:
    """
    Return the first number in a normalized utterance, or None.

    Thousands separators are dropped ("1,000" -> "1000").
    """
    match = AMOUNT_PATTERN.search(text or "")
    return match.group(0).replace(",", "") if match else None
