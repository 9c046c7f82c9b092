"""Money helpers operating on integer minor units.

Public API:
- to_minor: parse a major-unit amount (str/Decimal/int) into minor units using ROUND_HALF_UP.
- to_major: convert minor units back to a Decimal in major units.
- format_major: fixed-point string for output (e.g. "2000.00").
- ensure_amount: validate a positive minor-unit amount against an upper bound.
- normalize_currency: validate a 3-letter currency code.

Floats are rejected on purpose: internal arithmetic is integer-only and the
major->minor conversion happens exclusively at the system boundary.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import ValidationError

__all__ = [
    "DEFAULT_SCALE",
    "to_minor",
    "to_major",
    "format_major",
    "ensure_amount",
    "normalize_currency",
]

DEFAULT_SCALE = 2


def to_minor(value: str | Decimal | int, scale: int = DEFAULT_SCALE) -> int:
    """Convert a major-unit amount to integer minor units (round half up).

    Examples:
    >>> to_minor("10.005")
    1001
    >>> to_minor(Decimal("-0.005"))
    -1
    >>> to_minor(7)
    700
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"Unsupported amount type: {type(value).__name__}")
    if isinstance(value, int):
        return value * (10**scale)
    try:
        dec = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc
    if not dec.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    scaled = (dec * (Decimal(10) ** scale)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(scaled)


def to_major(minor: int, scale: int = DEFAULT_SCALE) -> Decimal:
    """Return ``minor`` expressed in major units as an exact Decimal."""
    return Decimal(minor).scaleb(-scale)


def format_major(minor: int, scale: int = DEFAULT_SCALE) -> str:
    """Format minor units as a plain fixed-point major-unit string."""
    quantum = Decimal(1).scaleb(-scale)
    return str(to_major(minor, scale).quantize(quantum))


def ensure_amount(amount: int, *, maximum: int | None = None, field: str = "amount") -> int:
    """Validate a stored amount: integer, strictly positive and within ``maximum``."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"{field} must be an integer number of minor units")
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    if maximum is not None and amount > maximum:
        raise ValidationError(f"{field} exceeds maximum allowed value {maximum}")
    return amount


def normalize_currency(code: str | None) -> str:
    """Upper-case and validate an ISO-like 3-letter currency code."""
    normalized = (code or "").strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValidationError(f"Invalid currency code: {code!r}")
    return normalized
