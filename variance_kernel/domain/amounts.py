"""
Amounts -- Decimal coercion and rounding helpers.

Rates and amounts arrive from query rows and request parameters as
strings, ints or floats.  Everything past the boundary is Decimal;
floats are converted through ``str`` so ``0.1`` stays ``0.1``.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any, *, default: Decimal | None = None) -> Decimal:
    """
    Coerce a rate / amount / quantity to Decimal.

    Raises:
        ValueError: if the value is empty or not numeric and no default
            is given.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric value: {value!r}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise ValueError("Missing numeric value")
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Not a numeric value: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Not a finite value: {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    """Two-decimal string used on the wire and in memos."""
    return str(round_money(value))


def plain_decimal(value: Decimal) -> str:
    """Shortest fixed-point string: Decimal('12.500000000') -> '12.5'."""
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text
