from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import InvalidRequest


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

CENT = Decimal("0.01")


def to_cents(value: Any, field_name: str = "amount") -> int:
    """
    Convert a currency amount (int, Decimal, numeric string, or float) to
    integer cents without binary floating point rounding.

    Floats go through str() first so 0.1 becomes Decimal("0.1"), not
    0.1000000000000000055511151231257827.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidRequest(f"{field_name} must be a number")
    try:
        if isinstance(value, float):
            amount = Decimal(str(value))
        elif isinstance(value, str):
            amount = Decimal(value.strip())
        else:
            amount = Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidRequest(f"{field_name} must be a number")
    if not amount.is_finite():
        raise InvalidRequest(f"{field_name} must be a number")
    # quantize() raises InvalidOperation once the exponent outgrows the context
    if abs(amount) > Decimal(MAX_PRICE_CENTS) / 100:
        raise InvalidRequest(f"{field_name} is out of range")
    try:
        exact = amount == amount.quantize(CENT)
    except InvalidOperation:
        raise InvalidRequest(f"{field_name} is out of range")
    if not exact:
        raise InvalidRequest(f"{field_name} cannot have more than two decimal places")
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def cents_to_decimal(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(CENT)


def format_cents(cents: int | None) -> str | None:
    """Render cents as a two-decimal string ("260.00") for JSON payloads."""
    amount = cents_to_decimal(cents)
    return None if amount is None else str(amount)
