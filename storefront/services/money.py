"""
Money Utilities - Safe Decimal operations for cart prices.

Unit prices arrive from the server as strings or numbers; everything is
normalized to Decimal before any arithmetic so totals never drift.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union

Numeric = Union[str, int, float, Decimal, None]

# Default precision for money operations (2 decimal places)
MONEY_PRECISION = Decimal("0.01")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert any value to Decimal safely.

    Args:
        value: Value to convert (str, int, float, Decimal, or None)

    Returns:
        Decimal representation of the value, or Decimal("0") if None/invalid
    """
    if value is None:
        return ZERO

    if isinstance(value, Decimal):
        return value

    if isinstance(value, bool):
        return ZERO

    try:
        if isinstance(value, float):
            # Go through str to keep 19.99 as 19.99
            return Decimal(str(value))
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return ZERO


def round_money(value: Numeric) -> Decimal:
    """Round monetary value to cents, half-up."""
    return to_decimal(value).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def to_float(value: Numeric) -> float:
    """
    Convert Decimal to float for JSON serialization or external APIs.

    Use only at API boundaries, not for internal calculations.
    """
    return float(to_decimal(value))


def multiply(value: Numeric, factor: Numeric) -> Decimal:
    """Safe multiplication of monetary value by a factor."""
    return to_decimal(value) * to_decimal(factor)


def subtract(a: Numeric, b: Numeric) -> Decimal:
    """Safe subtraction of monetary values."""
    return to_decimal(a) - to_decimal(b)


def percent_of(value: Numeric, rate: Numeric) -> Decimal:
    """Return `rate` percent of `value`, rounded to cents."""
    return round_money(multiply(value, to_decimal(rate) / HUNDRED))


def floor_zero(value: Numeric) -> Decimal:
    """Clamp a monetary value so it never goes negative."""
    return max(ZERO, to_decimal(value))


def format_money(value: Numeric, symbol: str = "$") -> str:
    """Format monetary value for display, e.g. $1,234.50."""
    return f"{symbol}{round_money(value):,.2f}"
