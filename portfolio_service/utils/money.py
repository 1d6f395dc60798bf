"""Decimal helpers for money arithmetic.

Values coming from the database, JSON or the CLI may be floats, ints or
strings. They are converted through ``str`` so ``0.1`` becomes
``Decimal("0.1")`` instead of its binary float expansion.
"""

from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Any

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Fixed context so results never depend on the caller's thread-local context.
MONEY_CONTEXT = Context(prec=34, rounding=ROUND_HALF_EVEN)


def to_decimal(value: Any) -> Decimal | None:
    """Return ``value`` as a Decimal, or None if it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def positive_decimal(value: Any) -> Decimal | None:
    """Return ``value`` as a finite, strictly positive Decimal, else None."""
    number = to_decimal(value)
    if number is None or not number.is_finite() or number <= 0:
        return None
    return number
