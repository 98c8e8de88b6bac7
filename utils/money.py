"""
Money helpers.

All amounts inside the backend are integer minor units (cents). Conversion
from major units goes through ``Decimal`` so binary float error never leaks
into stored amounts.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENTS = Decimal("0.01")


def to_cents(amount: Union[int, float, str, Decimal]) -> int:
    """Convert a major-unit amount (e.g. 24.50) to cents, rounding half up."""
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major(cents: int) -> str:
    """Render cents as a plain major-unit string with two decimals, e.g. ``20.00``."""
    return str((Decimal(cents) / 100).quantize(CENTS))


def format_currency(cents: int) -> str:
    """Render cents as a dollar amount, ignoring the sign: ``-1234`` -> ``$12.34``."""
    return f"${to_major(abs(cents))}"
