"""
Money and calendar-month helpers.

All amounts are Decimal. Balances, shares and sums are compared against
MONEY_TOLERANCE, never against a bare literal.
"""

from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import Iterable, Union

# Anything within this many monetary units of zero is settled.
MONEY_TOLERANCE = Decimal("0.01")

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def is_settled(value: Decimal) -> bool:
    """True when the value is zero within tolerance."""
    return abs(value) <= MONEY_TOLERANCE


def amounts_match(left: Decimal, right: Decimal) -> bool:
    return abs(left - right) <= MONEY_TOLERANCE


def money_sum(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def cut_to_cents(value: Decimal) -> Decimal:
    """Truncate toward zero at the cent."""
    return value.quantize(CENT, rounding=ROUND_DOWN)


def add_months(day: date, months: int) -> date:
    """First day of the month `months` after the month of `day`."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    return date(year, month + 1, 1)


def month_key(day: date) -> str:
    """YYYY-MM label of the month containing `day`."""
    return f"{day.year:04d}-{day.month:02d}"
