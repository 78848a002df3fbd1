"""
Installment Amortizer

A financed purchase is paid in equal monthly installments. The remainder
of the division is not redistributed, so the last installment can be off
by a fraction of a cent.
"""

from datetime import date

from sharedledger.errors import InvalidExpenseError
from sharedledger.models.ledger import Installment
from sharedledger.money import ZERO, Number, add_months, month_key, to_decimal


def amortize_installment(
    amount: Number,
    installment_count: int,
    purchase_date: date,
) -> Installment:
    """
    Split a purchase into monthly installments.

    The payoff month is the purchase month plus the installment count,
    e.g. 12 installments from 2024-01-15 pay off in 2025-01.

    Raises:
        InvalidExpenseError: Non-positive amount or count below one
    """
    amount = to_decimal(amount)
    if amount <= ZERO:
        raise InvalidExpenseError("Installment amount must be greater than zero", field="amount")
    if installment_count < 1:
        raise InvalidExpenseError(
            "An installment purchase needs at least one installment",
            field="installment_count",
        )

    return Installment(
        installment_count=installment_count,
        installment_amount=amount / installment_count,
        payoff_month=month_key(add_months(purchase_date, installment_count)),
    )
