"""
Billing-Cycle Resolver

Maps a card transaction to the month its statement is due, given the
card's closing day. A charge made on or before the closing day lands on
the statement closing this month, due next month. A charge made after it
lands on next month's statement, due the month after.
"""

import calendar
from datetime import date
from typing import Iterable, Optional

from sharedledger.errors import InvalidExpenseError
from sharedledger.models.ledger import Card, CardCycleSummary, CardKey, Ledger
from sharedledger.money import ZERO, add_months

DEFAULT_CLOSING_DAY = 1


def resolve_billing_cycle(
    transaction_date: date,
    closing_day: Optional[int] = None,
) -> date:
    """
    First day of the month the charge is due.

    Args:
        transaction_date: When the card was charged
        closing_day: Statement closing day (1-31); unset means day 1

    Raises:
        InvalidExpenseError: closing_day outside 1-31
    """
    if closing_day is None:
        closing_day = DEFAULT_CLOSING_DAY
    if not 1 <= closing_day <= 31:
        raise InvalidExpenseError(
            f"Closing day must be between 1 and 31, got {closing_day}",
            field="closing_day",
        )

    if transaction_date.day <= closing_day:
        return add_months(transaction_date, 1)
    return add_months(transaction_date, 2)


def closing_day_for(
    card_key: CardKey,
    cards: Iterable[Card],
    default: int = DEFAULT_CLOSING_DAY,
) -> int:
    """
    Closing day the user registered for a card.

    An exact (bank, type) match wins. Otherwise any card of the same bank
    with a closing day is used, and failing that the default.
    """
    same_bank: Optional[int] = None
    for card in cards:
        if card.closing_day is None:
            continue
        if card.key == card_key:
            return card.closing_day
        if same_bank is None and card.bank_name == card_key.bank_name:
            same_bank = card.closing_day
    return same_bank if same_bank is not None else default


def _closing_date(year: int, month: int, closing_day: int) -> date:
    """Closing date in the given month; day 31 closes on the 30th in April."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(closing_day, last_day))


def summarize_card_cycle(
    card: Card,
    ledgers: Iterable[Ledger],
    user_id: str,
    today: Optional[date] = None,
    default_closing_day: int = DEFAULT_CLOSING_DAY,
) -> CardCycleSummary:
    """
    The user's charges on one card for the statement that is still open.

    The open cycle runs from the day after the last closing date through
    the next closing date. Installment purchases count their monthly
    installment, not the total.
    """
    today = today or date.today()
    closing_day = card.closing_day or default_closing_day

    if today.day <= closing_day:
        closing_month = date(today.year, today.month, 1)
    else:
        closing_month = add_months(today, 1)
    previous_month = add_months(closing_month, -1)

    next_closing = _closing_date(closing_month.year, closing_month.month, closing_day)
    last_closing = _closing_date(previous_month.year, previous_month.month, closing_day)

    total = ZERO
    count = 0
    for ledger in ledgers:
        if not ledger.has_member(user_id):
            continue
        for expense in ledger.expenses:
            if not expense.is_card_purchase or expense.card_key != card.key:
                continue
            if not last_closing < expense.transaction_date <= next_closing:
                continue
            burden = expense.monthly_burden(user_id)
            if burden > ZERO:
                total += burden
                count += 1

    return CardCycleSummary(
        card_key=card.key,
        closing_day=closing_day,
        last_closing_date=last_closing,
        next_closing_date=next_closing,
        current_cycle_total=total,
        expense_count=count,
    )
