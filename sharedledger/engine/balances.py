"""
Balance Calculator

Folds a ledger's expenses and settlements into one signed balance per
member: positive means the member is owed money, negative means they owe.

Balances are recomputed from scratch on every call. There is no
incremental state to drift.
"""

from decimal import Decimal
from typing import Iterable

from sharedledger.errors import InvalidExpenseError
from sharedledger.models.ledger import Expense, SettlementRecord
from sharedledger.money import ZERO, is_settled, money_sum


def compute_balances(
    expenses: Iterable[Expense],
    settlements: Iterable[SettlementRecord],
    member_ids: Iterable[str],
) -> dict[str, Decimal]:
    """
    Net position of every member of a ledger.

    The payer is credited the full amount and every participant, payer
    included, is debited their share. A settlement credits the member who
    paid it and debits the member who received it.

    Members referenced by expenses or settlements but missing from
    member_ids (e.g. removed from the ledger) still get a balance, so the
    balances always sum to zero.

    Raises:
        InvalidExpenseError: An expense has no participants
    """
    balances: dict[str, Decimal] = {member_id: ZERO for member_id in member_ids}

    for expense in expenses:
        if not expense.share_map:
            raise InvalidExpenseError(
                f"Expense {expense.id} has no participants",
                field="participant_ids",
            )
        balances[expense.payer_id] = balances.get(expense.payer_id, ZERO) + expense.amount
        for member_id, share in expense.share_map.items():
            balances[member_id] = balances.get(member_id, ZERO) - share

    for settlement in settlements:
        from_id = settlement.from_member_id
        to_id = settlement.to_member_id
        balances[from_id] = balances.get(from_id, ZERO) + settlement.amount
        balances[to_id] = balances.get(to_id, ZERO) - settlement.amount

    return balances


def total_spent(expenses: Iterable[Expense]) -> Decimal:
    """Everything the group has spent, regardless of who paid."""
    return money_sum(expense.amount for expense in expenses)


def balances_are_settled(balances: dict[str, Decimal]) -> bool:
    return all(is_settled(balance) for balance in balances.values())
