"""
Debt Minimizer

Converts a balance map into a short list of transfers that zeroes every
balance, using the greedy two-cursor match: the largest debtor pays the
largest creditor until one of them is settled, then the next one steps in.
This is not a proven global minimum, but it never needs more than n-1
transfers for n members.
"""

from decimal import Decimal
from typing import Iterable, Mapping

from sharedledger.models.ledger import Expense, Transfer
from sharedledger.money import MONEY_TOLERANCE, ZERO


def minimize_debts(balances: Mapping[str, Decimal]) -> list[Transfer]:
    """
    Suggest transfers that settle the given balances.

    Members are ordered by (balance, member_id), so two members with the
    same balance are always matched in the same order.

    Returns an empty list when every balance is already within tolerance.
    """
    ordered = sorted(balances.items(), key=lambda item: (item[1], item[0]))
    members = [member_id for member_id, _ in ordered]
    remaining = [balance for _, balance in ordered]

    transfers: list[Transfer] = []
    low = 0
    high = len(members) - 1

    while low < high:
        if remaining[low] >= -MONEY_TOLERANCE or remaining[high] <= MONEY_TOLERANCE:
            break

        amount = min(-remaining[low], remaining[high])
        transfers.append(Transfer(
            from_member_id=members[low],
            to_member_id=members[high],
            amount=amount,
        ))
        remaining[low] += amount
        remaining[high] -= amount

        if remaining[low] >= -MONEY_TOLERANCE:
            low += 1
        if remaining[high] <= MONEY_TOLERANCE:
            high -= 1

    return transfers


def apply_transfers(
    balances: Mapping[str, Decimal],
    transfers: Iterable[Transfer],
) -> dict[str, Decimal]:
    """Balances after the transfers were paid, as if each were a settlement."""
    result = dict(balances)
    for transfer in transfers:
        result[transfer.from_member_id] = result.get(transfer.from_member_id, ZERO) + transfer.amount
        result[transfer.to_member_id] = result.get(transfer.to_member_id, ZERO) - transfer.amount
    return result


def expenses_for_transfer(
    expenses: Iterable[Expense],
    transfer: Transfer,
) -> list[Expense]:
    """
    Expenses that explain a suggested transfer.

    These are the ones paid by the receiving member in which the paying
    member has a positive share. After netting, the list can be empty even
    for a valid transfer.
    """
    return [
        expense for expense in expenses
        if expense.payer_id == transfer.to_member_id
        and expense.share_of(transfer.from_member_id) > ZERO
    ]
