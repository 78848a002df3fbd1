"""
Split Policy Evaluator

Turns one expense's amount, participants and policy into a per-member
share map. Called when an expense is created or edited; the resulting
shares are frozen on the expense and never re-derived afterwards.
"""

from decimal import Decimal
from typing import Iterable, Mapping, Optional, Union

from sharedledger.errors import InvalidExpenseError, SplitMismatchError
from sharedledger.models.ledger import SplitPolicy
from sharedledger.money import (
    HUNDRED,
    ZERO,
    Number,
    amounts_match,
    cut_to_cents,
    money_sum,
    to_decimal,
)

REMAINDER_POLICIES = ("payer", "none")


def _coerce_policy(policy: Union[SplitPolicy, str]) -> SplitPolicy:
    try:
        return SplitPolicy(policy)
    except ValueError:
        raise InvalidExpenseError(f"Unknown split policy: {policy}", field="split_policy")


def _coerce_raw_values(
    raw_values: Optional[Mapping[str, Number]],
    participants: list[str],
    policy: SplitPolicy,
) -> dict[str, Decimal]:
    if raw_values is None:
        raise InvalidExpenseError(
            f"A {policy.value} split needs a value for every participant",
            field="raw_values",
        )

    values = {member_id: to_decimal(value) for member_id, value in raw_values.items()}

    missing = [m for m in participants if m not in values]
    extra = [m for m in values if m not in participants]
    if missing or extra:
        raise InvalidExpenseError(
            f"Split values must cover exactly the participants "
            f"(missing: {missing}, not participating: {extra})",
            field="raw_values",
        )

    if any(value < ZERO for value in values.values()):
        raise InvalidExpenseError("Split values cannot be negative", field="raw_values")

    return values


def _equal_shares(
    amount: Decimal,
    participants: list[str],
    payer_id: Optional[str],
    remainder_policy: str,
) -> dict[str, Decimal]:
    count = len(participants)

    if remainder_policy == "none":
        share = amount / count
        return {member_id: share for member_id in participants}

    # Whole cents for everyone, leftover cents to one member.
    share = cut_to_cents(amount / count)
    shares = {member_id: share for member_id in participants}
    remainder = amount - share * count
    if remainder:
        receiver = payer_id if payer_id in shares else participants[0]
        shares[receiver] += remainder
    return shares


def evaluate_split(
    amount: Number,
    participant_ids: Iterable[str],
    policy: Union[SplitPolicy, str],
    raw_values: Optional[Mapping[str, Number]] = None,
    payer_id: Optional[str] = None,
    remainder_policy: str = "payer",
) -> dict[str, Decimal]:
    """
    Compute each participant's share of an expense.

    Args:
        amount: Expense total, must be positive
        participant_ids: Members sharing the expense (at least one, no repeats)
        policy: equal, by_amount or by_percentage
        raw_values: Amounts (by_amount) or percentages (by_percentage) per member
        payer_id: Receives the leftover cents of an equal split
        remainder_policy: "payer" or "none", see EngineSettings.equal_split_remainder

    Returns:
        Share map covering exactly the participants, summing to amount
        within MONEY_TOLERANCE

    Raises:
        InvalidExpenseError: Bad amount, participants, policy or values
        SplitMismatchError: Explicit amounts or percentages don't add up
    """
    amount = to_decimal(amount)
    participants = list(participant_ids)
    policy = _coerce_policy(policy)

    if amount <= ZERO:
        raise InvalidExpenseError("Expense amount must be greater than zero", field="amount")
    if not participants:
        raise InvalidExpenseError("An expense needs at least one participant", field="participant_ids")
    if len(set(participants)) != len(participants):
        raise InvalidExpenseError("Participants must not repeat", field="participant_ids")
    if remainder_policy not in REMAINDER_POLICIES:
        raise ValueError(f"Unknown remainder policy: {remainder_policy}")

    if policy == SplitPolicy.EQUAL:
        return _equal_shares(amount, participants, payer_id, remainder_policy)

    values = _coerce_raw_values(raw_values, participants, policy)
    total = money_sum(values.values())

    if policy == SplitPolicy.BY_AMOUNT:
        if not amounts_match(total, amount):
            raise SplitMismatchError(
                f"Split amounts add up to {total}, expected {amount}",
                field="raw_values",
            )
        return {member_id: values[member_id] for member_id in participants}

    if not amounts_match(total, HUNDRED):
        raise SplitMismatchError(
            f"Split percentages add up to {total}%, expected 100%",
            field="raw_values",
        )
    return {
        member_id: values[member_id] / HUNDRED * amount
        for member_id in participants
    }

