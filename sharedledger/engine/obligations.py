"""
Obligation Aggregator / Reconciler

Projects a user's card purchases, scattered across every shared ledger
they belong to, onto per-(due month, card) obligation records, and diffs
that projection against the records already materialized for the user.

DESIGN DECISION: Reconciliation is a pure function of a snapshot. It
re-derives every bucket from scratch and returns the write set; applying
it is the caller's job. A race with a concurrent source change costs one
extra pass, never a corrupted projection.

GUARANTEES:
- Running twice on unchanged data yields an empty batch
- created_at of a surviving record never changes
- At most one record per bucket key survives a pass
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel, Field

from sharedledger.engine.billing import DEFAULT_CLOSING_DAY, closing_day_for, resolve_billing_cycle
from sharedledger.models.ledger import Card, Expense, Ledger, new_id
from sharedledger.models.obligation import (
    BucketKey,
    ObligationBatch,
    ObligationRecord,
    Reimbursement,
    ReimbursementDirection,
    describe_bucket,
)
from sharedledger.money import ZERO, month_key

logger = structlog.get_logger(__name__)


class ObligationBucket(BaseModel):
    """Running total and breakdown for one (due month, card) bucket."""

    key: BucketKey
    total: Decimal = ZERO
    reimbursements: list[Reimbursement] = Field(default_factory=list)
    expense_ids: list[str] = Field(default_factory=list)

    def sorted_reimbursements(self) -> list[Reimbursement]:
        return sorted(self.reimbursements, key=lambda r: r.sort_key())


def _reimbursements_for(
    expense: Expense,
    ledger: Ledger,
    user_id: str,
) -> list[Reimbursement]:
    """Who owes whom for this expense, from the user's point of view."""
    entries = []

    if expense.payer_id == user_id:
        for member_id, share in expense.share_map.items():
            if member_id == user_id or share <= ZERO:
                continue
            entries.append(Reimbursement(
                direction=ReimbursementDirection.OWED_TO_USER,
                counterparty_id=member_id,
                counterparty_name=ledger.display_name(member_id),
                amount=share,
                source_description=expense.description,
                source_ledger_id=ledger.id,
                source_expense_id=expense.id,
            ))
    else:
        share = expense.share_of(user_id)
        if share > ZERO:
            entries.append(Reimbursement(
                direction=ReimbursementDirection.USER_OWES,
                counterparty_id=expense.payer_id,
                counterparty_name=ledger.display_name(expense.payer_id),
                amount=share,
                source_description=expense.description,
                source_ledger_id=ledger.id,
                source_expense_id=expense.id,
            ))

    return entries


def aggregate_obligations(
    user_id: str,
    ledgers: Iterable[Ledger],
    cards: Iterable[Card],
    default_closing_day: int = DEFAULT_CLOSING_DAY,
) -> dict[BucketKey, ObligationBucket]:
    """
    Bucket the user's card burden by (due month, card).

    Every card purchase in every ledger the user belongs to is counted.
    A purchase that adds neither burden nor a reimbursement line for the
    user opens no bucket.
    """
    cards = list(cards)
    buckets: dict[BucketKey, ObligationBucket] = {}

    for ledger in ledgers:
        if not ledger.has_member(user_id):
            continue

        for expense in ledger.expenses:
            if not expense.is_card_purchase:
                continue

            burden = expense.monthly_burden(user_id)
            reimbursements = _reimbursements_for(expense, ledger, user_id)
            if burden <= ZERO and not reimbursements:
                continue

            closing_day = closing_day_for(expense.card_key, cards, default_closing_day)
            due_month = month_key(resolve_billing_cycle(expense.transaction_date, closing_day))
            key = BucketKey(due_month, expense.card_key)

            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = ObligationBucket(key=key)

            bucket.total += burden
            bucket.reimbursements.extend(reimbursements)
            bucket.expense_ids.append(expense.id)

    return buckets


def _sort_records(records: list[ObligationRecord]) -> list[ObligationRecord]:
    return sorted(records, key=lambda r: (r.due_month, r.card_key.label, r.id))


def reconcile_obligations(
    user_id: str,
    ledgers: Iterable[Ledger],
    cards: Iterable[Card],
    existing: Iterable[ObligationRecord],
    now: Optional[datetime] = None,
    id_factory: Optional[Callable[[], str]] = None,
    default_closing_day: int = DEFAULT_CLOSING_DAY,
) -> ObligationBatch:
    """
    Diff the recomputed projection against the user's current records.

    - A bucket with a positive total and no record is created.
    - A record whose bucket still has a positive total is updated in place
      when its amount or breakdown changed, keeping created_at.
    - A record whose bucket vanished or dropped to zero is deleted.
    - When several records share a bucket key, the oldest is kept and the
      rest are deleted.

    Records owned by other users are left alone.
    """
    now = now or datetime.utcnow()
    id_factory = id_factory or new_id
    buckets = aggregate_obligations(user_id, ledgers, cards, default_closing_day)

    by_key: dict[BucketKey, list[ObligationRecord]] = {}
    for record in existing:
        if record.user_id != user_id:
            continue
        by_key.setdefault(record.bucket_key, []).append(record)

    batch = ObligationBatch(user_id=user_id)

    for key, records in by_key.items():
        keeper, *duplicates = sorted(records, key=lambda r: (r.created_at, r.id))
        batch.deletes.extend(duplicate.id for duplicate in duplicates)

        bucket = buckets.get(key)
        if bucket is None or bucket.total <= ZERO:
            batch.deletes.append(keeper.id)
            continue

        reimbursements = bucket.sorted_reimbursements()
        if keeper.same_content(bucket.total, reimbursements):
            continue

        batch.updates.append(keeper.model_copy(update={
            "amount": bucket.total,
            "reimbursements": reimbursements,
            "description": describe_bucket(key.card_key),
            "last_modified_at": now,
        }))

    for key, bucket in buckets.items():
        if key in by_key or bucket.total <= ZERO:
            continue
        batch.creates.append(ObligationRecord(
            id=id_factory(),
            user_id=user_id,
            description=describe_bucket(key.card_key),
            amount=bucket.total,
            due_month=key.due_month,
            card_key=key.card_key,
            reimbursements=bucket.sorted_reimbursements(),
            created_at=now,
            last_modified_at=now,
        ))

    batch.creates = _sort_records(batch.creates)
    batch.updates = _sort_records(batch.updates)
    batch.deletes.sort()

    logger.debug(
        "obligations_reconciled",
        user_id=user_id,
        buckets=len(buckets),
        creates=len(batch.creates),
        updates=len(batch.updates),
        deletes=len(batch.deletes),
    )
    return batch
