"""
Monthly Budget

Combines a user's future items with their projected card obligations into
a per-month balance, and decides whether saving a future item adds a new
one or replaces a standing bill.

Card debt counts only in the month it falls due. Monthly and fixed
recurring items count from their start month on; one-time items count in
their start month alone.
"""

from datetime import datetime
from typing import Iterable, Optional

import structlog

from sharedledger.models.budget import FutureItem, FutureItemType, MonthlyBudget, Recurrence
from sharedledger.models.obligation import ObligationRecord
from sharedledger.money import money_sum

logger = structlog.get_logger(__name__)


def upsert_future_item(
    existing: Iterable[FutureItem],
    item: FutureItem,
    fixed_descriptions: Iterable[str],
    now: Optional[datetime] = None,
) -> tuple[FutureItem, bool]:
    """
    Resolve a new future item against the user's existing ones.

    A recurring_fixed item whose description is one of the standing bills
    replaces the existing recurring_fixed item with that description: its
    amount and start date are taken over, its id and created_at kept.
    Every other item is added as is.

    Returns:
        (item_to_store, created)
    """
    now = now or datetime.utcnow()

    if item.recurrence == Recurrence.RECURRING_FIXED and item.description in set(fixed_descriptions):
        for current in existing:
            if (
                current.user_id == item.user_id
                and current.recurrence == Recurrence.RECURRING_FIXED
                and current.description == item.description
            ):
                updated = current.model_copy(update={
                    "amount": item.amount,
                    "item_type": item.item_type,
                    "start_date": item.start_date,
                    "last_modified_at": now,
                })
                logger.debug("future_item_replaced", item_id=current.id, description=item.description)
                return updated, False

    return item, True


def calculate_monthly_balance(
    due_month: str,
    items: Iterable[FutureItem],
    obligations: Iterable[ObligationRecord],
) -> MonthlyBudget:
    """
    Income, planned expenses and card debt of one YYYY-MM month.

    The balance is income minus expenses minus the card debt due that month.
    """
    applicable = [item for item in items if item.applies_to(due_month)]
    return MonthlyBudget(
        due_month=due_month,
        income=money_sum(i.amount for i in applicable if i.item_type == FutureItemType.INCOME),
        expenses=money_sum(i.amount for i in applicable if i.item_type == FutureItemType.EXPENSE),
        card_debt=money_sum(r.amount for r in obligations if r.due_month == due_month),
    )
