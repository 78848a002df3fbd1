"""
Monthly Budget Projection

DESIGN DECISION: Projection queries are DETERMINISTIC reads over stored
obligation records. They never recompute obligations from ledgers; the
reconciler is the only thing that derives them.

A month with no records simply doesn't appear. "No debt" is an empty
result, not an error.
"""

from typing import Iterable, Optional

from sharedledger.models.obligation import (
    MonthlyProjection,
    MonthlyProjectionLine,
    ObligationRecord,
)
from sharedledger.services.storage import ObligationStorageInterface


def build_monthly_projection(
    records: Iterable[ObligationRecord],
) -> list[MonthlyProjection]:
    """
    Group obligation records into per-month budget lines.

    Months come out in calendar order and cards by label within a month.
    Two records for the same (month, card) are merged into one line.
    """
    months: dict[str, dict[str, MonthlyProjectionLine]] = {}

    for record in records:
        lines = months.setdefault(record.due_month, {})
        label = record.card_key.label
        line = lines.get(label)
        if line is None:
            lines[label] = MonthlyProjectionLine(
                card_key=record.card_key,
                amount=record.amount,
                owed_to_user=record.owed_to_user,
                user_owes=record.user_owes,
            )
        else:
            lines[label] = line.model_copy(update={
                "amount": line.amount + record.amount,
                "owed_to_user": line.owed_to_user + record.owed_to_user,
                "user_owes": line.user_owes + record.user_owes,
            })

    return [
        MonthlyProjection(
            due_month=due_month,
            lines=[months[due_month][label] for label in sorted(months[due_month])],
        )
        for due_month in sorted(months)
    ]


class ProjectionQueryExecutor:
    """
    Reads a user's stored obligations for budget screens.

    GUARANTEES:
    - Only returns records that are actually stored
    - Never invents or estimates
    """

    def __init__(self, storage: ObligationStorageInterface):
        self._storage = storage

    async def monthly_projection(
        self,
        user_id: str,
        from_month: Optional[str] = None,
        to_month: Optional[str] = None,
    ) -> list[MonthlyProjection]:
        """Projection for the user, optionally limited to an inclusive YYYY-MM range."""
        records = await self._storage.list_obligations(user_id)
        # YYYY-MM strings sort chronologically
        if from_month:
            records = [r for r in records if r.due_month >= from_month]
        if to_month:
            records = [r for r in records if r.due_month <= to_month]
        return build_monthly_projection(records)

    async def obligations_for_month(
        self,
        user_id: str,
        due_month: str,
    ) -> list[ObligationRecord]:
        """The user's records due in one month, with their breakdowns."""
        records = await self._storage.list_obligations(user_id)
        matching = [r for r in records if r.due_month == due_month]
        return sorted(matching, key=lambda r: r.card_key.label)
