"""
Obligation Models

An obligation record is one user's projected card debt for one
(due month, card) bucket. Records are derived from shared ledgers and are
disposable: the reconciler regenerates them from source data on every pass.

DESIGN DECISION: A record is matched to its bucket by the structured key
(due_month, card_key). Never by record id and never by parsing the
description text.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sharedledger.models.ledger import CardKey, new_id
from sharedledger.money import ZERO, money_sum

AGGREGATE_SCOPE = "aggregate"
DESCRIPTION_PREFIX = "Card debt (shared ledgers)"


class ReimbursementDirection(str, Enum):
    """Which way money flows between the user and a counterparty."""
    OWED_TO_USER = "owed_to_user"
    USER_OWES = "user_owes"


class BucketKey(NamedTuple):
    """Identity of an obligation within one user's projection."""
    due_month: str
    card_key: CardKey


class Reimbursement(BaseModel):
    """One line of the breakdown behind an obligation amount."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    direction: ReimbursementDirection
    counterparty_id: str
    counterparty_name: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    source_description: str = ""
    source_ledger_id: str
    source_expense_id: Optional[str] = None

    def sort_key(self) -> tuple:
        return (
            self.source_ledger_id,
            self.source_expense_id or "",
            self.direction.value,
            self.counterparty_id,
        )


class ObligationRecord(BaseModel):
    """
    Projected card debt for one (due month, card) bucket of one user.

    Lifecycle:
    - created when the bucket's total first becomes positive
    - updated in place (created_at kept) while it stays positive
    - deleted when the total drops to zero or the bucket disappears
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(default_factory=new_id, min_length=1)
    user_id: str = Field(..., min_length=1)
    description: str = ""
    amount: Decimal
    due_month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    card_key: CardKey
    source_scope: Literal["aggregate"] = AGGREGATE_SCOPE
    reimbursements: list[Reimbursement] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_modified_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def bucket_key(self) -> BucketKey:
        return BucketKey(self.due_month, self.card_key)

    @property
    def owed_to_user(self) -> Decimal:
        return money_sum(
            r.amount for r in self.reimbursements
            if r.direction == ReimbursementDirection.OWED_TO_USER
        )

    @property
    def user_owes(self) -> Decimal:
        return money_sum(
            r.amount for r in self.reimbursements
            if r.direction == ReimbursementDirection.USER_OWES
        )

    def same_content(self, amount: Decimal, reimbursements: list[Reimbursement]) -> bool:
        """True when a recomputed bucket would leave this record unchanged."""
        return self.amount == amount and self.reimbursements == reimbursements


def describe_bucket(card_key: CardKey) -> str:
    return f"{DESCRIPTION_PREFIX} - {card_key.label}"


class ObligationBatch(BaseModel):
    """
    The write set of one reconciliation pass.

    Applied as a unit: storage must make all of it visible or none of it.
    """

    user_id: str
    creates: list[ObligationRecord] = Field(default_factory=list)
    updates: list[ObligationRecord] = Field(default_factory=list)
    deletes: list[str] = Field(
        default_factory=list,
        description="Ids of records to remove"
    )

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)

    @property
    def operation_count(self) -> int:
        return len(self.creates) + len(self.updates) + len(self.deletes)


class MonthlyProjectionLine(BaseModel):
    """One card's line in a month of the personal budget projection."""

    card_key: CardKey
    amount: Decimal
    owed_to_user: Decimal = ZERO
    user_owes: Decimal = ZERO


class MonthlyProjection(BaseModel):
    """Projected card debt for one month, across all cards."""

    due_month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    lines: list[MonthlyProjectionLine] = Field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return money_sum(line.amount for line in self.lines)

    @property
    def net_after_reimbursements(self) -> Decimal:
        """Card total minus what others owe the user for it."""
        return self.total - money_sum(line.owed_to_user for line in self.lines)
