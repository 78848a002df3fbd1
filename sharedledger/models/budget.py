"""
Personal Budget Models

Future items are the user's own planned income and expenses (salary,
rent, a one-off purchase). Together with the projected card obligations
they make up the monthly budget.

DESIGN DECISION: Future items belong to one user and are never shared.
Card debt is NOT a future item; it is read from the obligation records.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from sharedledger.models.ledger import calendar_day, new_id


class FutureItemType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Recurrence(str, Enum):
    """How often a future item repeats from its start month."""
    ONE_TIME = "one_time"
    MONTHLY = "monthly"
    RECURRING_FIXED = "recurring_fixed"


class FutureItem(BaseModel):
    """
    A planned income or expense.

    recurring_fixed items are the standing monthly bills (rent, utilities).
    There is at most one per description; saving another one replaces
    the amount and start date of the existing item.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    id: str = Field(default_factory=new_id, min_length=1)
    user_id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1, max_length=300)
    amount: Decimal = Field(..., gt=0)
    item_type: FutureItemType
    recurrence: Recurrence = Recurrence.ONE_TIME
    start_date: date
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_modified_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("start_date", mode="before")
    @classmethod
    def accept_timestamps(cls, v):
        return calendar_day(v)

    @property
    def start_month(self) -> str:
        return f"{self.start_date.year:04d}-{self.start_date.month:02d}"

    def applies_to(self, due_month: str) -> bool:
        """True when the item counts in the given YYYY-MM month."""
        if self.recurrence == Recurrence.ONE_TIME:
            return self.start_month == due_month
        return self.start_month <= due_month


class MonthlyBudget(BaseModel):
    """Income, planned expenses and card debt for one month."""

    due_month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    card_debt: Decimal = Decimal("0")

    @property
    def balance(self) -> Decimal:
        return self.income - self.expenses - self.card_debt
