"""
Core Ledger Models

These models define the strict schemas for everything the engine computes on.
Records arrive from an untyped document store; they are parsed into these
models at the read boundary and the engine never sees a raw document.

DESIGN DECISION: Money is Decimal everywhere. Shares are frozen on the
expense at write time and never re-derived from the split policy later.

Documents use camelCase keys (payerId, shareMap, ...). Python code uses
the snake_case field names; both are accepted on input.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from sharedledger.money import ZERO, amounts_match, money_sum


def new_id() -> str:
    return uuid4().hex


def calendar_day(value):
    """Reduce a datetime, or an ISO timestamp string, to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return value
    return value


DOCUMENT_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
    extra="ignore",
)


# =============================================================================
# ENUMS
# =============================================================================

class SplitPolicy(str, Enum):
    """
    How one expense is divided among its participants.

    The document store has used the short names "amount" and "percentage";
    both spellings are accepted.
    """
    EQUAL = "equal"
    BY_AMOUNT = "by_amount"
    BY_PERCENTAGE = "by_percentage"

    @classmethod
    def _missing_(cls, value):
        legacy = {
            "amount": cls.BY_AMOUNT,
            "byamount": cls.BY_AMOUNT,
            "percentage": cls.BY_PERCENTAGE,
            "bypercentage": cls.BY_PERCENTAGE,
        }
        if isinstance(value, str):
            return legacy.get(value.lower().replace("_", ""))
        return None


# =============================================================================
# MEMBERS AND CARDS
# =============================================================================

class Member(BaseModel):
    """
    A ledger member.

    Identity is the id. display_name is cosmetic and may repeat.
    """
    model_config = DOCUMENT_CONFIG

    id: str = Field(..., min_length=1)
    display_name: str = Field(default="", max_length=200)


class CardKey(BaseModel):
    """Identifies a credit card by bank and card type."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )

    bank_name: str = Field(..., min_length=1, max_length=100)
    card_type: str = Field(default="General", min_length=1, max_length=100)

    @property
    def label(self) -> str:
        return f"{self.bank_name} - {self.card_type}"


class Card(BaseModel):
    """A card in a user's registry, with its statement closing day."""
    model_config = DOCUMENT_CONFIG

    bank_name: str = Field(..., min_length=1, max_length=100)
    card_type: str = Field(default="General", min_length=1, max_length=100)
    closing_day: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month the statement closes (unset means day 1)"
    )

    @property
    def key(self) -> CardKey:
        return CardKey(bank_name=self.bank_name, card_type=self.card_type)


# =============================================================================
# EXPENSES
# =============================================================================

class Expense(BaseModel):
    """
    A shared expense with its shares frozen.

    Invariants:
    - share_map keys are exactly participant_ids
    - sum(share_map) == amount within MONEY_TOLERANCE
    - a card purchase names its card
    - an installment purchase carries its count and monthly amount
    """
    model_config = DOCUMENT_CONFIG

    id: str = Field(default_factory=new_id, min_length=1)
    description: str = Field(default="", max_length=300)
    amount: Decimal = Field(..., gt=0)
    payer_id: str = Field(..., min_length=1)
    participant_ids: list[str] = Field(..., min_length=1)
    split_policy: SplitPolicy = SplitPolicy.EQUAL
    share_map: dict[str, Decimal]

    is_card_purchase: bool = False
    card_key: Optional[CardKey] = None
    transaction_date: date

    is_installment: bool = False
    installment_count: Optional[int] = Field(default=None, ge=1)
    installment_amount: Optional[Decimal] = Field(default=None, gt=0)
    payoff_month: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}$")

    @field_validator("transaction_date", mode="before")
    @classmethod
    def accept_timestamps(cls, v):
        """Document stores hand back timestamps; only the calendar day matters."""
        return calendar_day(v)

    @field_validator("participant_ids")
    @classmethod
    def participants_unique(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("Participants must not repeat")
        return v

    @model_validator(mode="after")
    def validate_shares(self) -> "Expense":
        """Check the frozen shares against the participants and the total."""
        if set(self.share_map) != set(self.participant_ids):
            raise ValueError("Share map must cover exactly the participants")

        if any(share < ZERO for share in self.share_map.values()):
            raise ValueError("Shares cannot be negative")

        total = money_sum(self.share_map.values())
        if not amounts_match(total, self.amount):
            raise PydanticCustomError(
                "split_mismatch",
                "Shares add up to {total}, expected {amount}",
                {"total": str(total), "amount": str(self.amount)},
            )

        if self.is_card_purchase and self.card_key is None:
            raise ValueError("Card purchases must name the card")

        if self.is_installment:
            if self.installment_count is None or self.installment_amount is None:
                raise ValueError(
                    "Installment purchases need installment count and amount"
                )

        return self

    def share_of(self, member_id: str) -> Decimal:
        return self.share_map.get(member_id, ZERO)

    def monthly_burden(self, member_id: str) -> Decimal:
        """
        What this expense adds to the member's card statement for its month.

        Installment purchases count the monthly installment, not the total,
        for every member of the ledger.
        """
        if self.is_installment and self.installment_amount is not None:
            return self.installment_amount
        return self.share_of(member_id)


class ExpenseDraft(BaseModel):
    """
    An expense as entered, before shares are computed.

    Only field types are checked here. Cross-field rules (split sums,
    membership) are applied by the validator so they can be reported
    as review issues instead of parse failures.
    """
    model_config = DOCUMENT_CONFIG

    description: str = Field(default="", max_length=300)
    amount: Decimal
    payer_id: str
    participant_ids: list[str] = Field(default_factory=list)
    split_policy: str = "equal"
    raw_values: Optional[dict[str, Decimal]] = Field(
        default=None,
        description="Per-member amounts or percentages for non-equal splits"
    )
    is_card_purchase: bool = False
    card_key: Optional[CardKey] = None
    transaction_date: date = Field(default_factory=date.today)
    is_installment: bool = False
    installment_count: Optional[int] = None


# =============================================================================
# SETTLEMENTS AND LEDGERS
# =============================================================================

class SettlementRecord(BaseModel):
    """
    A confirmed side-payment between two members.

    It adjusts balances but never touches the expenses it settles, so a
    card's outstanding total is unaffected.
    """
    model_config = DOCUMENT_CONFIG

    id: str = Field(default_factory=new_id, min_length=1)
    from_member_id: str = Field(..., min_length=1)
    to_member_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    settled_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def distinct_members(self) -> "SettlementRecord":
        if self.from_member_id == self.to_member_id:
            raise ValueError("A member cannot settle with themselves")
        return self


class Ledger(BaseModel):
    """A named group of members with their shared expenses."""
    model_config = DOCUMENT_CONFIG

    id: str = Field(..., min_length=1)
    name: str = Field(default="", max_length=200)
    members: list[Member] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)
    settlements: list[SettlementRecord] = Field(default_factory=list)

    @property
    def member_ids(self) -> list[str]:
        return [member.id for member in self.members]

    def has_member(self, member_id: str) -> bool:
        return any(member.id == member_id for member in self.members)

    def display_name(self, member_id: str) -> str:
        for member in self.members:
            if member.id == member_id:
                return member.display_name or member_id
        return member_id


# =============================================================================
# DERIVED RESULTS
# =============================================================================

class Transfer(BaseModel):
    """A suggested payment that moves balances toward zero. Not persisted."""
    model_config = ConfigDict(frozen=True)

    from_member_id: str
    to_member_id: str
    amount: Decimal = Field(..., gt=0)


class Installment(BaseModel):
    """A financed purchase split into equal monthly charges."""

    installment_count: int = Field(..., ge=1)
    installment_amount: Decimal
    payoff_month: str = Field(..., pattern=r"^\d{4}-\d{2}$")


class LedgerSummary(BaseModel):
    """Everything a ledger screen shows about who owes whom."""

    ledger_id: str
    balances: dict[str, Decimal]
    transfers: list[Transfer] = Field(default_factory=list)
    total_spent: Decimal = Decimal("0")

    @property
    def is_settled(self) -> bool:
        return not self.transfers


class CardCycleSummary(BaseModel):
    """The user's running total on one card for its open statement cycle."""

    card_key: CardKey
    closing_day: int = Field(..., ge=1, le=31)
    last_closing_date: date
    next_closing_date: date
    current_cycle_total: Decimal = Decimal("0")
    expense_count: int = Field(default=0, ge=0)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'split_mismatch', 'not_member')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of reviewing an expense draft.

    Stage 1: Schema checks (amount, participants, policy)
    Stage 2: Semantic checks (sums, membership, card and installment data)
    """

    validated_at: datetime = Field(default_factory=datetime.utcnow)
    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")
