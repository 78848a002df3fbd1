"""
Parse-and-Validate Boundary

DESIGN DECISION: Records come out of an untyped document store. Every one
of them is parsed into a typed model HERE, and the engine only ever sees
the typed result. Nothing downstream re-checks a raw dict.

Two entry points:

READ PATH (parse_*):
- Strict schema parse of a stored document
- Any failure raises; there is no "best effort" partial record

CREATE PATH (build_expense / review):
- Stage 1, schema: amount, participants, policy
- Stage 2, semantic: membership, split sums, card and installment data
- build_expense raises on the first problem; review collects them all
  for display

IMPORTANT: Validation NEVER silently fixes issues.
"""

from datetime import date, timedelta
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from sharedledger.config import EngineSettings, get_settings
from sharedledger.engine.installments import amortize_installment
from sharedledger.engine.splits import evaluate_split
from sharedledger.errors import (
    ExpenseValidationError,
    InvalidExpenseError,
    MalformedDocumentError,
    NotFoundError,
    SplitMismatchError,
)
from sharedledger.models.ledger import (
    Card,
    Expense,
    ExpenseDraft,
    Ledger,
    Member,
    SettlementRecord,
    SplitPolicy,
    ValidationIssue,
    ValidationResult,
)
from sharedledger.money import ZERO


def _first_error(error: ValidationError) -> tuple[str, str]:
    """(field, message) of the first pydantic error."""
    detail = error.errors()[0]
    field = ".".join(str(part) for part in detail.get("loc", ())) or "document"
    return field, detail.get("msg", str(error))


class ExpenseValidator:
    """
    Turns documents and drafts into validated ledger entities.

    Holds no state besides the engine settings it applies.
    """

    def __init__(self, engine_settings: Optional[EngineSettings] = None):
        self._settings = engine_settings or get_settings().engine

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    def parse_expense(self, document: Mapping[str, Any]) -> Expense:
        """
        Parse a stored expense document.

        Raises:
            SplitMismatchError: Stored shares don't add up to the amount
            InvalidExpenseError: Anything else wrong with the document
        """
        try:
            return Expense.model_validate(document)
        except ValidationError as e:
            if any(detail["type"] == "split_mismatch" for detail in e.errors()):
                raise SplitMismatchError(
                    f"Expense {document.get('id', '?')}: stored shares don't match its amount",
                    field="share_map",
                ) from e
            field, message = _first_error(e)
            raise InvalidExpenseError(
                f"Expense {document.get('id', '?')}: {message}",
                field=field,
            ) from e

    def parse_settlement(self, document: Mapping[str, Any]) -> SettlementRecord:
        try:
            return SettlementRecord.model_validate(document)
        except ValidationError as e:
            field, message = _first_error(e)
            raise MalformedDocumentError("settlement", f"{field}: {message}") from e

    def parse_card(self, document: Mapping[str, Any]) -> Card:
        try:
            return Card.model_validate(document)
        except ValidationError as e:
            field, message = _first_error(e)
            raise MalformedDocumentError("card", f"{field}: {message}") from e

    def parse_ledger(
        self,
        document: Mapping[str, Any],
        expense_documents: Iterable[Mapping[str, Any]] = (),
        settlement_documents: Iterable[Mapping[str, Any]] = (),
    ) -> Ledger:
        """Parse a ledger document together with its expenses and settlements."""
        expenses = [self.parse_expense(doc) for doc in expense_documents]
        settlements = [self.parse_settlement(doc) for doc in settlement_documents]

        header = {
            key: value for key, value in document.items()
            if key not in ("expenses", "settlements")
        }
        try:
            ledger = Ledger.model_validate(header)
        except ValidationError as e:
            field, message = _first_error(e)
            raise MalformedDocumentError("ledger", f"{field}: {message}") from e

        return ledger.model_copy(update={"expenses": expenses, "settlements": settlements})

    # -------------------------------------------------------------------------
    # Create path
    # -------------------------------------------------------------------------

    def _check_schema(self, draft: ExpenseDraft) -> list[ValidationIssue]:
        issues = []

        if draft.amount <= ZERO:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))

        if not draft.participant_ids:
            issues.append(ValidationIssue(
                field="participant_ids",
                issue_type="missing",
                message="Select at least one participant",
                severity="error",
            ))

        try:
            SplitPolicy(draft.split_policy)
        except ValueError:
            issues.append(ValidationIssue(
                field="split_policy",
                issue_type="invalid_value",
                message=f"Unknown split policy: {draft.split_policy}",
                severity="error",
                suggested_fix="Use equal, by_amount or by_percentage",
            ))

        return issues

    def _check_membership(self, draft: ExpenseDraft, members: list[Member]) -> None:
        member_ids = {member.id for member in members}
        if draft.payer_id not in member_ids:
            raise NotFoundError(f"Payer {draft.payer_id} is not a member of this ledger")
        strangers = [m for m in draft.participant_ids if m not in member_ids]
        if strangers:
            raise NotFoundError(f"Not members of this ledger: {', '.join(strangers)}")

    def build_expense(
        self,
        draft: ExpenseDraft,
        members: Iterable[Member],
        expense_id: Optional[str] = None,
    ) -> Expense:
        """
        Compute and freeze the shares of a new or edited expense.

        Raises:
            InvalidExpenseError: Bad amount, participants, policy, card or installment data
            SplitMismatchError: Explicit amounts or percentages don't add up
            NotFoundError: Payer or a participant isn't a ledger member
        """
        members = list(members)
        schema_issues = self._check_schema(draft)
        if schema_issues:
            raise InvalidExpenseError(schema_issues[0].message, field=schema_issues[0].field)

        self._check_membership(draft, members)

        shares = evaluate_split(
            draft.amount,
            draft.participant_ids,
            draft.split_policy,
            raw_values=draft.raw_values,
            payer_id=draft.payer_id,
            remainder_policy=self._settings.equal_split_remainder,
        )

        if draft.is_card_purchase and draft.card_key is None:
            raise InvalidExpenseError("Choose the card this purchase was made with", field="card_key")

        installment = None
        if draft.is_installment:
            count = draft.installment_count
            if count is None or count < 1:
                raise InvalidExpenseError(
                    "Enter how many installments the purchase is paid in",
                    field="installment_count",
                )
            if count > self._settings.max_installments:
                raise InvalidExpenseError(
                    f"At most {self._settings.max_installments} installments are supported",
                    field="installment_count",
                )
            installment = amortize_installment(draft.amount, count, draft.transaction_date)

        fields = {
            "description": draft.description,
            "amount": draft.amount,
            "payer_id": draft.payer_id,
            "participant_ids": list(draft.participant_ids),
            "split_policy": SplitPolicy(draft.split_policy),
            "share_map": shares,
            "is_card_purchase": draft.is_card_purchase,
            "card_key": draft.card_key if draft.is_card_purchase else None,
            "transaction_date": draft.transaction_date,
            "is_installment": installment is not None,
        }
        if installment is not None:
            fields.update(
                installment_count=installment.installment_count,
                installment_amount=installment.installment_amount,
                payoff_month=installment.payoff_month,
            )
        if expense_id is not None:
            fields["id"] = expense_id

        try:
            return Expense(**fields)
        except ValidationError as e:
            field, message = _first_error(e)
            raise InvalidExpenseError(message, field=field) from e

    def review(
        self,
        draft: ExpenseDraft,
        members: Iterable[Member],
    ) -> ValidationResult:
        """
        Collect every issue with a draft without raising.

        Stage 2 only runs when stage 1 passes.
        """
        members = list(members)
        issues = self._check_schema(draft)
        schema_valid = not any(issue.severity == "error" for issue in issues)

        semantic_valid = False
        if schema_valid:
            try:
                self.build_expense(draft, members)
                semantic_valid = True
            except SplitMismatchError as e:
                issues.append(ValidationIssue(
                    field=e.field or "raw_values",
                    issue_type="split_mismatch",
                    message=e.message,
                    severity="error",
                    suggested_fix="Adjust the values so they add up to the total",
                ))
            except ExpenseValidationError as e:
                issues.append(ValidationIssue(
                    field=e.field or "expense",
                    issue_type="invalid_value",
                    message=e.message,
                    severity="error",
                ))
            except NotFoundError as e:
                issues.append(ValidationIssue(
                    field="participant_ids",
                    issue_type="not_member",
                    message=str(e),
                    severity="error",
                ))

            if draft.payer_id not in draft.participant_ids:
                issues.append(ValidationIssue(
                    field="payer_id",
                    issue_type="payer_not_participating",
                    message="The payer isn't sharing this expense",
                    severity="warning",
                    suggested_fix="Add the payer as a participant if they should pay a share",
                ))

            if draft.transaction_date > date.today() + timedelta(days=1):
                issues.append(ValidationIssue(
                    field="transaction_date",
                    issue_type="future_date",
                    message=f"Transaction date ({draft.transaction_date}) is in the future",
                    severity="warning",
                ))

        warnings = [issue.message for issue in issues if issue.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Text shown next to the expense form."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if result.has_errors:
            lines.append("This expense can't be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please double-check:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
