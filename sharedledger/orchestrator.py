"""
Main Orchestrator for Shared Ledger

This module ties together the components and defines the end-to-end
flows for:
1. Expense entry (draft → validate → freeze shares)
2. Ledger summary (documents → balances → suggested transfers → settle)
3. Obligation reconciliation (all ledgers of a user → projection → batch)
4. Personal budget (future items + card debt → monthly balance)

DESIGN DECISION: The orchestrator enforces the boundaries:
- The engine only sees parsed, validated models
- A reconciliation pass that can't read its sources writes nothing
- Every step is audited
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from sharedledger.audit import AuditLogger, configure_logging, create_correlation_id
from sharedledger.config import EngineSettings, get_settings
from sharedledger.engine import (
    calculate_monthly_balance,
    compute_balances,
    expenses_for_transfer,
    minimize_debts,
    reconcile_obligations,
    summarize_card_cycle,
    total_spent,
    upsert_future_item,
)
from sharedledger.errors import (
    ExpenseValidationError,
    LedgerEngineError,
    NotFoundError,
    ReconciliationIOError,
)
from sharedledger.models.budget import FutureItem, MonthlyBudget
from sharedledger.models.ledger import (
    Card,
    CardCycleSummary,
    Expense,
    ExpenseDraft,
    Ledger,
    LedgerSummary,
    SettlementRecord,
    Transfer,
    ValidationResult,
)
from sharedledger.models.obligation import ObligationBatch
from sharedledger.queries import ProjectionQueryExecutor
from sharedledger.services.storage import (
    AuditStorageInterface,
    FutureItemStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsObligationStorage,
    InMemoryLedgerStore,
    LedgerSourceInterface,
    ObligationStorageInterface,
    SettlementStorageInterface,
    StorageError,
)
from sharedledger.validation import ExpenseValidator

logger = structlog.get_logger(__name__)


async def load_ledger(
    source: LedgerSourceInterface,
    validator: ExpenseValidator,
    ledger_id: str,
) -> Ledger:
    """
    Read a ledger with its expenses and settlements and parse all of it.

    Raises:
        NotFoundError: No such ledger
        StorageError: The source couldn't be read
        ExpenseValidationError / MalformedDocumentError: A document didn't parse
    """
    document = await source.get_ledger(ledger_id)
    if document is None:
        raise NotFoundError(f"Ledger not found: {ledger_id}")
    return await _parse_with_children(source, validator, document)


async def _parse_with_children(
    source: LedgerSourceInterface,
    validator: ExpenseValidator,
    document: dict,
) -> Ledger:
    header = validator.parse_ledger(document)
    expense_documents = await source.list_expense_documents(header.id)
    settlement_documents = await source.list_settlement_documents(header.id)
    return validator.parse_ledger(document, expense_documents, settlement_documents)


class ExpenseEntryFlow:
    """
    Orchestrates adding or editing an expense.

    Flow:
    1. Load the ledger's members
    2. Review → present issues to the user
    3. Build → compute and freeze the shares

    Nothing is built from a draft that failed validation.
    """

    def __init__(
        self,
        ledger_source: LedgerSourceInterface,
        validator: Optional[ExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._source = ledger_source
        self._validator = validator or ExpenseValidator()
        self._audit_logger = audit_logger

    async def review_expense(
        self,
        ledger_id: str,
        draft: ExpenseDraft,
    ) -> tuple[ValidationResult, str]:
        """
        Check a draft without raising.

        Returns:
            (validation_result, user_message)
        """
        ledger = await load_ledger(self._source, self._validator, ledger_id)
        result = self._validator.review(draft, ledger.members)
        return result, self._validator.get_user_friendly_summary(result)

    async def record_expense(
        self,
        ledger_id: str,
        draft: ExpenseDraft,
        expense_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Turn a draft into an expense with frozen shares.

        Pass expense_id when editing; the shares are recomputed from the
        edited draft either way.

        Raises:
            SplitMismatchError / InvalidExpenseError: The draft was rejected
            NotFoundError: Unknown ledger, or payer/participant not a member
        """
        correlation_id = correlation_id or create_correlation_id()
        ledger = await load_ledger(self._source, self._validator, ledger_id)

        try:
            expense = self._validator.build_expense(draft, ledger.members, expense_id=expense_id)
        except (ExpenseValidationError, NotFoundError) as e:
            if self._audit_logger:
                await self._audit_logger.log_split_rejected(
                    ledger_id=ledger_id,
                    error_kind=type(e).__name__,
                    message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_expense_recorded(
                ledger_id=ledger_id,
                expense_id=expense.id,
                amount=str(expense.amount),
                policy=expense.split_policy.value,
                correlation_id=correlation_id,
            )

        return expense


class LedgerSummaryFlow:
    """
    Orchestrates the "who owes whom" screen of one ledger.

    Balances and transfers are recomputed from the ledger's documents on
    every call; nothing derived is cached.
    """

    def __init__(
        self,
        ledger_source: LedgerSourceInterface,
        settlement_storage: Optional[SettlementStorageInterface] = None,
        validator: Optional[ExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._source = ledger_source
        self._settlement_storage = settlement_storage
        self._validator = validator or ExpenseValidator()
        self._audit_logger = audit_logger

    async def summarize(self, ledger_id: str) -> LedgerSummary:
        """Balances, suggested transfers and total spent of a ledger."""
        ledger = await load_ledger(self._source, self._validator, ledger_id)
        balances = compute_balances(ledger.expenses, ledger.settlements, ledger.member_ids)
        return LedgerSummary(
            ledger_id=ledger.id,
            balances=balances,
            transfers=minimize_debts(balances),
            total_spent=total_spent(ledger.expenses),
        )

    async def explain_transfer(self, ledger_id: str, transfer: Transfer) -> list[Expense]:
        """Expenses behind a suggested transfer."""
        ledger = await load_ledger(self._source, self._validator, ledger_id)
        return expenses_for_transfer(ledger.expenses, transfer)

    async def settle_transfer(
        self,
        ledger_id: str,
        transfer: Transfer,
        correlation_id: Optional[UUID] = None,
    ) -> SettlementRecord:
        """
        Record that a transfer was paid.

        The settlement only adjusts balances. The expenses it covers are
        left as they are, so card obligations don't change.

        Raises:
            NotFoundError: Unknown ledger, or either side isn't a member
            StorageError: No settlement storage, or the write failed
        """
        correlation_id = correlation_id or create_correlation_id()
        ledger = await load_ledger(self._source, self._validator, ledger_id)

        for member_id in (transfer.from_member_id, transfer.to_member_id):
            if not ledger.has_member(member_id):
                raise NotFoundError(f"{member_id} is not a member of ledger {ledger_id}")

        if self._settlement_storage is None:
            raise StorageError("Settlement storage is not configured")

        settlement = SettlementRecord(
            from_member_id=transfer.from_member_id,
            to_member_id=transfer.to_member_id,
            amount=transfer.amount,
        )

        try:
            await self._settlement_storage.record_settlement(ledger_id, settlement)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation="record_settlement",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_settlement_recorded(
                ledger_id=ledger_id,
                from_member_id=transfer.from_member_id,
                to_member_id=transfer.to_member_id,
                amount=str(transfer.amount),
                correlation_id=correlation_id,
            )

        return settlement


class ReconciliationFlow:
    """
    Orchestrates one obligation reconciliation pass for a user.

    Flow:
    1. Read every ledger the user belongs to, the card registry and the
       user's existing obligation records
    2. Compute the batch (pure)
    3. Apply it atomically, unless it's empty

    If step 1 fails the pass is aborted and NOTHING is written. A partial
    read would delete the records of every ledger that wasn't read.
    """

    def __init__(
        self,
        ledger_source: LedgerSourceInterface,
        obligation_storage: ObligationStorageInterface,
        validator: Optional[ExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        engine_settings: Optional[EngineSettings] = None,
    ):
        self._source = ledger_source
        self._obligations = obligation_storage
        self._settings = engine_settings or get_settings().engine
        self._validator = validator or ExpenseValidator(self._settings)
        self._audit_logger = audit_logger

    async def _load_sources(self, user_id: str) -> tuple[list[Ledger], list[Card]]:
        ledgers = [
            await _parse_with_children(self._source, self._validator, document)
            for document in await self._source.list_ledgers_for_member(user_id)
        ]
        cards = [self._validator.parse_card(doc) for doc in await self._source.list_cards(user_id)]
        return ledgers, cards

    async def reconcile(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> ObligationBatch:
        """
        Bring the user's obligation records in line with their ledgers.

        Returns the applied batch; an empty batch means nothing changed.

        Raises:
            ReconciliationIOError: A source couldn't be read or parsed; nothing written
            StorageError: The batch couldn't be applied; nothing written
        """
        correlation_id = correlation_id or create_correlation_id()
        if self._audit_logger:
            await self._audit_logger.log_reconciliation_started(user_id, correlation_id)

        try:
            ledgers, cards = await self._load_sources(user_id)
            existing = await self._obligations.list_obligations(user_id)
        except LedgerEngineError as e:
            if self._audit_logger:
                await self._audit_logger.log_reconciliation_aborted(
                    user_id=user_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise ReconciliationIOError(user_id, str(e)) from e

        batch = reconcile_obligations(
            user_id,
            ledgers,
            cards,
            existing,
            now=now,
            default_closing_day=self._settings.default_closing_day,
        )

        if not batch.is_empty:
            try:
                await self._obligations.apply_batch(user_id, batch)
            except StorageError as e:
                if self._audit_logger:
                    await self._audit_logger.log_storage_error(
                        operation="apply_batch",
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                raise
            if self._audit_logger:
                await self._audit_logger.log_batch_applied(
                    user_id=user_id,
                    operation_count=batch.operation_count,
                    correlation_id=correlation_id,
                )

        if self._audit_logger:
            await self._audit_logger.log_reconciliation_completed(
                user_id=user_id,
                creates=len(batch.creates),
                updates=len(batch.updates),
                deletes=len(batch.deletes),
                correlation_id=correlation_id,
            )

        return batch

    async def card_cycles(
        self,
        user_id: str,
        today: Optional[date] = None,
    ) -> list[CardCycleSummary]:
        """Open-cycle totals for every card in the user's registry."""
        ledgers, cards = await self._load_sources(user_id)
        return [
            summarize_card_cycle(
                card,
                ledgers,
                user_id,
                today=today,
                default_closing_day=self._settings.default_closing_day,
            )
            for card in cards
        ]


class BudgetFlow:
    """
    Orchestrates the user's personal budget.

    Future items are the user's own; card debt comes from the stored
    obligation records, so run a reconciliation pass first for an
    up-to-date balance.
    """

    def __init__(
        self,
        future_item_storage: FutureItemStorageInterface,
        obligation_storage: ObligationStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        engine_settings: Optional[EngineSettings] = None,
    ):
        self._items = future_item_storage
        self._obligations = obligation_storage
        self._audit_logger = audit_logger
        self._settings = engine_settings or get_settings().engine

    async def save_future_item(
        self,
        item: FutureItem,
        correlation_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> FutureItem:
        """
        Add a future item, or replace the standing bill it stands for.

        Returns the stored item; for a replaced bill that's the existing
        item carrying the new amount and start date.
        """
        correlation_id = correlation_id or create_correlation_id()
        existing = await self._items.list_future_items(item.user_id)
        stored, created = upsert_future_item(
            existing,
            item,
            self._settings.fixed_recurring_descriptions,
            now=now,
        )

        try:
            await self._items.save_future_item(stored)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation="save_future_item",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_future_item_saved(
                user_id=stored.user_id,
                item_id=stored.id,
                description=stored.description,
                amount=str(stored.amount),
                created=created,
                correlation_id=correlation_id,
            )

        return stored

    async def monthly_balance(self, user_id: str, due_month: str) -> MonthlyBudget:
        """Income, planned expenses and card debt of one YYYY-MM month."""
        items = await self._items.list_future_items(user_id)
        obligations = await self._obligations.list_obligations(user_id)
        return calculate_monthly_balance(due_month, items, obligations)


def create_app_components(
    ledger_source: LedgerSourceInterface,
    settlement_storage: Optional[SettlementStorageInterface] = None,
    use_sheets: bool = True,
) -> tuple[ExpenseEntryFlow, LedgerSummaryFlow, ReconciliationFlow, BudgetFlow, ProjectionQueryExecutor]:
    """
    Factory function to create all application components.

    Args:
        ledger_source: Where ledgers, expenses and card registries are read from
        settlement_storage: Where settlements are written. Defaults to the
                    ledger source when it can store them.
        use_sheets: Keep obligations and the audit log in Google Sheets.
                    Falls back to in-memory storage when Sheets isn't configured.

    Returns:
        (expense_flow, summary_flow, reconciliation_flow, budget_flow, projection_queries)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    obligation_storage: Optional[ObligationStorageInterface] = None
    audit_storage: Optional[AuditStorageInterface] = None

    if use_sheets:
        try:
            sheets_client = GoogleSheetsClient()
            obligation_storage = GoogleSheetsObligationStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except ValidationError as e:
            logger.warning("sheets_not_configured", error=str(e))

    if obligation_storage is None:
        if isinstance(ledger_source, ObligationStorageInterface):
            obligation_storage = ledger_source
        else:
            obligation_storage = InMemoryLedgerStore()

    if settlement_storage is None and isinstance(ledger_source, SettlementStorageInterface):
        settlement_storage = ledger_source

    if isinstance(ledger_source, FutureItemStorageInterface):
        future_item_storage = ledger_source
    else:
        future_item_storage = InMemoryLedgerStore()

    audit_logger = AuditLogger(audit_storage)
    validator = ExpenseValidator(settings.engine)

    expense_flow = ExpenseEntryFlow(
        ledger_source,
        validator=validator,
        audit_logger=audit_logger,
    )
    summary_flow = LedgerSummaryFlow(
        ledger_source,
        settlement_storage=settlement_storage,
        validator=validator,
        audit_logger=audit_logger,
    )
    reconciliation_flow = ReconciliationFlow(
        ledger_source,
        obligation_storage,
        validator=validator,
        audit_logger=audit_logger,
        engine_settings=settings.engine,
    )
    budget_flow = BudgetFlow(
        future_item_storage,
        obligation_storage,
        audit_logger=audit_logger,
        engine_settings=settings.engine,
    )
    projection_queries = ProjectionQueryExecutor(obligation_storage)

    return expense_flow, summary_flow, reconciliation_flow, budget_flow, projection_queries
