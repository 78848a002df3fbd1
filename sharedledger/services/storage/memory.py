"""
In-Memory Storage

Implements every storage interface on plain dicts. Used by the tests and
by embedders that keep ledgers in process.

Documents are deep-copied on the way in and out so callers can't mutate
stored state behind the store's back.
"""

import copy
from typing import Optional
from uuid import UUID

from sharedledger.models.audit import AuditEvent
from sharedledger.models.budget import FutureItem
from sharedledger.models.ledger import SettlementRecord
from sharedledger.models.obligation import ObligationBatch, ObligationRecord
from sharedledger.services.storage.interface import (
    AuditStorageInterface,
    Document,
    DuplicateError,
    FutureItemStorageInterface,
    LedgerSourceInterface,
    ObligationStorageInterface,
    SettlementStorageInterface,
    StorageError,
)


def _member_ids(ledger_document: Document) -> list[str]:
    ids = []
    for member in ledger_document.get("members", []):
        if isinstance(member, dict):
            ids.append(member.get("id"))
        else:
            ids.append(member)
    return ids


def stage_batch(
    current: dict[str, ObligationRecord],
    user_id: str,
    batch: ObligationBatch,
) -> dict[str, ObligationRecord]:
    """
    Apply a batch to a copy of a record table and return the copy.

    Every operation is checked against the working copy, so the caller can
    swap the result in only when the whole batch went through. Deleting an
    id that's already gone is a no-op.

    Raises:
        StorageError: Update of a missing record, or a record owned by another user
        DuplicateError: A created id already exists
    """
    staged = dict(current)

    for record_id in batch.deletes:
        record = staged.get(record_id)
        if record is not None and record.user_id != user_id:
            raise StorageError(f"Record {record_id} belongs to another user")
        staged.pop(record_id, None)

    for record in batch.updates:
        existing = staged.get(record.id)
        if existing is None:
            raise StorageError(f"Cannot update missing record: {record.id}")
        if existing.user_id != user_id or record.user_id != user_id:
            raise StorageError(f"Record {record.id} belongs to another user")
        staged[record.id] = record.model_copy(deep=True)

    for record in batch.creates:
        if record.id in staged:
            raise DuplicateError(f"Record already exists: {record.id}")
        if record.user_id != user_id:
            raise StorageError(f"Record {record.id} belongs to another user")
        staged[record.id] = record.model_copy(deep=True)

    return staged


class InMemoryLedgerStore(
    LedgerSourceInterface,
    SettlementStorageInterface,
    ObligationStorageInterface,
    FutureItemStorageInterface,
    AuditStorageInterface,
):
    """Ledgers, card registries, obligations, future items and audit events in memory."""

    def __init__(self):
        self._ledgers: dict[str, Document] = {}
        self._expenses: dict[str, list[Document]] = {}
        self._settlements: dict[str, list[Document]] = {}
        self._cards: dict[str, list[Document]] = {}
        self._obligations: dict[str, ObligationRecord] = {}
        self._future_items: dict[str, FutureItem] = {}
        self._events: list[AuditEvent] = []

    # =========================================================================
    # Seeding
    # =========================================================================

    def add_ledger(self, document: Document) -> None:
        ledger_id = document["id"]
        self._ledgers[ledger_id] = copy.deepcopy(document)
        self._expenses.setdefault(ledger_id, [])
        self._settlements.setdefault(ledger_id, [])

    def add_expense(self, ledger_id: str, document: Document) -> None:
        if ledger_id not in self._ledgers:
            raise StorageError(f"Unknown ledger: {ledger_id}")
        self._expenses[ledger_id].append(copy.deepcopy(document))

    def add_settlement(self, ledger_id: str, document: Document) -> None:
        if ledger_id not in self._ledgers:
            raise StorageError(f"Unknown ledger: {ledger_id}")
        self._settlements[ledger_id].append(copy.deepcopy(document))

    def add_card(self, user_id: str, document: Document) -> None:
        self._cards.setdefault(user_id, []).append(copy.deepcopy(document))

    # =========================================================================
    # Ledger source
    # =========================================================================

    async def get_ledger(self, ledger_id: str) -> Optional[Document]:
        document = self._ledgers.get(ledger_id)
        return copy.deepcopy(document) if document is not None else None

    async def list_ledgers_for_member(self, user_id: str) -> list[Document]:
        return [
            copy.deepcopy(document)
            for document in self._ledgers.values()
            if user_id in _member_ids(document)
        ]

    async def list_expense_documents(self, ledger_id: str) -> list[Document]:
        return copy.deepcopy(self._expenses.get(ledger_id, []))

    async def list_settlement_documents(self, ledger_id: str) -> list[Document]:
        return copy.deepcopy(self._settlements.get(ledger_id, []))

    async def list_cards(self, user_id: str) -> list[Document]:
        return copy.deepcopy(self._cards.get(user_id, []))

    # =========================================================================
    # Settlements
    # =========================================================================

    async def record_settlement(
        self,
        ledger_id: str,
        settlement: SettlementRecord,
    ) -> bool:
        if ledger_id not in self._ledgers:
            raise StorageError(f"Unknown ledger: {ledger_id}")
        self._settlements[ledger_id].append(
            settlement.model_dump(mode="json", by_alias=True)
        )
        return True

    # =========================================================================
    # Obligations
    # =========================================================================

    async def list_obligations(self, user_id: str) -> list[ObligationRecord]:
        records = [
            record.model_copy(deep=True)
            for record in self._obligations.values()
            if record.user_id == user_id
        ]
        return sorted(records, key=lambda r: (r.created_at, r.id))

    def insert_obligation(self, record: ObligationRecord) -> None:
        """Put a record in place directly, bypassing reconciliation."""
        self._obligations[record.id] = record.model_copy(deep=True)

    async def apply_batch(self, user_id: str, batch: ObligationBatch) -> bool:
        """Copy, apply, swap."""
        self._obligations = stage_batch(self._obligations, user_id, batch)
        return True

    # =========================================================================
    # Future items
    # =========================================================================

    async def list_future_items(self, user_id: str) -> list[FutureItem]:
        items = [
            item.model_copy(deep=True)
            for item in self._future_items.values()
            if item.user_id == user_id
        ]
        return sorted(items, key=lambda i: (i.created_at, i.id))

    async def save_future_item(self, item: FutureItem) -> bool:
        self._future_items[item.id] = item.model_copy(deep=True)
        return True

    # =========================================================================
    # Audit
    # =========================================================================

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
