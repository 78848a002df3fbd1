"""
Abstract Storage Interface

DESIGN DECISION: The engine is pure; everything it reads or writes goes
through these interfaces. This allows us to:
1. Back the ledger source with any document store
2. Use in-memory storage for testing
3. Keep reconciliation logic decoupled from where projections live

Ledger-side reads return raw documents (plain dicts). Parsing them into
models is the validator's job, not the store's.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from sharedledger.errors import LedgerEngineError
from sharedledger.models.audit import AuditEvent
from sharedledger.models.budget import FutureItem
from sharedledger.models.ledger import SettlementRecord
from sharedledger.models.obligation import ObligationBatch, ObligationRecord

Document = dict[str, Any]


class LedgerSourceInterface(ABC):
    """
    Read access to ledgers, their expenses and settlements, and card registries.

    Implementations raise StorageError when the backend can't be read.
    """

    @abstractmethod
    async def get_ledger(self, ledger_id: str) -> Optional[Document]:
        """
        Get a ledger document (id, name, members).

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_ledgers_for_member(self, user_id: str) -> list[Document]:
        """Every ledger document whose members include the user."""
        pass

    @abstractmethod
    async def list_expense_documents(self, ledger_id: str) -> list[Document]:
        """Expense documents of one ledger."""
        pass

    @abstractmethod
    async def list_settlement_documents(self, ledger_id: str) -> list[Document]:
        """Settlement documents of one ledger."""
        pass

    @abstractmethod
    async def list_cards(self, user_id: str) -> list[Document]:
        """The user's card registry."""
        pass


class SettlementStorageInterface(ABC):
    """Write access for confirmed side-payments."""

    @abstractmethod
    async def record_settlement(
        self,
        ledger_id: str,
        settlement: SettlementRecord,
    ) -> bool:
        """
        Persist a settlement in a ledger.

        Raises:
            StorageError: If the write fails
        """
        pass


class ObligationStorageInterface(ABC):
    """
    Storage for a user's projected card obligations.

    Only the reconciler writes here.
    """

    @abstractmethod
    async def list_obligations(self, user_id: str) -> list[ObligationRecord]:
        """All aggregate obligation records of the user."""
        pass

    @abstractmethod
    async def apply_batch(self, user_id: str, batch: ObligationBatch) -> bool:
        """
        Apply creates, updates and deletes as one unit.

        Either every operation is visible afterwards or none is.

        Raises:
            StorageError: If the batch couldn't be applied; nothing changed
            DuplicateError: A created id already exists
        """
        pass


class FutureItemStorageInterface(ABC):
    """A user's planned income and expenses."""

    @abstractmethod
    async def list_future_items(self, user_id: str) -> list[FutureItem]:
        """Every future item of the user, oldest first."""
        pass

    @abstractmethod
    async def save_future_item(self, item: FutureItem) -> bool:
        """
        Insert the item, or replace the stored one with the same id.

        Raises:
            StorageError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one flow, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class StorageError(LedgerEngineError):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
