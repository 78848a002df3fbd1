"""Services package."""

from sharedledger.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsObligationStorage,
    InMemoryLedgerStore,
    LedgerSourceInterface,
    ObligationStorageInterface,
    SettlementStorageInterface,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsObligationStorage",
    "InMemoryLedgerStore",
    "LedgerSourceInterface",
    "ObligationStorageInterface",
    "SettlementStorageInterface",
    "StorageConnectionError",
    "StorageError",
]
