"""
Storage Services Package

Abstract interfaces plus an in-memory store and a Google Sheets backend
for obligation projections and the audit log.
"""

from sharedledger.services.storage.interface import (
    AuditStorageInterface,
    Document,
    DuplicateError,
    FutureItemStorageInterface,
    LedgerSourceInterface,
    ObligationStorageInterface,
    SettlementStorageInterface,
    StorageConnectionError,
    StorageError,
)
from sharedledger.services.storage.memory import InMemoryLedgerStore, stage_batch
from sharedledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsObligationStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "Document",
    "FutureItemStorageInterface",
    "LedgerSourceInterface",
    "ObligationStorageInterface",
    "SettlementStorageInterface",
    # Exceptions
    "DuplicateError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryLedgerStore",
    "stage_batch",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsObligationStorage",
]
