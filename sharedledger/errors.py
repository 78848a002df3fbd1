"""
Error kinds raised by the engine.

Validation errors are user-correctable and raised before anything is
persisted. Expected "nothing to do" outcomes are return values, not errors.
"""

from typing import Optional


class LedgerEngineError(Exception):
    """Base exception for the shared ledger engine."""
    pass


class ExpenseValidationError(LedgerEngineError):
    """An expense was rejected at the boundary."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class SplitMismatchError(ExpenseValidationError):
    """Explicit amounts or percentages don't add up to the total."""
    pass


class InvalidExpenseError(ExpenseValidationError):
    """Zero amount, empty participant set, unknown policy or malformed record."""
    pass


class ReconciliationIOError(LedgerEngineError):
    """Source data could not be read; the reconciliation batch was aborted."""

    def __init__(self, user_id: str, message: str):
        super().__init__(f"Reconciliation aborted for user {user_id}: {message}")
        self.user_id = user_id


class NotFoundError(LedgerEngineError):
    """Referenced ledger, member or card doesn't exist."""
    pass


class MalformedDocumentError(LedgerEngineError):
    """A stored ledger, settlement or card document doesn't match its schema."""

    def __init__(self, kind: str, message: str):
        super().__init__(f"Malformed {kind} document: {message}")
        self.kind = kind
