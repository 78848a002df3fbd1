"""
Data Models Package

All data the engine computes on conforms to these schemas.
"""

from sharedledger.models.ledger import (
    Card,
    CardCycleSummary,
    CardKey,
    Expense,
    ExpenseDraft,
    Installment,
    Ledger,
    LedgerSummary,
    Member,
    SettlementRecord,
    SplitPolicy,
    Transfer,
    ValidationIssue,
    ValidationResult,
)
from sharedledger.models.obligation import (
    BucketKey,
    MonthlyProjection,
    MonthlyProjectionLine,
    ObligationBatch,
    ObligationRecord,
    Reimbursement,
    ReimbursementDirection,
)
from sharedledger.models.budget import (
    FutureItem,
    FutureItemType,
    MonthlyBudget,
    Recurrence,
)
from sharedledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Card",
    "CardCycleSummary",
    "CardKey",
    "Expense",
    "ExpenseDraft",
    "Installment",
    "Ledger",
    "LedgerSummary",
    "Member",
    "SettlementRecord",
    "SplitPolicy",
    "Transfer",
    "ValidationIssue",
    "ValidationResult",
    # Obligation models
    "BucketKey",
    "MonthlyProjection",
    "MonthlyProjectionLine",
    "ObligationBatch",
    "ObligationRecord",
    "Reimbursement",
    "ReimbursementDirection",
    # Budget models
    "FutureItem",
    "FutureItemType",
    "MonthlyBudget",
    "Recurrence",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
