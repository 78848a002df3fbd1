"""
Audit Models

Significant engine actions are recorded as audit events so a user can see
why their projection changed and operators can trace an aborted pass.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Expense entry
    EXPENSE_RECORDED = "expense_recorded"
    SPLIT_REJECTED = "split_rejected"

    # Settlements
    SETTLEMENT_RECORDED = "settlement_recorded"

    # Obligation reconciliation
    RECONCILIATION_STARTED = "reconciliation_started"
    RECONCILIATION_COMPLETED = "reconciliation_completed"
    RECONCILIATION_ABORTED = "reconciliation_aborted"
    OBLIGATION_BATCH_APPLIED = "obligation_batch_applied"

    # Budget
    FUTURE_ITEM_SAVED = "future_item_saved"

    # System events
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'ledger', 'user')"
    )
    entity_id: Optional[str] = None
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Ties together the events of one flow"
    )

    description: str
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict[str, Any]:
        """Flatten for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Builds the audit events the flows emit.

    Usage:
        event = AuditEventBuilder.expense_recorded(ledger_id, expense_id, ...)
    """

    @staticmethod
    def expense_recorded(
        ledger_id: str,
        expense_id: str,
        amount: str,
        policy: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_RECORDED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense of {amount} recorded ({policy} split)",
            details={"ledger_id": ledger_id, "amount": amount, "split_policy": policy},
        )

    @staticmethod
    def split_rejected(
        ledger_id: str,
        error_kind: str,
        message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            entity_id=ledger_id,
            correlation_id=correlation_id,
            description=f"Expense rejected: {error_kind}",
            error_message=message,
        )

    @staticmethod
    def settlement_recorded(
        ledger_id: str,
        from_member_id: str,
        to_member_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_RECORDED,
            entity_type="ledger",
            entity_id=ledger_id,
            correlation_id=correlation_id,
            description=f"{from_member_id} paid {to_member_id} {amount}",
            details={
                "from_member_id": from_member_id,
                "to_member_id": to_member_id,
                "amount": amount,
            },
        )

    @staticmethod
    def reconciliation_started(user_id: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_STARTED,
            severity=AuditSeverity.DEBUG,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="Obligation reconciliation started",
        )

    @staticmethod
    def reconciliation_completed(
        user_id: str,
        creates: int,
        updates: int,
        deletes: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_COMPLETED,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=(
                f"Reconciliation completed: {creates} created, "
                f"{updates} updated, {deletes} deleted"
            ),
            details={"creates": creates, "updates": updates, "deletes": deletes},
        )

    @staticmethod
    def reconciliation_aborted(
        user_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_ABORTED,
            severity=AuditSeverity.ERROR,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="Reconciliation aborted, nothing written",
            error_message=error_message,
        )

    @staticmethod
    def batch_applied(
        user_id: str,
        operation_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_BATCH_APPLIED,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Applied {operation_count} obligation changes",
            details={"operation_count": operation_count},
        )

    @staticmethod
    def future_item_saved(
        user_id: str,
        item_id: str,
        description: str,
        amount: str,
        created: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        action = "added" if created else "updated"
        return AuditEvent(
            event_type=AuditEventType.FUTURE_ITEM_SAVED,
            entity_type="future_item",
            entity_id=item_id,
            correlation_id=correlation_id,
            description=f"Future item {description!r} {action}",
            details={"user_id": user_id, "amount": amount, "created": created},
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
