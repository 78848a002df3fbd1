"""
Audit Logger

DESIGN DECISION: Every expense entry, settlement and reconciliation pass is
logged. This provides:
1. Traceability of why a projection changed
2. A record of aborted passes and the read failure behind them

The audit logger:
- Gracefully handles failures (a failed audit write never breaks a flow)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from sharedledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from sharedledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "info") -> None:
    """Route structlog output through the stdlib root logger at the given level."""
    logging.basicConfig(format="%(message)s", level=log_level.upper())
    logging.getLogger().setLevel(log_level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (always)
    2. Audit storage, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger("sharedledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the storage write succeeded (or no storage is configured).
        """
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_recorded(
        self,
        ledger_id: str,
        expense_id: str,
        amount: str,
        policy: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_recorded(
            ledger_id=ledger_id,
            expense_id=expense_id,
            amount=amount,
            policy=policy,
            correlation_id=correlation_id,
        ))

    async def log_split_rejected(
        self,
        ledger_id: str,
        error_kind: str,
        message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.split_rejected(
            ledger_id=ledger_id,
            error_kind=error_kind,
            message=message,
            correlation_id=correlation_id,
        ))

    async def log_settlement_recorded(
        self,
        ledger_id: str,
        from_member_id: str,
        to_member_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_recorded(
            ledger_id=ledger_id,
            from_member_id=from_member_id,
            to_member_id=to_member_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_reconciliation_started(
        self,
        user_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_started(
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_reconciliation_completed(
        self,
        user_id: str,
        creates: int,
        updates: int,
        deletes: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_completed(
            user_id=user_id,
            creates=creates,
            updates=updates,
            deletes=deletes,
            correlation_id=correlation_id,
        ))

    async def log_reconciliation_aborted(
        self,
        user_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_aborted(
            user_id=user_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_batch_applied(
        self,
        user_id: str,
        operation_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.batch_applied(
            user_id=user_id,
            operation_count=operation_count,
            correlation_id=correlation_id,
        ))

    async def log_future_item_saved(
        self,
        user_id: str,
        item_id: str,
        description: str,
        amount: str,
        created: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.future_item_saved(
            user_id=user_id,
            item_id=item_id,
            description=description,
            amount=amount,
            created=created,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a flow (one expense entry, one reconciliation
    pass) and pass it through everything that flow logs.
    """
    return uuid4()
