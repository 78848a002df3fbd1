"""
Google Sheets Storage Implementation

DESIGN DECISION: Projected obligations and the audit log can live in a
Google Sheet so users can look at their month-by-month card debt directly.

TRADEOFFS:
- Sheets has no multi-row transactions. A batch is applied by rewriting
  the whole table body in ONE values update, which the API applies as a
  unit. A failed call leaves the previous table in place.
- Limited query capabilities (we filter in Python)

Ledgers themselves are NOT stored here; they come from the ledger source.
"""

import json
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from sharedledger.config import GoogleSheetsSettings, get_settings
from sharedledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from sharedledger.models.ledger import CardKey
from sharedledger.models.obligation import ObligationBatch, ObligationRecord, Reimbursement
from sharedledger.services.storage.interface import (
    AuditStorageInterface,
    ObligationStorageInterface,
    StorageConnectionError,
    StorageError,
)
from sharedledger.services.storage.memory import stage_batch

logger = structlog.get_logger(__name__)


# Column mappings for Obligations sheet
OBLIGATION_COLUMNS = [
    "id",
    "user_id",
    "due_month",
    "bank_name",
    "card_type",
    "description",
    "amount",
    "source_scope",
    "reimbursements_json",
    "created_at",
    "last_modified_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]

transient_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet lookup.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @transient_retry
    def connect(self) -> gspread.Client:
        """Authenticate with the service account credentials."""
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except ValueError as e:
                raise StorageConnectionError(f"Invalid Google credentials: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound as e:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_obligations_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.obligations_sheet_name, OBLIGATION_COLUMNS, rows=1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsObligationStorage(ObligationStorageInterface):
    """
    Obligation records as rows, one record per row.

    Reimbursements are JSON-serialized into a single cell.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, record: ObligationRecord) -> list[str]:
        return [
            record.id,
            record.user_id,
            record.due_month,
            record.card_key.bank_name,
            record.card_key.card_type,
            record.description,
            str(record.amount),
            record.source_scope,
            json.dumps([r.model_dump(mode="json") for r in record.reimbursements]),
            record.created_at.isoformat(),
            record.last_modified_at.isoformat(),
        ]

    def _row_to_record(self, row: list) -> ObligationRecord:
        """Parse a row; a malformed row raises StorageError."""
        try:
            reimbursements_json = _cell(row, 8)
            reimbursements = [
                Reimbursement.model_validate(item)
                for item in (json.loads(reimbursements_json) if reimbursements_json else [])
            ]
            return ObligationRecord(
                id=_cell(row, 0),
                user_id=_cell(row, 1),
                due_month=_cell(row, 2),
                card_key=CardKey(bank_name=_cell(row, 3), card_type=_cell(row, 4, "General")),
                description=_cell(row, 5),
                amount=Decimal(_cell(row, 6)),
                source_scope=_cell(row, 7, "aggregate"),
                reimbursements=reimbursements,
                created_at=datetime.fromisoformat(_cell(row, 9)),
                last_modified_at=datetime.fromisoformat(_cell(row, 10)),
            )
        except (ValueError, InvalidOperation, ValidationError) as e:
            raise StorageError(f"Malformed obligation row {_cell(row, 0)!r}: {e}") from e

    def _pad(self, row: list) -> list:
        width = len(OBLIGATION_COLUMNS)
        return (list(row) + [""] * width)[:width]

    @transient_retry
    def _read_rows(self) -> list[list]:
        sheet = self._client.get_obligations_sheet()
        return [row for row in sheet.get_all_values()[1:] if row and row[0]]

    async def list_obligations(self, user_id: str) -> list[ObligationRecord]:
        try:
            rows = self._read_rows()
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to read obligations: {e}") from e

        records = [self._row_to_record(row) for row in rows if _cell(row, 1) == user_id]
        return sorted(records, key=lambda r: (r.created_at, r.id))

    @transient_retry
    def _rewrite_for_user(self, user_id: str, batch: ObligationBatch) -> None:
        """Re-read the table, stage the batch, and write the body back in one update."""
        sheet = self._client.get_obligations_sheet()
        body = sheet.get_all_values()[1:]

        current = {}
        for row in body:
            if row and row[0] and _cell(row, 1) == user_id:
                record = self._row_to_record(row)
                current[record.id] = record
        staged = stage_batch(current, user_id, batch)

        new_rows = []
        written = set()
        for row in body:
            if not row or not row[0]:
                continue
            if _cell(row, 1) != user_id:
                new_rows.append(self._pad(row))
                continue
            record = staged.get(row[0])
            if record is not None and record.id not in written:
                new_rows.append(self._record_to_row(record))
                written.add(record.id)
        for record in batch.creates:
            new_rows.append(self._record_to_row(record))

        blank = [""] * len(OBLIGATION_COLUMNS)
        values = new_rows + [list(blank) for _ in range(len(body) - len(new_rows))]
        if not values:
            return

        needed = len(values) + 1
        if needed > sheet.row_count:
            sheet.add_rows(needed - sheet.row_count)
        sheet.update(values=values, range_name="A2", value_input_option="RAW")

    async def apply_batch(self, user_id: str, batch: ObligationBatch) -> bool:
        if batch.is_empty:
            return True
        try:
            self._rewrite_for_user(user_id, batch)
        except StorageError:
            raise
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to apply obligation batch: {e}") from e
        return True


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _event_to_row(self, event: AuditEvent) -> list:
        return [
            str(event.event_id),
            event.timestamp.isoformat(),
            event.event_type.value,
            event.severity.value,
            event.entity_type or "",
            event.entity_id or "",
            str(event.correlation_id) if event.correlation_id else "",
            event.description,
            json.dumps(event.details) if event.details else "",
            event.error_message or "",
        ]

    def _row_to_event(self, row: list) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_cell(row, 5) or None,
            correlation_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            description=_cell(row, 7),
            details=json.loads(_cell(row, 8)) if _cell(row, 8) else {},
            error_message=_cell(row, 9) or None,
        )

    @transient_retry
    def _append(self, row: list) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event; a failed write is reported, not raised."""
        try:
            self._append(self._event_to_row(event))
            return True
        except (gspread.exceptions.GSpreadException, StorageError) as e:
            logger.warning(
                "audit_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    def _read_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            rows = sheet.get_all_values()[1:]
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, ValidationError) as e:
                logger.warning("audit_row_skipped", row_id=row[0], error=str(e))
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
