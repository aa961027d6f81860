"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a persistence backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for a single small ledger)
- No transactions (the record store writes here before it swaps its
  in-memory copy, so a failed write leaves the ledger unchanged)
- Limited query capabilities (the record store filters in Python)
"""

import json
from typing import Any, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from accounting.config import GoogleSheetsSettings, get_settings
from accounting.models.audit import AuditEvent, AuditEventType, AuditSeverity
from accounting.models.ledger import LedgerRecord
from accounting.models.status import RecordKind
from accounting.services.storage.interface import (
    AuditStorageInterface,
    LedgerBackendInterface,
    NotFoundError,
    StorageError,
    StoreUnavailableError,
    record_to_row,
)


# Column mappings for the ledger sheets
TRANSACTION_COLUMNS = [
    "id",
    "date",
    "description",
    "amount",
    "currency",
    "category",
    "folder",
    "status",
    "created_at",
    "updated_at",
]

INVOICE_COLUMNS = [
    "id",
    "number",
    "customer_name",
    "date",
    "due_date",
    "total_amount",
    "currency",
    "status",
    "created_at",
    "updated_at",
]

LEDGER_COLUMNS = {
    RecordKind.TRANSACTION: TRANSACTION_COLUMNS,
    RecordKind.INVOICE: INVOICE_COLUMNS,
}

# Column mappings for the Rates sheet
RATE_COLUMNS = [
    "effective_date",
    "base",
    "quote",
    "rate",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "description",
    "details_json",
    "error_message",
    "revision",
]

sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type(NotFoundError),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @sheets_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
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
            except FileNotFoundError:
                raise StoreUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreUnavailableError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StoreUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_ledger_sheet(self, kind: RecordKind) -> gspread.Worksheet:
        """Get or create the worksheet of a record kind."""
        title = (
            self._settings.transactions_sheet_name
            if kind == RecordKind.TRANSACTION
            else self._settings.invoices_sheet_name
        )
        return self._get_or_create_sheet(title, LEDGER_COLUMNS[kind])

    def get_rates_sheet(self) -> gspread.Worksheet:
        """Get or create the Rates worksheet."""
        return self._get_or_create_sheet(self._settings.rates_sheet_name, RATE_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


def _find_row_index(sheet: gspread.Worksheet, record_id: UUID) -> Optional[int]:
    """1-based sheet row of a record id, or None. Row 1 is the header."""
    ids = sheet.col_values(1)
    target = str(record_id)
    for idx, value in enumerate(ids[1:], start=2):
        if value == target:
            return idx
    return None


class GoogleSheetsLedgerBackend(LedgerBackendInterface):
    """
    Google Sheets implementation of ledger persistence.

    Each record kind lives in its own worksheet, one record per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, record: LedgerRecord) -> list[str]:
        """Convert a record to a spreadsheet row in column order."""
        data = record_to_row(record)
        return [
            "" if data.get(column) is None else str(data[column])
            for column in LEDGER_COLUMNS[record.kind]
        ]

    def _row_to_dict(self, kind: RecordKind, row: list) -> dict[str, Any]:
        """Convert a spreadsheet row to a raw record dict."""
        # Handle missing columns gracefully
        columns = LEDGER_COLUMNS[kind]
        data = {}
        for index, column in enumerate(columns):
            value = row[index] if index < len(row) else ""
            if value == "" and column not in ("category", "folder"):
                continue
            data[column] = value
        return data

    @sheets_retry
    def load(self, kind: RecordKind) -> list[dict[str, Any]]:
        try:
            sheet = self._client.get_ledger_sheet(kind)
            all_rows = sheet.get_all_values()[1:]  # Skip header
            return [
                self._row_to_dict(kind, row)
                for row in all_rows
                if row and row[0]  # Skip empty rows
            ]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load {kind.value} rows: {e}")

    @sheets_retry
    def upsert(self, record: LedgerRecord) -> None:
        try:
            sheet = self._client.get_ledger_sheet(record.kind)
            row = self._record_to_row(record)
            idx = _find_row_index(sheet, record.id)
            if idx is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                sheet.update(
                    range_name=f"A{idx}",
                    values=[row],
                    value_input_option="RAW",
                )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {record.kind.value}: {e}")

    @sheets_retry
    def remove(self, kind: RecordKind, record_id: UUID) -> None:
        try:
            sheet = self._client.get_ledger_sheet(kind)
            idx = _find_row_index(sheet, record_id)
            if idx is None:
                raise NotFoundError(record_id, kind.value)
            sheet.delete_rows(idx)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {kind.value}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            description=safe_get(6),
            details=json.loads(safe_get(7)) if safe_get(7) else {},
            error_message=safe_get(8) or None,
            revision=int(safe_get(9)) if safe_get(9) else None,
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue  # Skip malformed rows
        return events

    @sheets_retry
    def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
