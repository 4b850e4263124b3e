"""
Record and audit storage backed by one Google spreadsheet.

Obligations, occurrences and preferences each get a worksheet, and the
user can read their schedule straight from it. Sheets has no
transactions, so the store keeps its working set in memory and rewrites
each worksheet on save(). Staged changes reach the sheet only when the
whole unit of work commits. All filtering happens in Python.

Row conversion is done by plain functions so it can be tested without
network access.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import gspread
from gspread.utils import absolute_range_name
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from src.config import GoogleSheetsSettings, get_settings
from src.models.audit import AuditEvent, AuditEventType, AuditSeverity
from src.models.obligation import (
    Frequency,
    LoanTerms,
    Obligation,
    ObligationKind,
    Occurrence,
    OccurrenceStatus,
)
from src.models.preferences import AppPreferences
from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    StorageError,
)
from src.services.storage.memory import Collections, InMemoryRecordStore, empty_collections


# Column mappings for Obligations sheet
OBLIGATION_COLUMNS = [
    "id",
    "kind",
    "created_at",
    "updated_at",
    "title",
    "amount",
    "currency_code",
    "frequency",
    "start_date",
    "end_date",
    "loan_terms_json",
    "notes",
    "category",
    "counterparty_name",
    "next_due_date",
    "total_payable",
    "total_settled",
    "remaining",
    "schedule_total",
]

# Column mappings for Occurrences sheet
OCCURRENCE_COLUMNS = [
    "id",
    "obligation_id",
    "kind",
    "due_date",
    "amount",
    "currency_code",
    "status",
    "settled_date",
    "snooze_until",
    "created_at",
    "updated_at",
]

# Column mappings for Preferences sheet
PREFERENCES_COLUMNS = [
    "id",
    "lead_time_days",
    "notifications_enabled",
    "default_currency_code",
    "created_at",
    "updated_at",
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
    "is_user_action",
]


def _getter(row: list) -> Callable[..., str]:
    """Handle missing columns gracefully."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _iso(value) -> str:
    return value.isoformat() if value else ""


def _optional_date(value: str) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _optional_decimal(value: str) -> Optional[Decimal]:
    return Decimal(value) if value else None


# =============================================================================
# ROW CONVERSION
# =============================================================================

def obligation_to_row(obligation: Obligation) -> list:
    """Convert an Obligation to a spreadsheet row."""
    return [
        str(obligation.id),
        obligation.kind.value,
        obligation.created_at.isoformat(),
        obligation.updated_at.isoformat(),
        obligation.title,
        str(obligation.amount),
        obligation.currency_code,
        obligation.frequency.value,
        obligation.start_date.isoformat(),
        _iso(obligation.end_date),
        obligation.loan_terms.model_dump_json() if obligation.loan_terms else "",
        obligation.notes or "",
        obligation.category or "",
        obligation.counterparty_name or "",
        _iso(obligation.next_due_date),
        str(obligation.total_payable) if obligation.total_payable is not None else "",
        str(obligation.total_settled),
        str(obligation.remaining),
        str(obligation.schedule_total),
    ]


def row_to_obligation(row: list) -> Obligation:
    """Convert a spreadsheet row to an Obligation."""
    safe_get = _getter(row)

    loan_json = safe_get(10)
    return Obligation(
        id=UUID(safe_get(0)),
        kind=ObligationKind(safe_get(1)),
        created_at=datetime.fromisoformat(safe_get(2)),
        updated_at=datetime.fromisoformat(safe_get(3)),
        title=safe_get(4),
        amount=Decimal(safe_get(5)),
        currency_code=safe_get(6, "RON"),
        frequency=Frequency(safe_get(7)),
        start_date=date.fromisoformat(safe_get(8)),
        end_date=_optional_date(safe_get(9)),
        loan_terms=LoanTerms.model_validate_json(loan_json) if loan_json else None,
        notes=safe_get(11) or None,
        category=safe_get(12) or None,
        counterparty_name=safe_get(13) or None,
        next_due_date=_optional_date(safe_get(14)),
        total_payable=_optional_decimal(safe_get(15)),
        total_settled=Decimal(safe_get(16, "0")),
        remaining=Decimal(safe_get(17, "0")),
        schedule_total=Decimal(safe_get(18, "0")),
    )


def occurrence_to_row(occurrence: Occurrence) -> list:
    """Convert an Occurrence to a spreadsheet row."""
    return [
        str(occurrence.id),
        str(occurrence.obligation_id),
        occurrence.kind.value,
        occurrence.due_date.isoformat(),
        str(occurrence.amount),
        occurrence.currency_code,
        occurrence.status.value,
        _iso(occurrence.settled_date),
        _iso(occurrence.snooze_until),
        occurrence.created_at.isoformat(),
        occurrence.updated_at.isoformat(),
    ]


def row_to_occurrence(row: list) -> Occurrence:
    """Convert a spreadsheet row to an Occurrence."""
    safe_get = _getter(row)

    snooze = safe_get(8)
    return Occurrence(
        id=UUID(safe_get(0)),
        obligation_id=UUID(safe_get(1)),
        kind=ObligationKind(safe_get(2)),
        due_date=date.fromisoformat(safe_get(3)),
        amount=Decimal(safe_get(4)),
        currency_code=safe_get(5, "RON"),
        status=OccurrenceStatus(safe_get(6)),
        settled_date=_optional_date(safe_get(7)),
        snooze_until=datetime.fromisoformat(snooze) if snooze else None,
        created_at=datetime.fromisoformat(safe_get(9)),
        updated_at=datetime.fromisoformat(safe_get(10)),
    )


def preferences_to_row(preferences: AppPreferences) -> list:
    """Convert AppPreferences to a spreadsheet row."""
    return [
        str(preferences.id),
        str(preferences.lead_time_days),
        str(preferences.notifications_enabled),
        preferences.default_currency_code,
        preferences.created_at.isoformat(),
        preferences.updated_at.isoformat(),
    ]


def row_to_preferences(row: list) -> AppPreferences:
    """Convert a spreadsheet row to AppPreferences."""
    safe_get = _getter(row)

    return AppPreferences(
        id=UUID(safe_get(0)),
        lead_time_days=int(safe_get(1, "2")),
        notifications_enabled=safe_get(2, "True").lower() == "true",
        default_currency_code=safe_get(3, "RON"),
        created_at=datetime.fromisoformat(safe_get(4)),
        updated_at=datetime.fromisoformat(safe_get(5)),
    )


def event_to_row(event: AuditEvent) -> list:
    """Convert an AuditEvent to a spreadsheet row."""
    return event.to_sheets_row()


def row_to_event(row: list) -> AuditEvent:
    """Convert a spreadsheet row to an AuditEvent."""
    safe_get = _getter(row)

    return AuditEvent(
        event_id=UUID(safe_get(0)),
        timestamp=datetime.fromisoformat(safe_get(1)),
        event_type=AuditEventType(safe_get(2)),
        severity=AuditSeverity(safe_get(3)),
        entity_type=safe_get(4) or None,
        entity_id=UUID(safe_get(5)) if safe_get(5) else None,
        correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
        description=safe_get(7),
        details=json.loads(safe_get(8)) if safe_get(8) else {},
        error_message=safe_get(9) or None,
        is_user_action=safe_get(10).lower() == "true",
    )


def rows_to_records(rows: list[list], parse: Callable) -> dict:
    """
    Parse data rows (header excluded) into an id-keyed dict.

    Blank rows are skipped.

    Raises:
        DuplicateError: If two rows carry the same id
        StorageError: If a row cannot be parsed
    """
    records = {}
    for index, row in enumerate(rows, start=2):
        if not row or not row[0]:
            continue
        try:
            record = parse(row)
        except (ValueError, ArithmeticError) as e:
            raise StorageError(f"Malformed row {index}: {e}")
        if record.id in records:
            raise DuplicateError(f"Duplicate id in row {index}: {record.id}")
        records[record.id] = record
    return records


# =============================================================================
# CLIENT
# =============================================================================

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


class GoogleSheetsClient:
    """gspread access through a service account, with retried API calls."""

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        if self._client is None:
            try:
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=SCOPES,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"no service account key at {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"could not authorize against Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"no spreadsheet with id {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def read_rows(self, title: str, columns: list[str]) -> list[list]:
        """All data rows of a worksheet (header excluded)."""
        return self.get_sheet(title, columns).get_all_values()[1:]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def replace_tables(self, tables: list[tuple[str, list[str], list[list]]]) -> None:
        """
        Rewrite several worksheets in ONE values batch update.

        Each table is (title, columns, rows). A worksheet is written as its
        header, the rows, then blank cells down to the end of the grid, so
        rows left over from a longer previous version are wiped by the same
        request. Either every worksheet changes or none does.
        """
        data = []
        for title, columns, rows in tables:
            sheet = self.get_sheet(title, columns)
            values = [columns] + rows
            if len(values) > sheet.row_count:
                sheet.add_rows(len(values) - sheet.row_count)
            blank = [""] * len(columns)
            values += [blank] * (sheet.row_count - len(values))
            data.append({
                "range": absolute_range_name(title, "A1"),
                "values": values,
            })

        self.get_spreadsheet().values_batch_update({
            "valueInputOption": "RAW",
            "data": data,
        })


# =============================================================================
# RECORD STORE
# =============================================================================

class GoogleSheetsRecordStore(InMemoryRecordStore):
    """
    Google Sheets implementation of the record store.

    The sheets are read once, on first access. Staged changes live in the
    in-memory working set; save() rewrites the three worksheets in a single
    batch request and then promotes the working set to committed. A failed
    request leaves every worksheet as it was.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        super().__init__()
        self._client = client or GoogleSheetsClient()

    def _layout(self) -> list[tuple[type, str, list[str], Callable, Callable]]:
        settings = self._client.settings
        return [
            (Obligation, settings.obligations_sheet_name, OBLIGATION_COLUMNS,
             obligation_to_row, row_to_obligation),
            (Occurrence, settings.occurrences_sheet_name, OCCURRENCE_COLUMNS,
             occurrence_to_row, row_to_occurrence),
            (AppPreferences, settings.preferences_sheet_name, PREFERENCES_COLUMNS,
             preferences_to_row, row_to_preferences),
        ]

    async def _load(self) -> Collections:
        collections = empty_collections()
        try:
            for model, title, columns, _, parse in self._layout():
                collections[model] = rows_to_records(
                    self._client.read_rows(title, columns),
                    parse,
                )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load records: {e}")
        return collections

    async def _persist(self, collections: Collections) -> None:
        tables = [
            (title, columns, [to_row(record) for record in collections[model].values()])
            for model, title, columns, to_row, _ in self._layout()
        ]
        try:
            self._client.replace_tables(tables)
        except Exception as e:
            raise StorageError(f"Failed to save records: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """Audit events as rows of the audit worksheet, appended one at a time."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_sheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,
        )

    def _events(self) -> list[AuditEvent]:
        events = []
        for row in self._sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(row_to_event(row))
            except (ValueError, KeyError):
                continue  # Skip malformed rows
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            self._sheet().append_row(event_to_row(event), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"could not read the audit worksheet: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"could not read the audit worksheet: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._events()
        except Exception as e:
            raise StorageError(f"could not read the audit worksheet: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
