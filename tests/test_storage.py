"""
Tests for the record stores.

The Google Sheets store is exercised through a fake client that keeps
worksheet rows in a dict, so no network access is needed.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from factories import TODAY, make_expense, make_loan
from src.models.audit import AuditEventBuilder
from src.models.obligation import Obligation, Occurrence, OccurrenceStatus
from src.models.preferences import AppPreferences
from src.scheduling.generator import build_initial_schedule
from src.services.storage import (
    DuplicateError,
    GoogleSheetsRecordStore,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    NotFoundError,
    StorageError,
    load_preferences,
)
from src.services.storage.google_sheets import (
    OBLIGATION_COLUMNS,
    OCCURRENCE_COLUMNS,
    GoogleSheetsClient,
    event_to_row,
    obligation_to_row,
    occurrence_to_row,
    preferences_to_row,
    row_to_event,
    row_to_obligation,
    row_to_occurrence,
    row_to_preferences,
    rows_to_records,
)


class FakeSheetsClient:
    """Worksheets as lists of rows, header excluded."""

    def __init__(self):
        self.settings = SimpleNamespace(
            obligations_sheet_name="Obligations",
            occurrences_sheet_name="Occurrences",
            preferences_sheet_name="Preferences",
            audit_sheet_name="AuditLog",
        )
        self.sheets: dict[str, list[list]] = {}
        self.fail_writes = False
        self.write_count = 0

    def read_rows(self, title, columns):
        return [list(row) for row in self.sheets.get(title, [])]

    def replace_tables(self, tables):
        if self.fail_writes:
            raise RuntimeError("quota exceeded")
        self.write_count += 1
        for title, _, rows in tables:
            self.sheets[title] = [list(row) for row in rows]


class FakeWorksheet:
    def __init__(self, row_count=5):
        self.row_count = row_count

    def add_rows(self, count):
        self.row_count += count


class FakeSpreadsheet:
    def __init__(self, titles):
        self.worksheets = {title: FakeWorksheet() for title in titles}
        self.batches = []

    def worksheet(self, title):
        return self.worksheets[title]

    def values_batch_update(self, body):
        self.batches.append(body)


class TestInMemoryRecordStore:
    """Tests for the unit-of-work semantics."""

    @pytest.fixture
    def store(self):
        return InMemoryRecordStore()

    @pytest.mark.asyncio()
    async def test_insert_is_staged_until_save(self, store):
        expense = make_expense()
        await store.insert(expense)

        assert [o.id for o in await store.all_obligations()] == [expense.id]
        assert store.committed(Obligation) == []

        await store.save()

        assert [o.id for o in store.committed(Obligation)] == [expense.id]
        assert store.save_count == 1

    @pytest.mark.asyncio()
    async def test_rollback_discards_staged_changes(self, store):
        kept = make_expense()
        await store.insert(kept)
        await store.save()

        await store.insert(make_expense(title="Gym"))
        await store.delete(kept)
        await store.rollback()

        obligations = await store.all_obligations()
        assert [o.id for o in obligations] == [kept.id]

    @pytest.mark.asyncio()
    async def test_failed_save_keeps_committed_state(self, store):
        expense = make_expense()
        await store.insert(expense)
        await store.save()

        expense.title = "Changed"
        await store.insert(expense)
        store.fail_next_save = True

        with pytest.raises(StorageError):
            await store.save()

        assert store.committed(Obligation)[0].title == "Rent"
        await store.rollback()
        assert (await store.get_obligation(expense.id)).title == "Rent"

    @pytest.mark.asyncio()
    async def test_fetched_records_are_copies(self, store):
        expense = make_expense()
        await store.insert(expense)

        fetched = await store.get_obligation(expense.id)
        fetched.title = "Mutated"

        assert (await store.get_obligation(expense.id)).title == "Rent"

    @pytest.mark.asyncio()
    async def test_insert_replaces_same_id(self, store):
        expense = make_expense()
        await store.insert(expense)
        expense.title = "Office rent"
        await store.insert(expense)

        obligations = await store.all_obligations()
        assert len(obligations) == 1
        assert obligations[0].title == "Office rent"

    @pytest.mark.asyncio()
    async def test_delete_unknown_raises(self, store):
        with pytest.raises(NotFoundError):
            await store.delete(make_expense())

    @pytest.mark.asyncio()
    async def test_lookups_raise_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.get_obligation(uuid4())
        with pytest.raises(NotFoundError):
            await store.get_occurrence(uuid4())

    @pytest.mark.asyncio()
    async def test_occurrences_for_is_sorted_and_scoped(self, store):
        expense = make_expense()
        other = make_expense(title="Gym")
        for occurrence in reversed(build_initial_schedule(expense, TODAY)):
            await store.insert(occurrence)
        for occurrence in build_initial_schedule(other, TODAY):
            await store.insert(occurrence)

        occurrences = await store.occurrences_for(expense.id)

        assert len(occurrences) == 12
        assert all(o.obligation_id == expense.id for o in occurrences)
        assert occurrences == sorted(occurrences, key=lambda o: o.due_date)

    @pytest.mark.asyncio()
    async def test_load_preferences_creates_once(self, store):
        first = await load_preferences(store, AppPreferences(lead_time_days=5))
        second = await load_preferences(store)

        assert first.id == second.id
        assert second.lead_time_days == 5
        assert len(store.committed(AppPreferences)) == 1


class TestInMemoryAuditStorage:
    @pytest.mark.asyncio()
    async def test_queries(self):
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()
        obligation_id = uuid4()

        await storage.append_event(AuditEventBuilder.obligation_created(
            obligation_id, "expense", "Rent", correlation_id,
        ))
        await storage.append_event(AuditEventBuilder.schedule_generated(
            obligation_id, 12, correlation_id,
        ))
        await storage.append_event(AuditEventBuilder.notification_failed("boom", None))

        assert len(await storage.get_events_by_correlation_id(correlation_id)) == 2
        assert len(await storage.get_events_by_entity("obligation", obligation_id)) == 2
        assert len(await storage.get_recent_events(limit=1)) == 1
        assert len(storage.of_type("notification_failed")) == 1


class TestRowConversion:
    """Sheets rows map back to the same records."""

    def test_loan_obligation_row(self):
        loan = make_loan(notes="from a friend", counterparty_name="Ana")
        loan.total_payable = Decimal("1344.00")
        loan.next_due_date = date(2025, 2, 1)

        row = obligation_to_row(loan)
        restored = row_to_obligation(row)

        assert len(row) == len(OBLIGATION_COLUMNS)
        assert restored == loan

    def test_expense_without_optionals(self):
        expense = make_expense()
        row = obligation_to_row(expense)

        assert row[10] == ""
        assert row[15] == ""
        assert row_to_obligation(row).loan_terms is None

    def test_occurrence_row(self):
        occurrence = build_initial_schedule(make_expense(), TODAY)[0]
        occurrence.snooze_until = datetime(2025, 3, 14, 12, 0)

        row = occurrence_to_row(occurrence)

        assert len(row) == len(OCCURRENCE_COLUMNS)
        assert row_to_occurrence(row) == occurrence

    def test_settled_occurrence_row(self):
        occurrence = build_initial_schedule(make_expense(), TODAY)[0]
        occurrence.mark_settled(date(2025, 3, 14))

        restored = row_to_occurrence(occurrence_to_row(occurrence))

        assert restored.status == OccurrenceStatus.SETTLED
        assert restored.settled_date == date(2025, 3, 14)

    def test_preferences_row(self):
        preferences = AppPreferences(lead_time_days=0, notifications_enabled=False)
        assert row_to_preferences(preferences_to_row(preferences)) == preferences

    def test_audit_row(self):
        event = AuditEventBuilder.schedule_refreshed(uuid4(), 1, 11, 11, uuid4())
        assert row_to_event(event_to_row(event)) == event

    def test_short_row_uses_defaults(self):
        """Trailing empty cells are dropped by Sheets."""
        row = obligation_to_row(make_expense())[:10]
        restored = row_to_obligation(row)
        assert restored.total_settled == Decimal("0")
        assert restored.notes is None


class TestRowsToRecords:
    def test_blank_rows_are_skipped(self):
        occurrence = build_initial_schedule(make_expense(), TODAY)[0]
        rows = [[], ["", ""], occurrence_to_row(occurrence)]

        records = rows_to_records(rows, row_to_occurrence)

        assert list(records) == [occurrence.id]

    def test_duplicate_ids(self):
        row = occurrence_to_row(build_initial_schedule(make_expense(), TODAY)[0])
        with pytest.raises(DuplicateError):
            rows_to_records([row, list(row)], row_to_occurrence)

    def test_malformed_row(self):
        row = occurrence_to_row(build_initial_schedule(make_expense(), TODAY)[0])
        row[4] = "twelve"
        with pytest.raises(StorageError, match="Malformed row 2"):
            rows_to_records([row], row_to_occurrence)


class TestGoogleSheetsRecordStore:
    """Tests for the sheet-backed store with a fake client."""

    @pytest.fixture
    def client(self):
        return FakeSheetsClient()

    @pytest.mark.asyncio()
    async def test_save_writes_every_sheet(self, client):
        store = GoogleSheetsRecordStore(client)
        expense = make_expense()
        await store.insert(expense)
        for occurrence in build_initial_schedule(expense, TODAY):
            await store.insert(occurrence)

        await store.save()

        assert len(client.sheets["Obligations"]) == 1
        assert len(client.sheets["Occurrences"]) == 12
        assert client.sheets["Preferences"] == []

    @pytest.mark.asyncio()
    async def test_reload_from_sheets(self, client):
        expense = make_expense()
        writer = GoogleSheetsRecordStore(client)
        await writer.insert(expense)
        await writer.save()

        reader = GoogleSheetsRecordStore(client)

        assert (await reader.get_obligation(expense.id)) == expense
        assert [o.id for o in reader.committed(Obligation)] == [expense.id]

    @pytest.mark.asyncio()
    async def test_write_failure_is_storage_error(self, client):
        store = GoogleSheetsRecordStore(client)
        await store.insert(make_expense())
        client.fail_writes = True

        with pytest.raises(StorageError, match="Failed to save records"):
            await store.save()

        assert store.committed(Obligation) == []

    @pytest.mark.asyncio()
    async def test_unsaved_changes_never_reach_sheets(self, client):
        store = GoogleSheetsRecordStore(client)
        await store.insert(make_expense())
        await store.rollback()

        assert client.write_count == 0
        assert await store.fetch_all(Occurrence) == []

    @pytest.mark.asyncio()
    async def test_failed_save_leaves_every_sheet_untouched(self, client):
        expense = make_expense()
        store = GoogleSheetsRecordStore(client)
        await store.insert(expense)
        for occurrence in build_initial_schedule(expense, TODAY):
            await store.insert(occurrence)
        await store.save()
        before = {title: list(rows) for title, rows in client.sheets.items()}

        await store.delete(expense)
        for occurrence in await store.occurrences_for(expense.id):
            await store.delete(occurrence)
        client.fail_writes = True

        with pytest.raises(StorageError):
            await store.save()

        assert client.sheets == before
        assert client.write_count == 1


class TestGoogleSheetsClient:
    """Tests for the batched worksheet rewrite."""

    @pytest.fixture
    def client(self):
        settings = SimpleNamespace(credentials_path="unused.json", spreadsheet_id="sheet-id")
        client = GoogleSheetsClient(settings)
        client._spreadsheet = FakeSpreadsheet(["Obligations", "Occurrences"])
        return client

    def test_all_tables_go_out_in_one_request(self, client):
        client.replace_tables([
            ("Obligations", ["id", "title"], [["1", "Rent"]]),
            ("Occurrences", ["id"], []),
        ])

        batches = client._spreadsheet.batches
        assert len(batches) == 1
        assert batches[0]["valueInputOption"] == "RAW"
        assert [entry["range"] for entry in batches[0]["data"]] == [
            "'Obligations'!A1",
            "'Occurrences'!A1",
        ]

    def test_stale_rows_are_blanked(self, client):
        client.replace_tables([("Obligations", ["id", "title"], [["1", "Rent"]])])

        values = client._spreadsheet.batches[0]["data"][0]["values"]
        assert values[:2] == [["id", "title"], ["1", "Rent"]]
        assert values[2:] == [["", ""]] * 3

    def test_grid_grows_for_long_tables(self, client):
        rows = [[str(i)] for i in range(9)]

        client.replace_tables([("Occurrences", ["id"], rows)])

        assert client._spreadsheet.worksheets["Occurrences"].row_count == 10
        assert len(client._spreadsheet.batches[0]["data"][0]["values"]) == 10
