"""Tests for persistence backends and the audit logger."""

from decimal import Decimal
from uuid import uuid4

import pytest

from accounting.audit import AuditLogger
from accounting.models.audit import AuditEventBuilder, AuditEventType
from accounting.models.ledger import Invoice, Transaction
from accounting.models.status import InvoiceStatus, RecordKind, TransactionStatus
from accounting.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerBackend,
    InMemoryAuditStorage,
    InMemoryLedgerBackend,
    NotFoundError,
)
from accounting.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    INVOICE_COLUMNS,
    TRANSACTION_COLUMNS,
)
from accounting.store import RecordStore

from factories import make_invoice, make_transaction


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the backends."""

    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def col_values(self, col):
        return [row[col - 1] if len(row) >= col else "" for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update(self, range_name=None, values=None, value_input_option=None):
        idx = int(range_name.lstrip("A"))
        self.rows[idx - 1] = [str(v) for v in values[0]]

    def delete_rows(self, idx):
        del self.rows[idx - 1]


class FakeSheetsClient:
    def __init__(self):
        self.sheets = {
            RecordKind.TRANSACTION: FakeWorksheet(TRANSACTION_COLUMNS),
            RecordKind.INVOICE: FakeWorksheet(INVOICE_COLUMNS),
        }
        self.audit_sheet = FakeWorksheet(AUDIT_COLUMNS)

    def get_ledger_sheet(self, kind):
        return self.sheets[kind]

    def get_audit_sheet(self):
        return self.audit_sheet


def transaction(**overrides) -> Transaction:
    status = overrides.pop("status", TransactionStatus.APPROVED)
    return Transaction(
        id=uuid4(),
        status=status,
        **make_transaction(**overrides).model_dump(exclude={"status"}),
    )


def invoice(**overrides) -> Invoice:
    return Invoice(
        id=uuid4(),
        status=InvoiceStatus.PENDING,
        **make_invoice(**overrides).model_dump(exclude={"status"}),
    )


class TestInMemoryLedgerBackend:

    def test_upsert_and_load(self):
        backend = InMemoryLedgerBackend()
        tx = transaction()
        backend.upsert(tx)
        rows = backend.load(RecordKind.TRANSACTION)
        assert rows == [tx.model_dump(mode="json")]

    def test_upsert_replaces(self):
        backend = InMemoryLedgerBackend()
        tx = transaction()
        backend.upsert(tx)
        backend.upsert(tx.model_copy(update={"description": "Changed"}))
        rows = backend.load(RecordKind.TRANSACTION)
        assert len(rows) == 1
        assert rows[0]["description"] == "Changed"

    def test_remove_missing(self):
        with pytest.raises(NotFoundError):
            InMemoryLedgerBackend().remove(RecordKind.INVOICE, uuid4())

    def test_loaded_rows_are_copies(self):
        backend = InMemoryLedgerBackend()
        backend.upsert(transaction())
        backend.load(RecordKind.TRANSACTION)[0]["amount"] = "0"
        assert backend.load(RecordKind.TRANSACTION)[0]["amount"] != "0"


class TestGoogleSheetsLedgerBackend:
    """Ledger rows in worksheets, against a fake gspread client."""

    @pytest.fixture
    def client(self):
        return FakeSheetsClient()

    @pytest.fixture
    def backend(self, client):
        return GoogleSheetsLedgerBackend(client)

    def test_row_order_follows_columns(self, backend, client):
        tx = transaction(category="", folder="")
        backend.upsert(tx)
        row = client.sheets[RecordKind.TRANSACTION].rows[1]
        assert row[0] == str(tx.id)
        assert row[TRANSACTION_COLUMNS.index("amount")] == "1000.00"
        assert row[TRANSACTION_COLUMNS.index("status")] == "approved"

    def test_round_trip_through_sheet(self, backend):
        tx = transaction(amount=Decimal("-42.10"), category="", folder="")
        inv = invoice()
        backend.upsert(tx)
        backend.upsert(inv)

        assert Transaction.model_validate(backend.load(RecordKind.TRANSACTION)[0]) == tx
        assert Invoice.model_validate(backend.load(RecordKind.INVOICE)[0]) == inv

    def test_update_in_place(self, backend, client):
        tx = transaction()
        other = transaction()
        backend.upsert(tx)
        backend.upsert(other)
        backend.upsert(tx.model_copy(update={"description": "Updated"}))

        sheet = client.sheets[RecordKind.TRANSACTION]
        assert len(sheet.rows) == 3
        loaded = {row["id"]: row for row in backend.load(RecordKind.TRANSACTION)}
        assert loaded[str(tx.id)]["description"] == "Updated"

    def test_remove(self, backend, client):
        tx = transaction()
        backend.upsert(tx)
        backend.remove(RecordKind.TRANSACTION, tx.id)
        assert backend.load(RecordKind.TRANSACTION) == []

    def test_remove_missing_row(self, backend):
        with pytest.raises(NotFoundError):
            backend.remove(RecordKind.TRANSACTION, uuid4())

    def test_store_on_sheets_skips_bad_rows(self, backend, client, validator):
        backend.upsert(transaction())
        client.sheets[RecordKind.TRANSACTION].rows.append(
            [str(uuid4()), "2024-03-01", "Broken", "abc", "USD", "", "", "approved", "", ""]
        )
        client.sheets[RecordKind.TRANSACTION].rows.append(["", "", ""])

        store = RecordStore(backend, validator=validator).initialize()
        assert store.count(RecordKind.TRANSACTION) == 1
        assert store.skipped_on_load == 1


class TestAuditStorage:

    def test_in_memory_recent_newest_first(self):
        storage = InMemoryAuditStorage()
        first = AuditEventBuilder.store_closed(1)
        second = AuditEventBuilder.store_closed(2)
        storage.append_event(first)
        storage.append_event(second)
        assert storage.get_recent_events(limit=1) == [second]

    def test_sheets_audit_round_trip(self):
        client = FakeSheetsClient()
        storage = GoogleSheetsAuditStorage(client)
        record_id = uuid4()
        event = AuditEventBuilder.record_updated(
            entity_type="invoice",
            entity_id=record_id,
            revision=3,
            changed_fields=["status"],
        )
        assert storage.append_event(event)

        events = storage.get_events_by_entity("invoice", record_id)
        assert len(events) == 1
        assert events[0].event_id == event.event_id
        assert events[0].details == {"changed_fields": ["status"]}
        assert events[0].revision == 3

    def test_sheets_audit_skips_malformed_rows(self):
        client = FakeSheetsClient()
        client.audit_sheet.rows.append(["not-a-uuid", "x"])
        storage = GoogleSheetsAuditStorage(client)
        storage.append_event(AuditEventBuilder.store_closed(0))
        assert len(storage.get_recent_events()) == 1


class FailingAuditStorage(AuditStorageInterface):
    def append_event(self, event):
        raise RuntimeError("audit sheet unavailable")

    def get_events_by_entity(self, entity_type, entity_id):
        return []

    def get_recent_events(self, limit=100):
        return []


class TestAuditLogger:

    def test_persists_events(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        logger.log_store_loaded(transaction_count=2, invoice_count=1, skipped=0)
        assert [e.event_type for e in storage.events] == [AuditEventType.STORE_LOADED]

    def test_local_only(self):
        assert AuditLogger().log(AuditEventBuilder.store_closed(0)) is True

    def test_storage_failure_never_raises(self):
        logger = AuditLogger(FailingAuditStorage())
        assert logger.log(AuditEventBuilder.store_closed(0)) is False

    def test_store_keeps_working_when_audit_fails(self, validator):
        store = RecordStore(
            InMemoryLedgerBackend(),
            audit_logger=AuditLogger(FailingAuditStorage()),
            validator=validator,
        ).initialize()
        tx_id = store.add(make_transaction())
        assert store.get(tx_id).id == tx_id
