"""Tests for the ledger query layer."""

from datetime import date
from decimal import Decimal

import pytest

from accounting.models.ledger import RecordFilter
from accounting.models.status import InvoiceStatus, RecordKind
from accounting.queries import LedgerQueryExecutor

from factories import make_invoice, make_transaction


@pytest.fixture
def queries(store):
    return LedgerQueryExecutor(store, clock=lambda: date(2024, 2, 1))


class TestRecent:
    """Most recent records for the dashboard lists."""

    def test_fewer_records_than_requested(self, store, queries):
        ids = [
            store.add(make_transaction(date=date(2024, 3, day)))
            for day in (5, 20, 12)
        ]
        recent = queries.recent(RecordKind.TRANSACTION, 5)
        assert [r.id for r in recent] == [ids[1], ids[2], ids[0]]

    def test_limit_respected(self, store, queries):
        for day in range(1, 8):
            store.add(make_transaction(date=date(2024, 3, day)))
        recent = queries.recent("transaction", 5)
        assert len(recent) == 5
        assert recent[0].date == date(2024, 3, 7)

    @pytest.mark.parametrize("n", [0, -3])
    def test_non_positive_n(self, store, queries, n):
        store.add(make_transaction())
        assert queries.recent(RecordKind.TRANSACTION, n) == []

    def test_empty_store(self, queries):
        assert queries.recent(RecordKind.INVOICE, 5) == []


class TestInvoiceQueries:
    """Status-dependent queries use the effective status."""

    @pytest.fixture
    def invoices(self, store):
        return {
            "overdue": store.add(make_invoice(
                number="INV-001", status=InvoiceStatus.PENDING,
            )),
            "pending": store.add(make_invoice(
                number="INV-002", status=InvoiceStatus.PENDING,
                date=date(2024, 1, 20), due_date=date(2024, 2, 20),
            )),
            "paid": store.add(make_invoice(
                number="INV-003", status=InvoiceStatus.PAID, customer_name="Globex",
            )),
        }

    def test_overdue_filter_finds_derived_overdue(self, store, queries, invoices):
        revision = store.revision
        overdue = queries.invoices(RecordFilter(status="overdue"))
        assert [i.id for i in overdue] == [invoices["overdue"]]
        assert store.revision == revision

    def test_pending_filter_excludes_past_due(self, queries, invoices):
        pending = queries.invoices(RecordFilter(status="pending"))
        assert [i.id for i in pending] == [invoices["pending"]]

    def test_as_of_overrides_clock(self, queries, invoices):
        pending = queries.invoices(RecordFilter(status="pending"), as_of=date(2024, 1, 10))
        assert {i.id for i in pending} == {invoices["overdue"], invoices["pending"]}

    def test_views_carry_effective_status(self, queries, invoices):
        views = {v.invoice.id: v for v in queries.invoice_views()}
        assert views[invoices["overdue"]].effective_status == InvoiceStatus.OVERDUE
        assert views[invoices["overdue"]].invoice.status == InvoiceStatus.PENDING
        assert views[invoices["overdue"]].is_overdue
        assert views[invoices["paid"]].effective_status == InvoiceStatus.PAID

    def test_pagination_after_status_filter(self, store, queries, invoices):
        page = queries.invoices(RecordFilter(status="pending", limit=1), as_of=date(2024, 1, 10))
        assert len(page) == 1
        assert page[0].id == invoices["pending"]

    def test_customer_filter(self, queries, invoices):
        found = queries.invoices(RecordFilter(customer="glob"))
        assert [i.id for i in found] == [invoices["paid"]]

    def test_recent_invoice_views(self, queries, invoices):
        views = queries.recent_invoice_views(2)
        assert len(views) == 2
        assert views[0].invoice.id == invoices["pending"]
        assert views[1].invoice.id in {invoices["overdue"], invoices["paid"]}
        assert queries.recent_invoice_views(0) == []


class TestTransactionQueries:

    def test_filter_by_currency_and_folder(self, store, queries):
        store.add(make_transaction(currency="EUR", folder="Travel"))
        keep = store.add(make_transaction(currency="USD", folder="Travel", amount=Decimal("-12.50")))
        store.add(make_transaction(currency="USD", folder="Clients"))

        found = queries.transactions(RecordFilter(currency="usd", folder="travel"))
        assert [t.id for t in found] == [keep]

    def test_get_passthrough(self, store, queries):
        tx_id = store.add(make_transaction())
        assert queries.get(tx_id).id == tx_id
