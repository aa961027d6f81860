"""Tests for sample-data seeding and the dashboard flow."""

from datetime import date
from decimal import Decimal

import pytest

from accounting.config import AppSettings
from accounting.currency import CurrencyNormalizer
from accounting.exceptions import ValidationError
from accounting.kpis import KPIEngine
from accounting.models.audit import AuditEventType
from accounting.models.status import InvoiceStatus, RecordKind
from accounting.orchestrator import DashboardData, DashboardFlow, create_app_components
from accounting.queries import LedgerQueryExecutor
from accounting.seed import seed_sample_data
from accounting.services.rates import StaticRateSource
from accounting.services.storage import (
    InMemoryLedgerBackend,
    StorageError,
    StoreUnavailableError,
)
from accounting.store import RecordStore

from factories import make_invoice, make_transaction


SEED_DAY = date(2024, 3, 25)


class TestSeedSampleData:
    """Bootstrap only ever fills an empty ledger."""

    def test_seeds_empty_store(self, store, audit_storage):
        added = seed_sample_data(store, today=SEED_DAY)
        assert added == 9
        assert store.count(RecordKind.TRANSACTION) == 5
        assert store.count(RecordKind.INVOICE) == 4
        assert AuditEventType.SEED_APPLIED in [e.event_type for e in audit_storage.events]

    def test_dates_relative_to_today(self, store):
        seed_sample_data(store, today=SEED_DAY)
        latest = store.list(RecordKind.TRANSACTION)[0]
        assert latest.date == date(2024, 3, 23)

    def test_skips_when_transactions_exist(self, store, audit_storage):
        store.add(make_transaction())
        assert seed_sample_data(store, today=SEED_DAY) == 0
        assert store.count() == 1
        assert AuditEventType.SEED_SKIPPED in [e.event_type for e in audit_storage.events]

    def test_skips_when_invoices_exist(self, store):
        store.add(make_invoice())
        assert seed_sample_data(store, today=SEED_DAY) == 0
        assert store.count() == 1

    def test_second_seed_is_noop(self, store):
        seed_sample_data(store, today=SEED_DAY)
        revision = store.revision
        assert seed_sample_data(store, today=SEED_DAY) == 0
        assert store.revision == revision


class BrokenBackend(InMemoryLedgerBackend):
    def load(self, kind):
        raise StorageError("spreadsheet unreachable")


@pytest.fixture
def flow(store, audit_logger):
    normalizer = CurrencyNormalizer(StaticRateSource({("EUR", "USD"): "1.10"}), timeout_seconds=1.0)
    return DashboardFlow(
        store=store,
        engine=KPIEngine(store, normalizer, audit_logger),
        queries=LedgerQueryExecutor(store),
        audit_logger=audit_logger,
        settings=AppSettings(default_reporting_currency="USD", recent_activity_limit=5),
        clock=lambda: SEED_DAY,
    )


class TestDashboardFlow:
    """Loading everything the dashboard page shows."""

    @pytest.mark.asyncio
    async def test_defaults_current_month_and_currency(self, flow):
        assert flow.open(seed=True) == 9

        data = await flow.load_dashboard()

        assert isinstance(data, DashboardData)
        assert data.is_available
        assert data.kpis.period.label == "March 2024"
        assert data.kpis.currency == "USD"
        assert len(data.recent_transactions) == 5
        assert len(data.recent_invoices) == 4
        # Posted March transactions: 4500 + 1200 in, 1800 + 249.99 out
        assert data.kpis.total_revenue == Decimal("5700.00")
        assert data.kpis.total_expenses == Decimal("2049.99")
        assert data.kpis.cash_position == Decimal("2700.00")

    @pytest.mark.asyncio
    async def test_overdue_sample_invoice_badge(self, flow):
        flow.open(seed=True)
        data = await flow.load_dashboard()
        badges = {v.invoice.number: v.effective_status for v in data.recent_invoices}
        assert badges["INV-1001"] == InvoiceStatus.OVERDUE
        assert badges["INV-1002"] == InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_explicit_arguments(self, flow, store):
        store.add(make_transaction(date=date(2024, 1, 5), currency="EUR", status="approved"))
        data = await flow.load_dashboard(period="2024-01", currency="eur", recent_limit=1)
        assert data.kpis.currency == "EUR"
        assert data.kpis.total_revenue == Decimal("1000.00")
        assert len(data.recent_transactions) == 1

    @pytest.mark.asyncio
    async def test_invalid_currency_raises(self, flow):
        with pytest.raises(ValidationError):
            await flow.load_dashboard(currency="XX")

    @pytest.mark.asyncio
    async def test_store_failure_gives_empty_dashboard(self, audit_logger, audit_storage):
        store = RecordStore(BrokenBackend(), audit_logger)
        normalizer = CurrencyNormalizer(StaticRateSource(), timeout_seconds=1.0)
        flow = DashboardFlow(
            store=store,
            engine=KPIEngine(store, normalizer, audit_logger),
            queries=LedgerQueryExecutor(store),
            settings=AppSettings(),
            clock=lambda: SEED_DAY,
        )

        with pytest.raises(StoreUnavailableError):
            flow.open()

        data = await flow.load_dashboard()

        assert not data.is_available
        assert data.kpis.total_revenue == 0
        assert data.kpis.period.label == "March 2024"
        assert data.recent_transactions == []
        assert data.recent_invoices == []
        assert AuditEventType.SYSTEM_ERROR in [e.event_type for e in audit_storage.events]


class TestCreateAppComponents:
    """Factory wiring."""

    def test_without_storage_uses_memory(self):
        flow, store, sheets_client = create_app_components(use_storage=False)
        assert isinstance(flow, DashboardFlow)
        assert isinstance(store, RecordStore)
        assert sheets_client is None

    @pytest.mark.asyncio
    async def test_in_memory_components_work_end_to_end(self):
        flow, store, _ = create_app_components(use_storage=False)
        flow.open(seed=True)
        data = await flow.load_dashboard()
        assert data.is_available
        assert store.count() == 9
        store.close()
