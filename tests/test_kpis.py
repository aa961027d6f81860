"""Tests for the KPI aggregation engine."""

import asyncio
import time
from datetime import date
from decimal import Decimal

import pytest

from accounting.audit import AuditLogger
from accounting.currency import CurrencyNormalizer
from accounting.exceptions import PartialAggregationError, ValidationError
from accounting.kpis import KPIEngine
from accounting.models.audit import AuditEventType
from accounting.models.kpis import DashboardKPIs, Period
from accounting.models.ledger import RecordFilter
from accounting.models.status import (
    InvoiceStatus,
    POSTED_TRANSACTION_STATUSES,
    RecordKind,
    TransactionStatus,
)
from accounting.services.rates import RateSourceInterface, StaticRateSource
from accounting.services.storage import InMemoryAuditStorage

from factories import make_invoice, make_transaction


APPROVED = TransactionStatus.APPROVED
RECONCILED = TransactionStatus.RECONCILED


class HangingRateSource(RateSourceInterface):
    async def get_rate(self, base, quote, as_of):
        await asyncio.sleep(10)
        return Decimal("1")


class SlowAuditStorage(InMemoryAuditStorage):
    """Audit trail behind a slow remote write."""

    def append_event(self, event):
        time.sleep(0.3)
        return super().append_event(event)


@pytest.fixture
def rate_source():
    source = StaticRateSource()
    source.add_rates([
        (date(2024, 1, 1), "EUR", "USD", "1.0835"),
        (date(2024, 3, 10), "EUR", "USD", "1.0921"),
        (date(2024, 1, 1), "GBP", "USD", "1.2671"),
        (date(2024, 1, 1), "GBP", "EUR", "1.1695"),
    ])
    return source


@pytest.fixture
def engine(store, rate_source, audit_logger):
    normalizer = CurrencyNormalizer(rate_source, timeout_seconds=1.0)
    return KPIEngine(store, normalizer, audit_logger, clock=lambda: date(2024, 4, 1))


class TestRevenueAndExpenses:
    """Transaction-driven figures."""

    @pytest.mark.asyncio
    async def test_march_example(self, store, engine):
        store.add(make_transaction(
            date=date(2024, 3, 1), amount=Decimal("1000"), category="sales", status=APPROVED,
        ))
        store.add(make_transaction(
            date=date(2024, 3, 15), amount=Decimal("-200"), category="rent", status=APPROVED,
        ))

        kpis = await engine.compute_dashboard_kpis(Period.month(2024, 3), "USD")

        assert kpis.total_revenue == Decimal("1000")
        assert kpis.total_expenses == Decimal("200")
        assert kpis.net_profit == Decimal("800")
        assert kpis.transaction_count == 2
        assert kpis.revenue_by_category == {"sales": Decimal("1000.00")}
        assert kpis.expenses_by_category == {"rent": Decimal("200.00")}
        assert not kpis.is_partial

    @pytest.mark.asyncio
    async def test_period_string_accepted(self, store, engine):
        store.add(make_transaction(date=date(2024, 3, 31), status=APPROVED))
        kpis = await engine.compute_dashboard_kpis("2024-03", "usd")
        assert kpis.period.label == "March 2024"
        assert kpis.currency == "USD"
        assert kpis.total_revenue == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_period_bounds_inclusive(self, store, engine):
        store.add(make_transaction(date=date(2024, 2, 29), status=APPROVED))
        store.add(make_transaction(date=date(2024, 3, 1), status=APPROVED))
        store.add(make_transaction(date=date(2024, 3, 31), status=APPROVED))
        store.add(make_transaction(date=date(2024, 4, 1), status=APPROVED))

        kpis = await engine.compute_dashboard_kpis("2024-03", "USD")
        assert kpis.transaction_count == 2
        assert kpis.total_revenue == Decimal("2000.00")

    @pytest.mark.asyncio
    async def test_only_posted_transactions_move_money(self, store, engine):
        store.add(make_transaction(status=TransactionStatus.DRAFT))
        store.add(make_transaction(status=TransactionStatus.PENDING))
        store.add(make_transaction(status=TransactionStatus.CANCELLED))
        store.add(make_transaction(amount=Decimal("300.00"), status=APPROVED))

        kpis = await engine.compute_dashboard_kpis("2024-03", "USD")
        assert kpis.total_revenue == Decimal("300.00")
        # Cancelled records are not counted at all
        assert kpis.transaction_count == 3

    @pytest.mark.asyncio
    async def test_cash_position_counts_reconciled_only(self, store, engine):
        store.add(make_transaction(amount=Decimal("1000.00"), status=RECONCILED))
        store.add(make_transaction(amount=Decimal("-250.00"), status=RECONCILED))
        store.add(make_transaction(amount=Decimal("400.00"), status=APPROVED))

        kpis = await engine.compute_dashboard_kpis("2024-03", "USD")
        assert kpis.cash_position == Decimal("750.00")
        assert kpis.net_profit == Decimal("1150.00")

    @pytest.mark.asyncio
    async def test_uncategorized_left_out_of_breakdown(self, store, engine):
        store.add(make_transaction(category="", status=APPROVED))
        kpis = await engine.compute_dashboard_kpis("2024-03", "USD")
        assert kpis.total_revenue == Decimal("1000.00")
        assert kpis.revenue_by_category == {}


class TestInvoices:
    """Outstanding and overdue receivables."""

    @pytest.mark.asyncio
    async def test_pending_past_due_reads_overdue(self, store, engine):
        inv_id = store.add(make_invoice(status=InvoiceStatus.PENDING))
        revision = store.revision

        kpis = await engine.compute_dashboard_kpis(
            "2024-01", "USD", as_of=date(2024, 2, 1)
        )

        assert kpis.outstanding_receivables == Decimal("500.00")
        assert kpis.overdue_receivables == Decimal("500.00")
        assert kpis.overdue_invoice_count == 1
        assert kpis.outstanding_invoice_count == 1
        # Derived status is never written back
        assert store.revision == revision
        assert store.get(inv_id).status == InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_pending_before_due_is_outstanding_only(self, store, engine):
        store.add(make_invoice(status=InvoiceStatus.PENDING))
        kpis = await engine.compute_dashboard_kpis(
            "2024-01", "USD", as_of=date(2024, 1, 10)
        )
        assert kpis.outstanding_receivables == Decimal("500.00")
        assert kpis.overdue_receivables == 0
        assert kpis.overdue_invoice_count == 0

    @pytest.mark.asyncio
    async def test_paid_draft_and_cancelled_not_outstanding(self, store, engine):
        store.add(make_invoice(number="INV-1", status=InvoiceStatus.PAID))
        store.add(make_invoice(number="INV-2", status=InvoiceStatus.DRAFT))
        store.add(make_invoice(number="INV-3", status=InvoiceStatus.CANCELLED))

        kpis = await engine.compute_dashboard_kpis("2024-01", "USD", as_of=date(2024, 2, 1))
        assert kpis.outstanding_receivables == 0
        assert kpis.invoice_count == 2

    @pytest.mark.asyncio
    async def test_default_as_of_is_engine_clock(self, store, engine):
        store.add(make_invoice(status=InvoiceStatus.PENDING))
        kpis = await engine.compute_dashboard_kpis("2024-01", "USD")
        assert kpis.as_of == date(2024, 4, 1)
        assert kpis.overdue_invoice_count == 1


class TestMultiCurrency:
    """Conversion, partial results and the round-trip law."""

    @pytest.mark.asyncio
    async def test_rate_on_record_date_used(self, store, engine):
        store.add(make_transaction(
            date=date(2024, 3, 5), amount=Decimal("100.00"), currency="EUR", status=APPROVED,
        ))
        store.add(make_transaction(
            date=date(2024, 3, 12), amount=Decimal("100.00"), currency="EUR", status=APPROVED,
        ))

        kpis = await engine.compute_dashboard_kpis("2024-03", "USD")
        assert kpis.total_revenue == Decimal("108.35") + Decimal("109.21")

    @pytest.mark.asyncio
    async def test_missing_rate_excludes_record(self, store, engine, audit_storage):
        store.add(make_transaction(amount=Decimal("1000.00"), status=APPROVED))
        chf_id = store.add(make_transaction(
            amount=Decimal("50.00"), currency="CHF", status=APPROVED,
        ))

        kpis = await engine.compute_dashboard_kpis("2024-03", "USD")

        assert kpis.total_revenue == Decimal("1000.00")
        assert kpis.is_partial
        assert kpis.excluded_record_count == 1
        assert kpis.exclusions[0].record_id == chf_id
        assert kpis.exclusions[0].kind == RecordKind.TRANSACTION
        with pytest.raises(PartialAggregationError):
            kpis.raise_if_partial()

        types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.RATE_UNAVAILABLE in types
        assert AuditEventType.KPIS_COMPUTED in types

    @pytest.mark.asyncio
    async def test_rate_timeout_excludes_record(self, store, audit_logger):
        store.add(make_transaction(currency="EUR", status=APPROVED))
        store.add(make_transaction(amount=Decimal("10.00"), status=APPROVED))
        engine = KPIEngine(
            store,
            CurrencyNormalizer(HangingRateSource(), timeout_seconds=0.01),
            audit_logger,
        )

        kpis = await engine.compute_dashboard_kpis("2024-03", "USD")
        assert kpis.total_revenue == Decimal("10.00")
        assert kpis.excluded_record_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("currency", ["USD", "EUR", "GBP"])
    async def test_total_equals_sum_of_converted_records(self, store, rate_source, engine, currency):
        amounts = ["19.99", "0.01", "333.33", "1250.10", "7.77"]
        for i, amount in enumerate(amounts):
            store.add(make_transaction(
                date=date(2024, 3, 1 + i),
                amount=Decimal(amount),
                currency=["USD", "EUR", "GBP"][i % 3],
                status=APPROVED,
            ))

        kpis = await engine.compute_dashboard_kpis("2024-03", currency)

        normalizer = CurrencyNormalizer(rate_source, timeout_seconds=1.0)
        converted = []
        for tx in store.list(
            RecordKind.TRANSACTION,
            RecordFilter(date_from=date(2024, 3, 1), date_to=date(2024, 3, 31)),
        ):
            if tx.status in POSTED_TRANSACTION_STATUSES and tx.amount > 0:
                converted.append(await normalizer.normalize(tx.amount, tx.currency, currency, tx.date))
        assert kpis.total_revenue == sum(converted, Decimal("0"))
        assert not kpis.is_partial

    @pytest.mark.asyncio
    async def test_invalid_reporting_currency(self, engine):
        with pytest.raises(ValidationError):
            await engine.compute_dashboard_kpis("2024-03", "DOLLAR")


class TestDeterminism:
    """Empty periods and repeat computations."""

    @pytest.mark.asyncio
    async def test_empty_period_is_zeroed_snapshot(self, store, engine):
        store.add(make_transaction(status=APPROVED))
        kpis = await engine.compute_dashboard_kpis("2030-01", "USD")
        expected = DashboardKPIs.empty(
            Period.month(2030, 1), "USD", date(2024, 4, 1), revision=store.revision,
        )
        assert kpis == expected

    @pytest.mark.asyncio
    async def test_repeat_computation_identical(self, store, engine):
        store.add(make_transaction(currency="EUR", status=APPROVED))
        store.add(make_invoice(status=InvoiceStatus.PENDING, date=date(2024, 3, 2), due_date=date(2024, 3, 20)))

        first = await engine.compute_dashboard_kpis("2024-03", "USD")
        second = await engine.compute_dashboard_kpis("2024-03", "USD")
        assert first == second
        assert first.revision == second.revision

    @pytest.mark.asyncio
    async def test_mutation_reflected_in_next_computation(self, store, engine):
        tx_id = store.add(make_transaction(status=APPROVED))
        before = await engine.compute_dashboard_kpis("2024-03", "USD")
        store.update(tx_id, {"status": "cancelled"})
        after = await engine.compute_dashboard_kpis("2024-03", "USD")

        assert before.total_revenue == Decimal("1000.00")
        assert after.total_revenue == 0
        assert after.revision == before.revision + 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("period", ["2024-13", "March", 202403])
    async def test_invalid_period(self, engine, period):
        with pytest.raises(ValidationError):
            await engine.compute_dashboard_kpis(period, "USD")


class TestAuditIsolation:
    """Audit persistence runs beside the event loop, not on it."""

    @pytest.mark.asyncio
    async def test_slow_audit_storage_does_not_stall_loop(self, store):
        store.add(make_transaction(status=APPROVED))
        store.add(make_transaction(currency="CHF", status=APPROVED))
        audit_storage = SlowAuditStorage()
        engine = KPIEngine(
            store,
            CurrencyNormalizer(StaticRateSource(), timeout_seconds=1.0),
            AuditLogger(audit_storage),
        )

        loop = asyncio.get_running_loop()
        ticks = []

        async def ticker():
            while True:
                ticks.append(loop.time())
                await asyncio.sleep(0.01)

        task = asyncio.create_task(ticker())
        await asyncio.sleep(0)
        kpis = await engine.compute_dashboard_kpis("2024-03", "USD")
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        # Two slow writes: one rate_unavailable, one kpis_computed
        assert [e.event_type for e in audit_storage.events] == [
            AuditEventType.RATE_UNAVAILABLE,
            AuditEventType.KPIS_COMPUTED,
        ]
        assert kpis.excluded_record_count == 1
        assert max(b - a for a, b in zip(ticks, ticks[1:])) < 0.2
