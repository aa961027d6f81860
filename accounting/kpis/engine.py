"""
KPI Aggregation Engine

Computes DashboardKPIs from the record store on demand.

DESIGN DECISION: Aggregation is DETERMINISTIC and never cached.
- One store snapshot per call, so a concurrent update is seen entirely or
  not at all
- Decimal arithmetic only; each converted amount is quantized to the
  reporting currency before it is added, so totals always equal the sum of
  the per-record amounts a user would see
- Derived invoice status is resolved against as_of, never written back
- A record whose amount cannot be converted is excluded and reported; the
  rest of the computation still succeeds

Two calls with the same inputs and no mutation in between return equal
results.
"""

import asyncio
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, Union

from accounting.audit import AuditLogger
from accounting.currency import ConversionSession, CurrencyNormalizer, validate_currency
from accounting.exceptions import ValidationError
from accounting.models.kpis import ZERO, AggregationExclusion, DashboardKPIs, Period
from accounting.models.ledger import Invoice, Transaction, ValidationIssue
from accounting.models.money import quantize_amount
from accounting.models.status import (
    OUTSTANDING_INVOICE_STATUSES,
    POSTED_TRANSACTION_STATUSES,
    InvoiceStatus,
    TransactionStatus,
)
from accounting.services.rates import RateUnavailableError
from accounting.store import RecordStore


class _Totals:
    """Running sums for one aggregation pass."""

    def __init__(self):
        self.revenue = ZERO
        self.expenses = ZERO
        self.cash = ZERO
        self.outstanding = ZERO
        self.overdue = ZERO
        self.transaction_count = 0
        self.invoice_count = 0
        self.outstanding_count = 0
        self.overdue_count = 0
        self.revenue_by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
        self.expenses_by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)


class KPIEngine:
    """
    Derives period- and currency-scoped summaries from the record store.

    Usage:
        engine = KPIEngine(store, CurrencyNormalizer(rate_source))
        kpis = await engine.compute_dashboard_kpis("2024-03", "USD")
    """

    def __init__(
        self,
        store: RecordStore,
        normalizer: CurrencyNormalizer,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self._store = store
        self._normalizer = normalizer
        self._audit = audit_logger or AuditLogger()
        self._clock = clock or date.today

    @staticmethod
    def _resolve_period(period: Union[Period, str]) -> Period:
        if isinstance(period, Period):
            return period
        if isinstance(period, str):
            return Period.parse(period)
        raise ValidationError(
            f"Unsupported period: {period!r}",
            issues=[ValidationIssue(
                field="period",
                issue_type="invalid_value",
                message="Period must be a Period or a 'YYYY-MM' / 'start..end' string",
                severity="error",
            )],
        )

    async def compute_dashboard_kpis(
        self,
        period: Union[Period, str],
        reporting_currency: str,
        as_of: Optional[date] = None,
    ) -> DashboardKPIs:
        """
        Compute the dashboard summary for a period.

        Args:
            period: Window to aggregate over (inclusive of both ends)
            reporting_currency: ISO code every figure is expressed in
            as_of: Day used to resolve overdue invoices (defaults to today)

        Returns:
            DashboardKPIs; zeroed if nothing falls in the period, flagged
            partial if some records could not be converted

        Raises:
            ValidationError: If the period or currency is invalid
            StoreUnavailableError: If the store cannot be read
        """
        currency = validate_currency(reporting_currency, "reporting_currency")
        period = self._resolve_period(period)
        as_of = as_of or self._clock()

        snapshot = self._store.snapshot()
        session = self._normalizer.session()
        totals = _Totals()
        exclusions: list[AggregationExclusion] = []

        for transaction in snapshot.transactions:
            if not period.contains(transaction.date):
                continue
            if transaction.status == TransactionStatus.CANCELLED:
                continue
            excluded = await self._add_transaction(
                transaction, currency, session, totals
            )
            if excluded:
                exclusions.append(excluded)

        for invoice in snapshot.invoices:
            if not period.contains(invoice.date):
                continue
            if invoice.status == InvoiceStatus.CANCELLED:
                continue
            excluded = await self._add_invoice(
                invoice, currency, as_of, session, totals
            )
            if excluded:
                exclusions.append(excluded)

        def q(amount: Decimal) -> Decimal:
            return quantize_amount(amount, currency)

        kpis = DashboardKPIs(
            period=period,
            currency=currency,
            as_of=as_of,
            revision=snapshot.revision,
            total_revenue=q(totals.revenue),
            total_expenses=q(totals.expenses),
            net_profit=q(totals.revenue - totals.expenses),
            cash_position=q(totals.cash),
            outstanding_receivables=q(totals.outstanding),
            overdue_receivables=q(totals.overdue),
            transaction_count=totals.transaction_count,
            invoice_count=totals.invoice_count,
            outstanding_invoice_count=totals.outstanding_count,
            overdue_invoice_count=totals.overdue_count,
            revenue_by_category={
                name: q(value) for name, value in sorted(totals.revenue_by_category.items())
            },
            expenses_by_category={
                name: q(value) for name, value in sorted(totals.expenses_by_category.items())
            },
            exclusions=tuple(exclusions),
        )

        # Audit storage may be a remote sheet; keep it off the event loop
        await asyncio.to_thread(
            self._audit.log_kpis_computed,
            period_label=period.label,
            currency=currency,
            revision=snapshot.revision,
            details={
                "as_of": as_of.isoformat(),
                "transaction_count": kpis.transaction_count,
                "invoice_count": kpis.invoice_count,
                "rate_lookups": session.lookups,
                "excluded_record_count": kpis.excluded_record_count,
            },
        )
        return kpis

    async def _convert(
        self,
        record: Union[Transaction, Invoice],
        amount: Decimal,
        currency: str,
        session: ConversionSession,
    ) -> Union[Decimal, AggregationExclusion]:
        """Convert at the record's own date, or describe why it was excluded."""
        try:
            return await session.normalize(amount, record.currency, currency, record.date)
        except RateUnavailableError as e:
            await asyncio.to_thread(
                self._audit.log_rate_unavailable,
                entity_type=record.kind.value,
                entity_id=record.id,
                from_currency=record.currency,
                to_currency=currency,
                error_message=str(e),
            )
            return AggregationExclusion(
                record_id=record.id,
                kind=record.kind,
                reason=str(e),
            )

    async def _add_transaction(
        self,
        transaction: Transaction,
        currency: str,
        session: ConversionSession,
        totals: _Totals,
    ) -> Optional[AggregationExclusion]:
        if transaction.status not in POSTED_TRANSACTION_STATUSES:
            # Not on the books yet: counted, no money moves
            totals.transaction_count += 1
            return None

        converted = await self._convert(transaction, transaction.amount, currency, session)
        if isinstance(converted, AggregationExclusion):
            return converted

        totals.transaction_count += 1
        if converted > 0:
            totals.revenue += converted
            if transaction.category:
                totals.revenue_by_category[transaction.category] += converted
        else:
            totals.expenses += -converted
            if transaction.category:
                totals.expenses_by_category[transaction.category] += -converted

        if transaction.status == TransactionStatus.RECONCILED:
            totals.cash += converted
        return None

    async def _add_invoice(
        self,
        invoice: Invoice,
        currency: str,
        as_of: date,
        session: ConversionSession,
        totals: _Totals,
    ) -> Optional[AggregationExclusion]:
        status = invoice.effective_status(as_of)
        if status not in OUTSTANDING_INVOICE_STATUSES:
            totals.invoice_count += 1
            return None

        converted = await self._convert(invoice, invoice.total_amount, currency, session)
        if isinstance(converted, AggregationExclusion):
            return converted

        totals.invoice_count += 1
        totals.outstanding += converted
        totals.outstanding_count += 1
        if status == InvoiceStatus.OVERDUE:
            totals.overdue += converted
            totals.overdue_count += 1
        return None
