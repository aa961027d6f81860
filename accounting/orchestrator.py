"""
Main Orchestrator for the Accounting Core

This module ties together all the components and defines the end-to-end
flow the dashboard runs on every load:
1. Resolve caller defaults (current month, default currency, list size)
2. Compute KPIs for the period
3. Fetch the most recent transactions and invoices

DESIGN DECISION: Defaulting lives here, not in the core.
The record store and KPI engine keep no "current period" or "current
currency" state; they are always told what to compute.

The flow never lets a store failure reach the page: it logs the failure and
returns an empty dashboard with exactly the same shape as a full one.
"""

import asyncio
from datetime import date
from typing import Callable, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict

from accounting.audit import AuditLogger
from accounting.config import AppSettings, get_settings
from accounting.currency import CurrencyNormalizer, validate_currency
from accounting.kpis import KPIEngine
from accounting.models.kpis import DashboardKPIs, Period
from accounting.models.ledger import Transaction
from accounting.models.status import RecordKind
from accounting.queries import InvoiceView, LedgerQueryExecutor
from accounting.seed import seed_sample_data
from accounting.services.rates import (
    GoogleSheetsRateSource,
    RateSourceInterface,
    StaticRateSource,
)
from accounting.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerBackend,
    InMemoryAuditStorage,
    InMemoryLedgerBackend,
    LedgerBackendInterface,
    StoreUnavailableError,
)
from accounting.store import RecordStore


logger = structlog.get_logger("accounting.orchestrator")


class DashboardData(BaseModel):
    """Everything the dashboard page renders."""
    model_config = ConfigDict(frozen=True)

    kpis: DashboardKPIs
    recent_transactions: list[Transaction] = []
    recent_invoices: list[InvoiceView] = []
    error_message: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.error_message is None


class DashboardFlow:
    """
    Orchestrates loading the dashboard.

    Flow:
    1. Open → initialize the store (and optionally seed sample data)
    2. Load → KPIs + recent activity
    """

    def __init__(
        self,
        store: RecordStore,
        engine: KPIEngine,
        queries: LedgerQueryExecutor,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self._store = store
        self._engine = engine
        self._queries = queries
        self._audit_logger = audit_logger or store.audit_logger
        self._settings = settings or get_settings().app
        self._clock = clock or date.today

    def open(self, seed: bool = False) -> int:
        """
        Initialize the store, seeding sample data into an empty ledger if asked.

        Returns:
            Number of sample records added

        Raises:
            StoreUnavailableError: If the backend cannot be loaded
        """
        self._store.initialize()
        if not seed:
            return 0
        return seed_sample_data(self._store, today=self._clock())

    async def load_dashboard(
        self,
        period: Optional[Union[Period, str]] = None,
        currency: Optional[str] = None,
        as_of: Optional[date] = None,
        recent_limit: Optional[int] = None,
    ) -> DashboardData:
        """
        Load KPIs and recent activity.

        Raises:
            ValidationError: If period or currency is invalid. Store
                failures do not raise; they produce an empty dashboard.
        """
        as_of = as_of or self._clock()
        if period is None:
            period = Period.containing(as_of)
        elif isinstance(period, str):
            period = Period.parse(period)
        currency = validate_currency(
            currency or self._settings.default_reporting_currency,
            "currency",
        )
        if recent_limit is None:
            recent_limit = self._settings.recent_activity_limit

        try:
            kpis = await self._engine.compute_dashboard_kpis(period, currency, as_of)
            recent_transactions = self._queries.recent(RecordKind.TRANSACTION, recent_limit)
            recent_invoices = self._queries.recent_invoice_views(recent_limit, as_of)
        except StoreUnavailableError as e:
            await asyncio.to_thread(
                self._audit_logger.log_error,
                error_type="dashboard_unavailable",
                error_message=str(e),
                details={"period": period.label, "currency": currency},
            )
            return DashboardData(
                kpis=DashboardKPIs.empty(period, currency, as_of),
                error_message=str(e),
            )

        return DashboardData(
            kpis=kpis,
            recent_transactions=recent_transactions,
            recent_invoices=recent_invoices,
        )


def create_app_components(
    use_storage: bool = True,
) -> tuple[DashboardFlow, RecordStore, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the configured persistent backend.
                    Set to False for testing without storage.

    Returns:
        (dashboard_flow, record_store, sheets_client)
        The store is not initialized yet; call dashboard_flow.open().
    """
    settings = get_settings()
    sheets_client = None
    backend: Optional[LedgerBackendInterface] = None
    audit_logger = None

    if use_storage and settings.storage.backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            backend = GoogleSheetsLedgerBackend(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            backend = None

    if backend is None:
        backend = InMemoryLedgerBackend()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    rate_source: RateSourceInterface
    if sheets_client is not None and settings.rates.source == "google_sheets":
        rate_source = GoogleSheetsRateSource(sheets_client)
    else:
        rate_source = StaticRateSource()

    store = RecordStore(backend, audit_logger=audit_logger)
    normalizer = CurrencyNormalizer(
        rate_source,
        timeout_seconds=settings.rates.lookup_timeout_seconds,
    )
    engine = KPIEngine(store, normalizer, audit_logger=audit_logger)
    queries = LedgerQueryExecutor(store)

    dashboard_flow = DashboardFlow(
        store=store,
        engine=engine,
        queries=queries,
        audit_logger=audit_logger,
    )

    return dashboard_flow, store, sheets_client
