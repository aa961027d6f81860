"""
Ledger Query Layer

Read-side access to the record store for the presentation layer.

DESIGN DECISION: Queries only return what the store holds.
- Results are immutable records in the store's stable order
  (most recent date first, ties by id)
- Status-dependent invoice queries use the EFFECTIVE status, so a pending
  invoice past its due date is found by a status="overdue" filter even
  though nothing was written to the store
- An empty result is an empty list, never an error
"""

from datetime import date
from typing import Callable, Optional, Union

from pydantic import BaseModel, ConfigDict

from accounting.models.ledger import Invoice, LedgerRecord, RecordFilter, Transaction
from accounting.models.status import InvoiceStatus, RecordKind
from accounting.store import RecordStore


class InvoiceView(BaseModel):
    """An invoice paired with the status it should be displayed with."""
    model_config = ConfigDict(frozen=True)

    invoice: Invoice
    effective_status: InvoiceStatus

    @property
    def is_overdue(self) -> bool:
        return self.effective_status == InvoiceStatus.OVERDUE


class LedgerQueryExecutor:
    """
    Executes read queries against the record store.

    GUARANTEES:
    - Only returns real records from the store
    - Never resolves derived status by writing to the store
    - Clear empty results if nothing matches
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Optional[Callable[[], date]] = None,
    ):
        self._store = store
        self._clock = clock or date.today

    def recent(self, kind: Union[RecordKind, str], n: int) -> list[LedgerRecord]:
        """At most n records of a kind, most recent first. n <= 0 gives []."""
        if n <= 0:
            return []
        return self._store.list(kind, RecordFilter(limit=n))

    def get(self, record_id) -> LedgerRecord:
        return self._store.get(record_id)

    def transactions(
        self,
        record_filter: Optional[RecordFilter] = None,
    ) -> list[Transaction]:
        """Filtered, paginated transactions."""
        return self._store.list(RecordKind.TRANSACTION, record_filter)

    def invoices(
        self,
        record_filter: Optional[RecordFilter] = None,
        as_of: Optional[date] = None,
    ) -> list[Invoice]:
        """
        Filtered, paginated invoices.

        The status filter is matched against the effective status as of
        as_of (default today).
        """
        return [view.invoice for view in self.invoice_views(record_filter, as_of)]

    def invoice_views(
        self,
        record_filter: Optional[RecordFilter] = None,
        as_of: Optional[date] = None,
    ) -> list[InvoiceView]:
        """Like invoices(), with each invoice's effective status attached."""
        as_of = as_of or self._clock()
        invoices = self._store.list(
            RecordKind.INVOICE,
            record_filter or RecordFilter(),
            as_of=as_of,
        )
        return [
            InvoiceView(invoice=invoice, effective_status=invoice.effective_status(as_of))
            for invoice in invoices
        ]

    def recent_invoice_views(
        self,
        n: int,
        as_of: Optional[date] = None,
    ) -> list[InvoiceView]:
        """The n most recent invoices with their effective status."""
        if n <= 0:
            return []
        return self.invoice_views(RecordFilter(limit=n), as_of)
