"""Ledger query package."""

from accounting.queries.executor import InvoiceView, LedgerQueryExecutor

__all__ = [
    "InvoiceView",
    "LedgerQueryExecutor",
]
