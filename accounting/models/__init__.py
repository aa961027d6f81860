"""
Data Models Package

This package contains all Pydantic models used by the accounting core.
All data flowing through the ledger must conform to these schemas.
"""

from accounting.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from accounting.models.kpis import (
    AggregationExclusion,
    DashboardKPIs,
    Period,
)
from accounting.models.ledger import (
    Invoice,
    InvoiceCreate,
    InvoicePatch,
    LedgerRecord,
    NewRecord,
    RecordFilter,
    RecordPatch,
    Transaction,
    TransactionCreate,
    TransactionPatch,
    ValidationIssue,
)
from accounting.models.money import (
    minor_unit,
    normalize_currency_code,
    quantize_amount,
    smallest_unit,
)
from accounting.models.status import (
    InvoiceStatus,
    RecordKind,
    TransactionStatus,
    effective_invoice_status,
)

__all__ = [
    # Ledger models
    "Invoice",
    "InvoiceCreate",
    "InvoicePatch",
    "LedgerRecord",
    "NewRecord",
    "RecordFilter",
    "RecordPatch",
    "Transaction",
    "TransactionCreate",
    "TransactionPatch",
    "ValidationIssue",
    # Status model
    "InvoiceStatus",
    "RecordKind",
    "TransactionStatus",
    "effective_invoice_status",
    # KPI models
    "AggregationExclusion",
    "DashboardKPIs",
    "Period",
    # Money helpers
    "minor_unit",
    "normalize_currency_code",
    "quantize_amount",
    "smallest_unit",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
