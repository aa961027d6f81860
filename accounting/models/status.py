"""
Status & Category Model

Defines the legal lifecycle of each record kind.

DESIGN DECISION: Only caller-initiated transitions are listed in the
transition tables. The one derived transition (an invoice that is still
pending after its due date reads as overdue) is computed at query time by
effective_invoice_status() and is never written back to the store.
"""

from datetime import date
from enum import Enum
from typing import Union


class RecordKind(str, Enum):
    """The two independent record streams held by the ledger."""
    TRANSACTION = "transaction"
    INVOICE = "invoice"


class TransactionStatus(str, Enum):
    """Lifecycle state of a transaction."""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    RECONCILED = "reconciled"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvoiceStatus(str, Enum):
    """
    Lifecycle state of an invoice.

    OVERDUE is normally derived, see effective_invoice_status().
    """
    DRAFT = "draft"
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


RecordStatus = Union[TransactionStatus, InvoiceStatus]


TRANSACTION_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.DRAFT: frozenset({
        TransactionStatus.PENDING,
        TransactionStatus.APPROVED,
        TransactionStatus.CANCELLED,
    }),
    TransactionStatus.PENDING: frozenset({
        TransactionStatus.DRAFT,
        TransactionStatus.APPROVED,
        TransactionStatus.OVERDUE,
        TransactionStatus.CANCELLED,
    }),
    TransactionStatus.OVERDUE: frozenset({
        TransactionStatus.PENDING,
        TransactionStatus.APPROVED,
        TransactionStatus.CANCELLED,
    }),
    TransactionStatus.APPROVED: frozenset({
        TransactionStatus.RECONCILED,
        TransactionStatus.CANCELLED,
    }),
    TransactionStatus.RECONCILED: frozenset({
        TransactionStatus.APPROVED,
    }),
    TransactionStatus.CANCELLED: frozenset(),
}

INVOICE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({
        InvoiceStatus.PENDING,
        InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.PENDING: frozenset({
        InvoiceStatus.DRAFT,
        InvoiceStatus.PAID,
        InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.OVERDUE: frozenset({
        InvoiceStatus.PENDING,
        InvoiceStatus.PAID,
        InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

# Transitions that exist only behind an explicit override flag
INVOICE_OVERRIDE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.OVERDUE}),
}

DEFAULT_TRANSACTION_STATUS = TransactionStatus.PENDING
DEFAULT_INVOICE_STATUS = InvoiceStatus.DRAFT

# Transactions that have actually hit the books
POSTED_TRANSACTION_STATUSES = frozenset({
    TransactionStatus.APPROVED,
    TransactionStatus.RECONCILED,
})

OUTSTANDING_INVOICE_STATUSES = frozenset({
    InvoiceStatus.PENDING,
    InvoiceStatus.OVERDUE,
})


def is_transition_allowed(
    current: RecordStatus,
    target: RecordStatus,
    allow_override: bool = False,
) -> bool:
    """
    Check whether a caller may move a record from current to target.

    Staying in the same status is always allowed.
    """
    if current == target:
        return True

    if isinstance(current, TransactionStatus):
        return target in TRANSACTION_TRANSITIONS[current]

    if target in INVOICE_TRANSITIONS[current]:
        return True
    if allow_override:
        return target in INVOICE_OVERRIDE_TRANSITIONS.get(current, frozenset())
    return False


def allowed_targets(current: RecordStatus, allow_override: bool = False) -> list[str]:
    """Sorted list of status values reachable from current."""
    if isinstance(current, TransactionStatus):
        targets = set(TRANSACTION_TRANSITIONS[current])
    else:
        targets = set(INVOICE_TRANSITIONS[current])
        if allow_override:
            targets |= INVOICE_OVERRIDE_TRANSITIONS.get(current, frozenset())
    return sorted(t.value for t in targets)


def effective_invoice_status(
    status: InvoiceStatus,
    due_date: date,
    today: date,
) -> InvoiceStatus:
    """
    Resolve the status an invoice should be reported with on a given day.

    A pending invoice whose due date has passed reads as overdue.
    Paid, cancelled and draft invoices keep their persisted status.
    """
    if status == InvoiceStatus.PENDING and today > due_date:
        return InvoiceStatus.OVERDUE
    return status
