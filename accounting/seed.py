"""
Sample Data Bootstrap

Fills an empty ledger with a small, realistic set of records so a fresh
dashboard has something to show.

The core never calls this on its own. It only writes when BOTH record kinds
are empty, and never touches existing records.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from accounting.models.ledger import InvoiceCreate, TransactionCreate
from accounting.models.status import InvoiceStatus, RecordKind, TransactionStatus
from accounting.store import RecordStore


def sample_transactions(today: date) -> list[TransactionCreate]:
    """Sample transactions dated relative to today."""
    def days_ago(n: int) -> date:
        return today - timedelta(days=n)

    return [
        TransactionCreate(
            date=days_ago(20),
            description="Consulting retainer - Acme Corp",
            amount=Decimal("4500.00"),
            currency="USD",
            category="Sales",
            folder="Clients",
            status=TransactionStatus.RECONCILED,
        ),
        TransactionCreate(
            date=days_ago(15),
            description="Office rent",
            amount=Decimal("-1800.00"),
            currency="USD",
            category="Rent",
            folder="Operations",
            status=TransactionStatus.RECONCILED,
        ),
        TransactionCreate(
            date=days_ago(10),
            description="Software subscriptions",
            amount=Decimal("-249.99"),
            currency="USD",
            category="Software",
            folder="Operations",
            status=TransactionStatus.APPROVED,
        ),
        TransactionCreate(
            date=days_ago(5),
            description="Workshop fee - Globex",
            amount=Decimal("1200.00"),
            currency="USD",
            category="Sales",
            folder="Clients",
            status=TransactionStatus.APPROVED,
        ),
        TransactionCreate(
            date=days_ago(2),
            description="Team lunch",
            amount=Decimal("-86.40"),
            currency="USD",
            category="Meals",
            folder="Operations",
            status=TransactionStatus.PENDING,
        ),
    ]


def sample_invoices(today: date) -> list[InvoiceCreate]:
    """Sample invoices dated relative to today."""
    return [
        InvoiceCreate(
            number="INV-1001",
            customer_name="Acme Corp",
            date=today - timedelta(days=30),
            due_date=today - timedelta(days=15),
            total_amount=Decimal("2500.00"),
            currency="USD",
            status=InvoiceStatus.PENDING,
        ),
        InvoiceCreate(
            number="INV-1002",
            customer_name="Globex Ltd",
            date=today - timedelta(days=7),
            due_date=today + timedelta(days=23),
            total_amount=Decimal("1800.00"),
            currency="USD",
            status=InvoiceStatus.PENDING,
        ),
        InvoiceCreate(
            number="INV-1003",
            customer_name="Initech",
            date=today - timedelta(days=40),
            due_date=today - timedelta(days=10),
            total_amount=Decimal("950.00"),
            currency="USD",
            status=InvoiceStatus.PAID,
        ),
        InvoiceCreate(
            number="INV-1004",
            customer_name="Umbrella Inc",
            date=today - timedelta(days=1),
            due_date=today + timedelta(days=29),
            total_amount=Decimal("3200.00"),
            currency="USD",
            status=InvoiceStatus.DRAFT,
        ),
    ]


def seed_sample_data(store: RecordStore, today: Optional[date] = None) -> int:
    """
    Add the sample records if the ledger is completely empty.

    Returns:
        Number of records added (0 if the ledger already had data)
    """
    today = today or date.today()
    audit = store.audit_logger

    transaction_count = store.count(RecordKind.TRANSACTION)
    invoice_count = store.count(RecordKind.INVOICE)
    if transaction_count or invoice_count:
        audit.log_seed(False, transaction_count, invoice_count)
        return 0

    transactions = sample_transactions(today)
    invoices = sample_invoices(today)
    for transaction in transactions:
        store.add(transaction)
    for invoice in invoices:
        store.add(invoice)

    audit.log_seed(True, len(transactions), len(invoices))
    return len(transactions) + len(invoices)
