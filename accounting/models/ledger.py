"""
Ledger Data Models

These models define the schemas for every record the ledger holds.
They are designed to:
1. Reject malformed records at the boundary
2. Be immutable once built, so a record handed to a reader can never be
   changed behind the store's back
3. Be serializable for storage and logging

DESIGN DECISION: Stored records are frozen Pydantic models. An update never
mutates a record in place; the store validates a brand new record and swaps
it in.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from accounting.models.money import (
    decimal_places,
    minor_unit,
    normalize_currency_code,
)
from accounting.models.status import (
    InvoiceStatus,
    RecordKind,
    TransactionStatus,
    effective_invoice_status,
)


def utcnow() -> dt.datetime:
    """Current UTC time as an aware datetime."""
    return dt.datetime.now(dt.timezone.utc)


def _check_precision(amount: Decimal, currency: str, field: str) -> None:
    places = minor_unit(currency)
    if decimal_places(amount) > places:
        raise ValueError(
            f"{field} {amount} has more decimal places than {currency} allows ({places})"
        )


# =============================================================================
# VALIDATION ISSUES
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found while validating a record."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'illegal_transition', 'duplicate')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionFields(BaseModel):
    """
    Fields shared by a stored transaction and its add payload.

    Sign convention: positive amount = inflow, negative amount = outflow.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True, extra="forbid")

    date: dt.date = Field(
        ...,
        description="Booking date"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="What the transaction was for"
    )
    amount: Decimal = Field(
        ...,
        description="Signed amount in the transaction currency"
    )
    currency: str = Field(
        ...,
        description="ISO 4217 currency code"
    )
    category: str = Field(
        default="",
        max_length=100,
        description="Free-form category tag"
    )
    folder: str = Field(
        default="",
        max_length=100,
        description="Grouping bucket label"
    )

    @field_validator("currency", mode="before")
    @classmethod
    def validate_currency(cls, v: Any) -> str:
        return normalize_currency_code(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Amounts must be finite and carry a direction."""
        if not v.is_finite():
            raise ValueError("Amount must be a finite number")
        if v == 0:
            raise ValueError("Amount cannot be zero")
        return v

    @model_validator(mode="after")
    def validate_precision(self) -> "TransactionFields":
        _check_precision(self.amount, self.currency, "Amount")
        return self


class TransactionCreate(TransactionFields):
    """Payload for adding a transaction. Status defaults in the store."""

    status: Optional[TransactionStatus] = None


class Transaction(TransactionFields):
    """A transaction as held by the record store."""

    id: UUID = Field(
        ...,
        description="Store-assigned identifier, immutable"
    )
    status: TransactionStatus
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    @property
    def kind(self) -> RecordKind:
        return RecordKind.TRANSACTION

    @property
    def is_inflow(self) -> bool:
        return self.amount > 0


class TransactionPatch(BaseModel):
    """Partial change set for a transaction. Only set fields are applied."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True, extra="forbid")

    date: Optional[dt.date] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    category: Optional[str] = None
    folder: Optional[str] = None
    status: Optional[TransactionStatus] = None

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "TransactionPatch":
        _reject_nulls(self)
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# =============================================================================
# INVOICES
# =============================================================================

class InvoiceFields(BaseModel):
    """Fields shared by a stored invoice and its add payload."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True, extra="forbid")

    number: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Human-readable invoice number, unique across invoices"
    )
    customer_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Billed customer"
    )
    date: dt.date = Field(
        ...,
        description="Issue date"
    )
    due_date: dt.date = Field(
        ...,
        description="Payment due date"
    )
    total_amount: Decimal = Field(
        ...,
        ge=0,
        description="Invoice total in the invoice currency"
    )
    currency: str = Field(
        ...,
        description="ISO 4217 currency code"
    )

    @field_validator("currency", mode="before")
    @classmethod
    def validate_currency(cls, v: Any) -> str:
        return normalize_currency_code(v)

    @field_validator("total_amount")
    @classmethod
    def validate_total(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("Total amount must be a finite number")
        return v

    @model_validator(mode="after")
    def validate_dates(self) -> "InvoiceFields":
        """Validate date relationships and amount precision."""
        if self.due_date < self.date:
            raise ValueError("Due date cannot be before issue date")
        _check_precision(self.total_amount, self.currency, "Total amount")
        return self


class InvoiceCreate(InvoiceFields):
    """Payload for adding an invoice. Status defaults in the store."""

    status: Optional[InvoiceStatus] = None


class Invoice(InvoiceFields):
    """An invoice as held by the record store."""

    id: UUID = Field(
        ...,
        description="Store-assigned identifier, immutable"
    )
    status: InvoiceStatus
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    @property
    def kind(self) -> RecordKind:
        return RecordKind.INVOICE

    def effective_status(self, today: dt.date) -> InvoiceStatus:
        """Status as reported on a given day (pending past due reads overdue)."""
        return effective_invoice_status(self.status, self.due_date, today)


class InvoicePatch(BaseModel):
    """Partial change set for an invoice. Only set fields are applied."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True, extra="forbid")

    number: Optional[str] = None
    customer_name: Optional[str] = None
    date: Optional[dt.date] = None
    due_date: Optional[dt.date] = None
    total_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    status: Optional[InvoiceStatus] = None

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "InvoicePatch":
        _reject_nulls(self)
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


def _reject_nulls(patch: BaseModel) -> None:
    nulled = sorted(
        name for name in patch.model_fields_set
        if getattr(patch, name) is None
    )
    if nulled:
        raise ValueError(f"Fields cannot be cleared: {', '.join(nulled)}")


LedgerRecord = Union[Transaction, Invoice]
NewRecord = Union[TransactionCreate, InvoiceCreate]
RecordPatch = Union[TransactionPatch, InvoicePatch]

RECORD_MODELS: dict[RecordKind, type[BaseModel]] = {
    RecordKind.TRANSACTION: Transaction,
    RecordKind.INVOICE: Invoice,
}

PATCH_MODELS: dict[RecordKind, type[BaseModel]] = {
    RecordKind.TRANSACTION: TransactionPatch,
    RecordKind.INVOICE: InvoicePatch,
}


# =============================================================================
# QUERY FILTERS
# =============================================================================

class RecordFilter(BaseModel):
    """
    Filter and pagination options for listing records.

    Fields that do not apply to a record kind (e.g. customer for
    transactions) are ignored for that kind.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True, extra="forbid")

    status: Optional[str] = None
    category: Optional[str] = None
    folder: Optional[str] = None
    currency: Optional[str] = None
    customer: Optional[str] = Field(
        default=None,
        description="Case-insensitive substring of the customer name"
    )
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None

    limit: Optional[int] = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)

    @field_validator("currency", mode="before")
    @classmethod
    def validate_currency(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return normalize_currency_code(v)

    @model_validator(mode="after")
    def validate_range(self) -> "RecordFilter":
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self

    def matches(self, record: LedgerRecord, as_of: Optional[dt.date] = None) -> bool:
        """
        Check every set criterion against a record.

        With as_of, an invoice's status is matched against its effective
        status on that day instead of the persisted one.
        """
        status = record.status
        if as_of is not None and isinstance(record, Invoice):
            status = record.effective_status(as_of)
        if self.status and status.value != self.status:
            return False
        if self.currency and record.currency != self.currency:
            return False
        if self.date_from and record.date < self.date_from:
            return False
        if self.date_to and record.date > self.date_to:
            return False

        if isinstance(record, Transaction):
            if self.category is not None and record.category.lower() != self.category.lower():
                return False
            if self.folder is not None and record.folder.lower() != self.folder.lower():
                return False
        else:
            if self.customer and self.customer.lower() not in record.customer_name.lower():
                return False

        return True

    def paginate(self, records: list) -> list:
        if self.limit is None:
            return records[self.offset:]
        return records[self.offset:self.offset + self.limit]
