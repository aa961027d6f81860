"""
KPI Models

DashboardKPIs is derived data: it is computed on demand from the record
store and never persisted. An empty or partial result has exactly the same
shape as a full one, so the presentation layer never has to special-case
missing data.
"""

import calendar
import re
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from accounting.exceptions import PartialAggregationError, ValidationError
from accounting.models.ledger import ValidationIssue
from accounting.models.status import RecordKind


MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
RANGE_SEPARATOR = ".."

ZERO = Decimal("0")


def _period_error(message: str) -> ValidationError:
    return ValidationError(
        message,
        issues=[ValidationIssue(
            field="period",
            issue_type="invalid_value",
            message=message,
            severity="error",
        )],
    )


class Period(BaseModel):
    """
    Inclusive date window used to scope an aggregation.

    Build one with Period.month(), Period.custom(), Period.parse() or
    Period.containing(); those raise the ledger's ValidationError on bad
    input.
    """
    model_config = ConfigDict(frozen=True)

    start: date
    end: date
    label: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_range(self) -> "Period":
        if self.end < self.start:
            raise ValueError("Period end cannot be before start")
        return self

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @classmethod
    def month(cls, year: int, month: int) -> "Period":
        if not 1 <= month <= 12:
            raise _period_error(f"Invalid month: {month}")
        if not 1 <= year <= 9999:
            raise _period_error(f"Invalid year: {year}")
        last_day = calendar.monthrange(year, month)[1]
        start = date(year, month, 1)
        return cls(
            start=start,
            end=date(year, month, last_day),
            label=start.strftime("%B %Y"),
        )

    @classmethod
    def containing(cls, day: date) -> "Period":
        """The calendar month a day falls in."""
        return cls.month(day.year, day.month)

    @classmethod
    def custom(cls, start: date, end: date, label: Optional[str] = None) -> "Period":
        if end < start:
            raise _period_error(f"Period end ({end}) cannot be before start ({start})")
        return cls(
            start=start,
            end=end,
            label=label or f"{start.isoformat()} to {end.isoformat()}",
        )

    @classmethod
    def parse(cls, text: str) -> "Period":
        """
        Parse 'YYYY-MM' or 'YYYY-MM-DD..YYYY-MM-DD'.
        """
        value = (text or "").strip()

        match = MONTH_PATTERN.match(value)
        if match:
            return cls.month(int(match.group(1)), int(match.group(2)))

        if RANGE_SEPARATOR in value:
            start_text, _, end_text = value.partition(RANGE_SEPARATOR)
            try:
                start = date.fromisoformat(start_text.strip())
                end = date.fromisoformat(end_text.strip())
            except ValueError:
                raise _period_error(f"Malformed period: {text!r}")
            return cls.custom(start, end)

        raise _period_error(f"Malformed period: {text!r}")


class AggregationExclusion(BaseModel):
    """A record left out of a KPI computation, and why."""
    model_config = ConfigDict(frozen=True)

    record_id: UUID
    kind: RecordKind
    reason: str


class DashboardKPIs(BaseModel):
    """
    Period- and currency-scoped financial summary.

    All money figures are in the reporting currency and quantized to its
    smallest unit. total_expenses is a positive magnitude.
    """
    model_config = ConfigDict(frozen=True)

    period: Period
    currency: str
    as_of: date = Field(
        ...,
        description="Day used to resolve derived statuses"
    )
    revision: int = Field(
        ...,
        ge=0,
        description="Store revision the figures were computed from"
    )

    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_profit: Decimal = ZERO
    cash_position: Decimal = ZERO
    outstanding_receivables: Decimal = ZERO
    overdue_receivables: Decimal = ZERO

    transaction_count: int = 0
    invoice_count: int = 0
    outstanding_invoice_count: int = 0
    overdue_invoice_count: int = 0

    revenue_by_category: dict[str, Decimal] = Field(default_factory=dict)
    expenses_by_category: dict[str, Decimal] = Field(default_factory=dict)

    exclusions: tuple[AggregationExclusion, ...] = ()

    @property
    def excluded_record_count(self) -> int:
        return len(self.exclusions)

    @property
    def is_partial(self) -> bool:
        return bool(self.exclusions)

    def raise_if_partial(self) -> None:
        """Raise PartialAggregationError if any record was excluded."""
        if self.exclusions:
            raise PartialAggregationError(self.exclusions)

    @classmethod
    def empty(
        cls,
        period: Period,
        currency: str,
        as_of: date,
        revision: int = 0,
    ) -> "DashboardKPIs":
        """A zeroed snapshot with the same shape as a full result."""
        return cls(
            period=period,
            currency=currency,
            as_of=as_of,
            revision=revision,
        )
