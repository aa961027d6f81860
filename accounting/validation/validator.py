"""
Two-Stage Record Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Required field presence
- ISO currency codes, amount precision
- due_date >= date for invoices
- This is Pydantic's job; we only translate its errors into issues

STAGE 2 - SEMANTIC VALIDATION:
- Status transition rules
- Transaction sign stability across updates
- Suspicious values (far-future dates, absurd amounts) as warnings
- This catches changes that are well-formed but not allowed

IMPORTANT: Validation NEVER silently fixes issues.
Errors block the mutation; warnings are reported and the mutation proceeds.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from accounting.config import AppSettings, get_settings
from accounting.exceptions import ValidationError
from accounting.models.ledger import (
    Invoice,
    LedgerRecord,
    Transaction,
    ValidationIssue,
)
from accounting.models.status import (
    InvoiceStatus,
    RecordStatus,
    allowed_targets,
    is_transition_allowed,
)


ModelT = TypeVar("ModelT", bound=BaseModel)

PYDANTIC_ISSUE_TYPES = {
    "missing": "missing",
    "extra_forbidden": "unknown_field",
}


def issues_from_pydantic(exc: PydanticValidationError) -> list[ValidationIssue]:
    """Translate Pydantic errors into ledger validation issues."""
    issues = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        message = str(error.get("msg", "Invalid value"))
        # Model-level validators report "Value error, ..." without a location
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        issues.append(ValidationIssue(
            field=loc or "record",
            issue_type=PYDANTIC_ISSUE_TYPES.get(error.get("type", ""), "invalid_value"),
            message=message,
            severity="error",
        ))
    return issues


def raise_for_errors(message: str, issues: list[ValidationIssue]) -> None:
    """Raise ValidationError if any issue is error-level."""
    errors = [issue for issue in issues if issue.severity == "error"]
    if errors:
        summary = "; ".join(f"{issue.field}: {issue.message}" for issue in errors)
        raise ValidationError(f"{message}: {summary}", issues=errors)


class RecordValidator:
    """
    Validates ledger records before they are written.

    Stage 1: parse() builds a model and converts schema errors
    Stage 2: check_new() / check_update() apply lifecycle rules
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self._settings = settings or get_settings().app
        self._clock = clock or date.today

    def parse(self, model_cls: type[ModelT], data: Any) -> ModelT:
        """
        Stage 1: Schema validation.

        Raises:
            ValidationError: with one issue per schema error
        """
        if isinstance(data, model_cls):
            return data
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        try:
            return model_cls.model_validate(data)
        except PydanticValidationError as e:
            issues = issues_from_pydantic(e)
            summary = "; ".join(f"{issue.field}: {issue.message}" for issue in issues)
            raise ValidationError(
                f"Invalid {model_cls.__name__}: {summary}", issues=issues
            ) from e

    def _check_status(
        self,
        current: Optional[RecordStatus],
        target: RecordStatus,
        allow_override: bool,
    ) -> list[ValidationIssue]:
        if current is None:
            # New record: overdue invoices exist only through an override
            if target == InvoiceStatus.OVERDUE and not allow_override:
                return [ValidationIssue(
                    field="status",
                    issue_type="derived_status",
                    message="Invoice overdue status is derived from the due date",
                    severity="error",
                    suggested_fix="Create the invoice as pending; it reads as overdue once past due",
                )]
            return []

        if is_transition_allowed(current, target, allow_override):
            return []

        targets = allowed_targets(current, allow_override)
        if target == InvoiceStatus.OVERDUE and not allow_override:
            fix = "Overdue is derived from the due date; pass allow_status_override to force it"
        elif targets:
            fix = f"Allowed from {current.value}: {', '.join(targets)}"
        else:
            fix = f"{current.value} is a final status"
        return [ValidationIssue(
            field="status",
            issue_type="illegal_transition",
            message=f"Cannot change status from {current.value} to {target.value}",
            severity="error",
            suggested_fix=fix,
        )]

    def _warnings(self, record: LedgerRecord) -> list[ValidationIssue]:
        issues = []
        today = self._clock()

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if record.date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({record.date}) is far in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        amount = record.amount if isinstance(record, Transaction) else record.total_amount
        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if abs(amount) > max_amount:
            issues.append(ValidationIssue(
                field="amount" if isinstance(record, Transaction) else "total_amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,} {record.currency}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        return issues

    def check_new(
        self,
        record: LedgerRecord,
        allow_status_override: bool = False,
    ) -> list[ValidationIssue]:
        """
        Stage 2 for an add.

        Returns warning-level issues. Raises ValidationError on errors.
        """
        issues = self._check_status(None, record.status, allow_status_override)
        issues.extend(self._warnings(record))
        raise_for_errors(f"Invalid {record.kind.value}", issues)
        return issues

    def check_update(
        self,
        current: LedgerRecord,
        candidate: LedgerRecord,
        allow_status_override: bool = False,
    ) -> list[ValidationIssue]:
        """
        Stage 2 for an update.

        Returns warning-level issues. Raises ValidationError on errors.
        """
        issues = self._check_status(current.status, candidate.status, allow_status_override)

        if isinstance(current, Transaction) and isinstance(candidate, Transaction):
            if (current.amount > 0) != (candidate.amount > 0):
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="sign_change",
                    message="Amount sign is fixed at creation (inflow vs outflow)",
                    severity="error",
                    suggested_fix="Cancel this transaction and record a new one",
                ))

        if isinstance(current, Invoice) and isinstance(candidate, Invoice):
            unchanged = current.model_dump(exclude={"updated_at"}) == candidate.model_dump(
                exclude={"updated_at"}
            )
            if current.status == InvoiceStatus.PAID and not unchanged:
                issues.append(ValidationIssue(
                    field="record",
                    issue_type="immutable",
                    message="Paid invoices cannot be edited",
                    severity="error",
                ))

        issues.extend(self._warnings(candidate))
        raise_for_errors(f"Invalid {candidate.kind.value} update", issues)
        return issues

    @staticmethod
    def duplicate_number(number: str) -> ValidationError:
        """Error for an invoice number already used by another invoice."""
        issue = ValidationIssue(
            field="number",
            issue_type="duplicate",
            message=f"Invoice number {number} is already in use",
            severity="error",
            suggested_fix="Pick a different invoice number",
        )
        return ValidationError(f"Duplicate invoice number: {number}", issues=[issue])
