"""
Ledger exceptions shared across packages.

Storage and rate-lookup failures are defined beside the services that raise
them (accounting.services.storage, accounting.services.rates).
"""

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from accounting.models.kpis import AggregationExclusion
    from accounting.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for the accounting core."""
    pass


class ValidationError(LedgerError):
    """
    A record or request violates the ledger's rules.

    Carries every error-level issue found so callers can show them all at
    once instead of one per attempt.
    """

    def __init__(
        self,
        message: str,
        issues: Optional[Sequence["ValidationIssue"]] = None,
    ):
        self.issues = list(issues or [])
        super().__init__(message)

    @property
    def fields(self) -> list[str]:
        return [issue.field for issue in self.issues]


class PartialAggregationError(LedgerError):
    """
    Some records were left out of a KPI computation.

    The engine reports this as a flag on DashboardKPIs. It is only raised
    when a caller asks for it with DashboardKPIs.raise_if_partial().
    """

    def __init__(self, exclusions: Sequence["AggregationExclusion"]):
        self.exclusions = list(exclusions)
        super().__init__(
            f"{len(self.exclusions)} record(s) excluded from aggregation"
        )
