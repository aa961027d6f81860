"""Record validation package."""

from accounting.validation.validator import (
    RecordValidator,
    issues_from_pydantic,
    raise_for_errors,
)

__all__ = [
    "RecordValidator",
    "issues_from_pydantic",
    "raise_for_errors",
]
