"""
Audit Models

Every mutation of the ledger, every rejected mutation and every KPI
computation is recorded as an audit event.
This provides:
1. Traceability of who changed what, and when
2. Debugging information when a dashboard figure looks wrong
3. A history that survives record deletion

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Store lifecycle
    STORE_LOADED = "store_loaded"
    RECORDS_SKIPPED_ON_LOAD = "records_skipped_on_load"
    STORE_CLOSED = "store_closed"

    # Mutations
    RECORD_ADDED = "record_added"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    MUTATION_REJECTED = "mutation_rejected"
    VALIDATION_WARNING = "validation_warning"

    # Bootstrap
    SEED_APPLIED = "seed_applied"
    SEED_SKIPPED = "seed_skipped"

    # Aggregation
    KPIS_COMPUTED = "kpis_computed"
    RATE_UNAVAILABLE = "rate_unavailable"

    # System events
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'invoice', 'kpis')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    # Store revision after the event, for mutations
    revision: Optional[int] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "revision": self.revision,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         description, details_json, error_message, revision]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            "" if self.revision is None else str(self.revision),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_added("invoice", invoice_id, 4, {...})
        event = AuditEventBuilder.kpis_computed("March 2024", "USD", 7, {...})
    """

    @staticmethod
    def store_loaded(
        transaction_count: int,
        invoice_count: int,
        skipped: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_LOADED,
            description=(
                f"Store loaded {transaction_count} transactions and "
                f"{invoice_count} invoices"
            ),
            details={
                "transaction_count": transaction_count,
                "invoice_count": invoice_count,
                "skipped": skipped,
            },
            revision=0,
        )

    @staticmethod
    def records_skipped_on_load(
        entity_type: str,
        skipped: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORDS_SKIPPED_ON_LOAD,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            description=f"Skipped {len(skipped)} malformed {entity_type} row(s) on load",
            details={"rows": skipped},
        )

    @staticmethod
    def store_closed(revision: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_CLOSED,
            description="Store closed",
            revision=revision,
        )

    @staticmethod
    def record_added(
        entity_type: str,
        entity_id: UUID,
        revision: int,
        details: dict,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_ADDED,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} added",
            details=details,
            revision=revision,
        )

    @staticmethod
    def record_updated(
        entity_type: str,
        entity_id: UUID,
        revision: int,
        changed_fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} updated: {', '.join(changed_fields) or 'no changes'}",
            details={"changed_fields": changed_fields},
            revision=revision,
        )

    @staticmethod
    def record_deleted(
        entity_type: str,
        entity_id: UUID,
        revision: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} deleted",
            revision=revision,
        )

    @staticmethod
    def mutation_rejected(
        operation: str,
        entity_type: Optional[str],
        entity_id: Optional[UUID],
        reason: str,
        issues: Optional[list[dict]] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{operation} rejected: {reason}"[:500],
            details={
                "operation": operation,
                "issues": issues or [],
            },
        )

    @staticmethod
    def validation_warning(
        entity_type: str,
        entity_id: Optional[UUID],
        warnings: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_WARNING,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} saved with {len(warnings)} warning(s)",
            details={"warnings": warnings},
        )

    @staticmethod
    def seed_applied(transaction_count: int, invoice_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SEED_APPLIED,
            description=(
                f"Sample data seeded: {transaction_count} transactions, "
                f"{invoice_count} invoices"
            ),
            details={
                "transaction_count": transaction_count,
                "invoice_count": invoice_count,
            },
        )

    @staticmethod
    def seed_skipped(transaction_count: int, invoice_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SEED_SKIPPED,
            description="Sample data not seeded: ledger already has records",
            details={
                "transaction_count": transaction_count,
                "invoice_count": invoice_count,
            },
        )

    @staticmethod
    def kpis_computed(
        period_label: str,
        currency: str,
        revision: int,
        details: dict,
    ) -> AuditEvent:
        excluded = details.get("excluded_record_count", 0)
        return AuditEvent(
            event_type=AuditEventType.KPIS_COMPUTED,
            severity=AuditSeverity.WARNING if excluded else AuditSeverity.INFO,
            entity_type="kpis",
            description=(
                f"KPIs computed for {period_label} in {currency}"
                + (f" ({excluded} record(s) excluded)" if excluded else "")
            ),
            details=details,
            revision=revision,
        )

    @staticmethod
    def rate_unavailable(
        entity_type: str,
        entity_id: UUID,
        from_currency: str,
        to_currency: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATE_UNAVAILABLE,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"No {from_currency}->{to_currency} rate, record excluded",
            error_message=error_message,
            details={
                "from_currency": from_currency,
                "to_currency": to_currency,
            },
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
