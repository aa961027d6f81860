"""
Audit Logger

DESIGN DECISION: Every change to the ledger is logged.
This provides:
1. Traceability of every mutation
2. Debugging capability when dashboard figures look off
3. A record of rejected changes, not just accepted ones

The audit logger:
- Always logs locally through structlog
- Persists to an audit store when one is configured
- Gracefully handles failures (a broken audit store never breaks a save)
"""

from typing import Optional
from uuid import UUID

import structlog

from accounting.models.audit import AuditEvent, AuditEventBuilder
from accounting.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(default=str),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (for persistence and user visibility), if given
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("accounting.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_store_loaded(
        self,
        transaction_count: int,
        invoice_count: int,
        skipped: int,
    ) -> None:
        """Log a completed store load."""
        self.log(AuditEventBuilder.store_loaded(
            transaction_count=transaction_count,
            invoice_count=invoice_count,
            skipped=skipped,
        ))

    def log_records_skipped(self, entity_type: str, skipped: list[dict]) -> None:
        """Log malformed rows skipped while loading."""
        self.log(AuditEventBuilder.records_skipped_on_load(entity_type, skipped))

    def log_store_closed(self, revision: int) -> None:
        self.log(AuditEventBuilder.store_closed(revision))

    def log_record_added(
        self,
        entity_type: str,
        entity_id: UUID,
        revision: int,
        details: dict,
    ) -> None:
        """Log a record add."""
        self.log(AuditEventBuilder.record_added(
            entity_type=entity_type,
            entity_id=entity_id,
            revision=revision,
            details=details,
        ))

    def log_record_updated(
        self,
        entity_type: str,
        entity_id: UUID,
        revision: int,
        changed_fields: list[str],
    ) -> None:
        """Log a record update."""
        self.log(AuditEventBuilder.record_updated(
            entity_type=entity_type,
            entity_id=entity_id,
            revision=revision,
            changed_fields=changed_fields,
        ))

    def log_record_deleted(
        self,
        entity_type: str,
        entity_id: UUID,
        revision: int,
    ) -> None:
        """Log a record delete."""
        self.log(AuditEventBuilder.record_deleted(
            entity_type=entity_type,
            entity_id=entity_id,
            revision=revision,
        ))

    def log_mutation_rejected(
        self,
        operation: str,
        reason: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        issues: Optional[list[dict]] = None,
    ) -> None:
        """Log a rejected add/update/delete."""
        self.log(AuditEventBuilder.mutation_rejected(
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
            issues=issues,
        ))

    def log_validation_warnings(
        self,
        entity_type: str,
        entity_id: Optional[UUID],
        warnings: list[str],
    ) -> None:
        self.log(AuditEventBuilder.validation_warning(entity_type, entity_id, warnings))

    def log_seed(self, applied: bool, transaction_count: int, invoice_count: int) -> None:
        """Log the outcome of a sample-data seed attempt."""
        if applied:
            event = AuditEventBuilder.seed_applied(transaction_count, invoice_count)
        else:
            event = AuditEventBuilder.seed_skipped(transaction_count, invoice_count)
        self.log(event)

    def log_kpis_computed(
        self,
        period_label: str,
        currency: str,
        revision: int,
        details: dict,
    ) -> None:
        """Log a KPI computation summary."""
        self.log(AuditEventBuilder.kpis_computed(
            period_label=period_label,
            currency=currency,
            revision=revision,
            details=details,
        ))

    def log_rate_unavailable(
        self,
        entity_type: str,
        entity_id: UUID,
        from_currency: str,
        to_currency: str,
        error_message: str,
    ) -> None:
        """Log a record excluded for lack of an exchange rate."""
        self.log(AuditEventBuilder.rate_unavailable(
            entity_type=entity_type,
            entity_id=entity_id,
            from_currency=from_currency,
            to_currency=to_currency,
            error_message=error_message,
        ))

    def log_storage_error(
        self,
        operation: str,
        error_message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
    ) -> None:
        """Log a backend failure."""
        self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            entity_type=entity_type,
            entity_id=entity_id,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
        ))
