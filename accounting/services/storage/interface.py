"""
Abstract Storage Interface

DESIGN DECISION: The record store talks to persistence through a small
abstract backend. This allows us to:
1. Keep records in memory for tests and demos
2. Swap Google Sheets for a real database later
3. Keep identity, validation and locking in one place (the RecordStore)
   no matter where rows end up

Backends deal in plain rows (JSON-compatible dicts). They never validate:
the record store validates on the way in and on load.
"""

from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID

from accounting.models.audit import AuditEvent
from accounting.models.ledger import LedgerRecord
from accounting.models.status import RecordKind


def record_to_row(record: LedgerRecord) -> dict[str, Any]:
    """Serialize a record into a JSON-compatible row."""
    return record.model_dump(mode="json")


class LedgerBackendInterface(ABC):
    """
    Abstract interface for ledger persistence.

    Any storage implementation (Google Sheets, SQLite, etc.)
    must implement these methods. Methods are synchronous: the record store
    calls them while holding the lock of the record being written.
    """

    @abstractmethod
    def load(self, kind: RecordKind) -> list[dict[str, Any]]:
        """
        Load every persisted row of a record kind.

        Args:
            kind: Which record stream to load

        Returns:
            Raw rows, possibly including malformed legacy rows

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def upsert(self, record: LedgerRecord) -> None:
        """
        Insert a record, or replace the row with the same id.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def remove(self, kind: RecordKind, record_id: UUID) -> None:
        """
        Remove the row with the given id.

        Raises:
            NotFoundError: If no such row exists
            StorageError: If the write fails
        """
        pass

    def close(self) -> None:
        """Release any held resources. Optional for backends."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific record.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """An operation referenced an id the store does not hold."""

    def __init__(self, record_id: UUID, kind: str = "record"):
        self.record_id = record_id
        self.kind = kind
        super().__init__(f"{kind.capitalize()} not found: {record_id}")


class StoreUnavailableError(StorageError):
    """
    The store cannot serve requests at all.

    Raised when the store is not initialized, has been closed, or its
    backend failed. Distinct from per-record ValidationError.
    """
    pass
