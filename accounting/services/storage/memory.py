"""
In-Memory Storage Implementation

Keeps rows as JSON-compatible dicts, exactly like a remote backend would
return them, so that load-time validation is exercised the same way.
Used for tests, demos and as the fallback when Google Sheets is not
configured.
"""

import threading
from typing import Any, Optional
from uuid import UUID

from accounting.models.audit import AuditEvent
from accounting.models.ledger import LedgerRecord
from accounting.models.status import RecordKind
from accounting.services.storage.interface import (
    AuditStorageInterface,
    LedgerBackendInterface,
    NotFoundError,
    record_to_row,
)


class InMemoryLedgerBackend(LedgerBackendInterface):
    """Row storage held in process memory, keyed by record id."""

    def __init__(self, rows: Optional[dict[RecordKind, list[dict[str, Any]]]] = None):
        self._lock = threading.Lock()
        self.rows: dict[RecordKind, dict[str, dict[str, Any]]] = {
            kind: {} for kind in RecordKind
        }
        for kind, kind_rows in (rows or {}).items():
            for index, row in enumerate(kind_rows):
                # Malformed rows may lack an id; keep them so load can count them
                key = str(row.get("id") or f"row-{index}")
                self.rows[kind][key] = dict(row)

    def load(self, kind: RecordKind) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(row) for row in self.rows[kind].values()]

    def upsert(self, record: LedgerRecord) -> None:
        row = record_to_row(record)
        with self._lock:
            self.rows[record.kind][str(record.id)] = row

    def remove(self, kind: RecordKind, record_id: UUID) -> None:
        with self._lock:
            if self.rows[kind].pop(str(record_id), None) is None:
                raise NotFoundError(record_id, kind.value)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in process memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        with self._lock:
            return list(self._events)

    def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        # Appended in order, so reversing gives newest first
        return list(reversed(self.events))[:limit]
