"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger
persistence. In-memory and Google Sheets backends are available; the record
store works the same on top of either.
"""

from accounting.services.storage.interface import (
    AuditStorageInterface,
    LedgerBackendInterface,
    NotFoundError,
    StorageError,
    StoreUnavailableError,
    record_to_row,
)
from accounting.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerBackend,
)
from accounting.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerBackend,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerBackendInterface",
    "record_to_row",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "StoreUnavailableError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerBackend",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerBackend",
]
