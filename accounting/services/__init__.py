"""Services package."""

from accounting.services.rates import (
    GoogleSheetsRateSource,
    RateSourceInterface,
    RateUnavailableError,
    StaticRateSource,
)
from accounting.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerBackend,
    InMemoryAuditStorage,
    InMemoryLedgerBackend,
    LedgerBackendInterface,
    NotFoundError,
    StorageError,
    StoreUnavailableError,
)

__all__ = [
    # Rate sources
    "GoogleSheetsRateSource",
    "RateSourceInterface",
    "RateUnavailableError",
    "StaticRateSource",
    # Storage services
    "AuditStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerBackend",
    "InMemoryAuditStorage",
    "InMemoryLedgerBackend",
    "LedgerBackendInterface",
    "NotFoundError",
    "StorageError",
    "StoreUnavailableError",
]
