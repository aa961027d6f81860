"""Record store package."""

from accounting.store.record_store import (
    LedgerSnapshot,
    RecordStore,
    record_sort_key,
)

__all__ = [
    "LedgerSnapshot",
    "RecordStore",
    "record_sort_key",
]
