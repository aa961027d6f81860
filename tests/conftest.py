"""
Shared fixtures for the accounting core tests.

No real API calls in tests: stores run on the in-memory backend and
Google Sheets is replaced by fake worksheets.
"""

import pytest

from accounting.audit import AuditLogger
from accounting.config import AppSettings
from accounting.services.storage import InMemoryAuditStorage, InMemoryLedgerBackend
from accounting.store import RecordStore
from accounting.validation import RecordValidator

from factories import FIXED_NOW, TODAY


@pytest.fixture
def app_settings():
    return AppSettings(
        max_transaction_amount=1_000_000.0,
        future_date_tolerance_days=365,
    )


@pytest.fixture
def validator(app_settings):
    return RecordValidator(app_settings, clock=lambda: TODAY)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def backend():
    return InMemoryLedgerBackend()


@pytest.fixture
def store(backend, audit_logger, validator):
    store = RecordStore(
        backend,
        audit_logger=audit_logger,
        validator=validator,
        clock=lambda: FIXED_NOW,
    )
    store.initialize()
    yield store
    store.close()
