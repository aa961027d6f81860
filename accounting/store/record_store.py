"""
Record Store

The authoritative in-process collection of transactions and invoices.

DESIGN DECISION: The store is an explicit object handed to whoever needs it,
never a module-level singleton. It owns:
1. Identity (ids are assigned here and never change)
2. Validation (every record is validated before it is accepted)
3. Concurrency (one writer per record id, readers never see partial records)
4. Persistence ordering (backend first, then the in-memory swap)

Records are frozen Pydantic models. A mutation builds a new record, writes
it to the backend, and only then swaps it into the in-memory map. If the
backend write fails, nothing changes.

CONCURRENCY:
- A short store-wide lock guards the maps, the invoice-number index and the
  revision counter
- A per-record lock serializes writers of the same id
- Backend writes happen outside the store-wide lock, so writers of
  different ids proceed independently
"""

import threading
from contextlib import contextmanager
from datetime import date
from typing import Any, Callable, Iterator, Mapping, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from accounting.audit import AuditLogger
from accounting.exceptions import ValidationError
from accounting.models.ledger import (
    PATCH_MODELS,
    RECORD_MODELS,
    Invoice,
    InvoiceCreate,
    LedgerRecord,
    NewRecord,
    RecordFilter,
    RecordPatch,
    Transaction,
    TransactionCreate,
    ValidationIssue,
    utcnow,
)
from accounting.models.status import (
    DEFAULT_INVOICE_STATUS,
    DEFAULT_TRANSACTION_STATUS,
    RecordKind,
)
from accounting.services.storage import (
    LedgerBackendInterface,
    NotFoundError,
    StorageError,
    StoreUnavailableError,
)
from accounting.validation import RecordValidator


def record_sort_key(record: LedgerRecord) -> tuple:
    """Most recent date first; ties broken by ascending id string."""
    return (-record.date.toordinal(), str(record.id))


class LedgerSnapshot(BaseModel):
    """A consistent, immutable view of the whole store at one revision."""
    model_config = ConfigDict(frozen=True)

    revision: int
    transactions: tuple[Transaction, ...] = ()
    invoices: tuple[Invoice, ...] = ()


class RecordStore:
    """
    Repository for ledger records.

    Usage:
        with RecordStore(InMemoryLedgerBackend()) as store:
            tx_id = store.add_transaction(date=..., description=..., ...)
    """

    def __init__(
        self,
        backend: LedgerBackendInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[RecordValidator] = None,
        clock: Optional[Callable[[], Any]] = None,
    ):
        """
        Args:
            backend: Where rows are persisted
            audit_logger: Audit trail; a local-only logger if None
            validator: Record validator; built from settings if None
            clock: Returns the current aware datetime (for timestamps)
        """
        self._backend = backend
        self._audit = audit_logger or AuditLogger()
        self._clock = clock or utcnow
        self._validator = validator or RecordValidator(clock=lambda: self._clock().date())

        self._lock = threading.RLock()
        self._record_locks: dict[UUID, threading.Lock] = {}
        self._records: dict[RecordKind, dict[UUID, LedgerRecord]] = {
            kind: {} for kind in RecordKind
        }
        self._kinds: dict[UUID, RecordKind] = {}
        self._numbers: dict[str, UUID] = {}
        self._reserved_numbers: set[str] = set()

        self._revision = 0
        self._skipped_on_load = 0
        self._initialized = False
        self._closed = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def initialize(self) -> "RecordStore":
        """
        Load persisted rows into memory.

        Malformed rows are skipped and counted, never fatal.

        Raises:
            StoreUnavailableError: If the store was closed or the backend
                cannot be read
        """
        with self._lock:
            if self._closed:
                raise StoreUnavailableError("Record store has been closed")
            if self._initialized:
                return self

            skipped_total = 0
            for kind in RecordKind:
                try:
                    rows = self._backend.load(kind)
                except StorageError as e:
                    self._audit.log_storage_error("load", str(e), entity_type=kind.value)
                    raise StoreUnavailableError(
                        f"Could not load {kind.value} records: {e}"
                    ) from e

                skipped = self._load_rows(kind, rows)
                if skipped:
                    self._audit.log_records_skipped(kind.value, skipped)
                skipped_total += len(skipped)

            self._skipped_on_load = skipped_total
            self._initialized = True

            self._audit.log_store_loaded(
                transaction_count=len(self._records[RecordKind.TRANSACTION]),
                invoice_count=len(self._records[RecordKind.INVOICE]),
                skipped=skipped_total,
            )
            return self

    def _load_rows(self, kind: RecordKind, rows: list[dict[str, Any]]) -> list[dict]:
        model_cls = RECORD_MODELS[kind]
        skipped = []

        for row in rows:
            row_id = row.get("id") if isinstance(row, Mapping) else None
            try:
                record = model_cls.model_validate(row)
            except PydanticValidationError as e:
                skipped.append({
                    "row_id": str(row_id) if row_id else None,
                    "reason": "; ".join(err["msg"] for err in e.errors()),
                })
                continue

            if record.id in self._kinds:
                skipped.append({"row_id": str(record.id), "reason": "duplicate id"})
                continue
            if isinstance(record, Invoice) and record.number in self._numbers:
                skipped.append({
                    "row_id": str(record.id),
                    "reason": f"duplicate invoice number {record.number}",
                })
                continue

            self._insert(record)

        return skipped

    def close(self) -> None:
        """Release the backend. Further operations raise StoreUnavailableError."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            was_open = self._initialized
            self._initialized = False
            revision = self._revision

        self._backend.close()
        if was_open:
            self._audit.log_store_closed(revision)

    def __enter__(self) -> "RecordStore":
        return self.initialize()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreUnavailableError("Record store has been closed")
        if not self._initialized:
            raise StoreUnavailableError("Record store is not initialized")

    # =========================================================================
    # INTERNAL STATE HELPERS (caller holds self._lock)
    # =========================================================================

    def _insert(self, record: LedgerRecord) -> None:
        self._records[record.kind][record.id] = record
        self._kinds[record.id] = record.kind
        if isinstance(record, Invoice):
            self._numbers[record.number] = record.id

    def _discard(self, record: LedgerRecord) -> None:
        self._records[record.kind].pop(record.id, None)
        self._kinds.pop(record.id, None)
        if isinstance(record, Invoice) and self._numbers.get(record.number) == record.id:
            del self._numbers[record.number]

    def _reserve_number(self, number: str, owner: Optional[UUID] = None) -> None:
        """Claim an invoice number for an in-flight write."""
        with self._lock:
            holder = self._numbers.get(number)
            if (holder is not None and holder != owner) or number in self._reserved_numbers:
                raise RecordValidator.duplicate_number(number)
            self._reserved_numbers.add(number)

    def _release_number(self, number: str) -> None:
        with self._lock:
            self._reserved_numbers.discard(number)

    @contextmanager
    def _record_lock(self, record_id: UUID) -> Iterator[None]:
        with self._lock:
            lock = self._record_locks.setdefault(record_id, threading.Lock())
        try:
            with lock:
                yield
        finally:
            # Locks live only as long as their record
            with self._lock:
                if record_id not in self._kinds:
                    self._record_locks.pop(record_id, None)

    @staticmethod
    def _coerce_id(record_id: Union[UUID, str]) -> UUID:
        if isinstance(record_id, UUID):
            return record_id
        try:
            return UUID(str(record_id))
        except ValueError:
            raise NotFoundError(record_id)

    def _current(self, record_id: UUID) -> LedgerRecord:
        with self._lock:
            kind = self._kinds.get(record_id)
            if kind is None:
                raise NotFoundError(record_id)
            return self._records[kind][record_id]

    def _persist(
        self,
        operation: str,
        record: LedgerRecord,
        write: Callable[[], None],
    ) -> None:
        """Run a backend write, mapping failures to StoreUnavailableError."""
        try:
            write()
        except StorageError as e:
            self._audit.log_storage_error(
                operation,
                str(e),
                entity_type=record.kind.value,
                entity_id=record.id,
            )
            raise StoreUnavailableError(
                f"Could not {operation} {record.kind.value} {record.id}: {e}"
            ) from e

    def _log_rejection(
        self,
        operation: str,
        error: Exception,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
    ) -> None:
        issues = None
        if isinstance(error, ValidationError):
            issues = [issue.model_dump() for issue in error.issues]
        self._audit.log_mutation_rejected(
            operation=operation,
            reason=str(error),
            entity_type=entity_type,
            entity_id=entity_id,
            issues=issues,
        )

    def _log_warnings(self, record: LedgerRecord, issues: list[ValidationIssue]) -> None:
        warnings = [issue.message for issue in issues if issue.severity == "warning"]
        if warnings:
            self._audit.log_validation_warnings(record.kind.value, record.id, warnings)

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def add(self, record: NewRecord, allow_status_override: bool = False) -> UUID:
        """
        Validate and insert a new record. The store assigns the id.

        Args:
            record: TransactionCreate or InvoiceCreate payload
            allow_status_override: Permit creating an invoice as overdue

        Returns:
            The new record's id

        Raises:
            ValidationError: If the record breaks a rule
            StoreUnavailableError: If the store is closed or the backend fails
        """
        self._ensure_open()

        if isinstance(record, TransactionCreate):
            kind, default_status = RecordKind.TRANSACTION, DEFAULT_TRANSACTION_STATUS
        elif isinstance(record, InvoiceCreate):
            kind, default_status = RecordKind.INVOICE, DEFAULT_INVOICE_STATUS
        else:
            error = ValidationError(
                f"Unsupported record payload: {type(record).__name__}",
                issues=[ValidationIssue(
                    field="record",
                    issue_type="invalid_value",
                    message="Expected a TransactionCreate or InvoiceCreate",
                    severity="error",
                )],
            )
            self._log_rejection("add", error)
            raise error

        now = self._clock()
        data = record.model_dump(exclude={"status"})
        data.update(
            id=uuid4(),
            status=record.status or default_status,
            created_at=now,
            updated_at=now,
        )

        try:
            candidate = self._validator.parse(RECORD_MODELS[kind], data)
            warnings = self._validator.check_new(candidate, allow_status_override)
        except ValidationError as e:
            self._log_rejection("add", e, entity_type=kind.value)
            raise

        number = candidate.number if isinstance(candidate, Invoice) else None
        if number is not None:
            try:
                self._reserve_number(number)
            except ValidationError as e:
                self._log_rejection("add", e, entity_type=kind.value)
                raise

        try:
            self._persist("add", candidate, lambda: self._backend.upsert(candidate))
            with self._lock:
                self._insert(candidate)
                self._revision += 1
                revision = self._revision
        finally:
            if number is not None:
                self._release_number(number)

        self._audit.log_record_added(
            entity_type=kind.value,
            entity_id=candidate.id,
            revision=revision,
            details={
                "status": candidate.status.value,
                "currency": candidate.currency,
                "date": candidate.date.isoformat(),
            },
        )
        self._log_warnings(candidate, warnings)
        return candidate.id

    def add_transaction(self, **fields: Any) -> UUID:
        """Build a TransactionCreate from raw fields and add it."""
        allow_override = fields.pop("allow_status_override", False)
        try:
            payload = self._validator.parse(TransactionCreate, fields)
        except ValidationError as e:
            self._log_rejection("add", e, entity_type=RecordKind.TRANSACTION.value)
            raise
        return self.add(payload, allow_status_override=allow_override)

    def add_invoice(self, **fields: Any) -> UUID:
        """Build an InvoiceCreate from raw fields and add it."""
        allow_override = fields.pop("allow_status_override", False)
        try:
            payload = self._validator.parse(InvoiceCreate, fields)
        except ValidationError as e:
            self._log_rejection("add", e, entity_type=RecordKind.INVOICE.value)
            raise
        return self.add(payload, allow_status_override=allow_override)

    def update(
        self,
        record_id: Union[UUID, str],
        patch: Union[RecordPatch, Mapping[str, Any]],
        *,
        allow_status_override: bool = False,
    ) -> LedgerRecord:
        """
        Apply a partial change set to an existing record.

        Only fields set on the patch change. The id never changes.

        Returns:
            The updated record (unchanged record for an empty patch)

        Raises:
            NotFoundError: If no record has this id
            ValidationError: If the patched record breaks a rule
            StoreUnavailableError: If the store is closed or the backend fails
        """
        self._ensure_open()
        record_id = self._coerce_id(record_id)

        with self._record_lock(record_id):
            try:
                current = self._current(record_id)
            except NotFoundError as e:
                self._log_rejection("update", e, entity_id=record_id)
                raise

            kind = current.kind
            try:
                changes = self._validator.parse(PATCH_MODELS[kind], patch).changes()
                data = current.model_dump()
                data.update(changes)
                data["updated_at"] = self._clock()
                candidate = self._validator.parse(RECORD_MODELS[kind], data)
                warnings = self._validator.check_update(
                    current, candidate, allow_status_override
                )
            except ValidationError as e:
                self._log_rejection("update", e, entity_type=kind.value, entity_id=record_id)
                raise

            changed_fields = sorted(
                name for name in changes
                if getattr(current, name) != getattr(candidate, name)
            )
            if not changed_fields:
                return current

            new_number = None
            if isinstance(candidate, Invoice) and candidate.number != current.number:
                new_number = candidate.number
                try:
                    self._reserve_number(new_number, owner=record_id)
                except ValidationError as e:
                    self._log_rejection(
                        "update", e, entity_type=kind.value, entity_id=record_id
                    )
                    raise

            try:
                self._persist("update", candidate, lambda: self._backend.upsert(candidate))
                with self._lock:
                    self._discard(current)
                    self._insert(candidate)
                    self._revision += 1
                    revision = self._revision
            finally:
                if new_number is not None:
                    self._release_number(new_number)

        self._audit.log_record_updated(
            entity_type=kind.value,
            entity_id=record_id,
            revision=revision,
            changed_fields=changed_fields,
        )
        self._log_warnings(candidate, warnings)
        return candidate

    def delete(self, record_id: Union[UUID, str]) -> None:
        """
        Remove a record.

        Raises:
            NotFoundError: If no record has this id
            StoreUnavailableError: If the store is closed or the backend fails
        """
        self._ensure_open()
        record_id = self._coerce_id(record_id)

        with self._record_lock(record_id):
            try:
                current = self._current(record_id)
            except NotFoundError as e:
                self._log_rejection("delete", e, entity_id=record_id)
                raise

            def remove() -> None:
                try:
                    self._backend.remove(current.kind, record_id)
                except NotFoundError:
                    # Row already gone from the backend; drop the in-memory copy too
                    pass

            self._persist("delete", current, remove)
            with self._lock:
                self._discard(current)
                self._revision += 1
                revision = self._revision

        self._audit.log_record_deleted(
            entity_type=current.kind.value,
            entity_id=record_id,
            revision=revision,
        )

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, record_id: Union[UUID, str]) -> LedgerRecord:
        """
        Get a record by id.

        Raises:
            NotFoundError: If no record has this id
        """
        self._ensure_open()
        return self._current(self._coerce_id(record_id))

    def list(
        self,
        kind: Union[RecordKind, str],
        record_filter: Optional[RecordFilter] = None,
        as_of: Optional[date] = None,
    ) -> list[LedgerRecord]:
        """
        List records of one kind, most recent first.

        An invoice status filter matches the effective status as of as_of
        (default: the store clock's date), so a pending invoice past its due
        date is found by status="overdue".
        """
        self._ensure_open()
        kind = RecordKind(kind)
        with self._lock:
            records = list(self._records[kind].values())

        records.sort(key=record_sort_key)
        if record_filter is None:
            return records

        as_of = as_of or self._clock().date()
        matched = [r for r in records if record_filter.matches(r, as_of)]
        return record_filter.paginate(matched)

    def is_empty(self, kind: Optional[Union[RecordKind, str]] = None) -> bool:
        return self.count(kind) == 0

    def count(self, kind: Optional[Union[RecordKind, str]] = None) -> int:
        self._ensure_open()
        with self._lock:
            if kind is None:
                return len(self._kinds)
            return len(self._records[RecordKind(kind)])

    @property
    def revision(self) -> int:
        """Monotonic counter, advanced by every successful mutation."""
        with self._lock:
            return self._revision

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    @property
    def skipped_on_load(self) -> int:
        """Malformed rows skipped by initialize()."""
        return self._skipped_on_load

    def snapshot(self) -> LedgerSnapshot:
        """Take a consistent view of all records at the current revision."""
        self._ensure_open()
        with self._lock:
            revision = self._revision
            transactions = list(self._records[RecordKind.TRANSACTION].values())
            invoices = list(self._records[RecordKind.INVOICE].values())

        transactions.sort(key=record_sort_key)
        invoices.sort(key=record_sort_key)
        return LedgerSnapshot(
            revision=revision,
            transactions=tuple(transactions),
            invoices=tuple(invoices),
        )
