"""Document store over the ``documents`` table.

Collections of JSON documents addressed by ``(collection, id)`` with:

- per-document last-write-wins ``set``/``update``/``delete``;
- ``ArrayUnion`` field transforms applied atomically (compare-and-swap on
  the row version, so concurrent unions never lose an element);
- atomic multi-document batches;
- optimistic transactions: reads record the version they saw, the commit
  re-validates every read and aborts on conflict, and the whole function is
  retried with jittered backoff;
- live subscriptions that re-deliver the full result set after every
  committed write to their collection, and after changes made elsewhere
  once `poll_changes` notices them.
"""
from __future__ import annotations

import copy
import logging
import random
import threading
import time
import uuid
from collections.abc import Callable, Iterable, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, TypeVar

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from .models import Document

logger = logging.getLogger(__name__)

_MAX_BACKOFF_SECONDS = 1.0

T = TypeVar("T")
DocKey = tuple[str, str]
Filter = tuple[str, str, Any]


class StoreError(Exception):
    """The store could not perform an operation (unreachable, rejected, aborted)."""


class DocumentNotFoundError(StoreError):
    """``update`` targeted a document that does not exist."""


class DocumentExistsError(StoreError):
    """``create`` targeted a document id that is already taken."""


class TransactionAbortedError(StoreError):
    """Writes kept conflicting until the retry budget ran out."""


class _WriteConflict(StoreError):
    """A document changed between read and write, or a lock was busy."""


# PostgreSQL serialization failure and deadlock.
_CONTENTION_SQLSTATES = {"40001", "40P01"}


def _is_lock_contention(exc: DBAPIError) -> bool:
    if getattr(exc.orig, "pgcode", None) in _CONTENTION_SQLSTATES:
        return True
    # SQLite gave up waiting for the database write lock.
    return "database is locked" in str(exc.orig)


@dataclass(frozen=True)
class ArrayUnion:
    """Field transform: append each value not already present in the array."""

    values: tuple[Any, ...]


def array_union(*values: Any) -> ArrayUnion:
    return ArrayUnion(tuple(values))


@dataclass(frozen=True)
class DocumentSnapshot:
    collection: str
    id: str
    data: dict[str, Any] | None
    version: int | None = None

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.data) if self.data is not None else {}

    def get(self, field_path: str, default: Any = None) -> Any:
        return get_path(self.data or {}, field_path, default)


def get_path(data: dict[str, Any], field_path: str, default: Any = None) -> Any:
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def _set_path(data: dict[str, Any], field_path: str, value: Any) -> None:
    parts = field_path.split(".")
    target = data
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    last = parts[-1]
    if isinstance(value, ArrayUnion):
        existing = target.get(last)
        merged = list(existing) if isinstance(existing, list) else []
        for item in value.values:
            if item not in merged:
                merged.append(copy.deepcopy(item))
        target[last] = merged
    else:
        target[last] = copy.deepcopy(value)


def apply_field_updates(data: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    """Apply ``update`` semantics: dotted paths, ``ArrayUnion`` transforms."""
    result = copy.deepcopy(data)
    for field_path, value in fields.items():
        _set_path(result, field_path, value)
    return result


def merge_documents(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Apply ``set(merge=True)`` semantics: nested maps merge, everything else replaces."""
    result = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_documents(result[key], value)
        elif isinstance(value, ArrayUnion):
            _set_path(result, key, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(actual: Any, expected: Any) -> bool:
        if actual is None:
            return False
        return op(actual, expected)
    return check


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda actual, expected: actual == expected,
    "!=": lambda actual, expected: actual != expected,
    "<": _compare(lambda actual, expected: actual < expected),
    "<=": _compare(lambda actual, expected: actual <= expected),
    ">": _compare(lambda actual, expected: actual > expected),
    ">=": _compare(lambda actual, expected: actual >= expected),
    "in": lambda actual, expected: actual in expected,
    "array-contains": lambda actual, expected: isinstance(actual, list) and expected in actual,
}


def _matches(data: dict[str, Any], filters: Sequence[Filter]) -> bool:
    for field_path, op, expected in filters:
        try:
            if not _OPERATORS[op](get_path(data, field_path), expected):
                return False
        except TypeError:
            return False
    return True


def _validate_filters(filters: Sequence[Filter]) -> None:
    for _, op, _ in filters:
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op}")


@dataclass
class _Write:
    op: str  # create | set | update | delete
    collection: str
    doc_id: str
    data: dict[str, Any] | None = None
    merge: bool = False

    @property
    def key(self) -> DocKey:
        return self.collection, self.doc_id


class _WriteBuffer:
    def __init__(self) -> None:
        self._writes: list[_Write] = []

    def create(self, collection: str, doc_id: str, data: dict[str, Any]):
        self._writes.append(_Write("create", collection, doc_id, data))
        return self

    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False):
        self._writes.append(_Write("set", collection, doc_id, data, merge=merge))
        return self

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]):
        self._writes.append(_Write("update", collection, doc_id, fields))
        return self

    def delete(self, collection: str, doc_id: str):
        self._writes.append(_Write("delete", collection, doc_id))
        return self

    def __len__(self) -> int:
        return len(self._writes)


class WriteBatch(_WriteBuffer):
    """Atomic multi-document write; nothing is applied until ``commit``."""

    def __init__(self, store: "DocumentStore") -> None:
        super().__init__()
        self._store = store
        self._committed = False

    def commit(self) -> None:
        if self._committed:
            raise StoreError("Batch already committed")
        self._committed = True
        if self._writes:
            self._store._commit_writes(list(self._writes))


class Transaction(_WriteBuffer):
    """Read-then-write unit of work executed by ``DocumentStore.run_transaction``."""

    def __init__(self, store: "DocumentStore", session: Session) -> None:
        super().__init__()
        self._store = store
        self._session = session
        self._reads: dict[DocKey, int | None] = {}

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        if self._writes:
            raise StoreError("Transactions require all reads to be executed before all writes")
        snapshot = self._store._read(self._session, collection, doc_id)
        self._reads[(collection, doc_id)] = snapshot.version
        return snapshot


class Subscription:
    """Live query handle; delivers the full result set on every change."""

    def __init__(
        self,
        store: "DocumentStore",
        collection: str,
        callback: Callable[[list[DocumentSnapshot]], None],
        *,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        on_error: Callable[[StoreError], None] | None = None,
    ) -> None:
        self._store = store
        self.collection = collection
        self._callback = callback
        self._filters = tuple(filters)
        self._order_by = order_by
        self._descending = descending
        self._limit = limit
        self._on_error = on_error
        self.active = True
        # Held across query and callback: deliveries arrive in query order.
        self._delivery_lock = threading.RLock()

    def refresh(self) -> None:
        with self._delivery_lock:
            if not self.active:
                return
            try:
                snapshots = self._store.query(
                    self.collection,
                    filters=self._filters,
                    order_by=self._order_by,
                    descending=self._descending,
                    limit=self._limit,
                )
            except StoreError as exc:
                logger.error(f"Snapshot refresh failed for '{self.collection}': {exc}", exc_info=True)
                if self._on_error is not None:
                    self._on_error(exc)
                return
            try:
                self._callback(snapshots)
            except Exception:
                logger.error(f"Snapshot listener for '{self.collection}' failed", exc_info=True)

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._remove_subscription(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.unsubscribe()


class DocumentStore:
    """Collections of JSON documents persisted through SQLAlchemy."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 0.05,
    ) -> None:
        self._session_factory = session_factory
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._subscriptions_lock = threading.Lock()
        self._fingerprints: dict[str, frozenset[tuple[str, int]]] = {}

    # -- reads -------------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        with self._session_scope() as session:
            return self._read(session, collection, doc_id)

    def query(
        self,
        collection: str,
        *,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        """Return matching documents.

        Like the hosted document databases this mirrors, ordering by a field
        drops documents that lack it.
        """
        _validate_filters(filters)
        with self._session_scope() as session:
            rows = session.execute(
                select(Document.id, Document.data, Document.version).where(
                    Document.collection == collection
                )
            ).all()

        snapshots = [
            DocumentSnapshot(collection, row.id, row.data or {}, row.version)
            for row in rows
            if _matches(row.data or {}, filters)
        ]
        if order_by:
            snapshots = [s for s in snapshots if s.get(order_by) is not None]
            snapshots.sort(key=lambda s: s.get(order_by), reverse=descending)
        if limit is not None:
            snapshots = snapshots[:limit]
        return snapshots

    # -- writes ------------------------------------------------------------

    def add(self, collection: str, data: dict[str, Any], *, doc_id: str | None = None) -> str:
        """Create a document; a random id is generated unless one is given."""
        new_id = doc_id or uuid.uuid4().hex
        self._commit_writes([_Write("create", collection, new_id, data)])
        return new_id

    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False) -> None:
        self._commit_writes([_Write("set", collection, doc_id, data, merge=merge)])

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self._commit_writes([_Write("update", collection, doc_id, fields)])

    def delete(self, collection: str, doc_id: str) -> None:
        self._commit_writes([_Write("delete", collection, doc_id)])

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Run ``fn`` atomically, retrying the whole function on conflict.

        ``fn`` may be invoked more than once and must not have side effects
        outside the transaction it is given.
        """
        touched: set[str] = set()

        def attempt() -> T:
            with self._session_scope() as session:
                transaction = Transaction(self, session)
                result = fn(transaction)
                writes = list(transaction._writes)
                self._apply_writes(session, writes, transaction._reads)
                session.commit()
            touched.clear()
            touched.update(write.collection for write in writes)
            return result

        result = self._with_retries(attempt, label="transaction")
        self._publish(touched)
        return result

    # -- live queries ------------------------------------------------------

    def watch(
        self,
        collection: str,
        callback: Callable[[list[DocumentSnapshot]], None],
        *,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        on_error: Callable[[StoreError], None] | None = None,
    ) -> Subscription:
        """Subscribe to a query; the current result set is delivered immediately."""
        _validate_filters(filters)
        subscription = Subscription(
            self,
            collection,
            callback,
            filters=filters,
            order_by=order_by,
            descending=descending,
            limit=limit,
            on_error=on_error,
        )
        with self._subscriptions_lock:
            self._subscriptions.setdefault(collection, []).append(subscription)
        subscription.refresh()
        return subscription

    def subscription_count(self, collection: str | None = None) -> int:
        with self._subscriptions_lock:
            if collection is not None:
                return len(self._subscriptions.get(collection, []))
            return sum(len(subs) for subs in self._subscriptions.values())

    def poll_changes(self) -> set[str]:
        """Refresh watched collections that changed since the last poll.

        Subscriptions hear about writes made through this object right away.
        Writes from other processes (the Celery worker, seed scripts, other
        app instances) only reach them through this poll. A collection's
        fingerprint is the set of its ``(id, version)`` pairs; the first poll
        of a collection always refreshes it.
        """
        with self._subscriptions_lock:
            collections = [name for name, subs in self._subscriptions.items() if subs]
        if not collections:
            return set()
        with self._session_scope() as session:
            rows = session.execute(
                select(Document.collection, Document.id, Document.version).where(
                    Document.collection.in_(collections)
                )
            ).all()

        seen: dict[str, set[tuple[str, int]]] = {name: set() for name in collections}
        for row in rows:
            seen[row.collection].add((row.id, row.version))
        changed: set[str] = set()
        with self._subscriptions_lock:
            for name, entries in seen.items():
                fingerprint = frozenset(entries)
                if self._fingerprints.get(name) != fingerprint:
                    self._fingerprints[name] = fingerprint
                    changed.add(name)
        if changed:
            logger.debug(f"Change poll refreshing {sorted(changed)}")
            self._publish(changed)
        return changed

    def _remove_subscription(self, subscription: Subscription) -> None:
        with self._subscriptions_lock:
            subs = self._subscriptions.get(subscription.collection, [])
            if subscription in subs:
                subs.remove(subscription)

    def _publish(self, collections: Iterable[str]) -> None:
        with self._subscriptions_lock:
            pending = [
                sub
                for collection in set(collections)
                for sub in self._subscriptions.get(collection, [])
            ]
        for subscription in pending:
            subscription.refresh()

    # -- internals ---------------------------------------------------------

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except IntegrityError as exc:
            session.rollback()
            raise _WriteConflict(str(exc.orig)) from exc
        except DBAPIError as exc:
            session.rollback()
            if _is_lock_contention(exc):
                raise _WriteConflict(str(exc.orig)) from exc
            logger.error(f"Document store operation failed: {exc}", exc_info=True)
            raise StoreError(f"Document store unavailable: {exc}") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(f"Document store operation failed: {exc}", exc_info=True)
            raise StoreError(f"Document store unavailable: {exc}") from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def _with_retries(self, attempt: Callable[[], T], *, label: str) -> T:
        for number in range(1, self.max_attempts + 1):
            try:
                return attempt()
            except _WriteConflict as exc:
                if number >= self.max_attempts:
                    logger.error(f"{label} aborted after {number} conflicting attempts: {exc}")
                    raise TransactionAbortedError(
                        f"{label} aborted after {number} conflicting attempts"
                    ) from exc
                delay = random.uniform(0, min(self.backoff_seconds * (2 ** (number - 1)), _MAX_BACKOFF_SECONDS))
                logger.warning(
                    f"{label} conflicted (attempt {number}/{self.max_attempts}), retrying in {delay:.3f}s"
                )
                time.sleep(delay)
        raise AssertionError("unreachable")

    def _commit_writes(self, writes: list[_Write]) -> None:
        def attempt() -> None:
            with self._session_scope() as session:
                self._apply_writes(session, writes, {})
                session.commit()

        self._with_retries(attempt, label="write")
        self._publish(write.collection for write in writes)

    @staticmethod
    def _select_row(session: Session, key: DocKey, *, lock: bool = False):
        collection, doc_id = key
        statement = select(Document.data, Document.version).where(
            Document.collection == collection,
            Document.id == doc_id,
        )
        if lock:
            # Row lock on PostgreSQL; SQLite already holds its write lock here.
            statement = statement.with_for_update()
        return session.execute(statement).first()

    def _read(self, session: Session, collection: str, doc_id: str) -> DocumentSnapshot:
        row = self._select_row(session, (collection, doc_id))
        if row is None:
            return DocumentSnapshot(collection, doc_id, None, None)
        return DocumentSnapshot(collection, doc_id, row.data or {}, row.version)

    def _apply_writes(
        self,
        session: Session,
        writes: list[_Write],
        reads: dict[DocKey, int | None],
    ) -> None:
        self._check_reads(session, reads)

        written: set[DocKey] = set()
        try:
            for write in writes:
                row = self._select_row(session, write.key)
                current_data = (row.data or {}) if row is not None else None
                current_version = row.version if row is not None else None
                # The first write to a read document must swap against the
                # version the transaction saw, not a newer one.
                if write.key in reads and write.key not in written and current_version != reads[write.key]:
                    raise _WriteConflict(f"{write.collection}/{write.doc_id} changed since it was read")
                self._apply_write(session, write, current_data, current_version)
                written.add(write.key)
        except DocumentExistsError:
            # A taken id is only final when nothing the transaction read moved.
            unwritten = {key: version for key, version in reads.items() if key not in written}
            if unwritten and not self._reads_current(session, unwritten):
                raise _WriteConflict("a read document changed before its create") from None
            raise

        # Documents that were only read must still be unchanged at commit.
        self._check_reads(
            session,
            {key: version for key, version in reads.items() if key not in written},
            lock=True,
        )

    def _reads_current(self, session: Session, reads: dict[DocKey, int | None], *, lock: bool = False) -> bool:
        for key, expected in reads.items():
            row = self._select_row(session, key, lock=lock)
            if (row.version if row is not None else None) != expected:
                return False
        return True

    def _check_reads(self, session: Session, reads: dict[DocKey, int | None], *, lock: bool = False) -> None:
        if reads and not self._reads_current(session, reads, lock=lock):
            raise _WriteConflict("a document changed since it was read")

    def _apply_write(
        self,
        session: Session,
        write: _Write,
        current_data: dict[str, Any] | None,
        current_version: int | None,
    ) -> None:
        if write.op == "create":
            if current_version is not None:
                raise DocumentExistsError(f"{write.collection}/{write.doc_id} already exists")
            self._insert(session, write, merge_documents({}, write.data or {}))
        elif write.op == "set":
            base = current_data if (write.merge and current_data is not None) else {}
            new_data = merge_documents(base, write.data or {})
            if current_version is None:
                self._insert(session, write, new_data)
            else:
                self._swap(session, write, new_data, current_version)
        elif write.op == "update":
            if current_version is None:
                raise DocumentNotFoundError(f"{write.collection}/{write.doc_id} does not exist")
            self._swap(session, write, apply_field_updates(current_data or {}, write.data or {}), current_version)
        elif write.op == "delete":
            if current_version is None:
                return
            result = session.execute(
                delete(Document).where(
                    Document.collection == write.collection,
                    Document.id == write.doc_id,
                    Document.version == current_version,
                )
            )
            if result.rowcount != 1:
                raise _WriteConflict(f"{write.collection}/{write.doc_id} changed during delete")
        else:
            raise ValueError(f"Unknown write operation: {write.op}")

    @staticmethod
    def _insert(session: Session, write: _Write, data: dict[str, Any]) -> None:
        session.execute(
            insert(Document).values(
                collection=write.collection,
                id=write.doc_id,
                data=data,
                version=1,
            )
        )

    @staticmethod
    def _swap(session: Session, write: _Write, data: dict[str, Any], expected_version: int) -> None:
        result = session.execute(
            update(Document)
            .where(
                Document.collection == write.collection,
                Document.id == write.doc_id,
                Document.version == expected_version,
            )
            .values(data=data, version=expected_version + 1, updated_at=func.now())
        )
        if result.rowcount != 1:
            raise _WriteConflict(f"{write.collection}/{write.doc_id} changed during write")
