"""An in-memory document store with collections, queries and write batches."""

from __future__ import annotations

import copy
import operator
import secrets
import string
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

_ALPHABET = string.ascii_letters + string.digits
_ID_LENGTH = 20
_MISSING = object()

_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class NotFoundError(LookupError):
    """Raised when a document or query result does not exist."""


def _check_segment(value: str, what: str) -> None:
    if not isinstance(value, str) or not value or "/" in value:
        raise ValueError(f"invalid {what}: {value!r}")


def _split_path(path: str) -> list[str]:
    if not isinstance(path, str):
        raise ValueError(f"invalid field path: {path!r}")
    parts = path.split(".")
    if not all(parts):
        raise ValueError(f"invalid field path: {path!r}")
    return parts


def _get_path(data: Mapping[str, Any], path: str) -> Any:
    current: Any = data
    for part in _split_path(path):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _set_path(data: dict[str, Any], path: str, value: Any) -> None:
    *parents, last = _split_path(path)
    current = data
    for part in parents:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[last] = copy.deepcopy(value)


def _merge(target: dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def _rank(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, datetime):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, (bytes, bytearray)):
        return 5
    return 6


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _sort_key(value: Any) -> tuple[int, Any]:
    rank = _rank(value)
    if rank == 0:
        return (0, 0)
    if rank == 6:
        return (6, repr(value))
    return (rank, _normalize(value))


def _matches(actual: Any, op: str, expected: Any) -> bool:
    if actual is _MISSING:
        return False
    same_kind = _rank(actual) == _rank(expected)
    if op == "!=":
        return not (same_kind and _normalize(actual) == _normalize(expected))
    if not same_kind:
        return False
    try:
        return bool(_COMPARISONS[op](_normalize(actual), _normalize(expected)))
    except TypeError:
        return False


class DocumentStore:
    """A thread-safe set of named collections holding dictionary documents."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def collection(self, name: str) -> Collection:
        _check_segment(name, "collection name")
        return Collection(self, name)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def new_id(self) -> str:
        """Return a fresh random 20-character alphanumeric document id."""
        return "".join(secrets.choice(_ALPHABET) for _ in range(_ID_LENGTH))

    def _read(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(data) if data is not None else None

    def _write(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = data

    def _remove(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collections.get(collection, {}).pop(doc_id, None)

    def _documents(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        with self._lock:
            docs = self._collections.get(collection, {})
            return [(doc_id, copy.deepcopy(docs[doc_id])) for doc_id in sorted(docs)]


@dataclass(frozen=True)
class DocumentRef:
    """A reference to one document, whether or not it exists."""

    store: DocumentStore
    collection: str
    id: str

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"

    def get(self) -> Snapshot:
        data = self.store._read(self.collection, self.id)
        if data is None:
            raise NotFoundError(f"document {self.path} not found")
        return Snapshot(self, data)

    def set(self, data: Mapping[str, Any], merge: bool = False) -> None:
        if not isinstance(data, Mapping):
            raise TypeError("document data must be a mapping")
        with self.store._lock:
            if merge:
                target = self.store._read(self.collection, self.id) or {}
                _merge(target, data)
            else:
                target = copy.deepcopy(dict(data))
            self.store._write(self.collection, self.id, target)

    def update(self, updates: Mapping[str, Any]) -> None:
        """Set the given field paths on an existing document."""
        if not updates:
            raise ValueError("no paths to update")
        with self.store._lock:
            target = self.store._read(self.collection, self.id)
            if target is None:
                raise NotFoundError(f"document {self.path} not found")
            for path, value in updates.items():
                _set_path(target, path, value)
            self.store._write(self.collection, self.id, target)

    def delete(self) -> None:
        self.store._remove(self.collection, self.id)


@dataclass(frozen=True)
class Snapshot:
    """The contents of a document at the moment it was read."""

    ref: DocumentRef
    data: dict[str, Any]

    @property
    def id(self) -> str:
        return self.ref.id


@dataclass(frozen=True)
class Collection:
    """A named group of documents."""

    store: DocumentStore
    name: str

    def document(self, doc_id: str) -> DocumentRef:
        _check_segment(doc_id, "document id")
        return DocumentRef(self.store, self.name, doc_id)

    def new_document(self) -> DocumentRef:
        return self.document(self.store.new_id())

    def where(self, field: str, op: str, value: Any) -> Query:
        return Query(self).where(field, op, value)

    def all(self) -> list[Snapshot]:
        return Query(self).get()


@dataclass(frozen=True)
class Query:
    """An immutable query over one collection."""

    collection: Collection
    filters: tuple[tuple[str, str, Any], ...] = ()
    orders: tuple[tuple[str, bool], ...] = ()
    max_count: int | None = None

    def where(self, field: str, op: str, value: Any) -> Query:
        if op not in _COMPARISONS:
            raise ValueError(f"unsupported operator: {op!r}")
        _split_path(field)
        return replace(self, filters=self.filters + ((field, op, value),))

    def order_by(self, field: str, descending: bool = False) -> Query:
        _split_path(field)
        return replace(self, orders=self.orders + ((field, descending),))

    def limit(self, count: int) -> Query:
        if count < 0:
            raise ValueError("limit must not be negative")
        return replace(self, max_count=count)

    def get(self) -> list[Snapshot]:
        docs = [
            (doc_id, data)
            for doc_id, data in self.collection.store._documents(self.collection.name)
            if all(_matches(_get_path(data, f), op, v) for f, op, v in self.filters)
        ]
        for field, descending in reversed(self.orders):
            docs = [item for item in docs if _get_path(item[1], field) is not _MISSING]
            docs.sort(key=lambda item: _sort_key(_get_path(item[1], field)), reverse=descending)
        if self.max_count is not None:
            docs = docs[: self.max_count]
        return [Snapshot(self.collection.document(doc_id), data) for doc_id, data in docs]

    def first(self) -> Snapshot:
        results = self.limit(1).get()
        if not results:
            raise NotFoundError(f"no documents in {self.collection.name} match the query")
        return results[0]


class WriteBatch:
    """A set of document writes applied together."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._writes: list[tuple[DocumentRef, dict[str, Any]]] = []
        self._committed = False

    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> WriteBatch:
        if self._committed:
            raise RuntimeError("batch already committed")
        if ref.store is not self._store:
            raise ValueError("document belongs to another store")
        if not isinstance(data, Mapping):
            raise TypeError("document data must be a mapping")
        self._writes.append((ref, copy.deepcopy(dict(data))))
        return self

    def commit(self) -> list[DocumentRef]:
        if self._committed:
            raise RuntimeError("batch already committed")
        if not self._writes:
            raise ValueError("cannot commit empty batch")
        with self._store._lock:
            for ref, data in self._writes:
                self._store._write(ref.collection, ref.id, data)
        self._committed = True
        return [ref for ref, _ in self._writes]