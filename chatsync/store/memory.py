"""In-process document store with the same semantics as the Firestore backend.

Writes are applied immediately and every live listener whose result set
changed is called synchronously before the write returns. Used by the test
suite and by ``STORE_BACKEND=memory`` for local development.
"""

import copy
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from chatsync.store.base import (
    DocumentListener,
    DocumentSnapshot,
    ErrorListener,
    FieldFilter,
    QueryListener,
    UpdateFields,
    field_path,
)
from chatsync.store.exceptions import DocumentNotFoundError
from chatsync.store.values import DELETE_FIELD, SERVER_TIMESTAMP, ArrayRemove, ArrayUnion

logger = logging.getLogger("chatsync.store.memory")


@dataclass
class _QueryWatch:
    collection: str
    filters: tuple[FieldFilter, ...]
    on_snapshot: QueryListener
    on_error: ErrorListener | None
    last: list[DocumentSnapshot] | None = None
    active: bool = True


@dataclass
class _DocumentWatch:
    collection: str
    doc_id: str
    on_snapshot: DocumentListener
    on_error: ErrorListener | None
    last: DocumentSnapshot | None = None
    delivered: bool = False
    active: bool = True


class _MemorySubscription:
    def __init__(self, store: "MemoryDocumentStore", watch: _QueryWatch | _DocumentWatch):
        self._store = store
        self._watch = watch

    def close(self) -> None:
        if self._watch.active:
            self._watch.active = False
            self._store._watches.remove(self._watch)


class MemoryWriteBatch:
    """Buffers writes and applies them in one step on commit."""

    def __init__(self, store: "MemoryDocumentStore"):
        self._store = store
        self._ops: list[tuple[str, str, str, Any, bool]] = []
        self._committed = False

    def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool = False,
    ) -> None:
        self._ops.append(("set", collection, doc_id, dict(data), merge))

    def update(self, collection: str, doc_id: str, fields: UpdateFields) -> None:
        self._ops.append(("update", collection, doc_id, dict(fields), False))

    def delete(self, collection: str, doc_id: str) -> None:
        self._ops.append(("delete", collection, doc_id, None, False))

    async def commit(self) -> None:
        if self._committed:
            raise ValueError("Batch already committed")
        self._committed = True
        self._store._apply_batch(self._ops)


class MemoryDocumentStore:
    """Dictionary-backed DocumentStore."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._watches: list[_QueryWatch | _DocumentWatch] = []
        self._last_timestamp: datetime | None = None

    # Reads

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        return self._snapshot(collection, doc_id)

    async def query(
        self, collection: str, filters: tuple[FieldFilter, ...] = ()
    ) -> list[DocumentSnapshot]:
        return self._run_query(collection, filters)

    # Writes

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self._write_set(collection, doc_id, data, merge=False)
        self._notify({collection})
        return doc_id

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool = False,
    ) -> None:
        self._write_set(collection, doc_id, data, merge=merge)
        self._notify({collection})

    async def update(self, collection: str, doc_id: str, fields: UpdateFields) -> None:
        self._require(collection, doc_id)
        self._write_update(collection, doc_id, fields)
        self._notify({collection})

    async def delete(self, collection: str, doc_id: str) -> None:
        self._collections.get(collection, {}).pop(doc_id, None)
        self._notify({collection})

    def batch(self) -> MemoryWriteBatch:
        return MemoryWriteBatch(self)

    # Live queries

    def watch_query(
        self,
        collection: str,
        filters: tuple[FieldFilter, ...],
        on_snapshot: QueryListener,
        on_error: ErrorListener | None = None,
    ) -> _MemorySubscription:
        watch = _QueryWatch(collection, tuple(filters), on_snapshot, on_error)
        self._watches.append(watch)
        self._deliver(watch)
        return _MemorySubscription(self, watch)

    def watch_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentListener,
        on_error: ErrorListener | None = None,
    ) -> _MemorySubscription:
        watch = _DocumentWatch(collection, doc_id, on_snapshot, on_error)
        self._watches.append(watch)
        self._deliver(watch)
        return _MemorySubscription(self, watch)

    @property
    def open_watches(self) -> int:
        return len(self._watches)

    def close(self) -> None:
        for watch in self._watches:
            watch.active = False
        self._watches.clear()

    # Internals

    def _server_timestamp(self) -> datetime:
        now = datetime.now(UTC)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _snapshot(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))

    def _run_query(
        self, collection: str, filters: tuple[FieldFilter, ...]
    ) -> list[DocumentSnapshot]:
        docs = self._collections.get(collection, {})
        return [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in sorted(docs.items())
            if all(f.matches(data) for f in filters)
        ]

    def _require(self, collection: str, doc_id: str) -> None:
        if doc_id not in self._collections.get(collection, {}):
            raise DocumentNotFoundError(f"No document to update: {collection}/{doc_id}")

    def _write_set(
        self, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool
    ) -> None:
        docs = self._collections.setdefault(collection, {})
        target = docs.get(doc_id) if merge else None
        if target is None:
            target = {}
        self._merge_into(target, data)
        docs[doc_id] = target

    def _merge_into(self, target: dict[str, Any], data: Mapping[str, Any]) -> None:
        for key, value in data.items():
            if isinstance(value, Mapping):
                child = target.get(key)
                if not isinstance(child, dict):
                    child = {}
                    target[key] = child
                self._merge_into(child, value)
            else:
                self._apply_value(target, key, value)

    def _write_update(
        self, collection: str, doc_id: str, fields: UpdateFields
    ) -> None:
        doc = self._collections[collection][doc_id]
        for key, value in fields.items():
            *parents, leaf = field_path(key)
            container = doc
            for part in parents:
                child = container.get(part)
                if not isinstance(child, dict):
                    if value is DELETE_FIELD:
                        break
                    child = {}
                    container[part] = child
                container = child
            else:
                if isinstance(value, Mapping):
                    container[leaf] = {}
                    self._merge_into(container[leaf], value)
                else:
                    self._apply_value(container, leaf, value)

    def _apply_value(self, container: dict[str, Any], key: str, value: Any) -> None:
        if value is DELETE_FIELD:
            container.pop(key, None)
        elif value is SERVER_TIMESTAMP:
            container[key] = self._server_timestamp()
        elif isinstance(value, ArrayUnion):
            current = container.get(key)
            items = list(current) if isinstance(current, list) else []
            for item in value.values:
                if item not in items:
                    items.append(copy.deepcopy(item))
            container[key] = items
        elif isinstance(value, ArrayRemove):
            current = container.get(key)
            items = list(current) if isinstance(current, list) else []
            container[key] = [item for item in items if item not in value.values]
        else:
            container[key] = copy.deepcopy(value)

    def _apply_batch(self, ops: list[tuple[str, str, str, Any, bool]]) -> None:
        for kind, collection, doc_id, _payload, _merge in ops:
            if kind == "update":
                self._require(collection, doc_id)

        touched: set[str] = set()
        for kind, collection, doc_id, payload, merge in ops:
            if kind == "set":
                self._write_set(collection, doc_id, payload, merge=merge)
            elif kind == "update":
                self._write_update(collection, doc_id, payload)
            else:
                self._collections.get(collection, {}).pop(doc_id, None)
            touched.add(collection)
        self._notify(touched)

    def _notify(self, collections: "set[str]") -> None:
        for watch in list(self._watches):
            if watch.active and watch.collection in collections:
                self._deliver(watch)

    def _deliver(self, watch: _QueryWatch | _DocumentWatch) -> None:
        if isinstance(watch, _QueryWatch):
            results = self._run_query(watch.collection, watch.filters)
            if results == watch.last:
                return
            watch.last = results
            watch.on_snapshot(copy.deepcopy(results))
            return

        snapshot = self._snapshot(watch.collection, watch.doc_id)
        if watch.delivered and snapshot == watch.last:
            return
        watch.delivered = True
        watch.last = snapshot
        watch.on_snapshot(copy.deepcopy(snapshot))
