"""Firestore-backed DocumentStore.

Reads and writes go through the async client. Live queries use the sync
client's ``on_snapshot`` watch, whose callbacks run on a background thread and
are handed to the event loop with ``call_soon_threadsafe``.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

from firebase_admin import firestore, firestore_async
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore import ArrayRemove as FirestoreArrayRemove
from google.cloud.firestore import ArrayUnion as FirestoreArrayUnion
from google.cloud.firestore import DELETE_FIELD as FIRESTORE_DELETE_FIELD
from google.cloud.firestore import SERVER_TIMESTAMP as FIRESTORE_SERVER_TIMESTAMP
from google.cloud.firestore import FieldFilter as FirestoreFieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from chatsync.store.base import (
    DocumentListener,
    DocumentSnapshot,
    ErrorListener,
    FieldFilter,
    QueryListener,
    UpdateFields,
    field_path,
)
from chatsync.store.exceptions import (
    DocumentNotFoundError,
    StoreError,
    StorePermissionError,
)
from chatsync.store.values import DELETE_FIELD, SERVER_TIMESTAMP, ArrayRemove, ArrayUnion

logger = logging.getLogger("chatsync.store.firestore")


def _to_firestore(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return FIRESTORE_SERVER_TIMESTAMP
    if value is DELETE_FIELD:
        return FIRESTORE_DELETE_FIELD
    if isinstance(value, ArrayUnion):
        return FirestoreArrayUnion(list(value.values))
    if isinstance(value, ArrayRemove):
        return FirestoreArrayRemove(list(value.values))
    if isinstance(value, Mapping):
        return {key: _to_firestore(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_firestore(item) for item in value]
    return value


def _update_payload(fields: UpdateFields) -> dict[str, Any]:
    # Quote every segment so uids and emoji are never parsed as paths
    return {
        FieldPath(*field_path(key)).to_api_repr(): _to_firestore(value)
        for key, value in fields.items()
    }


def _translate(exc: google_exceptions.GoogleAPICallError) -> StoreError:
    if isinstance(exc, google_exceptions.NotFound):
        return DocumentNotFoundError(str(exc.message or "Document not found"))
    if isinstance(exc, google_exceptions.PermissionDenied):
        return StorePermissionError()
    return StoreError(f"Document store operation failed: {exc.message}")


def _snapshot(doc: Any) -> DocumentSnapshot | None:
    if not doc.exists:
        return None
    return DocumentSnapshot(id=doc.id, data=doc.to_dict() or {})


class _WatchSubscription:
    def __init__(self, watch: Any, on_close: Callable[["_WatchSubscription"], None]):
        self._watch = watch
        self._on_close = on_close
        self._closed = False

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._watch.unsubscribe()
            self._on_close(self)


class FirestoreWriteBatch:
    def __init__(self, client: Any):
        self._client = client
        self._batch = client.batch()

    def _ref(self, collection: str, doc_id: str) -> Any:
        return self._client.collection(collection).document(doc_id)

    def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool = False,
    ) -> None:
        self._batch.set(self._ref(collection, doc_id), _to_firestore(data), merge=merge)

    def update(self, collection: str, doc_id: str, fields: UpdateFields) -> None:
        self._batch.update(self._ref(collection, doc_id), _update_payload(fields))

    def delete(self, collection: str, doc_id: str) -> None:
        self._batch.delete(self._ref(collection, doc_id))

    async def commit(self) -> None:
        try:
            await self._batch.commit()
        except google_exceptions.GoogleAPICallError as e:
            raise _translate(e) from e


class FirestoreDocumentStore:
    """DocumentStore over the default Firebase app."""

    def __init__(
        self,
        async_client: Any | None = None,
        watch_client: Any | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self._client = async_client or firestore_async.client()
        self._watch_client = watch_client or firestore.client()
        self._loop = loop
        self._subscriptions: set[_WatchSubscription] = set()

    def _ref(self, collection: str, doc_id: str) -> Any:
        return self._client.collection(collection).document(doc_id)

    def _query(self, client: Any, collection: str, filters: tuple[FieldFilter, ...]) -> Any:
        query = client.collection(collection)
        for f in filters:
            query = query.where(filter=FirestoreFieldFilter(f.field, f.op, f.value))
        return query

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        try:
            doc = await self._ref(collection, doc_id).get()
        except google_exceptions.GoogleAPICallError as e:
            raise _translate(e) from e
        return _snapshot(doc)

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        try:
            _, ref = await self._client.collection(collection).add(_to_firestore(data))
        except google_exceptions.GoogleAPICallError as e:
            raise _translate(e) from e
        return ref.id

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool = False,
    ) -> None:
        try:
            await self._ref(collection, doc_id).set(_to_firestore(data), merge=merge)
        except google_exceptions.GoogleAPICallError as e:
            raise _translate(e) from e

    async def update(self, collection: str, doc_id: str, fields: UpdateFields) -> None:
        try:
            await self._ref(collection, doc_id).update(_update_payload(fields))
        except google_exceptions.GoogleAPICallError as e:
            raise _translate(e) from e

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            await self._ref(collection, doc_id).delete()
        except google_exceptions.GoogleAPICallError as e:
            raise _translate(e) from e

    async def query(
        self, collection: str, filters: tuple[FieldFilter, ...] = ()
    ) -> list[DocumentSnapshot]:
        results: list[DocumentSnapshot] = []
        try:
            async for doc in self._query(self._client, collection, filters).stream():
                results.append(DocumentSnapshot(id=doc.id, data=doc.to_dict() or {}))
        except google_exceptions.GoogleAPICallError as e:
            raise _translate(e) from e
        return results

    def batch(self) -> FirestoreWriteBatch:
        return FirestoreWriteBatch(self._client)

    def _dispatcher(self, label: str) -> Callable[[Callable[[], None]], None]:
        loop = self._loop or asyncio.get_running_loop()

        def run(deliver: Callable[[], None]) -> None:
            try:
                loop.call_soon_threadsafe(deliver)
            except RuntimeError:
                logger.debug("Dropping snapshot for closed loop", extra={"subscription": label})

        return run

    def watch_query(
        self,
        collection: str,
        filters: tuple[FieldFilter, ...],
        on_snapshot: QueryListener,
        on_error: ErrorListener | None = None,
    ) -> _WatchSubscription:
        # The SDK watch reconnects on its own and has no error callback
        dispatch = self._dispatcher(collection)

        def callback(docs: list[Any], _changes: Any, _read_time: Any) -> None:
            snapshots = [
                DocumentSnapshot(id=doc.id, data=doc.to_dict() or {}) for doc in docs
            ]
            snapshots.sort(key=lambda s: s.id)
            dispatch(lambda: on_snapshot(snapshots))

        query = self._query(self._watch_client, collection, filters)
        return self._track(query.on_snapshot(callback))

    def watch_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentListener,
        on_error: ErrorListener | None = None,
    ) -> _WatchSubscription:
        dispatch = self._dispatcher(f"{collection}/{doc_id}")

        def callback(docs: list[Any], _changes: Any, _read_time: Any) -> None:
            snapshot = _snapshot(docs[0]) if docs else None
            dispatch(lambda: on_snapshot(snapshot))

        ref = self._watch_client.collection(collection).document(doc_id)
        return self._track(ref.on_snapshot(callback))

    def _track(self, watch: Any) -> _WatchSubscription:
        subscription = _WatchSubscription(watch, self._subscriptions.discard)
        self._subscriptions.add(subscription)
        return subscription

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()
        self._subscriptions.clear()
