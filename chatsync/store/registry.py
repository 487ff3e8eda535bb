"""Shared, reference-counted live subscriptions.

Every consumer (profile watch, block watchers, unread counters, the open
conversation) subscribes through one registry. Identical live queries share a
single store watch; a late joiner immediately receives the latest snapshot; the
store watch is released when its last listener closes.
"""

import asyncio
import itertools
import logging
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Any

from chatsync.store.base import (
    DocumentListener,
    DocumentStore,
    ErrorListener,
    FieldFilter,
    QueryListener,
    Subscription,
)
from chatsync.store.exceptions import SubscriptionLimitError

logger = logging.getLogger("chatsync.store.registry")

_MISSING = object()


@dataclass
class _Entry:
    key: Hashable
    label: str
    listeners: dict[int, tuple[Callable[[Any], None], ErrorListener | None]] = field(
        default_factory=dict
    )
    latest: Any = _MISSING
    watch: Subscription | None = None
    ready: asyncio.Event = field(default_factory=asyncio.Event)


class RegistrySubscription:
    """Handle returned to one listener. Closing it twice is harmless."""

    def __init__(self, registry: "SubscriptionRegistry", entry: _Entry, token: int):
        self._registry = registry
        self._entry = entry
        self._token = token
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._registry._release(self._entry, self._token)

    @property
    def ready(self) -> bool:
        """True once the shared watch has delivered a snapshot or an error."""
        return self._entry.ready.is_set()

    async def wait_ready(self, timeout: float) -> bool:
        """Wait for the first snapshot. Returns False if none arrived in time."""
        if self._entry.ready.is_set():
            return True
        try:
            await asyncio.wait_for(self._entry.ready.wait(), timeout)
        except TimeoutError:
            logger.warning(
                "No snapshot within %.1fs",
                timeout,
                extra={"subscription": self._entry.label},
            )
            return False
        return True


class SubscriptionRegistry:
    def __init__(self, store: DocumentStore, max_subscriptions: int = 256):
        self._store = store
        self._max_subscriptions = max_subscriptions
        self._entries: dict[Hashable, _Entry] = {}
        self._tokens = itertools.count()

    @property
    def open_count(self) -> int:
        """Number of distinct store watches currently open."""
        return len(self._entries)

    def listener_count(self, key: Hashable) -> int:
        entry = self._entries.get(key)
        return len(entry.listeners) if entry else 0

    @staticmethod
    def query_key(collection: str, filters: tuple[FieldFilter, ...]) -> Hashable:
        return ("query", collection, tuple(filters))

    @staticmethod
    def document_key(collection: str, doc_id: str) -> Hashable:
        return ("document", collection, doc_id)

    def subscribe_query(
        self,
        collection: str,
        filters: tuple[FieldFilter, ...],
        on_snapshot: QueryListener,
        on_error: ErrorListener | None = None,
    ) -> RegistrySubscription:
        key = self.query_key(collection, filters)
        return self._subscribe(
            key,
            collection,
            on_snapshot,
            on_error,
            lambda deliver, fail: self._store.watch_query(
                collection, tuple(filters), deliver, fail
            ),
        )

    def subscribe_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentListener,
        on_error: ErrorListener | None = None,
    ) -> RegistrySubscription:
        key = self.document_key(collection, doc_id)
        return self._subscribe(
            key,
            f"{collection}/{doc_id}",
            on_snapshot,
            on_error,
            lambda deliver, fail: self._store.watch_document(
                collection, doc_id, deliver, fail
            ),
        )

    def _subscribe(
        self,
        key: Hashable,
        label: str,
        on_snapshot: Callable[[Any], None],
        on_error: ErrorListener | None,
        open_watch: Callable[[Callable[[Any], None], ErrorListener], Subscription],
    ) -> RegistrySubscription:
        token = next(self._tokens)
        entry = self._entries.get(key)

        if entry is not None:
            entry.listeners[token] = (on_snapshot, on_error)
            if entry.latest is not _MISSING:
                self._call(entry, on_snapshot, entry.latest)
            return RegistrySubscription(self, entry, token)

        if len(self._entries) >= self._max_subscriptions:
            logger.warning(
                "Subscription limit reached",
                extra={"subscription": label, "count": len(self._entries)},
            )
            raise SubscriptionLimitError()

        entry = _Entry(key=key, label=label)
        entry.listeners[token] = (on_snapshot, on_error)
        self._entries[key] = entry
        try:
            entry.watch = open_watch(
                lambda snapshot: self._deliver(entry, snapshot),
                lambda exc: self._fail(entry, exc),
            )
        except Exception:
            self._entries.pop(key, None)
            raise
        if self._entries.get(key) is not entry:
            # Released from inside the initial delivery
            entry.watch.close()
        logger.debug(
            "Opened live subscription",
            extra={"subscription": label, "count": len(self._entries)},
        )
        return RegistrySubscription(self, entry, token)

    def _deliver(self, entry: _Entry, snapshot: Any) -> None:
        entry.latest = snapshot
        entry.ready.set()
        for token, (listener, _) in list(entry.listeners.items()):
            if token in entry.listeners:
                self._call(entry, listener, snapshot)

    def _call(self, entry: _Entry, listener: Callable[[Any], None], snapshot: Any) -> None:
        try:
            listener(snapshot)
        except Exception:
            logger.exception(
                "Snapshot listener failed", extra={"subscription": entry.label}
            )

    def _fail(self, entry: _Entry, exc: Exception) -> None:
        entry.ready.set()
        logger.warning(
            "Live subscription error: %s",
            exc,
            extra={"subscription": entry.label},
        )
        for _, on_error in list(entry.listeners.values()):
            if on_error is not None:
                on_error(exc)

    def _release(self, entry: _Entry, token: int) -> None:
        entry.listeners.pop(token, None)
        if entry.listeners or self._entries.get(entry.key) is not entry:
            return
        del self._entries[entry.key]
        if entry.watch is not None:
            entry.watch.close()
        logger.debug(
            "Closed live subscription",
            extra={"subscription": entry.label, "count": len(self._entries)},
        )

    def close(self) -> None:
        """Close every open store watch."""
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.listeners.clear()
            if entry.watch is not None:
                entry.watch.close()
