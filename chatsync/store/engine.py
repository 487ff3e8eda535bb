"""Process-wide store and subscription registry.

Both are created lazily from settings and torn down by the application
lifespan via ``close_store()``.
"""

import logging

from chatsync.core.settings import Settings, get_settings
from chatsync.store.base import DocumentStore
from chatsync.store.memory import MemoryDocumentStore
from chatsync.store.registry import SubscriptionRegistry

logger = logging.getLogger("chatsync.store")

_store: DocumentStore | None = None
_registry: SubscriptionRegistry | None = None


def create_store(settings: Settings) -> DocumentStore:
    if settings.store_backend == "memory":
        return MemoryDocumentStore()

    from chatsync.store.firestore import FirestoreDocumentStore

    return FirestoreDocumentStore()


def get_store() -> DocumentStore:
    global _store
    if _store is None:
        settings = get_settings()
        _store = create_store(settings)
        logger.info("Document store ready (%s backend)", settings.store_backend)
    return _store


def get_registry() -> SubscriptionRegistry:
    global _registry
    if _registry is None:
        _registry = SubscriptionRegistry(
            get_store(), max_subscriptions=get_settings().max_subscriptions
        )
    return _registry


def close_store() -> None:
    global _store, _registry
    if _registry is not None:
        _registry.close()
        _registry = None
    if _store is not None:
        _store.close()
        _store = None
