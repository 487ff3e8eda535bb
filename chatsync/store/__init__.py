from chatsync.store.base import (
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    Subscription,
    WriteBatch,
)
from chatsync.store.exceptions import (
    DocumentNotFoundError,
    StoreError,
    StorePermissionError,
    SubscriptionLimitError,
)
from chatsync.store.memory import MemoryDocumentStore
from chatsync.store.registry import SubscriptionRegistry
from chatsync.store.values import DELETE_FIELD, SERVER_TIMESTAMP, ArrayRemove, ArrayUnion

__all__ = [
    "DELETE_FIELD",
    "SERVER_TIMESTAMP",
    "ArrayRemove",
    "ArrayUnion",
    "DocumentNotFoundError",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "MemoryDocumentStore",
    "StoreError",
    "StorePermissionError",
    "Subscription",
    "SubscriptionLimitError",
    "SubscriptionRegistry",
    "WriteBatch",
]
