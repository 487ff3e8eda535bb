"""Storage-agnostic document store interface.

Field keys in ``update`` payloads are either a plain top-level field name or a
tuple of path segments. Segments are taken literally, so a uid or an emoji can
be used as a map key without escaping:

    {("reactions", "👍"): ArrayUnion(uid)}
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

FieldKey = str | tuple[str, ...]
UpdateFields = Mapping[FieldKey, Any]

FilterOp = Literal["==", "array_contains"]


@dataclass(frozen=True)
class FieldFilter:
    """Equality or array-containment predicate on a top-level field."""

    field: str
    op: FilterOp
    value: Any

    def matches(self, data: Mapping[str, Any]) -> bool:
        if self.field not in data:
            return False
        current = data[self.field]
        if self.op == "==":
            return current == self.value
        return isinstance(current, list) and self.value in current


@dataclass(frozen=True)
class DocumentSnapshot:
    """Point-in-time copy of one stored document."""

    id: str
    data: dict[str, Any] = field(default_factory=dict)


QueryListener = Callable[[list[DocumentSnapshot]], None]
DocumentListener = Callable[[DocumentSnapshot | None], None]
ErrorListener = Callable[[Exception], None]


class Subscription(Protocol):
    def close(self) -> None: ...


class WriteBatch(Protocol):
    """Group of writes committed all-or-nothing."""

    def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool = False,
    ) -> None: ...

    def update(self, collection: str, doc_id: str, fields: UpdateFields) -> None: ...

    def delete(self, collection: str, doc_id: str) -> None: ...

    async def commit(self) -> None: ...


class DocumentStore(Protocol):
    """Operations the synchronization core consumes from the hosted store.

    Live listeners always receive the complete current result set. Results are
    ordered by document id.
    """

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None: ...

    async def add(self, collection: str, data: Mapping[str, Any]) -> str: ...

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool = False,
    ) -> None: ...

    async def update(
        self, collection: str, doc_id: str, fields: UpdateFields
    ) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def query(
        self, collection: str, filters: tuple[FieldFilter, ...] = ()
    ) -> list[DocumentSnapshot]: ...

    def watch_query(
        self,
        collection: str,
        filters: tuple[FieldFilter, ...],
        on_snapshot: QueryListener,
        on_error: ErrorListener | None = None,
    ) -> Subscription: ...

    def watch_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentListener,
        on_error: ErrorListener | None = None,
    ) -> Subscription: ...

    def batch(self) -> WriteBatch: ...

    def close(self) -> None: ...


def field_path(key: FieldKey) -> tuple[str, ...]:
    """Normalize an update key to its path segments."""
    if isinstance(key, tuple):
        if not key:
            raise ValueError("Empty field path")
        return key
    return (key,)
