"""Write-time transforms understood by every store backend.

Used as field values in ``set``/``update`` payloads:

    await store.update("chats", chat_id, {"members": ArrayUnion(uid)})
    await store.update("messages", msg_id, {("readBy", uid): SERVER_TIMESTAMP})
"""

from typing import Any


class ArrayUnion:
    """Add each value to an array field unless already present."""

    def __init__(self, *values: Any):
        self.values = values

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ArrayUnion) and self.values == other.values

    def __repr__(self) -> str:
        return f"ArrayUnion{self.values!r}"


class ArrayRemove:
    """Remove every occurrence of each value from an array field."""

    def __init__(self, *values: Any):
        self.values = values

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ArrayRemove) and self.values == other.values

    def __repr__(self) -> str:
        return f"ArrayRemove{self.values!r}"


class _Sentinel:
    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name


SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")
DELETE_FIELD = _Sentinel("DELETE_FIELD")
