"""Reusable model mixins for store-backed documents.

Documents are persisted with camelCase field names; Python code uses
snake_case attributes.
"""

from datetime import UTC, datetime
from typing import Annotated, Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from chatsync.store.base import DocumentSnapshot

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _iso_z(value: datetime) -> str:
    # e.g. 2026-01-19T12:34:56.123456Z
    return as_utc(value).isoformat().replace("+00:00", "Z")


Timestamp = Annotated[datetime, PlainSerializer(_iso_z, when_used="json")]


class DocumentModel(BaseModel):
    """Base for models parsed from store snapshots.

    Usage:
        chat = Chat.from_snapshot(snapshot)
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    # Model field that receives the document id
    id_field: ClassVar[str] = "id"

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> Self:
        data: dict[str, Any] = dict(snapshot.data)
        data[cls.id_field] = snapshot.id
        return cls.model_validate(data)
