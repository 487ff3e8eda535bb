from enum import Enum
from typing import Self

from pydantic import Field, model_validator

from chatsync.core.constants import DELETED_MESSAGE_TEXT
from chatsync.core.mixins import DocumentModel, Timestamp


class MessageType(str, Enum):
    text = "text"
    file = "file"


class ReplyTo(DocumentModel):
    """Snapshot of the replied-to message captured at send time."""

    id: str
    text: str = ""
    sender_name: str = ""


class Message(DocumentModel):
    id: str
    chat_id: str
    sender_id: str
    sender_name: str = ""
    text: str = ""
    type: MessageType = MessageType.text
    file_url: str | None = None
    file_name: str | None = None
    # None while the server timestamp is still pending
    timestamp: Timestamp | None = None
    is_deleted: bool = False
    deleted_for: list[str] = Field(default_factory=list)
    reactions: dict[str, list[str]] = Field(default_factory=dict)
    read_by: dict[str, Timestamp | None] = Field(default_factory=dict)
    reply_to: ReplyTo | None = None
    is_forwarded: bool = False

    @model_validator(mode="after")
    def _mask_tombstone(self) -> Self:
        # A tombstone never carries content, whatever the document holds
        if self.is_deleted:
            self.text = DELETED_MESSAGE_TEXT
            self.file_url = None
            self.file_name = None
        return self

    def is_visible_to(self, uid: str) -> bool:
        return uid not in self.deleted_for

    def is_unread_by(self, uid: str) -> bool:
        return self.sender_id != uid and uid not in self.read_by

    def other_readers(self) -> list[str]:
        return [uid for uid in self.read_by if uid != self.sender_id]
