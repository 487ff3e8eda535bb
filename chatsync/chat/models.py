from datetime import datetime
from enum import Enum

from pydantic import Field

from chatsync.core.mixins import EPOCH, DocumentModel, Timestamp, as_utc


class ChatType(str, Enum):
    one_to_one = "one-to-one"
    group = "group"


class MemberData(DocumentModel):
    """Denormalized member snapshot taken at join time. Never live-synced."""

    display_name: str | None = None
    photo_url: str | None = Field(default=None, alias="photoURL")


class LastMessage(DocumentModel):
    text: str = ""
    sender_id: str | None = None
    sender_name: str | None = None
    timestamp: Timestamp | None = None


class Chat(DocumentModel):
    id: str
    type: ChatType
    members: list[str] = Field(default_factory=list)
    members_data: dict[str, MemberData] = Field(default_factory=dict)
    name: str | None = None
    creator_id: str | None = None
    created_at: Timestamp | None = None
    last_message: LastMessage | None = None

    @property
    def is_group(self) -> bool:
        return self.type == ChatType.group

    def is_member(self, uid: str) -> bool:
        return uid in self.members

    def is_creator(self, uid: str) -> bool:
        return self.is_group and self.creator_id == uid

    def peer_of(self, uid: str) -> str | None:
        """The other member of a one-to-one chat."""
        if self.is_group:
            return None
        for member in self.members:
            if member != uid:
                return member
        return None

    @property
    def last_activity(self) -> datetime:
        """Sort key for the conversation list. Chats without messages sort last."""
        if self.last_message is None or self.last_message.timestamp is None:
            return EPOCH
        return as_utc(self.last_message.timestamp)
