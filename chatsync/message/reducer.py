"""Message stream reducer.

Turns each complete snapshot of a chat's messages into the viewer's ordered,
filtered view:

- ascending by server timestamp, pending timestamps last, ties by id
- messages the viewer deleted for themselves are dropped (locally only)
- unread = sent by someone else and no ``readBy[viewer]`` entry
- the first-unread marker is captured once and then pinned
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

import pydantic

from chatsync.chat.models import Chat
from chatsync.core.constants import UNKNOWN_USER_NAME
from chatsync.core.mixins import as_utc
from chatsync.message.models import Message
from chatsync.store.base import DocumentSnapshot

logger = logging.getLogger(__name__)

# Pending server timestamps sort as "now", after every resolved one
_PENDING_TIMESTAMP = datetime.max.replace(tzinfo=UTC)


class ReceiptState(str, Enum):
    sent = "sent"
    read = "read"
    read_by_all = "read_by_all"


@dataclass(frozen=True)
class SeenBy:
    uid: str
    display_name: str
    read_at: datetime | None


@dataclass(frozen=True)
class MessageView:
    message: Message
    is_mine: bool
    show_sender_name: bool
    # Only set for the viewer's own, non-deleted messages
    receipt: ReceiptState | None
    seen_by: tuple[SeenBy, ...]
    reactions: dict[str, tuple[str, ...]]
    starts_unread: bool

    @property
    def id(self) -> str:
        return self.message.id


@dataclass(frozen=True)
class StreamView:
    chat_id: str
    messages: tuple[MessageView, ...] = ()
    first_unread_id: str | None = None
    unread_ids: tuple[str, ...] = field(default_factory=tuple)


def order_key(message: Message) -> tuple[datetime, str]:
    timestamp = as_utc(message.timestamp) if message.timestamp else _PENDING_TIMESTAMP
    return timestamp, message.id


def order_messages(messages: Iterable[Message]) -> list[Message]:
    return sorted(messages, key=order_key)


def visible_messages(messages: Iterable[Message], viewer_uid: str) -> list[Message]:
    return [m for m in messages if m.is_visible_to(viewer_uid)]


def unread_messages(messages: Iterable[Message], viewer_uid: str) -> list[Message]:
    return [m for m in messages if m.is_unread_by(viewer_uid)]


def receipt_state(message: Message, chat: Chat | None) -> ReceiptState:
    """Read state of a message from its sender's point of view.

    Groups need every member but the sender for "read by all"; one-to-one
    chats need the single peer.
    """
    readers = message.other_readers()
    if not readers:
        return ReceiptState.sent
    if chat is not None and chat.is_group:
        if len(readers) >= len(chat.members) - 1:
            return ReceiptState.read_by_all
        return ReceiptState.read
    return ReceiptState.read_by_all


def seen_by(message: Message, chat: Chat | None) -> tuple[SeenBy, ...]:
    members = chat.members_data if chat is not None else {}
    result = []
    for uid in message.other_readers():
        member = members.get(uid)
        name = (member.display_name if member else None) or UNKNOWN_USER_NAME
        result.append(SeenBy(uid=uid, display_name=name, read_at=message.read_by[uid]))
    return tuple(result)


def active_reactions(message: Message) -> dict[str, tuple[str, ...]]:
    return {emoji: tuple(uids) for emoji, uids in message.reactions.items() if uids}


def parse_messages(snapshots: Iterable[DocumentSnapshot]) -> list[Message]:
    messages = []
    for snapshot in snapshots:
        try:
            messages.append(Message.from_snapshot(snapshot))
        except pydantic.ValidationError:
            logger.warning("Skipping malformed message", extra={"message_id": snapshot.id})
    return messages


class MessageStreamReducer:
    """Per-conversation reducer state. Recreated when the conversation reopens."""

    def __init__(self, chat_id: str, viewer_uid: str, chat: Chat | None = None):
        self.chat_id = chat_id
        self.viewer_uid = viewer_uid
        self.chat = chat
        self.first_unread_id: str | None = None
        self._messages: list[Message] = []
        self.view = StreamView(chat_id=chat_id)

    @property
    def messages(self) -> list[Message]:
        """Visible messages in display order."""
        return list(self._messages)

    def find(self, message_id: str) -> Message | None:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def apply_snapshots(self, snapshots: Iterable[DocumentSnapshot]) -> StreamView:
        return self.apply(parse_messages(snapshots))

    def apply(self, messages: Iterable[Message]) -> StreamView:
        """Replace the current state with a complete delivery."""
        own = [m for m in messages if m.chat_id == self.chat_id]
        self._messages = visible_messages(order_messages(own), self.viewer_uid)
        unread = unread_messages(self._messages, self.viewer_uid)
        if self.first_unread_id is None and unread:
            self.first_unread_id = unread[0].id
        self.view = self._render(tuple(m.id for m in unread))
        return self.view

    def set_chat(self, chat: Chat) -> StreamView:
        """Refresh derived fields after the chat document changed."""
        self.chat = chat
        self.view = self._render(self.view.unread_ids)
        return self.view

    def clear_first_unread(self) -> None:
        self.first_unread_id = None
        self.view = self._render(self.view.unread_ids)

    def _render(self, unread_ids: tuple[str, ...]) -> StreamView:
        is_group = self.chat is not None and self.chat.is_group
        views = []
        for message in self._messages:
            is_mine = message.sender_id == self.viewer_uid
            show_receipt = is_mine and not message.is_deleted
            views.append(
                MessageView(
                    message=message,
                    is_mine=is_mine,
                    show_sender_name=is_group and not is_mine,
                    receipt=receipt_state(message, self.chat) if show_receipt else None,
                    seen_by=seen_by(message, self.chat) if show_receipt else (),
                    reactions=active_reactions(message),
                    starts_unread=message.id == self.first_unread_id,
                )
            )
        return StreamView(
            chat_id=self.chat_id,
            messages=tuple(views),
            first_unread_id=self.first_unread_id,
            unread_ids=unread_ids,
        )
