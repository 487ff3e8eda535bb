"""Conversation list synchronizer.

Live query on chats whose ``members`` contain the viewer, re-sorted by most
recent activity on every delivery.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import quote

import pydantic

from chatsync.chat.models import Chat
from chatsync.core.constants import Collections
from chatsync.store.base import DocumentSnapshot, FieldFilter
from chatsync.store.registry import RegistrySubscription, SubscriptionRegistry

logger = logging.getLogger(__name__)

DEFAULT_CHAT_TITLE = "Chat"


@dataclass(frozen=True)
class ChatListEntry:
    chat: Chat
    title: str
    avatar_url: str
    peer_uid: str | None = None

    @property
    def id(self) -> str:
        return self.chat.id


def describe_chat(chat: Chat, viewer_uid: str, avatar_base_url: str) -> ChatListEntry:
    """Title and avatar shown for a chat, from its denormalized member data."""
    if chat.is_group:
        name = chat.name or ""
        avatar = f"{avatar_base_url}?name={quote(name or 'G')}&background=random"
        return ChatListEntry(chat=chat, title=name, avatar_url=avatar)

    peer_uid = chat.peer_of(viewer_uid)
    peer = chat.members_data.get(peer_uid) if peer_uid else None
    title = (peer.display_name if peer else None) or DEFAULT_CHAT_TITLE
    avatar = (peer.photo_url if peer else None) or f"{avatar_base_url}?name={quote(title)}"
    return ChatListEntry(chat=chat, title=title, avatar_url=avatar, peer_uid=peer_uid)


def sort_chats(chats: list[Chat]) -> list[Chat]:
    """Most recent activity first; chats without a last message go last."""
    return sorted(chats, key=lambda c: c.last_activity, reverse=True)


def parse_chats(snapshots: list[DocumentSnapshot]) -> list[Chat]:
    chats = []
    for snapshot in snapshots:
        try:
            chats.append(Chat.from_snapshot(snapshot))
        except pydantic.ValidationError as e:
            logger.warning(
                "Skipping malformed chat: %s", e.error_count(), extra={"chat_id": snapshot.id}
            )
    return chats


class ConversationListSynchronizer:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        viewer_uid: str,
        avatar_base_url: str,
        on_change: Callable[[list[ChatListEntry]], None] | None = None,
    ):
        self.viewer_uid = viewer_uid
        self.entries: list[ChatListEntry] = []
        self._avatar_base_url = avatar_base_url
        self._on_change = on_change
        self._subscription: RegistrySubscription = registry.subscribe_query(
            Collections.CHATS,
            (FieldFilter("members", "array_contains", viewer_uid),),
            self._handle,
            self._handle_error,
        )

    @property
    def chats(self) -> list[Chat]:
        return [entry.chat for entry in self.entries]

    def get(self, chat_id: str) -> Chat | None:
        for entry in self.entries:
            if entry.chat.id == chat_id:
                return entry.chat
        return None

    def _handle(self, snapshots: list[DocumentSnapshot]) -> None:
        self.entries = [
            describe_chat(chat, self.viewer_uid, self._avatar_base_url)
            for chat in sort_chats(parse_chats(snapshots))
        ]
        if self._on_change is not None:
            self._on_change(self.entries)

    def _handle_error(self, exc: Exception) -> None:
        logger.error("Chats error: %s", exc, extra={"uid": self.viewer_uid})

    async def wait_ready(self, timeout: float) -> bool:
        """Wait until the first chat list snapshot has been applied."""
        return await self._subscription.wait_ready(timeout)

    def close(self) -> None:
        self._subscription.close()
