"""Unread counters for conversation list entries.

Each counter watches the messages of one chat. The watch is the same live
query the open conversation uses, so the registry shares it.
"""

import logging
from collections.abc import Callable

from chatsync.core.constants import UNREAD_BADGE_CAP, Collections
from chatsync.message.models import Message
from chatsync.message.reducer import parse_messages
from chatsync.store.base import DocumentSnapshot, FieldFilter
from chatsync.store.registry import RegistrySubscription, SubscriptionRegistry

logger = logging.getLogger(__name__)


def chat_messages_filter(chat_id: str) -> tuple[FieldFilter, ...]:
    return (FieldFilter("chatId", "==", chat_id),)


def count_unread(messages: list[Message], viewer_uid: str) -> int:
    """Messages from others, not read by the viewer and not hidden for them."""
    return sum(
        1
        for m in messages
        if m.is_unread_by(viewer_uid) and m.is_visible_to(viewer_uid)
    )


def badge_text(count: int | None) -> str | None:
    if not count:
        return None
    if count > UNREAD_BADGE_CAP:
        return f"{UNREAD_BADGE_CAP}+"
    return str(count)


class UnreadCounter:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        chat_id: str,
        viewer_uid: str,
        on_change: Callable[[str, int], None] | None = None,
    ):
        self.chat_id = chat_id
        self.viewer_uid = viewer_uid
        self.count = 0
        self._on_change = on_change
        self._subscription: RegistrySubscription = registry.subscribe_query(
            Collections.MESSAGES, chat_messages_filter(chat_id), self._handle
        )

    @property
    def badge(self) -> str | None:
        return badge_text(self.count)

    def _handle(self, snapshots: list[DocumentSnapshot]) -> None:
        count = count_unread(parse_messages(snapshots), self.viewer_uid)
        if count != self.count:
            self.count = count
            if self._on_change is not None:
                self._on_change(self.chat_id, count)

    def close(self) -> None:
        self._subscription.close()


class UnreadCounterPool:
    """One counter per list entry, up to ``max_counters`` entries from the top.

    Chats ranked beyond the cap have no counter and report no count.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        viewer_uid: str,
        max_counters: int = 50,
    ):
        self._registry = registry
        self.viewer_uid = viewer_uid
        self.max_counters = max_counters
        self._counters: dict[str, UnreadCounter] = {}

    def __len__(self) -> int:
        return len(self._counters)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._counters

    def reconcile(self, chat_ids: list[str]) -> None:
        """Match the counters to the current list order."""
        wanted = chat_ids[: self.max_counters]
        wanted_set = set(wanted)

        for chat_id in list(self._counters):
            if chat_id not in wanted_set:
                self._counters.pop(chat_id).close()

        for chat_id in wanted:
            if chat_id not in self._counters:
                self._counters[chat_id] = UnreadCounter(
                    self._registry, chat_id, self.viewer_uid
                )

    def count(self, chat_id: str) -> int | None:
        counter = self._counters.get(chat_id)
        return counter.count if counter is not None else None

    def badge(self, chat_id: str) -> str | None:
        return badge_text(self.count(chat_id))

    def counts(self) -> dict[str, int]:
        return {chat_id: c.count for chat_id, c in self._counters.items()}

    def close(self) -> None:
        for counter in self._counters.values():
            counter.close()
        self._counters.clear()
