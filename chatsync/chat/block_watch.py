"""Symmetric block state for an open one-to-one conversation.

Each side's ``blockedUsers`` lives on its own profile document, so the pair of
flags is derived from two independent live watches and never stored as one
shared value.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

from chatsync.core.constants import Collections
from chatsync.profile.models import UserProfile
from chatsync.store.base import DocumentSnapshot
from chatsync.store.registry import RegistrySubscription, SubscriptionRegistry


@dataclass(frozen=True)
class BlockState:
    blocked_by_me: bool = False
    blocked_me: bool = False

    @property
    def send_disabled(self) -> bool:
        return self.blocked_by_me or self.blocked_me

    @property
    def presence_label(self) -> str:
        if self.blocked_by_me:
            return "Blocked"
        if self.blocked_me:
            return "Offline"
        return "Online"


class BlockWatcher:
    """Watches ``users/<viewer>`` and ``users/<peer>``.

    ``state`` is only meaningful once ``ready``: both profile documents have
    been delivered at least once.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        viewer_uid: str,
        peer_uid: str,
        on_change: Callable[[BlockState], None] | None = None,
    ):
        self.viewer_uid = viewer_uid
        self.peer_uid = peer_uid
        self.state = BlockState()
        self._on_change = on_change
        self._seen: set[str] = set()
        self._subscriptions: list[RegistrySubscription] = []
        try:
            self._subscriptions.append(
                registry.subscribe_document(Collections.USERS, viewer_uid, self._on_self)
            )
            self._subscriptions.append(
                registry.subscribe_document(Collections.USERS, peer_uid, self._on_peer)
            )
        except Exception:
            self.close()
            raise

    @property
    def ready(self) -> bool:
        return len(self._seen) == 2

    async def wait_ready(self, timeout: float) -> bool:
        results = await asyncio.gather(
            *(subscription.wait_ready(timeout) for subscription in self._subscriptions)
        )
        return all(results) and self.ready

    def _update(self, state: BlockState) -> None:
        if state == self.state:
            return
        self.state = state
        if self._on_change is not None:
            self._on_change(state)

    # A missing profile document leaves the previous flag untouched

    def _on_self(self, snapshot: DocumentSnapshot | None) -> None:
        self._seen.add("self")
        if snapshot is None:
            return
        profile = UserProfile.from_snapshot(snapshot)
        self._update(
            BlockState(
                blocked_by_me=profile.has_blocked(self.peer_uid),
                blocked_me=self.state.blocked_me,
            )
        )

    def _on_peer(self, snapshot: DocumentSnapshot | None) -> None:
        self._seen.add("peer")
        if snapshot is None:
            return
        profile = UserProfile.from_snapshot(snapshot)
        self._update(
            BlockState(
                blocked_by_me=self.state.blocked_by_me,
                blocked_me=profile.has_blocked(self.viewer_uid),
            )
        )

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
