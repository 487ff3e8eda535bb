"""Live watch on the viewer's own profile document."""

import logging
from collections.abc import Callable

from chatsync.core.constants import Collections
from chatsync.profile.models import UserProfile
from chatsync.store.base import DocumentSnapshot
from chatsync.store.registry import RegistrySubscription, SubscriptionRegistry

logger = logging.getLogger(__name__)


class ProfileWatch:
    """Keeps the latest profile and the needs-password flag current."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        uid: str,
        on_change: Callable[[UserProfile], None] | None = None,
    ):
        self.uid = uid
        self.profile: UserProfile | None = None
        self._on_change = on_change
        self._subscription: RegistrySubscription = registry.subscribe_document(
            Collections.USERS, uid, self._handle
        )

    @property
    def needs_password(self) -> bool:
        return self.profile is not None and self.profile.needs_password

    def _handle(self, snapshot: DocumentSnapshot | None) -> None:
        # A missing document keeps the last known profile
        if snapshot is None:
            return
        self.profile = UserProfile.from_snapshot(snapshot)
        if self._on_change is not None:
            self._on_change(self.profile)

    async def wait_ready(self, timeout: float) -> bool:
        return await self._subscription.wait_ready(timeout)

    def close(self) -> None:
        self._subscription.close()
