"""Pending invitations addressed to the viewer.

Accepted or rejected invitations drop out on the next delivery of the live
query; nothing is removed locally ahead of it.
"""

import logging
from collections.abc import Callable

import pydantic

from chatsync.core.constants import Collections
from chatsync.core.mixins import EPOCH, as_utc
from chatsync.invitation.models import Invitation, InvitationStatus
from chatsync.store.base import DocumentSnapshot, FieldFilter
from chatsync.store.registry import RegistrySubscription, SubscriptionRegistry

logger = logging.getLogger(__name__)


def pending_filters(uid: str) -> tuple[FieldFilter, ...]:
    return (
        FieldFilter("toUid", "==", uid),
        FieldFilter("status", "==", InvitationStatus.pending.value),
    )


def sort_invitations(invitations: list[Invitation]) -> list[Invitation]:
    return sorted(
        invitations,
        key=lambda i: as_utc(i.timestamp) if i.timestamp else EPOCH,
        reverse=True,
    )


class InvitationSynchronizer:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        viewer_uid: str,
        on_change: Callable[[list[Invitation]], None] | None = None,
    ):
        self.viewer_uid = viewer_uid
        self.invitations: list[Invitation] = []
        self._on_change = on_change
        self._subscription: RegistrySubscription = registry.subscribe_query(
            Collections.INVITATIONS,
            pending_filters(viewer_uid),
            self._handle,
            self._handle_error,
        )

    def get(self, invitation_id: str) -> Invitation | None:
        for invitation in self.invitations:
            if invitation.id == invitation_id:
                return invitation
        return None

    def _handle(self, snapshots: list[DocumentSnapshot]) -> None:
        invitations = []
        for snapshot in snapshots:
            try:
                invitations.append(Invitation.from_snapshot(snapshot))
            except pydantic.ValidationError:
                logger.warning(
                    "Skipping malformed invitation", extra={"invitation_id": snapshot.id}
                )
        self.invitations = sort_invitations(invitations)
        if self._on_change is not None:
            self._on_change(self.invitations)

    def _handle_error(self, exc: Exception) -> None:
        logger.error("Invitations error: %s", exc, extra={"uid": self.viewer_uid})

    async def wait_ready(self, timeout: float) -> bool:
        return await self._subscription.wait_ready(timeout)

    def close(self) -> None:
        self._subscription.close()
