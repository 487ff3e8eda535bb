"""Everything live for one signed-in viewer.

A viewer session holds the profile watch, the conversation list, pending
invitations, unread counters, the mutation gateway and at most one open
conversation. Closing it releases every subscription it opened.
"""

import asyncio
import logging

from chatsync.chat.list_sync import ChatListEntry, ConversationListSynchronizer
from chatsync.chat.models import Chat
from chatsync.gateway.exceptions import ChatNotFoundError, InvitationNotFoundError
from chatsync.gateway.service import MutationGateway
from chatsync.invitation.models import Invitation
from chatsync.invitation.sync import InvitationSynchronizer
from chatsync.message.conversation import ConversationSession
from chatsync.message.unread import UnreadCounterPool
from chatsync.profile.models import UserProfile
from chatsync.profile.watch import ProfileWatch
from chatsync.store.base import DocumentStore
from chatsync.store.registry import SubscriptionRegistry
from chatsync.upload.relay import UploadRelay

logger = logging.getLogger(__name__)


class ViewerSession:
    def __init__(
        self,
        store: DocumentStore,
        registry: SubscriptionRegistry,
        profile: UserProfile,
        *,
        id_token: str | None = None,
        relay: UploadRelay | None = None,
        avatar_base_url: str = "https://ui-avatars.com/api/",
        max_unread_counters: int = 50,
        snapshot_timeout: float = 5.0,
    ):
        self.uid = profile.uid
        self.id_token = id_token
        self.snapshot_timeout = snapshot_timeout
        self._store = store
        self._registry = registry
        self.gateway = MutationGateway(
            store, profile, relay=relay, avatar_base_url=avatar_base_url
        )
        self.unread = UnreadCounterPool(registry, self.uid, max_unread_counters)
        self.conversation: ConversationSession | None = None
        self._closeables: list = []

        try:
            self.profile_watch = ProfileWatch(registry, self.uid, self._on_profile)
            self._closeables.append(self.profile_watch)
            self.conversations = ConversationListSynchronizer(
                registry, self.uid, avatar_base_url, self._on_chats
            )
            self._closeables.append(self.conversations)
            self.invitations = InvitationSynchronizer(registry, self.uid)
            self._closeables.append(self.invitations)
        except Exception:
            self._release()
            raise
        logger.info("Viewer session opened", extra={"uid": self.uid})

    @property
    def profile(self) -> UserProfile:
        return self.gateway.viewer

    @property
    def needs_password(self) -> bool:
        return self.profile.needs_password

    def _on_profile(self, profile: UserProfile) -> None:
        self.gateway.viewer = profile

    def _on_chats(self, entries: list[ChatListEntry]) -> None:
        self.unread.reconcile([entry.id for entry in entries])

        conversation = self.conversation
        if conversation is None:
            return
        chat = self.conversations.get(conversation.chat_id)
        if chat is None:
            # Deleted, or the viewer left
            conversation.detach()
            self.conversation = None
        elif chat != conversation.chat:
            conversation.update_chat(chat)

    async def wait_ready(self) -> bool:
        """Wait for the first profile, chat list and invitation snapshots.

        Lookups below only see what has been delivered. Returns False when
        something is still missing after ``snapshot_timeout``.
        """
        results = await asyncio.gather(
            self.profile_watch.wait_ready(self.snapshot_timeout),
            self.conversations.wait_ready(self.snapshot_timeout),
            self.invitations.wait_ready(self.snapshot_timeout),
        )
        return all(results)

    # Lookups against observed state

    def entry(self, chat_id: str) -> ChatListEntry:
        for entry in self.conversations.entries:
            if entry.id == chat_id:
                return entry
        raise ChatNotFoundError()

    def chat(self, chat_id: str) -> Chat:
        """A chat from the viewer's live list. Membership is implied."""
        return self.entry(chat_id).chat

    def invitation(self, invitation_id: str) -> Invitation:
        invitation = self.invitations.get(invitation_id)
        if invitation is None:
            raise InvitationNotFoundError()
        return invitation

    # Open conversation

    async def open_conversation(self, chat_id: str) -> ConversationSession:
        """Open ``chat_id`` (or reuse it if already open) once its messages
        and block flags have been delivered."""
        chat = self.chat(chat_id)
        conversation = self.conversation
        if conversation is not None and conversation.chat_id != chat_id:
            await self.close_conversation()
            conversation = None
        if conversation is None:
            conversation = ConversationSession(
                self._store, self._registry, self.gateway, chat
            )
            self.conversation = conversation
        await conversation.wait_ready(self.snapshot_timeout)
        return conversation

    async def close_conversation(self) -> None:
        conversation, self.conversation = self.conversation, None
        if conversation is not None:
            await conversation.close()

    def _release(self) -> None:
        for closeable in reversed(self._closeables):
            closeable.close()
        self._closeables.clear()
        self.unread.close()

    async def close(self) -> None:
        await self.close_conversation()
        self._release()
        logger.info("Viewer session closed", extra={"uid": self.uid})
