"""Mutation gateway.

Every state change goes through here. Each operation checks its
preconditions against locally observed state, raising before touching the
store, then commits one or more independent store writes. There is no
rollback: if a later step fails, earlier steps stay applied and the failure
is logged and surfaced as MutationFailedError.
"""

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import quote

from chatsync.chat.block_watch import BlockState
from chatsync.chat.models import Chat, ChatType
from chatsync.core.constants import (
    DELETED_MESSAGE_TEXT,
    DELETED_REPLY_TEXT,
    FILE_MESSAGE_PREFIX,
    FILE_PREVIEW_PREFIX,
    FORWARDED_PREFIX,
    NEW_DIRECT_CHAT_TEXT,
    NEW_GROUP_TEXT,
    Collections,
)
from chatsync.gateway.exceptions import (
    ConfirmationRequiredError,
    EmptyMessageError,
    InvalidChatOperationError,
    InvitationClosedError,
    MessageAlreadyDeletedError,
    MutationFailedError,
    NotChatMemberError,
    NotChatOwnerError,
    NotInvitationRecipientError,
    NotMessageSenderError,
    SendBlockedError,
)
from chatsync.invitation.models import Invitation, InvitationStatus
from chatsync.message.models import Message, MessageType
from chatsync.profile.models import UserProfile
from chatsync.store.base import DocumentStore, FieldFilter
from chatsync.store.exceptions import DocumentNotFoundError, StoreError
from chatsync.store.values import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
)
from chatsync.upload.relay import UploadRelay, UploadResult

T = TypeVar("T")

logger = logging.getLogger("chatsync.gateway")


@dataclass(frozen=True)
class FileSendResult:
    upload: UploadResult
    message_id: str | None = None


def member_snapshot(profile: UserProfile) -> dict[str, Any]:
    """Denormalized ``membersData`` entry."""
    return {"displayName": profile.display_name, "photoURL": profile.photo_url}


class MutationGateway:
    """Mutations on behalf of one signed-in viewer."""

    def __init__(
        self,
        store: DocumentStore,
        viewer: UserProfile,
        relay: UploadRelay | None = None,
        avatar_base_url: str = "https://ui-avatars.com/api/",
    ):
        self._store = store
        self.viewer = viewer
        self._relay = relay
        self._avatar_base_url = avatar_base_url

    @property
    def uid(self) -> str:
        return self.viewer.uid

    async def _commit(self, operation: str, write: Awaitable[T], **extra: Any) -> T:
        try:
            return await write
        except StoreError as e:
            logger.error(
                "%s failed: %s",
                operation,
                e.message,
                extra={"operation": operation, "uid": self.uid, **extra},
            )
            raise MutationFailedError() from e

    # Preconditions

    def _require_member(self, chat: Chat) -> None:
        if not chat.is_member(self.uid):
            raise NotChatMemberError()

    def _require_group(self, chat: Chat) -> None:
        if not chat.is_group:
            raise InvalidChatOperationError("Only available in group chats")

    def _require_creator(self, chat: Chat) -> None:
        self._require_group(chat)
        if not chat.is_creator(self.uid):
            raise NotChatOwnerError()

    def _peer(self, chat: Chat) -> str:
        if chat.is_group:
            raise InvalidChatOperationError("Only available in one-to-one chats")
        peer = chat.peer_of(self.uid)
        if peer is None:
            raise InvalidChatOperationError("This chat has no other member")
        return peer

    async def block_state(self, chat: Chat) -> BlockState:
        """Fetch both block flags once, for callers without a live watcher."""
        if chat.is_group:
            return BlockState()
        peer_uid = self._peer(chat)
        me = await self._store.get(Collections.USERS, self.uid)
        peer = await self._store.get(Collections.USERS, peer_uid)
        blocked_by_me = me is not None and peer_uid in me.data.get("blockedUsers", [])
        blocked_me = peer is not None and self.uid in peer.data.get("blockedUsers", [])
        return BlockState(blocked_by_me=blocked_by_me, blocked_me=blocked_me)

    async def ensure_can_send(
        self, chat: Chat, block_state: BlockState | None = None
    ) -> None:
        """Raise unless the viewer may post in ``chat`` right now."""
        self._require_member(chat)
        if chat.is_group:
            return
        state = block_state if block_state is not None else await self.block_state(chat)
        if state.blocked_by_me:
            raise SendBlockedError("You have blocked this user. Unblock to send messages.")
        if state.blocked_me:
            raise SendBlockedError("You cannot message this user.")

    # Messages

    def _new_message(self, chat_id: str, text: str, **fields: Any) -> dict[str, Any]:
        return {
            "chatId": chat_id,
            "senderId": self.uid,
            "senderName": self.viewer.display_name,
            "text": text,
            "type": MessageType.text.value,
            "timestamp": SERVER_TIMESTAMP,
            "readBy": {self.uid: SERVER_TIMESTAMP},
            **fields,
        }

    async def _touch_chat(self, chat_id: str, preview: str) -> None:
        await self._commit(
            "update_last_message",
            self._store.update(
                Collections.CHATS,
                chat_id,
                {
                    "lastMessage": {
                        "text": preview,
                        "senderId": self.uid,
                        "senderName": self.viewer.display_name,
                        "timestamp": SERVER_TIMESTAMP,
                    }
                },
            ),
            chat_id=chat_id,
        )

    async def send_message(
        self,
        chat: Chat,
        text: str,
        *,
        reply_to: Message | None = None,
        block_state: BlockState | None = None,
        override: bool = False,
    ) -> str:
        """Create a text message and update the chat summary.

        Typed text is trimmed; ``override`` sends ``text`` exactly as given.
        """
        content = text if override else text.strip()
        if not content:
            raise EmptyMessageError()
        await self.ensure_can_send(chat, block_state)

        data = self._new_message(chat.id, content, isForwarded=False)
        if reply_to is not None:
            data["replyTo"] = {
                "id": reply_to.id,
                "text": DELETED_REPLY_TEXT if reply_to.is_deleted else reply_to.text,
                "senderName": reply_to.sender_name,
            }

        message_id = await self._commit(
            "send_message", self._store.add(Collections.MESSAGES, data), chat_id=chat.id
        )
        await self._touch_chat(chat.id, content)
        return message_id

    async def send_file(
        self,
        chat: Chat,
        file_name: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        *,
        block_state: BlockState | None = None,
    ) -> FileSendResult:
        """Upload first; write the file message only when the upload succeeded."""
        if self._relay is None:
            raise InvalidChatOperationError("File uploads are not configured")
        await self.ensure_can_send(chat, block_state)

        upload = await self._relay.upload(file_name, content, content_type)
        if not upload.ok:
            logger.warning(
                "File send skipped: %s",
                upload.message,
                extra={"operation": "send_file", "uid": self.uid, "chat_id": chat.id},
            )
            return FileSendResult(upload=upload)

        data = self._new_message(
            chat.id,
            f"{FILE_MESSAGE_PREFIX}{file_name}",
            type=MessageType.file.value,
            fileUrl=upload.file_url,
            fileName=file_name,
        )
        message_id = await self._commit(
            "send_file", self._store.add(Collections.MESSAGES, data), chat_id=chat.id
        )
        await self._touch_chat(chat.id, f"{FILE_PREVIEW_PREFIX}{file_name}")
        return FileSendResult(upload=upload, message_id=message_id)

    async def delete_for_me(self, message: Message) -> None:
        await self._commit(
            "delete_for_me",
            self._store.update(
                Collections.MESSAGES, message.id, {"deletedFor": ArrayUnion(self.uid)}
            ),
            message_id=message.id,
        )

    async def delete_for_everyone(self, message: Message) -> None:
        if message.sender_id != self.uid:
            raise NotMessageSenderError()
        if message.is_deleted:
            raise MessageAlreadyDeletedError()
        await self._commit(
            "delete_for_everyone",
            self._store.update(
                Collections.MESSAGES,
                message.id,
                {
                    "isDeleted": True,
                    "text": DELETED_MESSAGE_TEXT,
                    "fileUrl": None,
                    "fileName": None,
                },
            ),
            message_id=message.id,
        )

    async def react(self, message: Message, emoji: str) -> bool:
        """Toggle the viewer's reaction. Returns True when it was added."""
        if not emoji:
            raise InvalidChatOperationError("Reaction emoji is required")
        removing = self.uid in message.reactions.get(emoji, [])
        change = ArrayRemove(self.uid) if removing else ArrayUnion(self.uid)
        await self._commit(
            "react",
            self._store.update(Collections.MESSAGES, message.id, {("reactions", emoji): change}),
            message_id=message.id,
        )
        return not removing

    async def forward(self, message: Message, target: Chat) -> str:
        self._require_member(target)
        if message.is_deleted:
            raise MessageAlreadyDeletedError("Deleted messages cannot be forwarded")

        data = self._new_message(
            target.id,
            message.text,
            type=message.type.value,
            fileUrl=message.file_url,
            fileName=message.file_name,
            isForwarded=True,
        )
        message_id = await self._commit(
            "forward", self._store.add(Collections.MESSAGES, data), chat_id=target.id
        )
        await self._touch_chat(target.id, f"{FORWARDED_PREFIX}{message.text}")
        return message_id

    # Chats

    async def open_direct_chat(self, peer: UserProfile) -> str:
        """Return the one-to-one chat with ``peer``, creating it if needed.

        Two clients creating the same pair at the same moment can both miss
        the lookup and create two chats.
        """
        if peer.uid == self.uid:
            raise InvalidChatOperationError("You cannot start a chat with yourself")

        existing = await self._commit(
            "find_direct_chat",
            self._store.query(
                Collections.CHATS,
                (
                    FieldFilter("type", "==", ChatType.one_to_one.value),
                    FieldFilter("members", "array_contains", self.uid),
                ),
            ),
        )
        for snapshot in existing:
            if peer.uid in snapshot.data.get("members", []):
                return snapshot.id

        peer_photo = peer.photo_url or (
            f"{self._avatar_base_url}?name={quote(peer.display_name)}"
        )
        chat_id = await self._commit(
            "create_direct_chat",
            self._store.add(
                Collections.CHATS,
                {
                    "type": ChatType.one_to_one.value,
                    "members": [self.uid, peer.uid],
                    "membersData": {
                        self.uid: member_snapshot(self.viewer),
                        peer.uid: {"displayName": peer.display_name, "photoURL": peer_photo},
                    },
                    "createdAt": SERVER_TIMESTAMP,
                    "lastMessage": {
                        "text": NEW_DIRECT_CHAT_TEXT,
                        "senderId": self.uid,
                        "senderName": self.viewer.display_name,
                        "timestamp": SERVER_TIMESTAMP,
                    },
                },
            ),
        )
        logger.info(
            "Created one-to-one chat",
            extra={"operation": "create_direct_chat", "uid": self.uid, "chat_id": chat_id},
        )
        return chat_id

    async def create_group(self, name: str, invitee_uids: list[str]) -> str:
        """Create a group with the viewer as sole member and invite the rest."""
        group_name = name.strip()
        if not group_name:
            raise InvalidChatOperationError("Group name is required")
        invitees = list(dict.fromkeys(uid for uid in invitee_uids if uid != self.uid))
        if not invitees:
            raise InvalidChatOperationError("Select at least one member to invite")

        chat_id = await self._commit(
            "create_group",
            self._store.add(
                Collections.CHATS,
                {
                    "type": ChatType.group.value,
                    "name": group_name,
                    "creatorId": self.uid,
                    "members": [self.uid],
                    "membersData": {self.uid: member_snapshot(self.viewer)},
                    "createdAt": SERVER_TIMESTAMP,
                    "lastMessage": {
                        "text": NEW_GROUP_TEXT,
                        "senderId": self.uid,
                        "senderName": self.viewer.display_name,
                        "timestamp": SERVER_TIMESTAMP,
                    },
                },
            ),
        )

        for invitee in invitees:
            await self._commit(
                "invite",
                self._store.add(
                    Collections.INVITATIONS,
                    {
                        "groupId": chat_id,
                        "groupName": group_name,
                        "toUid": invitee,
                        "fromUid": self.uid,
                        "fromName": self.viewer.display_name,
                        "status": InvitationStatus.pending.value,
                        "timestamp": SERVER_TIMESTAMP,
                    },
                ),
                chat_id=chat_id,
            )
        logger.info(
            "Created group",
            extra={
                "operation": "create_group",
                "uid": self.uid,
                "chat_id": chat_id,
                "count": len(invitees),
            },
        )
        return chat_id

    async def block(self, chat: Chat, *, confirmed: bool = False) -> None:
        if not confirmed:
            raise ConfirmationRequiredError("Confirm that you want to block this user")
        peer = self._peer(chat)
        await self._commit(
            "block",
            self._store.update(Collections.USERS, self.uid, {"blockedUsers": ArrayUnion(peer)}),
            chat_id=chat.id,
        )

    async def unblock(self, chat: Chat) -> None:
        peer = self._peer(chat)
        await self._commit(
            "unblock",
            self._store.update(Collections.USERS, self.uid, {"blockedUsers": ArrayRemove(peer)}),
            chat_id=chat.id,
        )

    async def add_member(self, chat: Chat, member: UserProfile) -> None:
        self._require_creator(chat)
        await self._commit(
            "add_member",
            self._store.update(
                Collections.CHATS,
                chat.id,
                {
                    "members": ArrayUnion(member.uid),
                    ("membersData", member.uid): member_snapshot(member),
                },
            ),
            chat_id=chat.id,
        )

    async def leave_group(self, chat: Chat, *, confirmed: bool = False) -> None:
        if not confirmed:
            raise ConfirmationRequiredError("Confirm that you want to leave this group")
        self._require_group(chat)
        self._require_member(chat)
        if chat.is_creator(self.uid):
            raise InvalidChatOperationError(
                "The group creator cannot leave. Delete the group instead."
            )
        await self._commit(
            "leave_group",
            self._store.update(
                Collections.CHATS,
                chat.id,
                {"members": ArrayRemove(self.uid), ("membersData", self.uid): DELETE_FIELD},
            ),
            chat_id=chat.id,
        )

    async def delete_group(self, chat: Chat, *, confirmed: bool = False) -> None:
        """Delete the chat document. Its messages are left in place."""
        if not confirmed:
            raise ConfirmationRequiredError("Confirm that you want to delete this group")
        self._require_creator(chat)
        await self._commit(
            "delete_group", self._store.delete(Collections.CHATS, chat.id), chat_id=chat.id
        )
        logger.info(
            "Deleted group",
            extra={"operation": "delete_group", "uid": self.uid, "chat_id": chat.id},
        )

    # Invitations

    def _require_open_invitation(self, invitation: Invitation) -> None:
        if invitation.to_uid != self.uid:
            raise NotInvitationRecipientError()
        if invitation.status != InvitationStatus.pending:
            raise InvitationClosedError()

    async def accept_invitation(self, invitation: Invitation) -> bool:
        """Accept and join the group. Returns False when the group is gone."""
        self._require_open_invitation(invitation)
        await self._commit(
            "accept_invitation",
            self._store.update(
                Collections.INVITATIONS,
                invitation.id,
                {"status": InvitationStatus.accepted.value},
            ),
            invitation_id=invitation.id,
        )

        chat = await self._commit(
            "load_group",
            self._store.get(Collections.CHATS, invitation.group_id),
            chat_id=invitation.group_id,
        )
        if chat is None:
            logger.info(
                "Accepted invitation to a deleted group",
                extra={"invitation_id": invitation.id, "chat_id": invitation.group_id},
            )
            return False
        if self.uid in chat.data.get("members", []):
            return True

        try:
            await self._store.update(
                Collections.CHATS,
                invitation.group_id,
                {
                    "members": ArrayUnion(self.uid),
                    ("membersData", self.uid): member_snapshot(self.viewer),
                },
            )
        except DocumentNotFoundError:
            # Deleted between the read and the write
            logger.info(
                "Accepted invitation to a deleted group",
                extra={"invitation_id": invitation.id, "chat_id": invitation.group_id},
            )
            return False
        except StoreError as e:
            logger.error(
                "join_group failed: %s",
                e.message,
                extra={"operation": "join_group", "uid": self.uid, "chat_id": invitation.group_id},
            )
            raise MutationFailedError() from e
        return True

    async def reject_invitation(self, invitation: Invitation) -> None:
        self._require_open_invitation(invitation)
        await self._commit(
            "reject_invitation",
            self._store.update(
                Collections.INVITATIONS,
                invitation.id,
                {"status": InvitationStatus.rejected.value},
            ),
            invitation_id=invitation.id,
        )
