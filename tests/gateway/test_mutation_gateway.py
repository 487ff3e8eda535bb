"""Tests for chatsync/gateway/service.py - guarded mutations."""

from unittest.mock import AsyncMock, MagicMock

import anyio
import pytest
from hypothesis import given
from hypothesis import settings as hypothesis_settings
from hypothesis import strategies as st

from chatsync.chat.models import Chat
from chatsync.core.constants import REACTION_EMOJIS
from chatsync.gateway.exceptions import (
    ConfirmationRequiredError,
    InvalidChatOperationError,
    InvitationClosedError,
    MessageAlreadyDeletedError,
    MutationFailedError,
    NotChatMemberError,
    NotChatOwnerError,
    NotInvitationRecipientError,
    NotMessageSenderError,
)
from chatsync.gateway.service import MutationGateway
from chatsync.invitation.models import Invitation
from chatsync.message.models import Message
from chatsync.profile.models import UserProfile
from chatsync.store.base import FieldFilter
from chatsync.store.exceptions import StoreError
from chatsync.store.memory import MemoryDocumentStore
from chatsync.store.values import SERVER_TIMESTAMP
from chatsync.upload.relay import UploadRelay, UploadResult


async def _chat(store, chat_id: str) -> Chat:
    return Chat.from_snapshot(await store.get("chats", chat_id))


async def _message(store, message_id: str) -> Message:
    return Message.from_snapshot(await store.get("messages", message_id))


async def _invitations(store, to_uid: str) -> list[Invitation]:
    snapshots = await store.query("invitations", (FieldFilter("toUid", "==", to_uid),))
    return [Invitation.from_snapshot(s) for s in snapshots]


class TestDirectChats:
    @pytest.mark.asyncio
    async def test_open_direct_chat_is_deduplicated(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]

        first = await alice.open_direct_chat(bob.viewer)
        again = await alice.open_direct_chat(bob.viewer)
        from_bob = await bob.open_direct_chat(alice.viewer)

        assert first == again == from_bob
        chat = await _chat(store, first)
        assert chat.members == ["alice", "bob"]
        assert chat.members_data["bob"].display_name == "Bob"
        assert chat.last_message.text == "Started a new conversation"

    @pytest.mark.asyncio
    async def test_chat_with_yourself_is_rejected(self, gateways):
        alice = gateways["alice"]
        with pytest.raises(InvalidChatOperationError):
            await alice.open_direct_chat(alice.viewer)

    @pytest.mark.asyncio
    async def test_block_requires_confirmation(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]
        chat = await _chat(store, await alice.open_direct_chat(bob.viewer))

        with pytest.raises(ConfirmationRequiredError):
            await alice.block(chat)
        assert (await store.get("users", "alice")).data["blockedUsers"] == []

        await alice.block(chat, confirmed=True)
        assert (await store.get("users", "alice")).data["blockedUsers"] == ["bob"]
        state = await bob.block_state(chat)
        assert state.blocked_me and not state.blocked_by_me


class TestMessages:
    @pytest.mark.asyncio
    async def test_delete_for_everyone_leaves_tombstone(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]
        chat = await _chat(store, await alice.open_direct_chat(bob.viewer))
        message_id = await alice.send_message(chat, "secret")
        await store.update("messages", message_id, {("readBy", "bob"): SERVER_TIMESTAMP})
        await bob.react(await _message(store, message_id), "👍")
        await bob.delete_for_me(await _message(store, message_id))
        before = await _message(store, message_id)

        with pytest.raises(NotMessageSenderError):
            await bob.delete_for_everyone(before)

        await alice.delete_for_everyone(before)
        tombstone = await _message(store, message_id)
        assert tombstone.is_deleted
        assert tombstone.text == "This message was deleted"
        # Receipts, reactions and per-user hiding survive the tombstone
        assert tombstone.read_by == before.read_by
        assert set(tombstone.read_by) == {"alice", "bob"}
        assert tombstone.reactions == {"👍": ["bob"]}
        assert tombstone.deleted_for == ["bob"]

        with pytest.raises(MessageAlreadyDeletedError):
            await alice.delete_for_everyone(tombstone)

    @pytest.mark.asyncio
    async def test_reply_to_deleted_message_uses_placeholder(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]
        chat = await _chat(store, await alice.open_direct_chat(bob.viewer))
        original = await alice.send_message(chat, "secret")
        await alice.delete_for_everyone(await _message(store, original))

        reply_id = await bob.send_message(
            chat, "what was that?", reply_to=await _message(store, original)
        )
        reply = await _message(store, reply_id)
        assert reply.reply_to.text == "Deleted message"

    @pytest.mark.asyncio
    async def test_delete_for_me_only_hides_for_viewer(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]
        chat = await _chat(store, await alice.open_direct_chat(bob.viewer))
        message_id = await bob.send_message(chat, "hi")

        await alice.delete_for_me(await _message(store, message_id))

        message = await _message(store, message_id)
        assert not message.is_visible_to("alice")
        assert message.is_visible_to("bob")
        assert message.text == "hi"

    @hypothesis_settings(max_examples=30, deadline=None)
    @given(st.lists(st.sampled_from(REACTION_EMOJIS), max_size=8))
    def test_reaction_toggle_parity(self, toggles):
        async def scenario() -> None:
            store = MemoryDocumentStore()
            alice = MutationGateway(store, UserProfile(uid="alice", display_name="Alice"))
            message_id = await store.add(
                "messages", {"chatId": "c1", "senderId": "bob", "reactions": {}}
            )
            for emoji in toggles:
                await alice.react(await _message(store, message_id), emoji)

            reactions = (await _message(store, message_id)).reactions
            for emoji in REACTION_EMOJIS:
                reacted = "alice" in reactions.get(emoji, [])
                assert reacted == (toggles.count(emoji) % 2 == 1)

        anyio.run(scenario)

    @pytest.mark.asyncio
    async def test_forward_marks_copy_and_updates_target(self, store, gateways, carol):
        alice, bob = gateways["alice"], gateways["bob"]
        source = await _chat(store, await alice.open_direct_chat(bob.viewer))
        target = await _chat(store, await alice.open_direct_chat(carol))
        message = await _message(store, await bob.send_message(source, "pass it on"))

        forwarded_id = await alice.forward(message, target)

        forwarded = await _message(store, forwarded_id)
        assert forwarded.is_forwarded
        assert forwarded.chat_id == target.id
        assert forwarded.sender_id == "alice"
        assert (await _chat(store, target.id)).last_message.text == "Forwarded: pass it on"

        with pytest.raises(NotChatMemberError):
            await bob.forward(message, target)

    @pytest.mark.asyncio
    async def test_forward_deleted_message_is_rejected(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]
        chat = await _chat(store, await alice.open_direct_chat(bob.viewer))
        message_id = await alice.send_message(chat, "gone")
        await alice.delete_for_everyone(await _message(store, message_id))

        with pytest.raises(MessageAlreadyDeletedError):
            await alice.forward(await _message(store, message_id), chat)


class TestFiles:
    @pytest.mark.asyncio
    async def test_successful_upload_posts_file_message(self, store, alice, bob, users):
        relay = MagicMock(spec=UploadRelay)
        relay.upload = AsyncMock(
            return_value=UploadResult(
                status="success", file_name="a.pdf", file_size=3, file_url="https://f/a.pdf"
            )
        )
        gateway = MutationGateway(store, alice, relay=relay)
        chat = await _chat(store, await gateway.open_direct_chat(bob))

        result = await gateway.send_file(chat, "a.pdf", b"pdf", "application/pdf")

        message = await _message(store, result.message_id)
        assert message.type.value == "file"
        assert message.text == "📎 Sent a file: a.pdf"
        assert message.file_url == "https://f/a.pdf"
        assert (await _chat(store, chat.id)).last_message.text == "📎 a.pdf"

    @pytest.mark.asyncio
    async def test_failed_upload_sends_nothing(self, store, alice, bob, users):
        relay = MagicMock(spec=UploadRelay)
        relay.upload = AsyncMock(
            return_value=UploadResult(status="error", message="HTTP error! status: 500")
        )
        gateway = MutationGateway(store, alice, relay=relay)
        chat = await _chat(store, await gateway.open_direct_chat(bob))

        result = await gateway.send_file(chat, "a.pdf", b"pdf")

        assert result.message_id is None
        assert result.upload.message == "HTTP error! status: 500"
        assert await store.query("messages") == []


class TestGroups:
    @pytest.mark.asyncio
    async def test_create_group_invites_everyone_else(self, store, gateways):
        alice = gateways["alice"]
        chat_id = await alice.create_group(" Team ", ["bob", "carol", "alice", "bob"])

        chat = await _chat(store, chat_id)
        assert chat.name == "Team"
        assert chat.members == ["alice"]
        assert chat.creator_id == "alice"
        assert chat.last_message.text == "Group created. Invitations sent."
        assert [i.group_id for i in await _invitations(store, "bob")] == [chat_id]
        assert len(await _invitations(store, "carol")) == 1
        assert await _invitations(store, "alice") == []

    @pytest.mark.asyncio
    async def test_create_group_validation(self, gateways):
        alice = gateways["alice"]
        with pytest.raises(InvalidChatOperationError):
            await alice.create_group("  ", ["bob"])
        with pytest.raises(InvalidChatOperationError):
            await alice.create_group("Team", ["alice"])

    @pytest.mark.asyncio
    async def test_accept_joins_with_member_snapshot(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]
        chat_id = await alice.create_group("Team", ["bob"])
        (invitation,) = await _invitations(store, "bob")

        assert await bob.accept_invitation(invitation)

        chat = await _chat(store, chat_id)
        assert chat.members == ["alice", "bob"]
        assert chat.members_data["bob"].display_name == "Bob"
        (accepted,) = await _invitations(store, "bob")
        assert accepted.status.value == "accepted"

        with pytest.raises(InvitationClosedError):
            await bob.accept_invitation(accepted)

    @pytest.mark.asyncio
    async def test_accept_after_group_deleted(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]
        chat_id = await alice.create_group("Team", ["bob"])
        (invitation,) = await _invitations(store, "bob")
        await alice.delete_group(await _chat(store, chat_id), confirmed=True)

        assert await bob.accept_invitation(invitation) is False

        assert await store.get("chats", chat_id) is None
        (accepted,) = await _invitations(store, "bob")
        assert accepted.status.value == "accepted"

    @pytest.mark.asyncio
    async def test_only_recipient_can_answer(self, store, gateways):
        alice, carol = gateways["alice"], gateways["carol"]
        await alice.create_group("Team", ["bob"])
        (invitation,) = await _invitations(store, "bob")

        with pytest.raises(NotInvitationRecipientError):
            await carol.reject_invitation(invitation)

    @pytest.mark.asyncio
    async def test_reject_closes_invitation(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]
        chat_id = await alice.create_group("Team", ["bob"])
        (invitation,) = await _invitations(store, "bob")

        await bob.reject_invitation(invitation)

        (rejected,) = await _invitations(store, "bob")
        assert rejected.status.value == "rejected"
        assert (await _chat(store, chat_id)).members == ["alice"]

    @pytest.mark.asyncio
    async def test_add_member_is_creator_only(self, store, gateways, carol):
        alice, bob = gateways["alice"], gateways["bob"]
        chat_id = await alice.create_group("Team", ["bob"])
        (invitation,) = await _invitations(store, "bob")
        await bob.accept_invitation(invitation)
        chat = await _chat(store, chat_id)

        with pytest.raises(NotChatOwnerError):
            await bob.add_member(chat, carol)

        await alice.add_member(chat, carol)
        chat = await _chat(store, chat_id)
        assert "carol" in chat.members
        assert chat.members_data["carol"].photo_url == carol.photo_url

    @pytest.mark.asyncio
    async def test_leave_group(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]
        chat_id = await alice.create_group("Team", ["bob"])
        (invitation,) = await _invitations(store, "bob")
        await bob.accept_invitation(invitation)
        chat = await _chat(store, chat_id)

        with pytest.raises(ConfirmationRequiredError):
            await bob.leave_group(chat)
        with pytest.raises(InvalidChatOperationError):
            await alice.leave_group(chat, confirmed=True)

        await bob.leave_group(chat, confirmed=True)
        chat = await _chat(store, chat_id)
        assert chat.members == ["alice"]
        assert "bob" not in chat.members_data

    @pytest.mark.asyncio
    async def test_delete_group_keeps_messages(self, store, gateways):
        alice, bob = gateways["alice"], gateways["bob"]
        chat_id = await alice.create_group("Team", ["bob"])
        chat = await _chat(store, chat_id)
        await alice.send_message(chat, "bye")

        with pytest.raises(ConfirmationRequiredError):
            await alice.delete_group(chat)
        with pytest.raises(NotChatOwnerError):
            await bob.delete_group(chat, confirmed=True)

        await alice.delete_group(chat, confirmed=True)
        assert await store.get("chats", chat_id) is None
        assert len(await store.query("messages", (FieldFilter("chatId", "==", chat_id),))) == 1


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_store_error_surfaces_as_mutation_failed(self, alice, bob):
        class BrokenStore(MemoryDocumentStore):
            async def add(self, collection, data):
                raise StoreError("unavailable")

        store = BrokenStore()
        gateway = MutationGateway(store, alice)

        with pytest.raises(MutationFailedError):
            await gateway.open_direct_chat(bob)
