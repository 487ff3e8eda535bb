"""Tests for chatsync/message/conversation.py - the open conversation session."""

import logging

import pytest

from chatsync.chat.models import Chat
from chatsync.gateway.exceptions import EmptyMessageError, MessageNotFoundError, SendBlockedError
from chatsync.gateway.service import MutationGateway
from chatsync.message.conversation import ConversationSession
from chatsync.store.base import FieldFilter
from chatsync.store.exceptions import StoreError
from chatsync.store.memory import MemoryDocumentStore, MemoryWriteBatch
from chatsync.store.registry import SubscriptionRegistry
from chatsync.store.values import ArrayUnion


async def _chat(store, chat_id: str) -> Chat:
    return Chat.from_snapshot(await store.get("chats", chat_id))


async def _messages_in(store, chat_id: str) -> list:
    return await store.query("messages", (FieldFilter("chatId", "==", chat_id),))


class _FailingBatch(MemoryWriteBatch):
    async def commit(self) -> None:
        raise StoreError("Store unavailable")


class FlakyReceiptStore(MemoryDocumentStore):
    """Batch commits fail while ``failing`` is set."""

    failing = True

    def batch(self) -> MemoryWriteBatch:
        return _FailingBatch(self) if self.failing else super().batch()


@pytest.mark.asyncio
async def test_send_hello_marks_read_for_peer(store, registry, gateways):
    """Alice sends "hello"; Bob opens the chat and it becomes read by all."""
    alice, bob = gateways["alice"], gateways["bob"]
    chat_id = await alice.open_direct_chat(bob.viewer)
    chat = await _chat(store, chat_id)

    alice_view = ConversationSession(store, registry, alice, chat)
    alice_view.set_draft("  hello  ")
    message_id = await alice_view.send()

    assert alice_view.draft == ""
    stored = (await store.get("messages", message_id)).data
    assert stored["text"] == "hello"
    assert (await _chat(store, chat_id)).last_message.text == "hello"
    assert alice_view.view.messages[-1].receipt.value == "sent"

    bob_view = ConversationSession(store, registry, bob, await _chat(store, chat_id))
    assert bob_view.view.first_unread_id == message_id
    await bob_view.drain()

    assert "bob" in (await store.get("messages", message_id)).data["readBy"]
    assert bob_view.view.unread_ids == ()
    assert alice_view.view.messages[-1].receipt.value == "read_by_all"

    await alice_view.close()
    await bob_view.close()
    assert registry.open_count == 0


@pytest.mark.asyncio
async def test_send_clears_reply_target_and_marker(store, registry, gateways):
    alice, bob = gateways["alice"], gateways["bob"]
    chat_id = await alice.open_direct_chat(bob.viewer)
    chat = await _chat(store, chat_id)
    first = await bob.send_message(chat, "question?")

    conversation = ConversationSession(store, registry, alice, chat)
    assert conversation.view.first_unread_id == first
    await conversation.drain()

    target = conversation.set_reply_target(first)
    assert target.text == "question?"
    reply_id = await conversation.send("answer")

    assert conversation.reply_target is None
    assert conversation.view.first_unread_id is None
    reply = (await store.get("messages", reply_id)).data
    assert reply["replyTo"] == {"id": first, "text": "question?", "senderName": "Bob"}
    await conversation.close()


@pytest.mark.asyncio
async def test_empty_draft_is_rejected_and_kept(store, registry, gateways):
    alice, bob = gateways["alice"], gateways["bob"]
    chat = await _chat(store, await alice.open_direct_chat(bob.viewer))
    conversation = ConversationSession(store, registry, alice, chat)
    conversation.set_draft("   ")

    with pytest.raises(EmptyMessageError):
        await conversation.send()
    assert conversation.draft == "   "
    await conversation.close()


@pytest.mark.asyncio
async def test_block_disables_send_on_both_sides(store, registry, gateways):
    alice, bob = gateways["alice"], gateways["bob"]
    chat = await _chat(store, await alice.open_direct_chat(bob.viewer))
    alice_view = ConversationSession(store, registry, alice, chat)
    bob_view = ConversationSession(store, registry, bob, chat)

    await alice.block(chat, confirmed=True)

    assert alice_view.block_state.blocked_by_me
    assert alice_view.block_state.presence_label == "Blocked"
    assert bob_view.block_state.blocked_me
    assert bob_view.block_state.presence_label == "Offline"

    alice_view.set_draft("hi")
    with pytest.raises(SendBlockedError, match="Unblock"):
        await alice_view.send()
    # Composer untouched when the send is refused
    assert alice_view.draft == "hi"
    with pytest.raises(SendBlockedError, match="cannot message"):
        await bob_view.send("hi")
    assert await _messages_in(store, chat.id) == []

    await alice.unblock(chat)
    assert not bob_view.block_state.send_disabled
    await bob_view.send("hi again")

    await alice_view.close()
    await bob_view.close()


@pytest.mark.asyncio
async def test_hidden_messages_leave_the_view(store, registry, gateways):
    alice, bob = gateways["alice"], gateways["bob"]
    chat = await _chat(store, await alice.open_direct_chat(bob.viewer))
    message_id = await bob.send_message(chat, "oops")
    conversation = ConversationSession(store, registry, alice, chat)
    await conversation.drain()

    await store.update("messages", message_id, {"deletedFor": ArrayUnion("alice")})

    assert conversation.view.messages == ()
    with pytest.raises(MessageNotFoundError):
        conversation.message(message_id)
    await conversation.close()


@pytest.mark.asyncio
async def test_close_is_idempotent(store, registry, gateways):
    alice, bob = gateways["alice"], gateways["bob"]
    chat = await _chat(store, await alice.open_direct_chat(bob.viewer))
    conversation = ConversationSession(store, registry, alice, chat)

    await conversation.close()
    await conversation.close()
    assert conversation.closed
    assert registry.open_count == 0


@pytest.mark.asyncio
async def test_send_before_block_flags_arrive_reads_profiles(
    deferred_store, deferred_registry, deferred_gateways
):
    alice, bob = deferred_gateways["alice"], deferred_gateways["bob"]
    chat = await _chat(deferred_store, await alice.open_direct_chat(bob.viewer))
    await alice.block(chat, confirmed=True)

    bob_view = ConversationSession(deferred_store, deferred_registry, bob, chat)
    assert not bob_view.block_watcher.ready
    assert not bob_view.block_state.send_disabled

    with pytest.raises(SendBlockedError, match="cannot message"):
        await bob_view.send("hi")
    assert await _messages_in(deferred_store, chat.id) == []

    assert await bob_view.wait_ready(1.0)
    assert bob_view.block_watcher.ready
    assert bob_view.block_state.blocked_me
    await bob_view.close()


@pytest.mark.asyncio
async def test_failed_receipts_are_logged_and_retried(alice, bob, seed_profile, caplog):
    store = FlakyReceiptStore()
    for profile in (alice, bob):
        await seed_profile(store, profile)
    registry = SubscriptionRegistry(store)
    alice_gateway, bob_gateway = MutationGateway(store, alice), MutationGateway(store, bob)
    chat = await _chat(store, await alice_gateway.open_direct_chat(bob))
    first = await bob_gateway.send_message(chat, "one")

    with caplog.at_level(logging.WARNING, logger="chatsync.message.conversation"):
        conversation = ConversationSession(store, registry, alice_gateway, chat)
        await conversation.drain()

    assert "Error marking as read" in caplog.text
    assert "alice" not in (await store.get("messages", first)).data["readBy"]
    assert conversation.view.unread_ids == (first,)

    store.failing = False
    second = await bob_gateway.send_message(chat, "two")
    await conversation.drain()

    for message_id in (first, second):
        assert "alice" in (await store.get("messages", message_id)).data["readBy"]
    assert conversation.view.unread_ids == ()
    await conversation.close()
    registry.close()
