"""Per-conversation session.

Owns everything tied to one open conversation: the reducer and its pinned
first-unread marker, the draft text, the reply target, the block watcher and
the message subscription. It is created when a conversation opens and closed
when the viewer switches away.
"""

import asyncio
import logging
from collections.abc import Callable

from chatsync.chat.block_watch import BlockState, BlockWatcher
from chatsync.chat.models import Chat
from chatsync.core.constants import Collections
from chatsync.gateway.exceptions import EmptyMessageError, MessageNotFoundError
from chatsync.gateway.service import FileSendResult, MutationGateway
from chatsync.message.models import Message
from chatsync.message.reducer import MessageStreamReducer, StreamView
from chatsync.message.unread import chat_messages_filter
from chatsync.store.base import DocumentSnapshot, DocumentStore
from chatsync.store.exceptions import StoreError
from chatsync.store.registry import RegistrySubscription, SubscriptionRegistry
from chatsync.store.values import SERVER_TIMESTAMP

logger = logging.getLogger(__name__)


class ConversationSession:
    def __init__(
        self,
        store: DocumentStore,
        registry: SubscriptionRegistry,
        gateway: MutationGateway,
        chat: Chat,
        on_change: Callable[[StreamView], None] | None = None,
    ):
        self._store = store
        self._gateway = gateway
        self._on_change = on_change
        self._receipt_tasks: set[asyncio.Task[None]] = set()
        self.viewer_uid = gateway.uid
        self.chat = chat
        self.draft = ""
        self.reply_target: Message | None = None
        self.reducer = MessageStreamReducer(chat.id, self.viewer_uid, chat=chat)
        self.closed = False

        self.block_watcher: BlockWatcher | None = None
        peer = chat.peer_of(self.viewer_uid)
        if peer is not None:
            self.block_watcher = BlockWatcher(registry, self.viewer_uid, peer)
        try:
            self._subscription: RegistrySubscription = registry.subscribe_query(
                Collections.MESSAGES,
                chat_messages_filter(chat.id),
                self._handle,
                self._handle_error,
            )
        except Exception:
            if self.block_watcher is not None:
                self.block_watcher.close()
            raise

    @property
    def chat_id(self) -> str:
        return self.chat.id

    @property
    def view(self) -> StreamView:
        return self.reducer.view

    @property
    def block_state(self) -> BlockState:
        if self.block_watcher is None:
            return BlockState()
        return self.block_watcher.state

    def _send_block_state(self) -> BlockState | None:
        # None makes the gateway read both profiles from the store
        if self.block_watcher is None or not self.block_watcher.ready:
            return None
        return self.block_watcher.state

    async def wait_ready(self, timeout: float) -> bool:
        """Wait for the first message snapshot and both block flags."""
        waits = [self._subscription.wait_ready(timeout)]
        if self.block_watcher is not None:
            waits.append(self.block_watcher.wait_ready(timeout))
        results = await asyncio.gather(*waits)
        return all(results)

    # Live updates

    def _handle(self, snapshots: list[DocumentSnapshot]) -> None:
        if self.closed:
            return
        view = self.reducer.apply_snapshots(snapshots)
        if view.unread_ids:
            self._schedule_receipts(view.unread_ids)
        if self._on_change is not None:
            self._on_change(view)

    def _handle_error(self, exc: Exception) -> None:
        logger.error("Messages error: %s", exc, extra={"chat_id": self.chat_id})

    def update_chat(self, chat: Chat) -> None:
        """Apply a newer copy of the chat document from the conversation list."""
        self.chat = chat
        view = self.reducer.set_chat(chat)
        if self._on_change is not None:
            self._on_change(view)

    # Read receipts

    def _schedule_receipts(self, message_ids: tuple[str, ...]) -> None:
        task = asyncio.get_running_loop().create_task(self._commit_receipts(message_ids))
        self._receipt_tasks.add(task)
        task.add_done_callback(self._receipt_tasks.discard)

    async def _commit_receipts(self, message_ids: tuple[str, ...]) -> None:
        """Mark every given message read in one all-or-nothing batch.

        Failures are logged only. The next delivery still shows the messages
        as unread and tries again.
        """
        batch = self._store.batch()
        for message_id in message_ids:
            batch.update(
                Collections.MESSAGES, message_id, {("readBy", self.viewer_uid): SERVER_TIMESTAMP}
            )
        try:
            await batch.commit()
        except StoreError as e:
            logger.warning(
                "Error marking as read: %s",
                e.message,
                extra={
                    "uid": self.viewer_uid,
                    "chat_id": self.chat_id,
                    "count": len(message_ids),
                },
            )

    async def drain(self) -> None:
        """Wait for in-flight read receipts."""
        while self._receipt_tasks:
            await asyncio.gather(*list(self._receipt_tasks))

    # Composer

    def set_draft(self, text: str) -> None:
        self.draft = text

    def set_reply_target(self, message_id: str) -> Message:
        message = self.reducer.find(message_id)
        if message is None:
            raise MessageNotFoundError()
        self.reply_target = message
        return message

    def clear_reply_target(self) -> None:
        self.reply_target = None

    def message(self, message_id: str) -> Message:
        message = self.reducer.find(message_id)
        if message is None:
            raise MessageNotFoundError()
        return message

    async def send(self, text: str | None = None) -> str:
        """Send ``text`` (or the draft) with the current reply target.

        The composer is cleared before the write is attempted.
        """
        override = text is not None
        content = text if text is not None else self.draft
        reply_to = self.reply_target
        state = self._send_block_state()

        await self._gateway.ensure_can_send(self.chat, state)
        if not (content if override else content.strip()):
            raise EmptyMessageError()

        if not override:
            self.draft = ""
        self.reply_target = None
        self.reducer.clear_first_unread()

        return await self._gateway.send_message(
            self.chat, content, reply_to=reply_to, block_state=state, override=override
        )

    async def send_file(
        self, file_name: str, content: bytes, content_type: str = "application/octet-stream"
    ) -> FileSendResult:
        state = self._send_block_state()
        return await self._gateway.send_file(
            self.chat, file_name, content, content_type, block_state=state
        )

    def detach(self) -> list[asyncio.Task[None]]:
        """Release subscriptions and cancel receipts without waiting.

        Returns the cancelled tasks for callers that can await them.
        """
        if self.closed:
            return []
        self.closed = True
        self._subscription.close()
        if self.block_watcher is not None:
            self.block_watcher.close()
        tasks = list(self._receipt_tasks)
        for task in tasks:
            task.cancel()
        self._receipt_tasks.clear()
        return tasks

    async def close(self) -> None:
        tasks = self.detach()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
