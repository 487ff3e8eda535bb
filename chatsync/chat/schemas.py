"""Chat domain schemas.

Request bodies and the read models served to the rendering layer. Message
reads are built from the stream reducer's views, never from raw documents.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from chatsync.chat.block_watch import BlockState
from chatsync.chat.list_sync import ChatListEntry
from chatsync.chat.models import ChatType
from chatsync.message.models import MessageType
from chatsync.message.reducer import MessageView, ReceiptState, StreamView


class ChatSummary(BaseModel):
    """One row of the conversation list."""

    id: str
    type: ChatType
    title: str
    avatar_url: str
    peer_uid: str | None
    members: list[str]
    is_creator: bool
    last_message: str | None
    last_message_at: datetime | None
    unread_count: int | None
    unread_badge: str | None

    @classmethod
    def from_entry(
        cls, entry: ChatListEntry, viewer_uid: str, count: int | None, badge: str | None
    ) -> "ChatSummary":
        chat = entry.chat
        last = chat.last_message
        return cls(
            id=chat.id,
            type=chat.type,
            title=entry.title,
            avatar_url=entry.avatar_url,
            peer_uid=entry.peer_uid,
            members=list(chat.members),
            is_creator=chat.is_creator(viewer_uid),
            last_message=last.text if last else None,
            last_message_at=last.timestamp if last else None,
            unread_count=count,
            unread_badge=badge,
        )


class CreateDirectChatRequest(BaseModel):
    peer_uid: str = Field(min_length=1)


class CreateGroupRequest(BaseModel):
    name: str = Field(min_length=1)
    invitee_uids: list[str] = Field(min_length=1)


class ChatCreated(BaseModel):
    chat_id: str


class BlockStateRead(BaseModel):
    blocked_by_me: bool
    blocked_me: bool
    send_disabled: bool
    presence_label: str

    @classmethod
    def from_state(cls, state: BlockState) -> "BlockStateRead":
        return cls(
            blocked_by_me=state.blocked_by_me,
            blocked_me=state.blocked_me,
            send_disabled=state.send_disabled,
            presence_label=state.presence_label,
        )


class ReplyRead(BaseModel):
    id: str
    text: str
    sender_name: str


class SeenByRead(BaseModel):
    uid: str
    display_name: str
    read_at: datetime | None


class MessageRead(BaseModel):
    id: str
    sender_id: str
    sender_name: str
    text: str
    type: MessageType
    file_url: str | None
    file_name: str | None
    timestamp: datetime | None
    is_deleted: bool
    is_forwarded: bool
    is_mine: bool
    show_sender_name: bool
    reply_to: ReplyRead | None
    reactions: dict[str, list[str]]
    receipt: ReceiptState | None
    seen_by: list[SeenByRead]
    starts_unread: bool

    @classmethod
    def from_view(cls, view: MessageView) -> "MessageRead":
        message = view.message
        reply = message.reply_to
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            sender_name=message.sender_name,
            text=message.text,
            type=message.type,
            file_url=message.file_url,
            file_name=message.file_name,
            timestamp=message.timestamp,
            is_deleted=message.is_deleted,
            is_forwarded=message.is_forwarded,
            is_mine=view.is_mine,
            show_sender_name=view.show_sender_name,
            reply_to=(
                ReplyRead(id=reply.id, text=reply.text, sender_name=reply.sender_name)
                if reply
                else None
            ),
            reactions={emoji: list(uids) for emoji, uids in view.reactions.items()},
            receipt=view.receipt,
            seen_by=[
                SeenByRead(uid=s.uid, display_name=s.display_name, read_at=s.read_at)
                for s in view.seen_by
            ],
            starts_unread=view.starts_unread,
        )


class ConversationRead(BaseModel):
    """The open conversation as the viewer currently sees it."""

    chat: ChatSummary
    messages: list[MessageRead]
    first_unread_id: str | None
    block: BlockStateRead
    draft: str
    reply_target_id: str | None

    @staticmethod
    def messages_from(view: StreamView) -> list[MessageRead]:
        return [MessageRead.from_view(m) for m in view.messages]


class SendMessageRequest(BaseModel):
    text: str
    reply_to_id: str | None = None


class MessageSent(BaseModel):
    message_id: str


class FileSent(BaseModel):
    message_id: str
    file_name: str | None
    file_size: int | None
    file_url: str | None


class ReactionRequest(BaseModel):
    emoji: str = Field(min_length=1)


class ReactionResult(BaseModel):
    emoji: str
    added: bool


class ForwardRequest(BaseModel):
    target_chat_id: str


class ConfirmRequest(BaseModel):
    """Destructive actions are refused unless ``confirmed`` is true."""

    confirmed: bool = False


class AddMemberRequest(BaseModel):
    uid: str = Field(min_length=1)
