"""Chat domain router.

Conversation list, the open conversation and every chat or message mutation.
Handlers resolve chats and messages from the viewer's live state, then hand
them to the mutation gateway.
"""

from fastapi import APIRouter, UploadFile, status

from chatsync.auth.dependencies import ViewerSessionDep
from chatsync.chat.schemas import (
    AddMemberRequest,
    BlockStateRead,
    ChatCreated,
    ChatSummary,
    ConfirmRequest,
    ConversationRead,
    CreateDirectChatRequest,
    CreateGroupRequest,
    FileSent,
    ForwardRequest,
    MessageSent,
    ReactionRequest,
    ReactionResult,
    SendMessageRequest,
)
from chatsync.core.constants import REACTION_EMOJIS, CommonResponses, Routes
from chatsync.core.deps import SessionManagerDep
from chatsync.gateway.exceptions import InvalidChatOperationError, UploadFailedError
from chatsync.message.conversation import ConversationSession
from chatsync.session.viewer import ViewerSession

router = APIRouter(
    prefix=Routes.CHATS.prefix,
    tags=[Routes.CHATS.tag],
    responses={
        **CommonResponses.UNAUTHORIZED,
        **CommonResponses.FORBIDDEN,
        **CommonResponses.UPSTREAM,
    },
)


def _summary(session: ViewerSession, chat_id: str) -> ChatSummary:
    return ChatSummary.from_entry(
        session.entry(chat_id),
        session.uid,
        session.unread.count(chat_id),
        session.unread.badge(chat_id),
    )


def _conversation_read(
    session: ViewerSession, conversation: ConversationSession
) -> ConversationRead:
    view = conversation.view
    return ConversationRead(
        chat=_summary(session, conversation.chat_id),
        messages=ConversationRead.messages_from(view),
        first_unread_id=view.first_unread_id,
        block=BlockStateRead.from_state(conversation.block_state),
        draft=conversation.draft,
        reply_target_id=conversation.reply_target.id if conversation.reply_target else None,
    )


@router.get("", response_model=list[ChatSummary])
async def list_chats(session: ViewerSessionDep):
    """The viewer's chats, most recent activity first, with unread badges."""
    return [
        ChatSummary.from_entry(
            entry, session.uid, session.unread.count(entry.id), session.unread.badge(entry.id)
        )
        for entry in session.conversations.entries
    ]


@router.post(
    "/direct",
    response_model=ChatCreated,
    responses={**CommonResponses.NOT_FOUND, **CommonResponses.BAD_REQUEST},
)
async def create_direct_chat(
    payload: CreateDirectChatRequest, session: ViewerSessionDep, manager: SessionManagerDep
):
    """Open the one-to-one chat with a peer, creating it on first contact."""
    peer = await manager.profiles.get(payload.peer_uid)
    chat_id = await session.gateway.open_direct_chat(peer)
    return ChatCreated(chat_id=chat_id)


@router.post(
    "/groups",
    response_model=ChatCreated,
    status_code=status.HTTP_201_CREATED,
    responses={**CommonResponses.BAD_REQUEST},
)
async def create_group(payload: CreateGroupRequest, session: ViewerSessionDep):
    """Create a group and send an invitation to every selected user."""
    chat_id = await session.gateway.create_group(payload.name, payload.invitee_uids)
    return ChatCreated(chat_id=chat_id)


@router.get(
    "/{chat_id}/conversation",
    response_model=ConversationRead,
    responses={**CommonResponses.NOT_FOUND},
)
async def open_conversation(chat_id: str, session: ViewerSessionDep):
    """Open (or re-read) the conversation, closing any other open one.

    Opening marks every unread message as read.
    """
    conversation = await session.open_conversation(chat_id)
    return _conversation_read(session, conversation)


@router.post(
    "/{chat_id}/messages",
    response_model=MessageSent,
    status_code=status.HTTP_201_CREATED,
    responses={**CommonResponses.NOT_FOUND, **CommonResponses.BAD_REQUEST},
)
async def send_message(chat_id: str, payload: SendMessageRequest, session: ViewerSessionDep):
    conversation = await session.open_conversation(chat_id)
    if payload.reply_to_id:
        conversation.set_reply_target(payload.reply_to_id)
    conversation.set_draft(payload.text)
    message_id = await conversation.send()
    return MessageSent(message_id=message_id)


@router.post(
    "/{chat_id}/files",
    response_model=FileSent,
    status_code=status.HTTP_201_CREATED,
    responses={**CommonResponses.NOT_FOUND},
)
async def send_file(chat_id: str, file: UploadFile, session: ViewerSessionDep):
    """Upload through the relay, then post a file message.

    Nothing is written to the chat when the upload fails.
    """
    conversation = await session.open_conversation(chat_id)
    content = await file.read()
    result = await conversation.send_file(
        file.filename or "file", content, file.content_type or "application/octet-stream"
    )
    if result.message_id is None:
        raise UploadFailedError(result.upload.message or "Upload failed")
    return FileSent(
        message_id=result.message_id,
        file_name=result.upload.file_name,
        file_size=result.upload.file_size,
        file_url=result.upload.file_url,
    )


@router.post(
    "/{chat_id}/messages/{message_id}/hide",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**CommonResponses.NOT_FOUND},
)
async def delete_for_me(chat_id: str, message_id: str, session: ViewerSessionDep):
    """Hide a message from the viewer only."""
    conversation = await session.open_conversation(chat_id)
    await session.gateway.delete_for_me(conversation.message(message_id))


@router.delete(
    "/{chat_id}/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**CommonResponses.NOT_FOUND, **CommonResponses.CONFLICT},
)
async def delete_for_everyone(chat_id: str, message_id: str, session: ViewerSessionDep):
    """Turn the viewer's own message into a tombstone for everyone."""
    conversation = await session.open_conversation(chat_id)
    await session.gateway.delete_for_everyone(conversation.message(message_id))


@router.post(
    "/{chat_id}/messages/{message_id}/reactions",
    response_model=ReactionResult,
    responses={**CommonResponses.NOT_FOUND, **CommonResponses.BAD_REQUEST},
)
async def react(
    chat_id: str, message_id: str, payload: ReactionRequest, session: ViewerSessionDep
):
    """Toggle the viewer's reaction with ``emoji``."""
    if payload.emoji not in REACTION_EMOJIS:
        raise InvalidChatOperationError("Unsupported reaction")
    conversation = await session.open_conversation(chat_id)
    added = await session.gateway.react(conversation.message(message_id), payload.emoji)
    return ReactionResult(emoji=payload.emoji, added=added)


@router.post(
    "/{chat_id}/messages/{message_id}/forward",
    response_model=MessageSent,
    status_code=status.HTTP_201_CREATED,
    responses={**CommonResponses.NOT_FOUND, **CommonResponses.CONFLICT},
)
async def forward(
    chat_id: str, message_id: str, payload: ForwardRequest, session: ViewerSessionDep
):
    conversation = await session.open_conversation(chat_id)
    message = conversation.message(message_id)
    target = session.chat(payload.target_chat_id)
    new_id = await session.gateway.forward(message, target)
    return MessageSent(message_id=new_id)


@router.post(
    "/{chat_id}/block",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**CommonResponses.NOT_FOUND, **CommonResponses.BAD_REQUEST},
)
async def block(chat_id: str, payload: ConfirmRequest, session: ViewerSessionDep):
    """Block the peer of a one-to-one chat."""
    await session.gateway.block(session.chat(chat_id), confirmed=payload.confirmed)


@router.delete(
    "/{chat_id}/block",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**CommonResponses.NOT_FOUND},
)
async def unblock(chat_id: str, session: ViewerSessionDep):
    await session.gateway.unblock(session.chat(chat_id))


@router.post(
    "/{chat_id}/members",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**CommonResponses.NOT_FOUND},
)
async def add_member(
    chat_id: str,
    payload: AddMemberRequest,
    session: ViewerSessionDep,
    manager: SessionManagerDep,
):
    """Add a user to a group directly, without an invitation. Creator only."""
    chat = session.chat(chat_id)
    member = await manager.profiles.get(payload.uid)
    await session.gateway.add_member(chat, member)


@router.post(
    "/{chat_id}/leave",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**CommonResponses.NOT_FOUND, **CommonResponses.BAD_REQUEST},
)
async def leave_group(chat_id: str, payload: ConfirmRequest, session: ViewerSessionDep):
    await session.gateway.leave_group(session.chat(chat_id), confirmed=payload.confirmed)


@router.delete(
    "/{chat_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**CommonResponses.NOT_FOUND, **CommonResponses.BAD_REQUEST},
)
async def delete_group(chat_id: str, session: ViewerSessionDep, confirmed: bool = False):
    """Delete a group chat. Creator only; messages are left behind."""
    await session.gateway.delete_group(session.chat(chat_id), confirmed=confirmed)
