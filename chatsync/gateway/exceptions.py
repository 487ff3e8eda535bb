"""Mutation gateway exceptions.

Precondition failures are raised before any store write happens.
"""

from chatsync.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)


class SendBlockedError(AuthorizationError):
    """Raised when either side of a one-to-one chat has blocked the other."""

    error_type = "send_blocked"

    def __init__(self, message: str = "You cannot send messages in this chat"):
        super().__init__(message)


class NotChatMemberError(AuthorizationError):
    error_type = "not_chat_member"

    def __init__(self, message: str = "You are not a member of this chat"):
        super().__init__(message)


class NotChatOwnerError(AuthorizationError):
    error_type = "not_chat_owner"

    def __init__(self, message: str = "Only the group creator can do this"):
        super().__init__(message)


class NotMessageSenderError(AuthorizationError):
    error_type = "not_message_sender"

    def __init__(self, message: str = "Only the sender can delete a message for everyone"):
        super().__init__(message)


class NotInvitationRecipientError(AuthorizationError):
    error_type = "not_invitation_recipient"

    def __init__(self, message: str = "This invitation is not addressed to you"):
        super().__init__(message)


class ChatNotFoundError(NotFoundError):
    error_type = "chat_not_found"

    def __init__(self, message: str = "Chat not found"):
        super().__init__(message)


class MessageNotFoundError(NotFoundError):
    error_type = "message_not_found"

    def __init__(self, message: str = "Message not found"):
        super().__init__(message)


class InvitationNotFoundError(NotFoundError):
    error_type = "invitation_not_found"

    def __init__(self, message: str = "Invitation not found"):
        super().__init__(message)


class ConfirmationRequiredError(ValidationError):
    """Destructive operations need an explicit confirmation flag."""

    error_type = "confirmation_required"

    def __init__(self, message: str = "This action requires confirmation"):
        super().__init__(message)


class InvalidChatOperationError(ValidationError):
    """The operation does not apply to this kind of chat."""

    error_type = "invalid_chat_operation"

    def __init__(self, message: str = "Operation not supported for this chat"):
        super().__init__(message)


class EmptyMessageError(ValidationError):
    error_type = "empty_message"

    def __init__(self, message: str = "Message text is empty"):
        super().__init__(message)


class MessageAlreadyDeletedError(ConflictError):
    error_type = "message_already_deleted"

    def __init__(self, message: str = "Message was already deleted"):
        super().__init__(message)


class InvitationClosedError(ConflictError):
    error_type = "invitation_closed"

    def __init__(self, message: str = "Invitation is no longer pending"):
        super().__init__(message)


class UploadFailedError(ExternalServiceError):
    """Raised on the HTTP surface when the upload relay returns an error result."""

    error_type = "upload_failed"

    def __init__(self, message: str = "Upload failed"):
        super().__init__(message)


class MutationFailedError(ExternalServiceError):
    """A store write failed. Earlier steps of the same operation stay applied."""

    error_type = "mutation_failed"

    def __init__(self, message: str = "The change could not be saved"):
        super().__init__(message)
