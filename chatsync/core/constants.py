"""
App-wide constants: route groups, store collection names and the fixed
strings the client shows verbatim.
"""

from dataclasses import dataclass
from typing import Any, Final


@dataclass(frozen=True)
class RouteConfig:
    """Configuration for a route group."""

    prefix: str
    tag: str


class Routes:
    """Route configurations for all API endpoints."""

    AUTH = RouteConfig(prefix="/auth", tag="auth")
    PROFILE = RouteConfig(prefix="/profile", tag="profile")
    CHATS = RouteConfig(prefix="/chats", tag="chats")
    INVITATIONS = RouteConfig(prefix="/invitations", tag="invitations")
    HEALTH = RouteConfig(prefix="/health", tag="health")


class CommonResponses:
    """Standard HTTP error response definitions for OpenAPI documentation."""

    UNAUTHORIZED: dict[int, dict[str, Any]] = {
        401: {"description": "Not authenticated or invalid credentials"}
    }
    FORBIDDEN: dict[int, dict[str, Any]] = {
        403: {"description": "Viewer is not allowed to perform this action"}
    }
    NOT_FOUND: dict[int, dict[str, Any]] = {404: {"description": "Resource not found"}}
    CONFLICT: dict[int, dict[str, Any]] = {
        409: {"description": "Action conflicts with the current state"}
    }
    BAD_REQUEST: dict[int, dict[str, Any]] = {
        400: {"description": "Invalid request data"}
    }
    UPSTREAM: dict[int, dict[str, Any]] = {
        502: {"description": "Store or upstream service failed"}
    }


class Collections:
    """Top-level document store collections."""

    USERS: Final = "users"
    CHATS: Final = "chats"
    MESSAGES: Final = "messages"
    INVITATIONS: Final = "invitations"


# Reaction palette offered by the client
REACTION_EMOJIS: Final = ("👍", "❤️", "😂", "😮", "😢", "🔥")

DELETED_MESSAGE_TEXT: Final = "This message was deleted"
DELETED_REPLY_TEXT: Final = "Deleted message"
FORWARDED_PREFIX: Final = "Forwarded: "
FILE_MESSAGE_PREFIX: Final = "📎 Sent a file: "
FILE_PREVIEW_PREFIX: Final = "📎 "
NEW_DIRECT_CHAT_TEXT: Final = "Started a new conversation"
NEW_GROUP_TEXT: Final = "Group created. Invitations sent."

UNREAD_BADGE_CAP: Final = 99
UNKNOWN_USER_NAME: Final = "User"
