"""Profile domain exceptions."""

from chatsync.core.exceptions import NotFoundError


class ProfileNotFoundError(NotFoundError):
    error_type = "profile_not_found"

    def __init__(self, message: str = "Profile not found"):
        super().__init__(message)
