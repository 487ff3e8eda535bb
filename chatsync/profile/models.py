from typing import ClassVar

from pydantic import Field

from chatsync.core.mixins import DocumentModel, Timestamp


class UserProfile(DocumentModel):
    """Identity-keyed profile stored at ``users/<uid>``."""

    id_field: ClassVar[str] = "uid"

    uid: str
    email: str | None = None
    display_name: str = "User"
    photo_url: str | None = Field(default=None, alias="photoURL")
    # Absent on legacy documents; only an explicit False prompts for a password
    has_set_password: bool | None = None
    blocked_users: list[str] = Field(default_factory=list)
    status: str | None = None
    last_seen: Timestamp | None = None

    def has_blocked(self, uid: str) -> bool:
        return uid in self.blocked_users

    @property
    def needs_password(self) -> bool:
        return self.has_set_password is False
