"""Profile domain schemas."""

from datetime import datetime

from pydantic import BaseModel

from chatsync.profile.models import UserProfile


class ProfileRead(BaseModel):
    uid: str
    email: str | None
    display_name: str
    photo_url: str | None
    status: str | None
    needs_password: bool
    blocked_users: list[str]

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "ProfileRead":
        return cls(
            uid=profile.uid,
            email=profile.email,
            display_name=profile.display_name,
            photo_url=profile.photo_url,
            status=profile.status,
            needs_password=profile.needs_password,
            blocked_users=list(profile.blocked_users),
        )


class DirectoryEntry(BaseModel):
    """Another user, as shown in the new-chat and invite pickers."""

    uid: str
    display_name: str
    email: str | None
    photo_url: str | None
    status: str | None
    last_seen: datetime | None
    blocked: bool
