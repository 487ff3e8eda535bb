"""Profile store adapter.

Maps an authenticated identity to its ``users/<uid>`` document: creates it on
first sign-in and keeps ``hasSetPassword`` in line with the identity's linked
providers.
"""

import logging
from dataclasses import dataclass
from urllib.parse import quote

from chatsync.auth.exceptions import PasswordMismatchError, WeakPasswordError
from chatsync.auth.service import Identity, IdentityService
from chatsync.core.constants import UNKNOWN_USER_NAME, Collections
from chatsync.profile.exceptions import ProfileNotFoundError
from chatsync.profile.models import UserProfile
from chatsync.store.base import DocumentStore

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class ProfileState:
    profile: UserProfile
    needs_password: bool


def default_display_name(identity: Identity) -> str:
    if identity.display_name:
        return identity.display_name
    if identity.email:
        local_part = identity.email.split("@")[0]
        if local_part:
            return local_part
    return UNKNOWN_USER_NAME


def avatar_url(base_url: str, name: str | None) -> str:
    return f"{base_url}?name={quote(name or '', safe='@.')}"


def validate_new_password(password: str, confirmation: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise WeakPasswordError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if password != confirmation:
        raise PasswordMismatchError()


class ProfileService:
    def __init__(self, store: DocumentStore, avatar_base_url: str):
        self._store = store
        self._avatar_base_url = avatar_base_url

    def build_profile(self, identity: Identity) -> UserProfile:
        """Profile written on first sign-in."""
        return UserProfile(
            uid=identity.uid,
            email=identity.email or "",
            display_name=default_display_name(identity),
            photo_url=identity.photo_url
            or avatar_url(self._avatar_base_url, identity.email),
            has_set_password=identity.has_password_provider,
            status="online",
        )

    async def get(self, uid: str) -> UserProfile:
        snapshot = await self._store.get(Collections.USERS, uid)
        if snapshot is None:
            raise ProfileNotFoundError()
        return UserProfile.from_snapshot(snapshot)

    async def ensure_profile(self, identity: Identity) -> ProfileState:
        """Create or reconcile the identity's profile.

        An existing profile that says no password is set while the identity
        has a password provider is corrected to ``hasSetPassword=true``.
        """
        snapshot = await self._store.get(Collections.USERS, identity.uid)

        if snapshot is None:
            profile = self.build_profile(identity)
            await self._store.set(
                Collections.USERS,
                identity.uid,
                profile.model_dump(by_alias=True, exclude_none=True, mode="json"),
            )
            logger.info("Created profile", extra={"uid": identity.uid})
            return ProfileState(profile, needs_password=profile.needs_password)

        profile = UserProfile.from_snapshot(snapshot)
        if profile.has_set_password is False and identity.has_password_provider:
            await self._store.set(
                Collections.USERS, identity.uid, {"hasSetPassword": True}, merge=True
            )
            profile = profile.model_copy(update={"has_set_password": True})
            logger.info("Reconciled password flag", extra={"uid": identity.uid})
        return ProfileState(profile, needs_password=profile.needs_password)

    async def mark_password_set(self, uid: str) -> None:
        await self._store.update(Collections.USERS, uid, {"hasSetPassword": True})

    async def set_password(
        self,
        identity_service: IdentityService,
        uid: str,
        id_token: str,
        password: str,
        confirmation: str,
    ) -> None:
        """Attach a password credential, then clear the needs-password prompt.

        Raises:
            WeakPasswordError: Shorter than six characters
            PasswordMismatchError: Confirmation differs
            RequiresRecentLoginError: The sign-in is too old for this change
        """
        validate_new_password(password, confirmation)
        await identity_service.update_password(id_token, password)
        await self.mark_password_set(uid)

    async def list_directory(self, viewer_uid: str) -> list[UserProfile]:
        """Every other user, for picking chat peers and group invitees."""
        snapshots = await self._store.query(Collections.USERS)
        return [
            UserProfile.from_snapshot(s) for s in snapshots if s.id != viewer_uid
        ]
