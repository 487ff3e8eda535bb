"""Process-wide viewer sessions, keyed by uid."""

import asyncio
import logging
from collections.abc import Callable
from functools import lru_cache

from chatsync.auth.service import Identity
from chatsync.auth.state import AuthEvent, AuthStateStream
from chatsync.core.exceptions import CapacityError
from chatsync.profile.service import ProfileService
from chatsync.session.viewer import ViewerSession
from chatsync.store.base import DocumentStore
from chatsync.store.registry import SubscriptionRegistry
from chatsync.upload.relay import UploadRelay

logger = logging.getLogger(__name__)


class SessionLimitError(CapacityError):
    error_type = "session_limit"

    def __init__(self, message: str = "Too many active sessions, try again later"):
        super().__init__(message)


class SessionManager:
    def __init__(
        self,
        store: DocumentStore,
        registry: SubscriptionRegistry,
        profiles: ProfileService,
        *,
        relay: UploadRelay | None = None,
        avatar_base_url: str = "https://ui-avatars.com/api/",
        max_sessions: int = 100,
        max_unread_counters: int = 50,
        snapshot_timeout: float = 5.0,
    ):
        self._store = store
        self._registry = registry
        self._profiles = profiles
        self._relay = relay
        self._avatar_base_url = avatar_base_url
        self._max_sessions = max_sessions
        self._max_unread_counters = max_unread_counters
        self._snapshot_timeout = snapshot_timeout
        self._sessions: dict[str, ViewerSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def profiles(self) -> ProfileService:
        return self._profiles

    def get(self, uid: str) -> ViewerSession | None:
        return self._sessions.get(uid)

    async def open(self, identity: Identity) -> ViewerSession:
        """Ensure the profile exists, then open (or reuse) the viewer's session.

        A new session is returned once its first snapshots have arrived or
        the snapshot timeout has passed.
        """
        async with self._lock:
            existing = self._sessions.get(identity.uid)
            if existing is not None:
                if identity.id_token:
                    existing.id_token = identity.id_token
                return existing

            if len(self._sessions) >= self._max_sessions:
                logger.warning(
                    "Session limit reached",
                    extra={"uid": identity.uid, "count": len(self._sessions)},
                )
                raise SessionLimitError()

            state = await self._profiles.ensure_profile(identity)
            session = ViewerSession(
                self._store,
                self._registry,
                state.profile,
                id_token=identity.id_token,
                relay=self._relay,
                avatar_base_url=self._avatar_base_url,
                max_unread_counters=self._max_unread_counters,
                snapshot_timeout=self._snapshot_timeout,
            )
            self._sessions[identity.uid] = session
            await session.wait_ready()
            return session

    async def close(self, uid: str) -> None:
        session = self._sessions.pop(uid, None)
        if session is not None:
            await session.close()

    async def handle_auth_event(self, event: AuthEvent) -> None:
        if event.identity is not None:
            await self.open(event.identity)
        else:
            await self.close(event.uid)

    def attach(self, stream: AuthStateStream) -> Callable[[], None]:
        return stream.subscribe(self.handle_auth_event)

    async def close_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.close()


@lru_cache
def get_session_manager() -> SessionManager:
    from chatsync.core.settings import get_settings
    from chatsync.store.engine import get_registry, get_store
    from chatsync.upload.relay import get_upload_relay

    settings = get_settings()
    store = get_store()
    return SessionManager(
        store,
        get_registry(),
        ProfileService(store, settings.avatar_base_url),
        relay=get_upload_relay(),
        avatar_base_url=settings.avatar_base_url,
        max_sessions=settings.max_sessions,
        max_unread_counters=settings.max_unread_counters,
        snapshot_timeout=settings.snapshot_timeout,
    )
