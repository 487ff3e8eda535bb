"""In-process auth state stream.

Publishes sign-in and sign-out events to async listeners, in registration
order. The viewer session manager is the main listener.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import lru_cache

from chatsync.auth.service import Identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthEvent:
    uid: str
    # None means signed out
    identity: Identity | None

    @property
    def signed_in(self) -> bool:
        return self.identity is not None


AuthListener = Callable[[AuthEvent], Awaitable[None]]


class AuthStateStream:
    def __init__(self) -> None:
        self._listeners: list[AuthListener] = []

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register a listener; returns the function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, event: AuthEvent) -> None:
        logger.info(
            "Auth state changed: %s",
            "signed in" if event.signed_in else "signed out",
            extra={"uid": event.uid},
        )
        for listener in list(self._listeners):
            await listener(event)


@lru_cache
def get_auth_state_stream() -> AuthStateStream:
    return AuthStateStream()
