"""Auth view state machine.

The sign-in form has three modes. Allowed transitions:

    login  -> signup, forgot
    signup -> login
    forgot -> login
"""

from enum import Enum

from chatsync.auth.exceptions import InvalidAuthTransitionError
from chatsync.auth.service import Identity, IdentityService
from chatsync.auth.state import AuthEvent, AuthStateStream

RESET_EMAIL_SENT = "Password reset email sent! Check your inbox."


class AuthMode(str, Enum):
    login = "login"
    signup = "signup"
    forgot = "forgot"


_TRANSITIONS: dict[AuthMode, frozenset[AuthMode]] = {
    AuthMode.login: frozenset({AuthMode.signup, AuthMode.forgot}),
    AuthMode.signup: frozenset({AuthMode.login}),
    AuthMode.forgot: frozenset({AuthMode.login}),
}


def can_transition(current: AuthMode, target: AuthMode) -> bool:
    return target in _TRANSITIONS[current]


def switch_mode(current: AuthMode, target: AuthMode) -> AuthMode:
    """Return ``target`` if the form may move there from ``current``.

    Raises:
        InvalidAuthTransitionError: The transition is not allowed
    """
    if not can_transition(current, target):
        raise InvalidAuthTransitionError(
            f"Cannot switch from {current.value} to {target.value}"
        )
    return target


async def authenticate(
    service: IdentityService,
    stream: AuthStateStream,
    mode: AuthMode,
    email: str,
    password: str = "",
) -> Identity | None:
    """Run the action of ``mode`` and publish a sign-in on success.

    Returns the identity for login/signup and None for forgot.
    """
    if mode == AuthMode.forgot:
        await service.send_password_reset_email(email)
        return None

    if mode == AuthMode.login:
        identity = await service.sign_in(email, password)
    else:
        identity = await service.sign_up(email, password)
    await stream.publish(AuthEvent(uid=identity.uid, identity=identity))
    return identity


async def sign_out(service: IdentityService, stream: AuthStateStream, uid: str) -> None:
    service.revoke_refresh_tokens(uid)
    await stream.publish(AuthEvent(uid=uid, identity=None))

