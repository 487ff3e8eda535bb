"""Auth domain router.

Thin HTTP handlers over the identity service. Every successful sign-in is
published on the auth state stream and opens the viewer's session.
"""

import logging

from fastapi import APIRouter, status

from chatsync.auth.dependencies import ViewerSessionDep
from chatsync.auth.flow import (
    RESET_EMAIL_SENT,
    AuthMode,
    authenticate,
    sign_out,
    switch_mode,
)
from chatsync.auth.schemas import (
    AuthMessage,
    AuthModeRead,
    AuthModeRequest,
    AuthSession,
    CredentialsRequest,
    OAuthRequest,
    PasswordResetRequest,
    SetPasswordRequest,
)
from chatsync.auth.service import Identity
from chatsync.auth.state import AuthEvent
from chatsync.core.constants import CommonResponses, Routes
from chatsync.core.deps import AuthStreamDep, IdentityServiceDep, SessionManagerDep
from chatsync.session.manager import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=Routes.AUTH.prefix,
    tags=[Routes.AUTH.tag],
    responses={**CommonResponses.BAD_REQUEST},
)


async def _session_response(manager: SessionManager, identity: Identity) -> AuthSession:
    # open() returns the session a stream listener may already have opened
    session = await manager.open(identity)
    profile = session.profile
    return AuthSession(
        uid=identity.uid,
        email=profile.email,
        display_name=profile.display_name,
        photo_url=profile.photo_url,
        id_token=identity.id_token,
        refresh_token=identity.refresh_token,
        needs_password=session.needs_password,
    )


@router.post("/mode", response_model=AuthModeRead)
async def change_mode(payload: AuthModeRequest):
    """Move the sign-in form between login, signup and forgot-password.

    Only login <-> signup, login -> forgot and forgot -> login are allowed.
    """
    return AuthModeRead(mode=switch_mode(payload.current, payload.target))


@router.post(
    "/register",
    response_model=AuthSession,
    status_code=status.HTTP_201_CREATED,
    responses={**CommonResponses.CONFLICT},
)
async def register(
    payload: CredentialsRequest,
    identity_service: IdentityServiceDep,
    stream: AuthStreamDep,
    manager: SessionManagerDep,
):
    """Create an email/password account and sign in."""
    identity = await authenticate(
        identity_service, stream, AuthMode.signup, payload.email, payload.password
    )
    return await _session_response(manager, identity)


@router.post(
    "/login",
    response_model=AuthSession,
    responses={**CommonResponses.UNAUTHORIZED, **CommonResponses.FORBIDDEN},
)
async def login(
    payload: CredentialsRequest,
    identity_service: IdentityServiceDep,
    stream: AuthStreamDep,
    manager: SessionManagerDep,
):
    """Sign in with email and password."""
    identity = await authenticate(
        identity_service, stream, AuthMode.login, payload.email, payload.password
    )
    return await _session_response(manager, identity)


@router.post(
    "/oauth",
    response_model=AuthSession,
    responses={**CommonResponses.UNAUTHORIZED},
)
async def oauth(
    payload: OAuthRequest,
    identity_service: IdentityServiceDep,
    stream: AuthStreamDep,
    manager: SessionManagerDep,
):
    """Exchange an OAuth provider credential for a session.

    A first sign-in through a provider leaves the account without a password,
    so ``needs_password`` comes back true.
    """
    identity = await identity_service.sign_in_with_oauth(
        payload.provider_id,
        id_token=payload.id_token,
        access_token=payload.access_token,
    )
    await stream.publish(AuthEvent(uid=identity.uid, identity=identity))
    return await _session_response(manager, identity)


@router.post("/logout", response_model=AuthMessage)
async def logout(
    session: ViewerSessionDep,
    identity_service: IdentityServiceDep,
    stream: AuthStreamDep,
    manager: SessionManagerDep,
):
    """Revoke refresh tokens and release the viewer's live subscriptions."""
    await sign_out(identity_service, stream, session.uid)
    await manager.close(session.uid)
    return AuthMessage(message="Signed out")


@router.post(
    "/password-reset",
    response_model=AuthMessage,
    responses={**CommonResponses.NOT_FOUND},
)
async def password_reset(
    payload: PasswordResetRequest,
    identity_service: IdentityServiceDep,
    stream: AuthStreamDep,
):
    await authenticate(identity_service, stream, AuthMode.forgot, payload.email)
    return AuthMessage(message=RESET_EMAIL_SENT)


@router.post(
    "/set-password",
    response_model=AuthMessage,
    responses={**CommonResponses.UNAUTHORIZED},
)
async def set_password(
    payload: SetPasswordRequest,
    session: ViewerSessionDep,
    identity_service: IdentityServiceDep,
    manager: SessionManagerDep,
):
    """Attach a password to an account that signed up through OAuth.

    Fails with ``requires_recent_login`` when the sign-in is too old; the
    client must sign out and back in first.
    """
    await manager.profiles.set_password(
        identity_service,
        session.uid,
        session.id_token or "",
        payload.password,
        payload.confirmation,
    )
    logger.info("Password set", extra={"uid": session.uid})
    return AuthMessage(message="Password set successfully")
