"""Auth domain dependencies.

Resolves the Bearer ID token on a request to the caller's live viewer
session, opening one on first use.
"""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chatsync.auth.exceptions import InvalidCredentialsError
from chatsync.core.deps import IdentityServiceDep, SessionManagerDep
from chatsync.session.viewer import ViewerSession

security = HTTPBearer(auto_error=False)


async def get_viewer_session(
    request: Request,
    identity_service: IdentityServiceDep,
    manager: SessionManagerDep,
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(security)
    ] = None,
) -> ViewerSession:
    """Verify the Bearer ID token and return the caller's viewer session.

    A verified caller without a session (for example after a restart) gets one
    opened from the identity provider's account lookup.

    Raises:
        InvalidCredentialsError: No token was presented
        InvalidTokenError: The token failed verification
        SessionLimitError: No room for another session
    """
    if credentials is None:
        raise InvalidCredentialsError("Not authenticated")

    id_token = credentials.credentials
    claims = identity_service.verify_id_token(id_token)
    request.state.uid = claims.uid

    session = manager.get(claims.uid)
    if session is None:
        identity = await identity_service.lookup(id_token)
        session = await manager.open(identity)
    else:
        session.id_token = id_token
        await session.wait_ready()
    return session


ViewerSessionDep = Annotated[ViewerSession, Depends(get_viewer_session)]
