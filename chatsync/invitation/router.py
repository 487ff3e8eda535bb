"""Invitation domain router."""

from fastapi import APIRouter, status

from chatsync.auth.dependencies import ViewerSessionDep
from chatsync.core.constants import CommonResponses, Routes
from chatsync.invitation.schemas import InvitationAccepted, InvitationRead

router = APIRouter(
    prefix=Routes.INVITATIONS.prefix,
    tags=[Routes.INVITATIONS.tag],
    responses={
        **CommonResponses.UNAUTHORIZED,
        **CommonResponses.NOT_FOUND,
        **CommonResponses.UPSTREAM,
    },
)


@router.get("", response_model=list[InvitationRead])
async def list_invitations(session: ViewerSessionDep):
    """Pending invitations addressed to the viewer, newest first."""
    return [InvitationRead.from_invitation(i) for i in session.invitations.invitations]


@router.post(
    "/{invitation_id}/accept",
    response_model=InvitationAccepted,
    responses={**CommonResponses.FORBIDDEN, **CommonResponses.CONFLICT},
)
async def accept_invitation(invitation_id: str, session: ViewerSessionDep):
    invitation = session.invitation(invitation_id)
    joined = await session.gateway.accept_invitation(invitation)
    return InvitationAccepted(group_id=invitation.group_id, joined=joined)


@router.post(
    "/{invitation_id}/reject",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**CommonResponses.FORBIDDEN, **CommonResponses.CONFLICT},
)
async def reject_invitation(invitation_id: str, session: ViewerSessionDep):
    await session.gateway.reject_invitation(session.invitation(invitation_id))
