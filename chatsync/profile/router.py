"""Profile domain router."""

from fastapi import APIRouter

from chatsync.auth.dependencies import ViewerSessionDep
from chatsync.core.constants import CommonResponses, Routes
from chatsync.core.deps import SessionManagerDep
from chatsync.profile.schemas import DirectoryEntry, ProfileRead

router = APIRouter(
    prefix=Routes.PROFILE.prefix,
    tags=[Routes.PROFILE.tag],
    responses={**CommonResponses.UNAUTHORIZED},
)


@router.get("/me", response_model=ProfileRead)
async def read_me(session: ViewerSessionDep):
    """The viewer's live profile, including the set-password prompt flag."""
    return ProfileRead.from_profile(session.profile)


@router.get("/directory", response_model=list[DirectoryEntry])
async def directory(session: ViewerSessionDep, manager: SessionManagerDep):
    """Every other user, flagged when the viewer has blocked them."""
    viewer = session.profile
    users = await manager.profiles.list_directory(session.uid)
    return [
        DirectoryEntry(
            uid=user.uid,
            display_name=user.display_name,
            email=user.email,
            photo_url=user.photo_url,
            status=user.status,
            last_seen=user.last_seen,
            blocked=viewer.has_blocked(user.uid),
        )
        for user in users
    ]
