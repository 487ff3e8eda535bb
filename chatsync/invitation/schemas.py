"""Invitation domain schemas."""

from datetime import datetime

from pydantic import BaseModel

from chatsync.invitation.models import Invitation, InvitationStatus


class InvitationRead(BaseModel):
    id: str
    group_id: str
    group_name: str
    from_uid: str
    from_name: str
    status: InvitationStatus
    timestamp: datetime | None

    @classmethod
    def from_invitation(cls, invitation: Invitation) -> "InvitationRead":
        return cls(
            id=invitation.id,
            group_id=invitation.group_id,
            group_name=invitation.group_name,
            from_uid=invitation.from_uid,
            from_name=invitation.from_name,
            status=invitation.status,
            timestamp=invitation.timestamp,
        )


class InvitationAccepted(BaseModel):
    """``joined`` is false when the group was deleted before acceptance."""

    group_id: str
    joined: bool
