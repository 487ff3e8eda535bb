from enum import Enum

from chatsync.core.mixins import DocumentModel, Timestamp


class InvitationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class Invitation(DocumentModel):
    id: str
    group_id: str
    group_name: str = ""
    to_uid: str
    from_uid: str
    from_name: str = ""
    status: InvitationStatus = InvitationStatus.pending
    timestamp: Timestamp | None = None
