"""
Family invitation model.

State machine:
    pending -> accepted   (member added in the same transaction)
    pending -> rejected
accepted and rejected are terminal.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict

from vouchervault.models.base import MongoModel
from vouchervault.models.family import Family


class InviteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class FamilyInvite(MongoModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True, use_enum_values=True)

    family_id: str
    inviter_id: str
    invitee_email: str
    status: InviteStatus = InviteStatus.PENDING

    # Denormalized for display
    family_name: Optional[str] = None
    inviter_name: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == InviteStatus.PENDING.value


class AcceptFailure(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_RESOLVED = "already_resolved"
    EMAIL_MISMATCH = "email_mismatch"
    ALREADY_MEMBER = "already_member"
    FAMILY_MISSING = "family_missing"


class AcceptResult(BaseModel):
    """Outcome of the accept-invite transaction.

    Business-rule failures are ordinary results; only store faults raise.
    """
    success: bool
    error: Optional[AcceptFailure] = None
    family: Optional[Family] = None
    invite: Optional[FamilyInvite] = None

    @classmethod
    def failed(cls, error: AcceptFailure, invite: Optional[FamilyInvite] = None) -> "AcceptResult":
        return cls(success=False, error=error, invite=invite)
