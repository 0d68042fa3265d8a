from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from vouchervault.models.family import FamilyMember
from vouchervault.models.invite import InviteStatus


class FamilyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class FamilyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    owner_id: str
    owner_email: str
    owner_name: Optional[str] = None
    members: List[FamilyMember] = []
    member_count: int
    created_at: datetime


class InviteCreate(BaseModel):
    email: EmailStr


class InviteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    family_id: str
    inviter_id: str
    invitee_email: str
    status: InviteStatus
    family_name: Optional[str] = None
    inviter_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
