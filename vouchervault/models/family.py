from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from vouchervault.models.base import MongoModel, _utcnow, new_id


class FamilyMember(BaseModel):
    """Accepted member; the owner is implicit and never listed."""
    id: str = Field(default_factory=new_id)
    email: str
    name: str
    joined_at: datetime = Field(default_factory=_utcnow)


class Family(MongoModel):
    """Sharing group. member_count == 1 + len(members)."""
    name: str
    owner_id: str
    owner_email: str
    owner_name: Optional[str] = None
    members: List[FamilyMember] = []
    member_count: int = 1

    def is_owner(self, user_id: str) -> bool:
        return self.owner_id == user_id

    def has_member_email(self, email: str) -> bool:
        email = email.strip().lower()
        return any(m.email.lower() == email for m in self.members)

    def includes(self, user_id: str, email: str) -> bool:
        """Owner or accepted member."""
        return self.is_owner(user_id) or self.has_member_email(email)

    def find_member(self, member_id: str) -> Optional[FamilyMember]:
        return next((m for m in self.members if m.id == member_id), None)
