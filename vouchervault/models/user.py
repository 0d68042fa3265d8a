from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from datetime import datetime
from typing import Optional
from bson import ObjectId

class UserBase(BaseModel):
    """Base user schema."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

class UserCreate(UserBase):
    """User creation schema."""
    password: str = Field(..., min_length=8)

class UserUpdate(BaseModel):
    """User update schema."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    notifications_enabled: Optional[bool] = None

class PushTokenUpdate(BaseModel):
    push_token: Optional[str] = None

class UserResponse(BaseModel):
    """Authenticated user; services use it as the acting identity."""
    id: str = Field(validation_alias="_id", serialization_alias="id")
    name: str
    email: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True
    )

class UserInDB(BaseModel):
    """User database schema."""
    id: ObjectId = Field(alias="_id")
    name: str
    email: str
    password_hash: str
    push_token: Optional[str] = None
    notifications_enabled: bool = True
    is_deleted: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
        arbitrary_types_allowed=True
    )

    @property
    def _id(self) -> ObjectId:
        """Alias for id to match MongoDB naming."""
        return self.id

    def to_response(self) -> UserResponse:
        return UserResponse(
            id=str(self.id),
            name=self.name,
            email=self.email,
            created_at=self.created_at,
            updated_at=self.updated_at
        )
