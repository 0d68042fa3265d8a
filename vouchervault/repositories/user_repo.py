from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime, timezone
from typing import Optional
from vouchervault.models.base import parse_object_id
from vouchervault.models.user import UserCreate, UserInDB
from vouchervault.core.security import hash_password

class UserRepository:
    """User database operations; also the identity lookup for invites."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["users"]

    async def create_user(self, user_data: UserCreate) -> UserInDB:
        """Create a new user."""
        user_dict = {
            "name": user_data.name,
            "email": user_data.email.strip().lower(),
            "password_hash": hash_password(user_data.password),
            "push_token": None,
            "notifications_enabled": True,
            "is_deleted": False,
            "created_at": datetime.now(timezone.utc),
            "updated_at": datetime.now(timezone.utc)
        }

        result = await self.collection.insert_one(user_dict)
        user_dict["_id"] = result.inserted_id
        return UserInDB(**user_dict)

    async def get_user_by_email(self, email: str) -> UserInDB | None:
        """Resolve an email (any casing) to a registered user."""
        user = await self.collection.find_one({
            "email": email.strip().lower(),
            "is_deleted": False
        })
        if user:
            return UserInDB(**user)
        return None

    async def get_user_by_id(self, user_id: str) -> UserInDB | None:
        """Get user by ID."""
        oid = parse_object_id(user_id)
        if oid is None:
            return None
        user = await self.collection.find_one({"_id": oid, "is_deleted": False})
        if user:
            return UserInDB(**user)
        return None

    async def get_push_token(self, user_id: str) -> Optional[str]:
        """Push token of a user who has notifications enabled."""
        user = await self.get_user_by_id(user_id)
        if user is None or not user.notifications_enabled:
            return None
        return user.push_token

    async def update_user(self, user_id: str, update_data: dict) -> UserInDB | None:
        """Update user."""
        oid = parse_object_id(user_id)
        if oid is None:
            return None
        update_data["updated_at"] = datetime.now(timezone.utc)
        result = await self.collection.find_one_and_update(
            {"_id": oid, "is_deleted": False},
            {"$set": update_data},
            return_document=True
        )
        if result:
            return UserInDB(**result)
        return None

    async def set_push_token(self, user_id: str, push_token: Optional[str]) -> UserInDB | None:
        return await self.update_user(user_id, {"push_token": push_token})

    async def set_password(self, user_id: str, new_password: str) -> UserInDB | None:
        return await self.update_user(user_id, {"password_hash": hash_password(new_password)})

    async def set_email(self, user_id: str, email: str) -> UserInDB | None:
        """Raises DuplicateKeyError if the address belongs to another user."""
        return await self.update_user(user_id, {"email": email.strip().lower()})

    async def delete_user(self, user_id: str) -> bool:
        """Remove the user record; frees the email for a new signup."""
        oid = parse_object_id(user_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0
