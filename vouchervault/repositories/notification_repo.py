from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List

from vouchervault.models.base import parse_object_id
from vouchervault.models.notification import AppNotification


class NotificationRepository:
    """In-app notification center."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["notifications"]

    async def save(self, notification: AppNotification) -> AppNotification:
        result = await self.collection.insert_one(notification.to_mongo())
        return notification.model_copy(update={"id": str(result.inserted_id)})

    async def list_for_user(self, user_id: str, limit: int = 100) -> List[AppNotification]:
        cursor = self.collection.find({"user_id": user_id}).sort("timestamp", -1)
        docs = await cursor.to_list(limit)
        return [AppNotification.from_mongo(doc) for doc in docs]

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        oid = parse_object_id(notification_id)
        if oid is None:
            return False
        result = await self.collection.update_one(
            {"_id": oid, "user_id": user_id},
            {"$set": {"read": True}}
        )
        return result.matched_count > 0

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.collection.update_many(
            {"user_id": user_id, "read": False},
            {"$set": {"read": True}}
        )
        return result.modified_count

    async def delete_for_user(self, user_id: str) -> int:
        result = await self.collection.delete_many({"user_id": user_id})
        return result.deleted_count
