from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from datetime import datetime, timezone
from typing import List, Optional

from vouchervault.db.mongo import run_in_transaction
from vouchervault.models.base import parse_object_id
from vouchervault.models.family import Family, FamilyMember
from vouchervault.repositories.voucher_repo import VoucherRepository


class FamilyRepository:
    """Family database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["families"]

    async def create_family(self, family: Family) -> Family:
        result = await self.collection.insert_one(family.to_mongo())
        return family.model_copy(update={"id": str(result.inserted_id)})

    async def get_family(
        self,
        family_id: str,
        session: Optional[AsyncIOMotorClientSession] = None
    ) -> Optional[Family]:
        oid = parse_object_id(family_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid}, session=session)
        return Family.from_mongo(doc)

    async def list_for_user(self, user_id: str, email: str) -> List[Family]:
        """Families the user owns or has joined, newest first."""
        cursor = self.collection.find({
            "$or": [
                {"owner_id": user_id},
                {"members.email": email.strip().lower()}
            ]
        }).sort("created_at", -1)
        docs = await cursor.to_list(None)
        return [Family.from_mongo(doc) for doc in docs]

    async def family_ids_for_user(self, user_id: str, email: str) -> List[str]:
        families = await self.list_for_user(user_id, email)
        return [family.id for family in families]

    async def add_member(
        self,
        family_id: str,
        member: FamilyMember,
        session: Optional[AsyncIOMotorClientSession] = None
    ) -> Optional[Family]:
        """
        Append ``member`` and bump member_count.

        Matches only while neither the owner nor an existing member has the
        same email.
        """
        oid = parse_object_id(family_id)
        if oid is None:
            return None
        email = member.email.strip().lower()
        doc = await self.collection.find_one_and_update(
            {
                "_id": oid,
                "owner_email": {"$ne": email},
                "members.email": {"$ne": email}
            },
            {
                "$push": {"members": member.model_copy(update={"email": email}).model_dump()},
                "$inc": {"member_count": 1},
                "$set": {"updated_at": datetime.now(timezone.utc)}
            },
            session=session,
            return_document=ReturnDocument.AFTER
        )
        return Family.from_mongo(doc)

    async def remove_member(self, family_id: str, owner_id: str, member_id: str) -> Optional[Family]:
        """Owner removes one member; matches only if both still hold."""
        oid = parse_object_id(family_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "owner_id": owner_id, "members.id": member_id},
            {
                "$pull": {"members": {"id": member_id}},
                "$inc": {"member_count": -1},
                "$set": {"updated_at": datetime.now(timezone.utc)}
            },
            return_document=ReturnDocument.AFTER
        )
        return Family.from_mongo(doc)

    async def remove_member_by_email(self, family_id: str, email: str) -> Optional[Family]:
        oid = parse_object_id(family_id)
        if oid is None:
            return None
        email = email.strip().lower()
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "members.email": email},
            {
                "$pull": {"members": {"email": email}},
                "$inc": {"member_count": -1},
                "$set": {"updated_at": datetime.now(timezone.utc)}
            },
            return_document=ReturnDocument.AFTER
        )
        return Family.from_mongo(doc)

    async def change_email(self, user_id: str, old_email: str, new_email: str) -> int:
        """Follow an account email change in owned families and member rosters."""
        now = datetime.now(timezone.utc)
        owned = await self.collection.update_many(
            {"owner_id": user_id},
            {"$set": {"owner_email": new_email, "updated_at": now}}
        )
        joined = await self.collection.update_many(
            {"members.email": old_email},
            {"$set": {"members.$.email": new_email, "updated_at": now}}
        )
        return owned.modified_count + joined.modified_count

    async def delete_family(self, family_id: str, owner_id: str) -> bool:
        """
        Delete an owned family in one transaction: its pending invites go
        with it and every voucher shared into it is unlinked, not deleted.
        """
        oid = parse_object_id(family_id)
        if oid is None:
            return False
        vouchers = VoucherRepository(self.db)

        async def _delete(session: AsyncIOMotorClientSession) -> bool:
            result = await self.collection.delete_one(
                {"_id": oid, "owner_id": owner_id},
                session=session
            )
            if result.deleted_count == 0:
                return False
            await self.db["family_invites"].delete_many(
                {"family_id": family_id, "status": "pending"},
                session=session
            )
            await vouchers.clear_family(family_id, session=session)
            return True

        return await run_in_transaction(self.db, _delete)
