"""
VoucherRepository - voucher documents and their redemption ledger.

Every balance change is a single conditional update: the balance check is
part of the update filter, so two concurrent redemptions can never both pass
a stale check. A ``None`` result means the filter did not match; callers
re-read to tell "gone" from "condition failed".
"""

from typing import Any, Dict, List, Optional
from datetime import date, datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from vouchervault.models.base import parse_object_id
from vouchervault.models.voucher import Redemption, Voucher


class VoucherRepository:
    """Repository for vouchers."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["vouchers"]

    async def insert_voucher(self, voucher: Voucher) -> Voucher:
        doc = voucher.to_mongo()
        result = await self.collection.insert_one(doc)
        return voucher.model_copy(update={"id": str(result.inserted_id)})

    async def get_voucher(self, voucher_id: str) -> Optional[Voucher]:
        oid = parse_object_id(voucher_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        return Voucher.from_mongo(doc)

    async def list_visible(self, owner_id: str, family_ids: List[str]) -> List[Voucher]:
        """Own vouchers plus vouchers shared into any of ``family_ids``, newest first."""
        query: Dict[str, Any] = {"owner_id": owner_id}
        if family_ids:
            query = {"$or": [{"owner_id": owner_id}, {"family_id": {"$in": family_ids}}]}
        docs = await self.collection.find(query).sort("created_at", -1).to_list(None)
        return [Voucher.from_mongo(doc) for doc in docs]

    async def list_owned(self, owner_id: str) -> List[Voucher]:
        docs = await self.collection.find({"owner_id": owner_id}).to_list(None)
        return [Voucher.from_mongo(doc) for doc in docs]

    async def apply_redemption(self, voucher_id: str, redemption: Redemption) -> Optional[Voucher]:
        """
        Decrement the balance and prepend ``redemption`` in one step.

        Matches only while remaining_amount >= redemption.amount.
        """
        oid = parse_object_id(voucher_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {
                "_id": oid,
                "remaining_amount": {"$gte": redemption.amount}
            },
            {
                "$inc": {"remaining_amount": -redemption.amount},
                "$push": {"history": {"$each": [redemption.model_dump()], "$position": 0}},
                "$set": {"updated_at": redemption.timestamp}
            },
            return_document=ReturnDocument.AFTER
        )
        return Voucher.from_mongo(doc)

    async def apply_pool_redemption(self, voucher_id: str, redemption: Redemption) -> Optional[Voucher]:
        """
        Consume ``redemption.code_used`` from the code pool, decrement the
        balance by one and prepend the redemption, all in one step.

        Matches only while that code is still unused.
        """
        oid = parse_object_id(voucher_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {
                "_id": oid,
                "remaining_amount": {"$gte": redemption.amount},
                "code_pool": {"$elemMatch": {"code": redemption.code_used, "used": False}}
            },
            {
                "$inc": {"remaining_amount": -redemption.amount},
                "$push": {"history": {"$each": [redemption.model_dump()], "$position": 0}},
                "$set": {
                    "code_pool.$.used": True,
                    "code_pool.$.used_at": redemption.timestamp,
                    "code_pool.$.used_by": redemption.user_name,
                    "updated_at": redemption.timestamp
                }
            },
            return_document=ReturnDocument.AFTER
        )
        return Voucher.from_mongo(doc)

    async def apply_patch(self, voucher_id: str, updates: Dict[str, Any]) -> Optional[Voucher]:
        """
        Overwrite mutable fields. A new remaining_amount only applies while
        it does not exceed initial_amount.
        """
        oid = parse_object_id(voucher_id)
        if oid is None:
            return None
        updates = dict(updates)
        if isinstance(updates.get("expiry_date"), date):
            updates["expiry_date"] = updates["expiry_date"].isoformat()
        updates["updated_at"] = datetime.now(timezone.utc)

        query: Dict[str, Any] = {"_id": oid}
        if "remaining_amount" in updates:
            query["initial_amount"] = {"$gte": updates["remaining_amount"]}

        doc = await self.collection.find_one_and_update(
            query,
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        return Voucher.from_mongo(doc)

    async def delete_voucher(self, voucher_id: str) -> bool:
        oid = parse_object_id(voucher_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def clear_family(
        self,
        family_id: str,
        session: Optional[AsyncIOMotorClientSession] = None
    ) -> int:
        """Unlink every voucher shared into ``family_id``; vouchers are kept."""
        result = await self.collection.update_many(
            {"family_id": family_id},
            {"$set": {"family_id": None, "updated_at": datetime.now(timezone.utc)}},
            session=session
        )
        return result.modified_count
