"""
InviteRepository - family invitations and the accept-and-join transaction.

accept_invite runs as one MongoDB transaction:
1. read the invite, check it is pending and addressed to the caller
2. compare-and-swap status pending -> accepted
3. append the member to the family roster and bump member_count
Either all three commit or nothing does. Concurrent accepts of the same
invite conflict on step 2; the driver retries the loser, which then reads
status "accepted" and returns ALREADY_RESOLVED.
"""

from typing import List, Optional
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from vouchervault.core.errors import DuplicatePendingInvite
from vouchervault.db.mongo import run_in_transaction
from vouchervault.models.base import parse_object_id
from vouchervault.models.family import FamilyMember
from vouchervault.models.invite import AcceptFailure, AcceptResult, FamilyInvite, InviteStatus
from vouchervault.repositories.family_repo import FamilyRepository


class _AbortAccept(Exception):
    """Rolls the accept transaction back after the status swap."""

    def __init__(self, failure: AcceptFailure):
        super().__init__(failure.value)
        self.failure = failure


class InviteRepository:
    """Repository for family invitations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["family_invites"]
        self.families = FamilyRepository(db)

    async def create_invite(self, invite: FamilyInvite) -> FamilyInvite:
        """
        Insert a pending invite.

        Raises DuplicatePendingInvite when the (family, email) pair already
        has one; the partial unique index makes this race free.
        """
        try:
            result = await self.collection.insert_one(invite.to_mongo())
        except DuplicateKeyError:
            raise DuplicatePendingInvite(
                family_id=invite.family_id,
                invitee_email=invite.invitee_email
            )
        return invite.model_copy(update={"id": str(result.inserted_id)})

    async def get_invite(
        self,
        invite_id: str,
        session: Optional[AsyncIOMotorClientSession] = None
    ) -> Optional[FamilyInvite]:
        oid = parse_object_id(invite_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid}, session=session)
        return FamilyInvite.from_mongo(doc)

    async def pending_for_email(self, email: str) -> List[FamilyInvite]:
        cursor = self.collection.find({
            "invitee_email": email.strip().lower(),
            "status": InviteStatus.PENDING.value
        }).sort("created_at", -1)
        docs = await cursor.to_list(None)
        return [FamilyInvite.from_mongo(doc) for doc in docs]

    async def pending_for_family(self, family_id: str) -> List[FamilyInvite]:
        cursor = self.collection.find({
            "family_id": family_id,
            "status": InviteStatus.PENDING.value
        }).sort("created_at", -1)
        docs = await cursor.to_list(None)
        return [FamilyInvite.from_mongo(doc) for doc in docs]

    async def resolve(
        self,
        invite_id: str,
        status: InviteStatus,
        session: Optional[AsyncIOMotorClientSession] = None
    ) -> Optional[FamilyInvite]:
        """Compare-and-swap pending -> ``status``. None if not pending."""
        oid = parse_object_id(invite_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "status": InviteStatus.PENDING.value},
            {"$set": {"status": status.value, "updated_at": datetime.now(timezone.utc)}},
            session=session,
            return_document=ReturnDocument.AFTER
        )
        return FamilyInvite.from_mongo(doc)

    async def delete_pending(self, invite_id: str, inviter_id: str) -> bool:
        """Withdraw a still-pending invite sent by ``inviter_id``."""
        oid = parse_object_id(invite_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({
            "_id": oid,
            "inviter_id": inviter_id,
            "status": InviteStatus.PENDING.value
        })
        return result.deleted_count > 0

    async def delete_sent_by(self, inviter_id: str) -> int:
        """Every invite sent by ``inviter_id``, whatever its status."""
        result = await self.collection.delete_many({"inviter_id": inviter_id})
        return result.deleted_count

    async def accept_invite(
        self,
        invite_id: str,
        email: str,
        name: str,
        member_id: str
    ) -> AcceptResult:
        """Accept an invite and join its family atomically."""
        email = email.strip().lower()

        async def _accept(session: AsyncIOMotorClientSession) -> AcceptResult:
            invite = await self.get_invite(invite_id, session=session)
            if invite is None:
                return AcceptResult.failed(AcceptFailure.NOT_FOUND)
            if not invite.is_pending:
                return AcceptResult.failed(AcceptFailure.ALREADY_RESOLVED, invite)
            if invite.invitee_email.lower() != email:
                return AcceptResult.failed(AcceptFailure.EMAIL_MISMATCH, invite)

            accepted = await self.resolve(invite_id, InviteStatus.ACCEPTED, session=session)
            if accepted is None:
                return AcceptResult.failed(AcceptFailure.ALREADY_RESOLVED, invite)

            member = FamilyMember(id=member_id, email=email, name=name)
            family = await self.families.add_member(invite.family_id, member, session=session)
            if family is None:
                current = await self.families.get_family(invite.family_id, session=session)
                if current is None:
                    raise _AbortAccept(AcceptFailure.FAMILY_MISSING)
                raise _AbortAccept(AcceptFailure.ALREADY_MEMBER)

            return AcceptResult(success=True, family=family, invite=accepted)

        try:
            return await run_in_transaction(self.db, _accept)
        except _AbortAccept as exc:
            return AcceptResult.failed(exc.failure)
