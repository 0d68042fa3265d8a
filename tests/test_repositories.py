"""Tests for repository update filters and the accept-invite transaction."""
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from vouchervault.core.errors import DuplicatePendingInvite
from vouchervault.models.family import FamilyMember
from vouchervault.models.invite import AcceptFailure, FamilyInvite
from vouchervault.models.voucher import Redemption
from vouchervault.repositories.family_repo import FamilyRepository
from vouchervault.repositories.invite_repo import InviteRepository
from vouchervault.repositories.voucher_repo import VoucherRepository

NOW = datetime(2030, 1, 1, tzinfo=timezone.utc)


async def _run_inline(db, callback):
    return await callback(MagicMock(name="session"))


def _invite_doc(invite_id, family_id, status="pending", email="bob@example.com"):
    return {
        "_id": invite_id,
        "family_id": family_id,
        "inviter_id": "owner-1",
        "invitee_email": email,
        "status": status,
        "family_name": "Home",
        "inviter_name": "Alice",
        "created_at": NOW,
        "updated_at": NOW,
    }


def _family_doc(family_id, members=()):
    return {
        "_id": ObjectId(family_id),
        "name": "Home",
        "owner_id": "owner-1",
        "owner_email": "alice@example.com",
        "members": list(members),
        "member_count": 1 + len(members),
        "created_at": NOW,
        "updated_at": NOW,
    }


@pytest.mark.asyncio
class TestVoucherRepository:
    async def test_redemption_is_conditional_on_balance(self, mock_db):
        repo = VoucherRepository(mock_db)
        mock_db["vouchers"].find_one_and_update.return_value = None
        voucher_id = str(ObjectId())
        redemption = Redemption(voucher_id=voucher_id, amount=1250, user_name="Alice")

        assert await repo.apply_redemption(voucher_id, redemption) is None

        query, update = mock_db["vouchers"].find_one_and_update.call_args[0]
        assert query["remaining_amount"] == {"$gte": 1250}
        assert update["$inc"] == {"remaining_amount": -1250}
        assert update["$push"]["history"]["$position"] == 0

    async def test_pool_redemption_targets_unused_code(self, mock_db):
        repo = VoucherRepository(mock_db)
        mock_db["vouchers"].find_one_and_update.return_value = None
        voucher_id = str(ObjectId())
        redemption = Redemption(voucher_id=voucher_id, amount=1, user_name="Alice", code_used="B2")

        await repo.apply_pool_redemption(voucher_id, redemption)

        query, update = mock_db["vouchers"].find_one_and_update.call_args[0]
        assert query["code_pool"] == {"$elemMatch": {"code": "B2", "used": False}}
        assert update["$set"]["code_pool.$.used"] is True

    async def test_invalid_id_never_touches_store(self, mock_db):
        repo = VoucherRepository(mock_db)

        assert await repo.get_voucher("nope") is None
        mock_db["vouchers"].find_one.assert_not_called()

    async def test_list_visible_includes_family_vouchers(self, mock_db):
        repo = VoucherRepository(mock_db)

        await repo.list_visible("u1", ["f1", "f2"])

        query = mock_db["vouchers"].find.call_args[0][0]
        assert query == {"$or": [{"owner_id": "u1"}, {"family_id": {"$in": ["f1", "f2"]}}]}

    async def test_list_owned(self, mock_db):
        repo = VoucherRepository(mock_db)

        assert await repo.list_owned("u1") == []
        mock_db["vouchers"].find.assert_called_once_with({"owner_id": "u1"})


@pytest.mark.asyncio
class TestFamilyRepository:
    async def test_add_member_guards_roster(self, mock_db):
        repo = FamilyRepository(mock_db)
        mock_db["families"].find_one_and_update.return_value = None

        result = await repo.add_member(str(ObjectId()), FamilyMember(email="Bob@Example.com", name="Bob"))

        assert result is None
        query, update = mock_db["families"].find_one_and_update.call_args[0]
        assert query["members.email"] == {"$ne": "bob@example.com"}
        assert query["owner_email"] == {"$ne": "bob@example.com"}
        assert update["$inc"] == {"member_count": 1}

    async def test_delete_family_cascades_in_one_transaction(self, mock_db):
        repo = FamilyRepository(mock_db)
        family_id = str(ObjectId())
        mock_db["families"].delete_one.return_value = MagicMock(deleted_count=1)
        mock_db["vouchers"].update_many.return_value = MagicMock(modified_count=2)
        session = MagicMock(name="session")

        async def _run_with(db, callback):
            return await callback(session)

        with patch("vouchervault.repositories.family_repo.run_in_transaction", _run_with):
            assert await repo.delete_family(family_id, "owner-1") is True

        query = mock_db["families"].delete_one.call_args[0][0]
        assert query == {"_id": ObjectId(family_id), "owner_id": "owner-1"}
        mock_db["family_invites"].delete_many.assert_awaited_once_with(
            {"family_id": family_id, "status": "pending"}, session=session
        )
        voucher_query, voucher_update = mock_db["vouchers"].update_many.call_args[0]
        assert voucher_query == {"family_id": family_id}
        assert voucher_update["$set"]["family_id"] is None
        assert mock_db["vouchers"].update_many.call_args.kwargs["session"] is session

    async def test_delete_family_not_owned_changes_nothing(self, mock_db):
        repo = FamilyRepository(mock_db)
        mock_db["families"].delete_one.return_value = MagicMock(deleted_count=0)

        with patch("vouchervault.repositories.family_repo.run_in_transaction", _run_inline):
            assert await repo.delete_family(str(ObjectId()), "someone-else") is False

        mock_db["family_invites"].delete_many.assert_not_called()
        mock_db["vouchers"].update_many.assert_not_called()

    async def test_change_email_follows_owner_and_member_rosters(self, mock_db):
        repo = FamilyRepository(mock_db)

        await repo.change_email("u1", "bob@example.com", "robert@example.com")

        owned, joined = mock_db["families"].update_many.call_args_list
        assert owned[0][0] == {"owner_id": "u1"}
        assert owned[0][1]["$set"]["owner_email"] == "robert@example.com"
        assert joined[0][0] == {"members.email": "bob@example.com"}
        assert joined[0][1]["$set"]["members.$.email"] == "robert@example.com"


@pytest.mark.asyncio
class TestInviteRepository:
    async def test_duplicate_pending_invite(self, mock_db):
        repo = InviteRepository(mock_db)
        mock_db["family_invites"].insert_one.side_effect = DuplicateKeyError("dup")

        with pytest.raises(DuplicatePendingInvite):
            await repo.create_invite(FamilyInvite(
                family_id="f1", inviter_id="owner-1", invitee_email="bob@example.com"
            ))

    async def test_accept_success(self, mock_db):
        repo = InviteRepository(mock_db)
        invite_id = ObjectId()
        family_id = str(ObjectId())
        mock_db["family_invites"].find_one.return_value = _invite_doc(invite_id, family_id)
        mock_db["family_invites"].find_one_and_update.return_value = _invite_doc(
            invite_id, family_id, status="accepted"
        )
        member = {"id": "m1", "email": "bob@example.com", "name": "Bob", "joined_at": NOW}
        mock_db["families"].find_one_and_update.return_value = _family_doc(family_id, [member])

        with patch("vouchervault.repositories.invite_repo.run_in_transaction", _run_inline):
            result = await repo.accept_invite(str(invite_id), "BOB@example.com", "Bob", "m1")

        assert result.success
        assert result.family.member_count == 2
        assert result.invite.status == "accepted"

    async def test_accept_resolved_invite(self, mock_db):
        repo = InviteRepository(mock_db)
        invite_id = ObjectId()
        mock_db["family_invites"].find_one.return_value = _invite_doc(invite_id, "f1", status="accepted")

        with patch("vouchervault.repositories.invite_repo.run_in_transaction", _run_inline):
            result = await repo.accept_invite(str(invite_id), "bob@example.com", "Bob", "m1")

        assert not result.success
        assert result.error == AcceptFailure.ALREADY_RESOLVED
        mock_db["family_invites"].find_one_and_update.assert_not_called()

    async def test_accept_wrong_email(self, mock_db):
        repo = InviteRepository(mock_db)
        invite_id = ObjectId()
        mock_db["family_invites"].find_one.return_value = _invite_doc(invite_id, "f1")

        with patch("vouchervault.repositories.invite_repo.run_in_transaction", _run_inline):
            result = await repo.accept_invite(str(invite_id), "mallory@example.com", "M", "m1")

        assert result.error == AcceptFailure.EMAIL_MISMATCH

    async def test_accept_already_member_aborts(self, mock_db):
        repo = InviteRepository(mock_db)
        invite_id = ObjectId()
        family_id = str(ObjectId())
        mock_db["family_invites"].find_one.return_value = _invite_doc(invite_id, family_id)
        mock_db["family_invites"].find_one_and_update.return_value = _invite_doc(
            invite_id, family_id, status="accepted"
        )
        mock_db["families"].find_one_and_update.return_value = None
        mock_db["families"].find_one.return_value = _family_doc(family_id)

        with patch("vouchervault.repositories.invite_repo.run_in_transaction", _run_inline):
            result = await repo.accept_invite(str(invite_id), "bob@example.com", "Bob", "m1")

        assert result.error == AcceptFailure.ALREADY_MEMBER

    async def test_accept_missing_family_aborts(self, mock_db):
        repo = InviteRepository(mock_db)
        invite_id = ObjectId()
        family_id = str(ObjectId())
        mock_db["family_invites"].find_one.return_value = _invite_doc(invite_id, family_id)
        mock_db["family_invites"].find_one_and_update.return_value = _invite_doc(
            invite_id, family_id, status="accepted"
        )
        mock_db["families"].find_one_and_update.return_value = None
        mock_db["families"].find_one.return_value = None

        with patch("vouchervault.repositories.invite_repo.run_in_transaction", _run_inline):
            result = await repo.accept_invite(str(invite_id), "bob@example.com", "Bob", "m1")

        assert result.error == AcceptFailure.FAMILY_MISSING

    async def test_accept_unknown_invite(self, mock_db):
        repo = InviteRepository(mock_db)

        with patch("vouchervault.repositories.invite_repo.run_in_transaction", _run_inline):
            result = await repo.accept_invite("not-an-id", "bob@example.com", "Bob", "m1")

        assert result.error == AcceptFailure.NOT_FOUND

    async def test_delete_sent_by_removes_every_status(self, mock_db):
        repo = InviteRepository(mock_db)
        mock_db["family_invites"].delete_many.return_value = MagicMock(deleted_count=3)

        assert await repo.delete_sent_by("owner-1") == 3
        mock_db["family_invites"].delete_many.assert_awaited_once_with({"inviter_id": "owner-1"})
