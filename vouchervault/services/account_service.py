"""
Account-level operations: credential changes and account deletion.

Deleting an account removes everything the user owns. Vouchers (with
their images and reminders) and owned families go through the ledger and
membership services so the same rules apply as for a single delete;
families the user only joined are left, not deleted.
"""

import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from vouchervault.core.errors import EmailTaken, FamilyNotFound, IncorrectPassword, MemberNotFound
from vouchervault.core.security import verify_password
from vouchervault.models.user import UserInDB, UserResponse
from vouchervault.repositories.family_repo import FamilyRepository
from vouchervault.repositories.invite_repo import InviteRepository
from vouchervault.repositories.notification_repo import NotificationRepository
from vouchervault.repositories.user_repo import UserRepository
from vouchervault.repositories.voucher_repo import VoucherRepository
from vouchervault.services.ledger_service import LedgerService
from vouchervault.services.membership_service import MembershipService
from vouchervault.utils.validation import normalize_email

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, db: AsyncIOMotorDatabase, ledger: LedgerService, membership: MembershipService):
        self.users = UserRepository(db)
        self.vouchers = VoucherRepository(db)
        self.families = FamilyRepository(db)
        self.invites = InviteRepository(db)
        self.notifications = NotificationRepository(db)
        self.ledger = ledger
        self.membership = membership

    async def _stored_user(self, user: UserResponse) -> UserInDB:
        stored = await self.users.get_user_by_id(user.id)
        if stored is None:
            raise IncorrectPassword("Account no longer exists")
        return stored

    async def change_password(self, user: UserResponse, current_password: str, new_password: str) -> None:
        stored = await self._stored_user(user)
        if not verify_password(current_password, stored.password_hash):
            raise IncorrectPassword()
        await self.users.set_password(user.id, new_password)
        logger.info("Password changed for %s", user.id)

    async def change_email(self, user: UserResponse, current_password: str, new_email: str) -> UserResponse:
        """Move the account to a new address; family rosters follow it."""
        stored = await self._stored_user(user)
        if not verify_password(current_password, stored.password_hash):
            raise IncorrectPassword()

        new_email = normalize_email(new_email)
        if new_email == stored.email:
            return stored.to_response()
        if await self.users.get_user_by_email(new_email):
            raise EmailTaken()
        try:
            updated = await self.users.set_email(user.id, new_email)
        except DuplicateKeyError:
            raise EmailTaken()
        if updated is None:
            raise IncorrectPassword("Account no longer exists")

        await self.families.change_email(user.id, stored.email, new_email)
        logger.info("Email changed for %s", user.id)
        return updated.to_response()

    async def delete_account(self, user: UserResponse) -> None:
        """
        Delete the user's vouchers, owned families, sent invites and
        notifications, leave joined families, then remove the user.
        """
        vouchers = await self.vouchers.list_owned(user.id)
        for voucher in vouchers:
            await self.ledger.delete_voucher(voucher.id, user)

        for family in await self.membership.list_families(user):
            if family.is_owner(user.id):
                await self.membership.delete_family(family.id, user)
            else:
                try:
                    await self.membership.leave_family(family.id, user)
                except (FamilyNotFound, MemberNotFound):
                    logger.info("User %s already out of family %s", user.id, family.id)

        await self.invites.delete_sent_by(user.id)
        await self.notifications.delete_for_user(user.id)
        await self.users.delete_user(user.id)
        logger.info("Account %s deleted with %d vouchers", user.id, len(vouchers))
