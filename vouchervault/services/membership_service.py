import logging
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from vouchervault.core.errors import (
    AlreadyMember,
    EmailMismatch,
    FamilyNotFound,
    Forbidden,
    InviteAlreadyResolved,
    InviteNotFound,
    MemberNotFound,
    OwnerCannotLeave,
)
from vouchervault.models.base import new_id
from vouchervault.models.family import Family
from vouchervault.models.invite import AcceptFailure, FamilyInvite, InviteStatus
from vouchervault.models.notification import NotificationType
from vouchervault.models.user import UserResponse
from vouchervault.repositories.family_repo import FamilyRepository
from vouchervault.repositories.invite_repo import InviteRepository
from vouchervault.repositories.user_repo import UserRepository
from vouchervault.services.notification_service import NotificationService
from vouchervault.utils.background import TaskRunner
from vouchervault.utils.validation import normalize_email, require_text

logger = logging.getLogger(__name__)

_ACCEPT_ERRORS = {
    AcceptFailure.NOT_FOUND: InviteNotFound,
    AcceptFailure.ALREADY_RESOLVED: InviteAlreadyResolved,
    AcceptFailure.EMAIL_MISMATCH: EmailMismatch,
    AcceptFailure.ALREADY_MEMBER: AlreadyMember,
    AcceptFailure.FAMILY_MISSING: FamilyNotFound,
}


class MembershipService:
    """Families, their rosters and the invitation lifecycle."""

    def __init__(self, db: AsyncIOMotorDatabase, notifications: NotificationService, runner: TaskRunner):
        self.users = UserRepository(db)
        self.families = FamilyRepository(db)
        self.invites = InviteRepository(db)
        self.notifications = notifications
        self.runner = runner

    # ===== FAMILIES =====

    async def create_family(self, owner: UserResponse, name: str) -> Family:
        family = Family(
            name=require_text(name, "name"),
            owner_id=owner.id,
            owner_email=owner.email.lower(),
            owner_name=owner.name,
            members=[],
            member_count=1
        )
        saved = await self.families.create_family(family)
        logger.info("Family %s created by %s", saved.id, owner.id)
        return saved

    async def list_families(self, user: UserResponse) -> List[Family]:
        return await self.families.list_for_user(user.id, user.email)

    async def get_family(self, family_id: str, user: UserResponse) -> Family:
        family = await self.families.get_family(family_id)
        if family is None or not family.includes(user.id, user.email):
            raise FamilyNotFound(family_id=family_id)
        return family

    async def _owned_family(self, family_id: str, user: UserResponse) -> Family:
        family = await self.families.get_family(family_id)
        if family is None:
            raise FamilyNotFound(family_id=family_id)
        if not family.is_owner(user.id):
            raise Forbidden(family_id=family_id)
        return family

    async def remove_member(self, family_id: str, member_id: str, acting_user: UserResponse) -> Family:
        family = await self._owned_family(family_id, acting_user)
        if family.find_member(member_id) is None:
            raise MemberNotFound(member_id=member_id)

        updated = await self.families.remove_member(family.id, acting_user.id, member_id)
        if updated is None:
            # Removed concurrently between the read and the pull
            raise MemberNotFound(member_id=member_id)
        logger.info("Member %s removed from family %s", member_id, family.id)
        return updated

    async def leave_family(self, family_id: str, user: UserResponse) -> None:
        family = await self.families.get_family(family_id)
        if family is None:
            raise FamilyNotFound(family_id=family_id)
        if family.is_owner(user.id):
            raise OwnerCannotLeave(family_id=family_id)

        updated = await self.families.remove_member_by_email(family.id, user.email)
        if updated is None:
            raise MemberNotFound(family_id=family_id)
        logger.info("User %s left family %s", user.id, family.id)

    async def delete_family(self, family_id: str, acting_user: UserResponse) -> None:
        """
        Owner-only. The family, its pending invites and every voucher link
        to it go in one transaction; the vouchers themselves are kept.
        """
        family = await self._owned_family(family_id, acting_user)
        deleted = await self.families.delete_family(family.id, acting_user.id)
        if not deleted:
            raise FamilyNotFound(family_id=family_id)
        logger.info("Family %s deleted by %s", family.id, acting_user.id)

    # ===== INVITES =====

    async def create_invite(self, family_id: str, inviter: UserResponse, email: str) -> FamilyInvite:
        family = await self._owned_family(family_id, inviter)
        email = normalize_email(email)
        if email == family.owner_email.lower() or family.has_member_email(email):
            raise AlreadyMember(family_id=family_id, email=email)

        invite = await self.invites.create_invite(FamilyInvite(
            family_id=family.id,
            inviter_id=inviter.id,
            invitee_email=email,
            family_name=family.name,
            inviter_name=inviter.name
        ))
        logger.info("Invite %s to %s for family %s", invite.id, email, family.id)
        self.runner.spawn(self._announce_invite(invite), name=f"invite-{invite.id}")
        return invite

    async def accept_invite(
        self,
        invite_id: str,
        email: str,
        name: str,
        user_id: Optional[str] = None
    ) -> Family:
        """
        Accept and join in one transaction. The new roster entry uses
        ``user_id`` as its member id when given.
        """
        email = normalize_email(email)
        result = await self.invites.accept_invite(invite_id, email, name, user_id or new_id())
        if not result.success:
            error = _ACCEPT_ERRORS[AcceptFailure(result.error)]
            logger.info("Accepting invite %s by %s failed: %s", invite_id, email, result.error)
            raise error(invite_id=invite_id)

        logger.info("Invite %s accepted by %s", invite_id, email)
        self.runner.spawn(
            self._announce_response(result.invite, name, accepted=True),
            name=f"invite-accepted-{invite_id}"
        )
        return result.family

    async def reject_invite(self, invite_id: str, user: UserResponse) -> FamilyInvite:
        invite = await self.invites.get_invite(invite_id)
        if invite is None:
            raise InviteNotFound(invite_id=invite_id)
        if invite.invitee_email.lower() != user.email.lower():
            raise EmailMismatch(invite_id=invite_id)

        rejected = await self.invites.resolve(invite_id, InviteStatus.REJECTED)
        if rejected is None:
            raise InviteAlreadyResolved(invite_id=invite_id)

        logger.info("Invite %s rejected by %s", invite_id, user.email)
        self.runner.spawn(
            self._announce_response(rejected, user.name, accepted=False),
            name=f"invite-rejected-{invite_id}"
        )
        return rejected

    async def withdraw_invite(self, invite_id: str, user: UserResponse) -> None:
        invite = await self.invites.get_invite(invite_id)
        if invite is None:
            raise InviteNotFound(invite_id=invite_id)
        if invite.inviter_id != user.id:
            raise Forbidden("Only the inviter can withdraw this invite", invite_id=invite_id)
        if not await self.invites.delete_pending(invite_id, user.id):
            raise InviteAlreadyResolved(invite_id=invite_id)
        logger.info("Invite %s withdrawn", invite_id)

    async def pending_invites_for(self, email: str) -> List[FamilyInvite]:
        return await self.invites.pending_for_email(normalize_email(email))

    async def sent_invites(self, family_id: str, user: UserResponse) -> List[FamilyInvite]:
        family = await self._owned_family(family_id, user)
        return await self.invites.pending_for_family(family.id)

    # ===== FAN-OUT =====

    async def _announce_invite(self, invite: FamilyInvite) -> None:
        inviter_name = invite.inviter_name or "Someone"
        family_name = invite.family_name or "a family"

        invitee = await self.users.get_user_by_email(invite.invitee_email)
        if invitee is not None:
            await self.notifications.notify(
                str(invitee.id),
                "New family invitation",
                f'{inviter_name} invited you to join "{family_name}"',
                metadata={
                    "type": "family_invitation",
                    "invite_id": invite.id,
                    "family_id": invite.family_id,
                }
            )
        await self.notifications.send_invite_email(invite.invitee_email, inviter_name, family_name)

    async def _announce_response(self, invite: FamilyInvite, responder_name: str, accepted: bool) -> None:
        family_name = invite.family_name or "your family"
        if accepted:
            title = "Invitation accepted!"
            body = f'{responder_name} joined "{family_name}"'
            kind = NotificationType.SUCCESS
        else:
            title = "Invitation declined"
            body = f'{responder_name} declined the invitation to "{family_name}"'
            kind = NotificationType.INFO
        await self.notifications.notify(
            invite.inviter_id,
            title,
            body,
            metadata={
                "type": "invite_response",
                "invite_id": invite.id,
                "family_id": invite.family_id,
            },
            kind=kind
        )
