from typing import List
from fastapi import APIRouter, Depends, status

from vouchervault.api.deps import get_membership_service
from vouchervault.core.auth import get_current_user
from vouchervault.models.user import UserResponse
from vouchervault.schemas.family import FamilyResponse, InviteResponse
from vouchervault.services.membership_service import MembershipService

router = APIRouter()


@router.get("/", response_model=List[InviteResponse])
async def list_my_invites(
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    """Pending invites addressed to the current user's email"""
    invites = await membership.pending_invites_for(current_user.email)
    return [InviteResponse.model_validate(invite) for invite in invites]


@router.post("/{invite_id}/accept", response_model=FamilyResponse)
async def accept_invite(
    invite_id: str,
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    family = await membership.accept_invite(
        invite_id, current_user.email, current_user.name, user_id=current_user.id
    )
    return FamilyResponse.model_validate(family)


@router.post("/{invite_id}/reject", response_model=InviteResponse)
async def reject_invite(
    invite_id: str,
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    invite = await membership.reject_invite(invite_id, current_user)
    return InviteResponse.model_validate(invite)


@router.delete("/{invite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw_invite(
    invite_id: str,
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    """Withdraw a pending invite you sent"""
    await membership.withdraw_invite(invite_id, current_user)
