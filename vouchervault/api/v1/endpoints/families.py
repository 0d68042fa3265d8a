from typing import List
from fastapi import APIRouter, Depends, status

from vouchervault.api.deps import get_membership_service
from vouchervault.core.auth import get_current_user
from vouchervault.models.user import UserResponse
from vouchervault.schemas.family import FamilyCreate, FamilyResponse, InviteCreate, InviteResponse
from vouchervault.services.membership_service import MembershipService

router = APIRouter()


@router.get("/", response_model=List[FamilyResponse])
async def list_families(
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    """Families the user owns or belongs to"""
    families = await membership.list_families(current_user)
    return [FamilyResponse.model_validate(family) for family in families]


@router.post("/", response_model=FamilyResponse, status_code=status.HTTP_201_CREATED)
async def create_family(
    family_in: FamilyCreate,
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    family = await membership.create_family(current_user, family_in.name)
    return FamilyResponse.model_validate(family)


@router.get("/{family_id}", response_model=FamilyResponse)
async def get_family(
    family_id: str,
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    family = await membership.get_family(family_id, current_user)
    return FamilyResponse.model_validate(family)


@router.delete("/{family_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_family(
    family_id: str,
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    """Delete the family; shared vouchers are unlinked and kept"""
    await membership.delete_family(family_id, current_user)


@router.delete("/{family_id}/members/{member_id}", response_model=FamilyResponse)
async def remove_member(
    family_id: str,
    member_id: str,
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    family = await membership.remove_member(family_id, member_id, current_user)
    return FamilyResponse.model_validate(family)


@router.post("/{family_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_family(
    family_id: str,
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    await membership.leave_family(family_id, current_user)


@router.post("/{family_id}/invites", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def create_invite(
    family_id: str,
    invite_in: InviteCreate,
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    """Invite an email address to the family (owner only)"""
    invite = await membership.create_invite(family_id, current_user, invite_in.email)
    return InviteResponse.model_validate(invite)


@router.get("/{family_id}/invites", response_model=List[InviteResponse])
async def list_sent_invites(
    family_id: str,
    current_user: UserResponse = Depends(get_current_user),
    membership: MembershipService = Depends(get_membership_service)
):
    invites = await membership.sent_invites(family_id, current_user)
    return [InviteResponse.model_validate(invite) for invite in invites]
