from typing import List
from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from vouchervault.api.deps import get_ledger_service
from vouchervault.core.auth import get_current_user
from vouchervault.core.config import settings
from vouchervault.core.errors import ValidationFailed
from vouchervault.models.user import UserResponse
from vouchervault.schemas.voucher import RedeemRequest, VoucherCreate, VoucherPatch, VoucherResponse
from vouchervault.services.ledger_service import LedgerService

router = APIRouter()


@router.get("/", response_model=List[VoucherResponse])
async def list_vouchers(
    current_user: UserResponse = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service)
):
    """Own vouchers and vouchers shared into the user's families"""
    vouchers = await ledger.list_vouchers(current_user)
    return [VoucherResponse.from_voucher(voucher) for voucher in vouchers]


@router.post("/", response_model=VoucherResponse, status_code=status.HTTP_201_CREATED)
async def create_voucher(
    voucher_in: VoucherCreate,
    current_user: UserResponse = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service)
):
    voucher = await ledger.create_voucher(current_user, voucher_in)
    return VoucherResponse.from_voucher(voucher)


@router.get("/{voucher_id}", response_model=VoucherResponse)
async def get_voucher(
    voucher_id: str,
    current_user: UserResponse = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service)
):
    voucher = await ledger.get_voucher(voucher_id, current_user)
    return VoucherResponse.from_voucher(voucher)


@router.patch("/{voucher_id}", response_model=VoucherResponse)
async def edit_voucher(
    voucher_id: str,
    patch: VoucherPatch,
    current_user: UserResponse = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service)
):
    """Edit mutable fields; a new remaining_amount is a manual correction"""
    voucher = await ledger.edit_voucher(voucher_id, current_user, patch)
    return VoucherResponse.from_voucher(voucher)


@router.delete("/{voucher_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_voucher(
    voucher_id: str,
    current_user: UserResponse = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service)
):
    await ledger.delete_voucher(voucher_id, current_user)


@router.post("/{voucher_id}/redeem", response_model=VoucherResponse)
async def redeem_voucher(
    voucher_id: str,
    payload: RedeemRequest,
    current_user: UserResponse = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service)
):
    """Deduct an amount (or consume one code) and record the redemption"""
    voucher = await ledger.redeem(voucher_id, current_user, payload.amount, payload.code)
    return VoucherResponse.from_voucher(voucher)


@router.post("/{voucher_id}/images", response_model=VoucherResponse)
async def upload_voucher_image(
    voucher_id: str,
    file: UploadFile = File(...),
    slot: int = Form(1),
    current_user: UserResponse = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service)
):
    """Attach a photo of the voucher (slot 1 front, slot 2 back)"""
    contents = await file.read()
    if len(contents) > settings.MAX_FILE_SIZE:
        raise ValidationFailed(f"File too large. Maximum size: {settings.MAX_FILE_SIZE} bytes")
    voucher = await ledger.attach_image(
        voucher_id, current_user, contents, file.content_type or "", slot=slot
    )
    return VoucherResponse.from_voucher(voucher)
