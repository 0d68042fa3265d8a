"""Voucher request and response schemas.

Patch and create bodies enumerate exactly which fields a client may set;
anything else is rejected. Amounts cross this boundary as decimal numbers
and are stored as integer units (see models.voucher.unit_scale).
"""
from typing import List, Optional, Union
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field

from vouchervault.models.voucher import CodePoolItem, Voucher, VoucherKind
from vouchervault.utils.validation import from_units


class VoucherCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    store: str = Field(..., min_length=1, max_length=200)
    kind: VoucherKind
    initial_amount: Optional[Decimal] = Field(None, ge=0)
    codes: Optional[List[str]] = None  # QUANTITY vouchers backed by single-use codes
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    expiry_date: Optional[date] = None
    family_id: Optional[str] = None
    trip_id: Optional[int] = None
    code: Optional[str] = None
    pin: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    category: Optional[str] = None


class VoucherPatch(BaseModel):
    """
    Mutable voucher fields. initial_amount, kind and the code pool are
    fixed; images change only through the upload endpoint.
    """
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    store: Optional[str] = Field(None, min_length=1, max_length=200)
    remaining_amount: Optional[Decimal] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    expiry_date: Optional[date] = None
    family_id: Optional[str] = None
    trip_id: Optional[int] = None
    code: Optional[str] = None
    pin: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    category: Optional[str] = None


class RedeemRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal
    code: Optional[str] = None


class RedemptionResponse(BaseModel):
    id: str
    voucher_id: str
    amount: Union[int, float]
    timestamp: datetime
    user_name: str
    code_used: Optional[str] = None


class VoucherResponse(BaseModel):
    id: str
    title: str
    store: str
    kind: VoucherKind
    initial_amount: Union[int, float]
    remaining_amount: Union[int, float]
    currency: Optional[str] = None
    expiry_date: Optional[date] = None
    owner_id: str
    family_id: Optional[str] = None
    trip_id: Optional[int] = None
    code: Optional[str] = None
    pin: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    image_url_2: Optional[str] = None
    history: List[RedemptionResponse] = []
    code_pool: Optional[List[CodePoolItem]] = None
    last_adjusted_at: Optional[datetime] = None
    last_adjusted_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_voucher(cls, voucher: Voucher) -> "VoucherResponse":
        """Stored integer units back to client-facing amounts."""
        scale = voucher.scale
        data = voucher.model_dump()
        data["initial_amount"] = from_units(voucher.initial_amount, scale)
        data["remaining_amount"] = from_units(voucher.remaining_amount, scale)
        data["history"] = [
            {**entry.model_dump(), "amount": from_units(entry.amount, scale)}
            for entry in voucher.history
        ]
        return cls(**data)
