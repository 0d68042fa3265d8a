"""
Voucher model - store credit or usage-count entitlement with a balance.

All amounts are integers: cents for VALUE vouchers, whole counts for
QUANTITY vouchers. Conversion to and from the client-facing decimal
amount happens at the schema boundary (see unit_scale).

Design principles:
- initial_amount is fixed at creation
- 0 <= remaining_amount <= initial_amount at all times
- history is append-only, newest first; redemptions are immutable
- initial_amount - remaining_amount == sum(history) for vouchers that
  were only changed through redemptions (owner edits may overwrite the
  balance without a history entry)
- code-pool vouchers: remaining_amount == number of unused codes, and each
  used code is referenced by exactly one redemption
"""

from typing import Any, Dict, List, Optional
from datetime import date, datetime
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict

from vouchervault.models.base import MongoModel, _utcnow, new_id


class VoucherKind(str, Enum):
    VALUE = "VALUE"
    QUANTITY = "QUANTITY"


MINOR_UNITS = 100


def unit_scale(kind: str) -> int:
    """Stored units per client-facing unit for a voucher kind."""
    return MINOR_UNITS if kind == VoucherKind.VALUE else 1


class CodePoolItem(BaseModel):
    code: str
    used: bool = False
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None


class Redemption(BaseModel):
    """One deduction against a voucher's balance."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    voucher_id: str
    amount: int
    timestamp: datetime = Field(default_factory=_utcnow)
    user_name: str
    code_used: Optional[str] = None


class Voucher(MongoModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True, use_enum_values=True)

    title: str
    store: str
    kind: VoucherKind
    initial_amount: int
    remaining_amount: int
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

    history: List[Redemption] = []
    code_pool: Optional[List[CodePoolItem]] = None

    last_adjusted_at: Optional[datetime] = None
    last_adjusted_by: Optional[str] = None

    @property
    def has_code_pool(self) -> bool:
        return bool(self.code_pool)

    def unused_codes(self) -> List[str]:
        return [item.code for item in self.code_pool or [] if not item.used]

    @property
    def scale(self) -> int:
        return unit_scale(self.kind)

    def redeemed_total(self) -> int:
        """Sum of every redemption in the history."""
        return sum(entry.amount for entry in self.history)

    def ledger_balanced(self) -> bool:
        """True if the history accounts for the whole spent amount."""
        return self.initial_amount - self.remaining_amount == self.redeemed_total()

    def image_urls(self) -> List[str]:
        return [url for url in (self.image_url, self.image_url_2) if url]

    def to_mongo(self) -> Dict[str, Any]:
        doc = super().to_mongo()
        # BSON has no plain date type
        if self.expiry_date is not None:
            doc["expiry_date"] = self.expiry_date.isoformat()
        return doc
