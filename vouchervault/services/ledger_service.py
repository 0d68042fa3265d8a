import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from vouchervault.core.errors import (
    CodeUnavailable,
    Forbidden,
    InsufficientBalance,
    InvalidAmount,
    InvalidReference,
    Unauthorized,
    ValidationFailed,
    VoucherNotFound,
)
from vouchervault.models.family import Family
from vouchervault.models.user import UserResponse
from vouchervault.models.voucher import MINOR_UNITS, CodePoolItem, Redemption, Voucher, VoucherKind
from vouchervault.repositories.family_repo import FamilyRepository
from vouchervault.repositories.voucher_repo import VoucherRepository
from vouchervault.schemas.voucher import VoucherCreate, VoucherPatch
from vouchervault.services.reminder_service import ReminderService
from vouchervault.services.storage_service import ImageStorage
from vouchervault.utils.background import TaskRunner
from vouchervault.utils.validation import (
    check_balance_bounds,
    from_units,
    normalize_codes,
    require_text,
    validate_amount,
    validate_balance,
    to_units,
)

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Voucher balances and redemption history.

    Balance changes go through one conditional update in the repository;
    nothing here reads a balance and writes a recomputed one. Redemptions
    are never retried after a store error.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        reminders: ReminderService,
        storage: ImageStorage,
        runner: TaskRunner,
        default_currency: str = "EUR"
    ):
        self.vouchers = VoucherRepository(db)
        self.families = FamilyRepository(db)
        self.reminders = reminders
        self.storage = storage
        self.runner = runner
        self.default_currency = default_currency

    # ===== ACCESS =====

    async def _member_family(self, family_id: str, user: UserResponse) -> Family:
        family = await self.families.get_family(family_id)
        if family is None or not family.includes(user.id, user.email):
            raise InvalidReference(family_id=family_id)
        return family

    async def _can_access(self, voucher: Voucher, user: UserResponse) -> bool:
        if voucher.owner_id == user.id:
            return True
        if not voucher.family_id:
            return False
        family = await self.families.get_family(voucher.family_id)
        return family is not None and family.includes(user.id, user.email)

    async def get_voucher(self, voucher_id: str, user: UserResponse) -> Voucher:
        voucher = await self.vouchers.get_voucher(voucher_id)
        if voucher is None:
            raise VoucherNotFound(voucher_id=voucher_id)
        if not await self._can_access(voucher, user):
            raise Unauthorized(voucher_id=voucher_id)
        return voucher

    async def list_vouchers(self, user: UserResponse) -> List[Voucher]:
        """Own vouchers plus those shared into the user's families."""
        family_ids = await self.families.family_ids_for_user(user.id, user.email)
        return await self.vouchers.list_visible(user.id, family_ids)

    # ===== CREATE =====

    async def create_voucher(self, user: UserResponse, data: VoucherCreate) -> Voucher:
        title = require_text(data.title, "title")
        store = require_text(data.store, "store")
        kind = VoucherKind(data.kind)
        code_pool = None
        currency = None

        if kind == VoucherKind.VALUE:
            if data.codes:
                raise ValidationFailed("Only QUANTITY vouchers can be backed by a code pool")
            if data.initial_amount is None:
                raise ValidationFailed("initial_amount is required for VALUE vouchers")
            initial = to_units(validate_balance(data.initial_amount), MINOR_UNITS, "initial_amount")
            currency = (data.currency or self.default_currency).upper()
        elif data.codes is not None:
            codes = normalize_codes(data.codes)
            code_pool = [CodePoolItem(code=code) for code in codes]
            initial = len(codes)
        elif data.initial_amount is not None:
            initial = to_units(validate_balance(data.initial_amount), 1, "initial_amount")
        else:
            raise ValidationFailed("QUANTITY vouchers need an initial_amount or a list of codes")

        if data.family_id:
            await self._member_family(data.family_id, user)

        fields = data.model_dump(
            exclude={"title", "store", "kind", "initial_amount", "codes", "currency"}
        )
        voucher = Voucher(
            title=title,
            store=store,
            kind=kind,
            initial_amount=initial,
            remaining_amount=initial,
            currency=currency,
            owner_id=user.id,
            history=[],
            code_pool=code_pool,
            **fields
        )
        saved = await self.vouchers.insert_voucher(voucher)
        logger.info("Voucher %s created by %s (initial %s)", saved.id, user.id, initial)

        if saved.expiry_date:
            self._reschedule(saved)
        return saved

    # ===== REDEEM =====

    async def redeem(
        self,
        voucher_id: str,
        user: UserResponse,
        amount: Any,
        code: Optional[str] = None
    ) -> Voucher:
        """
        Deduct ``amount`` and append one Redemption in a single atomic step.

        ``amount`` is a client-facing decimal: currency for VALUE vouchers,
        a whole count for QUANTITY vouchers. Code-pool vouchers consume one
        unused code per call (``amount`` must be 1); ``code`` picks a
        specific one.
        """
        number = validate_amount(amount)
        voucher = await self.get_voucher(voucher_id, user)
        amount = to_units(number, voucher.scale)

        if voucher.has_code_pool:
            return await self._redeem_from_pool(voucher, user, amount, code)
        if code is not None:
            raise ValidationFailed("Only code-pool vouchers are redeemed by code")

        redemption = Redemption(voucher_id=voucher.id, amount=amount, user_name=user.name)
        updated = await self.vouchers.apply_redemption(voucher.id, redemption)
        if updated is None:
            raise await self._redemption_failure(voucher, amount)

        logger.info(
            "Redeemed %s from voucher %s by %s, remaining %s",
            from_units(amount, voucher.scale), voucher.id, user.id,
            from_units(updated.remaining_amount, voucher.scale)
        )
        return updated

    async def _redeem_from_pool(
        self,
        voucher: Voucher,
        user: UserResponse,
        amount: int,
        code: Optional[str]
    ) -> Voucher:
        if amount != 1:
            raise InvalidAmount("Code pool vouchers are redeemed one code at a time")

        if code is not None:
            code = code.strip()
            if code not in {item.code for item in voucher.code_pool}:
                raise ValidationFailed(f"Unknown code: {code}")
            candidates = [code]
        else:
            candidates = voucher.unused_codes()

        # A lost race on one code applied nothing, so the next code is tried.
        for candidate in candidates:
            redemption = Redemption(
                voucher_id=voucher.id,
                amount=amount,
                user_name=user.name,
                code_used=candidate
            )
            updated = await self.vouchers.apply_pool_redemption(voucher.id, redemption)
            if updated is not None:
                logger.info(
                    "Redeemed code %s from voucher %s by %s, %s left",
                    candidate, voucher.id, user.id, updated.remaining_amount
                )
                return updated

        current = await self.vouchers.get_voucher(voucher.id)
        if current is None:
            raise VoucherNotFound(voucher_id=voucher.id)
        if code is not None and current.remaining_amount > 0:
            raise CodeUnavailable(f"Code {code} has already been used", code=code)
        raise InsufficientBalance(remaining=current.remaining_amount, amount=amount)

    async def _redemption_failure(self, voucher: Voucher, amount: int) -> Exception:
        current = await self.vouchers.get_voucher(voucher.id)
        if current is None:
            return VoucherNotFound(voucher_id=voucher.id)
        requested = from_units(amount, voucher.scale)
        remaining = from_units(current.remaining_amount, voucher.scale)
        return InsufficientBalance(
            f"Amount exceeds balance ({requested} > {remaining})",
            remaining=remaining,
            amount=requested
        )

    # ===== EDIT =====

    async def edit_voucher(self, voucher_id: str, user: UserResponse, patch: VoucherPatch) -> Voucher:
        """
        Owner-only overwrite of mutable fields.

        A new remaining_amount is a manual correction: it must stay within
        [0, initial_amount] and does not add a history entry.
        """
        voucher = await self.get_voucher(voucher_id, user)
        if voucher.owner_id != user.id:
            raise Forbidden("Only the owner can edit this voucher", voucher_id=voucher_id)
        updates = patch.model_dump(exclude_unset=True)
        if not updates:
            return voucher

        for field in ("title", "store"):
            if field in updates:
                updates[field] = require_text(updates[field], field)

        if "remaining_amount" in updates:
            if voucher.has_code_pool:
                raise ValidationFailed("The balance of a code-pool voucher follows its unused codes")
            remaining = validate_balance(updates["remaining_amount"], "remaining_amount")
            updates["remaining_amount"] = check_balance_bounds(
                to_units(remaining, voucher.scale, "remaining_amount"), voucher.initial_amount
            )
            updates["last_adjusted_at"] = datetime.now(timezone.utc)
            updates["last_adjusted_by"] = user.name

        if updates.get("currency") is not None:
            if voucher.kind != VoucherKind.VALUE.value:
                raise ValidationFailed("Only VALUE vouchers carry a currency")
            updates["currency"] = updates["currency"].upper()

        if updates.get("family_id") is not None:
            await self._member_family(updates["family_id"], user)

        updated = await self.vouchers.apply_patch(voucher.id, updates)
        if updated is None:
            if await self.vouchers.get_voucher(voucher.id) is None:
                raise VoucherNotFound(voucher_id=voucher.id)
            raise InvalidAmount("Remaining amount cannot exceed the initial amount")

        if "remaining_amount" in updates:
            logger.info(
                "Balance of voucher %s set from %s to %s by %s without a redemption",
                voucher.id, from_units(voucher.remaining_amount, voucher.scale),
                from_units(updated.remaining_amount, voucher.scale), user.id
            )
        if "expiry_date" in updates or "title" in updates:
            self._reschedule(updated)
        return updated

    async def attach_image(
        self,
        voucher_id: str,
        user: UserResponse,
        data: bytes,
        content_type: str,
        slot: int = 1
    ) -> Voucher:
        """Upload an image into slot 1 or 2, replacing what was there."""
        if slot not in (1, 2):
            raise ValidationFailed("Image slot must be 1 or 2")
        voucher = await self.get_voucher(voucher_id, user)
        field = "image_url" if slot == 1 else "image_url_2"
        previous = getattr(voucher, field)

        url = await self.storage.upload_image(data, content_type)
        updated = await self.vouchers.apply_patch(voucher.id, {field: url})
        if updated is None:
            await self.storage.delete_image(url)
            raise VoucherNotFound(voucher_id=voucher.id)
        if previous:
            await self.storage.delete_image(previous)
        return updated

    # ===== DELETE =====

    async def delete_voucher(self, voucher_id: str, user: UserResponse) -> None:
        """
        Owner-only delete. Releases stored images and cancels reminders
        before removing the record; repeating the call is harmless.
        """
        voucher = await self.vouchers.get_voucher(voucher_id)
        if voucher is None:
            logger.info("Voucher %s already deleted", voucher_id)
            return
        if voucher.owner_id != user.id:
            raise Forbidden("Only the owner can delete this voucher", voucher_id=voucher_id)

        for url in voucher.image_urls():
            await self.storage.delete_image(url)
        await self.reminders.cancel_reminders(voucher.id)
        await self.vouchers.delete_voucher(voucher.id)
        logger.info("Voucher %s deleted by %s", voucher.id, user.id)

    # ===== REMINDERS =====

    def _reschedule(self, voucher: Voucher) -> None:
        self.runner.spawn(
            self.reminders.schedule_reminders(
                voucher.id, voucher.owner_id, voucher.title, voucher.expiry_date
            ),
            name=f"reminders-{voucher.id}"
        )
