"""Coupon validation and redemption rules."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from couponhub.errors import (
    AlreadyUsedError,
    CouponValidationError,
    DuplicateCodeError,
    ExpiredError,
    LimitExceededError,
    NotFoundError,
    Reason,
)
from couponhub.models import Coupon, CouponUsage, User
from couponhub.models.coupon import REPORT_DISCOUNT_TYPE
from couponhub.schemas.coupon import CouponDraft
from couponhub.services.coupon_codes import (
    is_coupon_active,
    is_within_window,
    normalize_email,
    pick_current,
)
from couponhub.services.coupon_store import CouponStore, RedemptionKeyConflict

logger = logging.getLogger(__name__)

NON_NULLABLE_FIELDS = ("code", "offer_name", "discount_type", "discount_value")


@dataclass
class CouponGrant:
    """What the caller needs to apply an allowed coupon."""

    coupon_id: uuid.UUID
    code: str
    offer_name: str
    discount_type: str
    discount_value: Decimal
    description: str | None
    terms_url: str | None

    @classmethod
    def from_coupon(cls, coupon: Coupon) -> CouponGrant:
        return cls(
            coupon_id=coupon.id,
            code=coupon.code,
            offer_name=coupon.offer_name,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            description=coupon.description,
            terms_url=coupon.terms_url,
        )

    def as_dict(self) -> dict:
        return {
            "coupon_id": str(self.coupon_id),
            "code": self.code,
            "offer_name": self.offer_name,
            "discount_type": self.discount_type,
            "discount_value": float(self.discount_value),
            "description": self.description,
            "terms_url": self.terms_url,
        }


class CouponEngine:
    """Validation, redemption and admin lifecycle rules over a ``CouponStore``."""

    def __init__(
        self,
        store: CouponStore,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        return self._clock()

    # Validation

    async def validate(self, code: str, email: str) -> CouponGrant:
        """Decide whether ``code`` may be applied for ``email``. Read-only."""
        coupon, _ = await self._check(code, email, lock_user=False)
        return CouponGrant.from_coupon(coupon)

    async def _check(self, code: str, email: str, *, lock_user: bool) -> tuple[Coupon, User]:
        now = self.now()
        coupon = pick_current(await self.store.find_coupons_by_code(code.strip()))
        if coupon is None:
            raise NotFoundError("Coupon not found", reason=Reason.NOT_FOUND)

        if not is_within_window(coupon, now):
            raise ExpiredError("Coupon is not valid at this time", reason=Reason.EXPIRED)

        if coupon.max_usage is not None:
            total = await self.store.count_coupon_usages(coupon.id)
            if total >= coupon.max_usage:
                raise ExpiredError(
                    "Coupon has reached its usage limit", reason=Reason.EXHAUSTED
                )

        normalized_email = normalize_email(email)
        user = await self.store.find_user(normalized_email, for_update=lock_user)
        if user is None:
            raise NotFoundError("User not found", reason=Reason.USER_NOT_FOUND)

        if coupon.discount_type == REPORT_DISCOUNT_TYPE and not user.is_coupon_report_free:
            raise AlreadyUsedError(
                "Free report coupon already used", reason=Reason.REPORT_ALREADY_USED
            )

        if coupon.max_usage_per_user is not None:
            used = await self.store.count_user_code_usages(normalized_email, coupon.code)
            if used >= coupon.max_usage_per_user:
                raise LimitExceededError(
                    "Coupon usage limit reached for this user", reason=Reason.PER_USER_LIMIT
                )

        return coupon, user

    # Redemption

    async def redeem(
        self,
        *,
        email: str,
        coupon_id: uuid.UUID,
        discount_applied: Decimal,
        transaction_status: str,
        original_price: Decimal | None = None,
        redemption_key: str | None = None,
    ) -> CouponUsage:
        """Log a redemption and update the user's coupon state.

        The usage row and the user update share the request transaction, so
        either both land or neither does.
        """
        if redemption_key:
            existing = await self.store.find_usage_by_key(redemption_key)
            if existing is not None:
                return existing

        coupon = await self.store.get_coupon(coupon_id)
        if coupon is None:
            raise NotFoundError("Coupon not found", reason=Reason.COUPON_NOT_FOUND)

        user = await self.store.find_user(normalize_email(email), for_update=True)
        if user is None:
            raise NotFoundError("User not found", reason=Reason.USER_NOT_FOUND)

        return await self._record(
            coupon,
            user,
            discount_applied=discount_applied,
            original_price=original_price,
            transaction_status=transaction_status,
            redemption_key=redemption_key,
        )

    async def apply(
        self,
        *,
        code: str,
        email: str,
        discount_applied: Decimal,
        transaction_status: str,
        original_price: Decimal | None = None,
        redemption_key: str | None = None,
    ) -> tuple[CouponGrant, CouponUsage]:
        """Validate and redeem under one user-row lock."""
        if redemption_key:
            existing = await self.store.find_usage_by_key(redemption_key)
            if existing is not None:
                coupon = await self.store.get_coupon(existing.coupon_id)
                if coupon is None:
                    raise NotFoundError("Coupon not found", reason=Reason.COUPON_NOT_FOUND)
                return CouponGrant.from_coupon(coupon), existing

        coupon, user = await self._check(code, email, lock_user=True)
        usage = await self._record(
            coupon,
            user,
            discount_applied=discount_applied,
            original_price=original_price,
            transaction_status=transaction_status,
            redemption_key=redemption_key,
        )
        return CouponGrant.from_coupon(coupon), usage

    async def _record(
        self,
        coupon: Coupon,
        user: User,
        *,
        discount_applied: Decimal,
        original_price: Decimal | None,
        transaction_status: str,
        redemption_key: str | None,
    ) -> CouponUsage:
        amount = discount_applied
        if amount == 0 and original_price is not None:
            amount = original_price

        usage = CouponUsage(
            coupon_id=coupon.id,
            coupon_code=coupon.code,
            user_email=normalize_email(user.email),
            discount_applied=amount,
            transaction_status=transaction_status,
            redemption_key=redemption_key,
            applied_at=self.now(),
        )
        try:
            await self.store.add_usage(usage)
        except RedemptionKeyConflict:
            existing = await self.store.find_usage_by_key(redemption_key or "")
            if existing is None:
                raise
            return existing

        if coupon.discount_type == REPORT_DISCOUNT_TYPE:
            await self.store.mark_report_used(user)

        logger.info(
            "Coupon %s redeemed by %s (%s, %s)",
            coupon.code,
            usage.user_email,
            amount,
            transaction_status,
        )
        return usage

    async def ledger(self, email: str) -> list[str]:
        """Codes redeemed by ``email``, oldest first, repeats included."""
        usages = await self.store.list_user_usages(normalize_email(email))
        return [usage.coupon_code for usage in usages]

    # Admin lifecycle

    async def get_coupon(self, coupon_id: uuid.UUID) -> Coupon:
        coupon = await self.store.get_coupon(coupon_id)
        if coupon is None:
            raise NotFoundError("Coupon not found", reason=Reason.COUPON_NOT_FOUND)
        return coupon

    async def _ensure_code_available(
        self, code: str, *, exclude_id: uuid.UUID | None = None
    ) -> None:
        now = self.now()
        for existing in await self.store.find_coupons_by_code(code):
            if existing.id == exclude_id:
                continue
            if is_coupon_active(existing, now):
                raise DuplicateCodeError(f"An active coupon with code {code} already exists")

    async def create_coupon(
        self, draft: CouponDraft, *, admin_id: uuid.UUID | None = None
    ) -> Coupon:
        await self._ensure_code_available(draft.code)
        now = self.now()
        coupon = Coupon(
            **draft.model_dump(),
            is_deleted=False,
            created_by_admin_id=admin_id,
            created_at=now,
            updated_at=now,
        )
        await self.store.add_coupon(coupon)
        logger.info("Coupon %s created", coupon.code)
        return coupon

    async def update_coupon(self, coupon_id: uuid.UUID, changes: dict) -> Coupon:
        if not changes:
            raise CouponValidationError("No changes provided")
        for field in NON_NULLABLE_FIELDS:
            if field in changes and changes[field] is None:
                raise CouponValidationError(
                    f"{field} cannot be null", reason=Reason.MISSING_FIELD
                )

        coupon = await self.get_coupon(coupon_id)
        for field, value in changes.items():
            setattr(coupon, field, value)

        if coupon.discount_type == "PERCENTAGE" and coupon.discount_value > 100:
            raise CouponValidationError(
                "discount_value cannot exceed 100 for PERCENTAGE coupons"
            )
        if coupon.start_date and coupon.end_date and coupon.end_date < coupon.start_date:
            raise CouponValidationError("end_date must not be before start_date")

        if ("code" in changes or "end_date" in changes) and is_coupon_active(coupon, self.now()):
            await self._ensure_code_available(coupon.code, exclude_id=coupon.id)

        coupon.updated_at = self.now()
        await self.store.save_coupon(coupon)
        return coupon

    async def soft_delete_coupon(self, coupon_id: uuid.UUID) -> Coupon:
        coupon = await self.get_coupon(coupon_id)
        if coupon.is_deleted:
            return coupon
        now = self.now()
        coupon.is_deleted = True
        coupon.deleted_at = now
        coupon.updated_at = now
        await self.store.save_coupon(coupon)
        logger.info("Coupon %s soft-deleted", coupon.code)
        return coupon

    async def hard_delete_coupon(self, coupon_id: uuid.UUID) -> Coupon:
        coupon = await self.get_coupon(coupon_id)
        await self.store.delete_coupon(coupon)
        logger.info("Coupon %s permanently deleted", coupon.code)
        return coupon
