"""Shared fixtures: an in-memory stand-in for CouponStore and row factories."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from couponhub.errors import UpstreamFailure
from couponhub.models import Coupon, CouponUsage, User
from couponhub.services.coupon_engine import CouponEngine
from couponhub.services.coupon_store import RedemptionKeyConflict

FROZEN_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class InMemoryCouponStore:
    """Same async surface as ``CouponStore``, backed by dicts and lists.

    Put an operation name in ``failing`` to make that call raise
    ``UpstreamFailure``, the way a datastore outage surfaces.
    """

    def __init__(self) -> None:
        self.coupons: dict[uuid.UUID, Coupon] = {}
        self.users: dict[str, User] = {}
        self.usages: list[CouponUsage] = []
        self.audits: list[dict] = []
        self.failing: set[str] = set()
        self.locked_emails: list[str] = []

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failing:
            raise UpstreamFailure(f"{operation} failed: connection reset by peer")

    async def get_coupon(self, coupon_id):
        self._maybe_fail("get_coupon")
        return self.coupons.get(coupon_id)

    async def find_coupons_by_code(self, code):
        self._maybe_fail("find_coupons_by_code")
        return [c for c in self.coupons.values() if c.code == code and not c.is_deleted]

    async def list_coupons(self, *, include_deleted=False, limit=None, offset=0):
        self._maybe_fail("list_coupons")
        rows = [c for c in self.coupons.values() if include_deleted or not c.is_deleted]
        rows.sort(key=lambda c: (c.created_at or FROZEN_NOW, c.id), reverse=True)
        rows = rows[offset:]
        return rows[:limit] if limit is not None else rows

    async def add_coupon(self, coupon):
        self._maybe_fail("add_coupon")
        if coupon.id is None:
            coupon.id = uuid.uuid4()
        self.coupons[coupon.id] = coupon
        return coupon

    async def save_coupon(self, coupon):
        self._maybe_fail("save_coupon")
        return coupon

    async def delete_coupon(self, coupon):
        self._maybe_fail("delete_coupon")
        self.coupons.pop(coupon.id, None)

    async def find_user(self, email, *, for_update=False):
        self._maybe_fail("find_user")
        normalized = email.strip().lower()
        if for_update:
            self.locked_emails.append(normalized)
        return self.users.get(normalized)

    async def mark_report_used(self, user):
        self._maybe_fail("mark_report_used")
        user.is_coupon_report_free = False

    async def count_coupon_usages(self, coupon_id):
        return sum(1 for u in self.usages if u.coupon_id == coupon_id)

    async def count_user_code_usages(self, email, code):
        normalized = email.strip().lower()
        return sum(1 for u in self.usages if u.user_email == normalized and u.coupon_code == code)

    async def find_usage_by_key(self, redemption_key):
        return next((u for u in self.usages if u.redemption_key == redemption_key), None)

    async def add_usage(self, usage):
        self._maybe_fail("add_usage")
        if usage.redemption_key and any(
            u.redemption_key == usage.redemption_key for u in self.usages
        ):
            raise RedemptionKeyConflict(f"Redemption {usage.redemption_key} was already recorded")
        if usage.id is None:
            usage.id = uuid.uuid4()
        self.usages.append(usage)
        return usage

    async def list_coupon_usages(self, coupon_id, *, limit=500):
        rows = [u for u in self.usages if u.coupon_id == coupon_id]
        rows.sort(key=lambda u: u.applied_at, reverse=True)
        return rows[:limit]

    async def list_user_usages(self, email):
        normalized = email.strip().lower()
        return [u for u in self.usages if u.user_email == normalized]

    async def record_audit(self, *, admin_id, action, target_id, detail=None):
        self.audits.append(
            {"admin_id": admin_id, "action": action, "target_id": target_id, "detail": detail}
        )


@pytest.fixture
def now() -> datetime:
    return FROZEN_NOW


@pytest.fixture
def store() -> InMemoryCouponStore:
    return InMemoryCouponStore()


@pytest.fixture
def engine(store, now) -> CouponEngine:
    return CouponEngine(store, clock=lambda: now)


@pytest.fixture
def make_coupon(store, now):
    def _make(**overrides) -> Coupon:
        fields = {
            "id": uuid.uuid4(),
            "code": "SAVE10",
            "offer_name": "Spring sale",
            "discount_type": "PERCENTAGE",
            "discount_value": Decimal("10"),
            "max_usage": None,
            "max_usage_per_user": None,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=30),
            "terms_url": None,
            "description": "10% off everything",
            "is_deleted": False,
            "deleted_at": None,
            "created_at": now - timedelta(days=2),
            "updated_at": now - timedelta(days=2),
        }
        fields.update(overrides)
        coupon = Coupon(**fields)
        store.coupons[coupon.id] = coupon
        return coupon

    return _make


@pytest.fixture
def make_user(store):
    def _make(email: str = "shopper@example.com", *, report_free: bool = True) -> User:
        user = User(id=uuid.uuid4(), email=email, is_coupon_report_free=report_free)
        store.users[email.strip().lower()] = user
        return user

    return _make
