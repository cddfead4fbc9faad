"""Coupon code and validity-window helpers."""

from __future__ import annotations

import re
from datetime import UTC, datetime

from couponhub.models import Coupon

CODE_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{1,63}$")


def normalize_coupon_code(raw: str) -> str:
    """Trim and validate a coupon code. Case is preserved as entered."""
    code = raw.strip()
    if not CODE_PATTERN.fullmatch(code):
        raise ValueError(
            "Code must be 2-64 chars and only use letters, numbers, '-' or '_'"
        )
    return code


def normalize_email(raw: str) -> str:
    return raw.strip().lower()


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_within_window(coupon: Coupon, now: datetime) -> bool:
    """Inclusive ``[start_date, end_date]`` check; a missing bound is open."""
    start = as_utc(coupon.start_date)
    end = as_utc(coupon.end_date)
    if start is not None and now < start:
        return False
    if end is not None and now > end:
        return False
    return True


def is_coupon_active(coupon: Coupon, now: datetime) -> bool:
    """Active means not soft-deleted and not past its end date.

    A coupon that has not started yet is still active: its code is taken.
    """
    if coupon.is_deleted:
        return False
    end = as_utc(coupon.end_date)
    return end is None or end >= now


def pick_current(coupons: list[Coupon]) -> Coupon | None:
    """Choose the row a code resolves to when it has been reused.

    At most one row per code can be active, and it always has the latest
    end date, so the latest end date wins (open-ended first).
    """
    if not coupons:
        return None

    def _key(coupon: Coupon) -> tuple[int, datetime, datetime]:
        end = as_utc(coupon.end_date)
        created = as_utc(coupon.created_at) or datetime.min.replace(tzinfo=UTC)
        if end is None:
            return (1, datetime.max.replace(tzinfo=UTC), created)
        return (0, end, created)

    return max(coupons, key=_key)
