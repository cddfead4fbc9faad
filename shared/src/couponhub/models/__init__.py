"""SQLAlchemy ORM models for couponhub."""

from couponhub.models.base import Base
from couponhub.models.admin_user import AdminUser
from couponhub.models.audit_log import AuditLog
from couponhub.models.coupon import Coupon
from couponhub.models.coupon_usage import CouponUsage
from couponhub.models.user import User

__all__ = [
    "Base",
    "AdminUser",
    "AuditLog",
    "Coupon",
    "CouponUsage",
    "User",
]
