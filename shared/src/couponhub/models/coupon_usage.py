"""Coupon usage log - one immutable row per redemption."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, Identity, Index, Numeric, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from couponhub.models.base import Base


class CouponUsage(Base):
    __tablename__ = "coupon_usages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")
    )
    # No foreign key: hard-deleting a coupon must not touch its history.
    coupon_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    coupon_code: Mapped[str] = mapped_column(Text, nullable=False)
    user_email: Mapped[str] = mapped_column(Text, nullable=False)
    discount_applied: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    transaction_status: Mapped[str] = mapped_column(Text, nullable=False)
    redemption_key: Mapped[str | None] = mapped_column(Text, unique=True)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )
    # Monotonic insertion order; applied_at ties within one transaction.
    seq: Mapped[int] = mapped_column(
        BigInteger, Identity(always=True), nullable=False, unique=True
    )

    __table_args__ = (
        Index("idx_coupon_usages_coupon", "coupon_id"),
        Index("idx_coupon_usages_user_code", "user_email", "coupon_code"),
        Index("idx_coupon_usages_user_seq", "user_email", "seq"),
    )
