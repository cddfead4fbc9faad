"""Admin-managed coupons."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from couponhub.models.base import Base

DISCOUNT_TYPES: tuple[str, ...] = ("PERCENTAGE", "FLAT", "REPORT")
REPORT_DISCOUNT_TYPE = "REPORT"


class Coupon(Base):
    __tablename__ = "coupons"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")
    )
    # Not unique: a code may be reused once the previous coupon expired or was deleted.
    code: Mapped[str] = mapped_column(Text, nullable=False)
    offer_name: Mapped[str] = mapped_column(Text, nullable=False)
    discount_type: Mapped[str] = mapped_column(Text, nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    max_usage: Mapped[int | None] = mapped_column(Integer)
    max_usage_per_user: Mapped[int | None] = mapped_column(Integer)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    terms_url: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("FALSE")
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by_admin_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("admin_users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )

    __table_args__ = (
        CheckConstraint(
            "discount_type IN ('PERCENTAGE','FLAT','REPORT')",
            name="ck_coupon_discount_type",
        ),
        CheckConstraint("discount_value >= 0", name="ck_coupon_discount_value"),
        CheckConstraint(
            "max_usage IS NULL OR max_usage > 0",
            name="ck_coupon_max_usage",
        ),
        CheckConstraint(
            "max_usage_per_user IS NULL OR max_usage_per_user > 0",
            name="ck_coupon_max_usage_per_user",
        ),
        CheckConstraint(
            "end_date IS NULL OR start_date IS NULL OR end_date >= start_date",
            name="ck_coupon_window",
        ),
        Index("idx_coupons_code", "code"),
        Index("idx_coupons_live", "is_deleted", "end_date"),
    )
