"""Create admin, user, coupon, usage and audit tables.

Revision ID: 001_coupon_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

from alembic import op

revision: str = "001_coupon_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "admin_users",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default=sa.text("'admin'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("TRUE")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "role IN ('admin','service','readonly')",
            name="ck_admin_user_role",
        ),
    )

    op.create_table(
        "users",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column(
            "is_coupon_report_free",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("TRUE"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )

    op.create_table(
        "coupons",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("offer_name", sa.Text(), nullable=False),
        sa.Column("discount_type", sa.Text(), nullable=False),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("max_usage", sa.Integer(), nullable=True),
        sa.Column("max_usage_per_user", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("terms_url", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_by_admin_id",
            UUID(as_uuid=True),
            sa.ForeignKey("admin_users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.CheckConstraint(
            "discount_type IN ('PERCENTAGE','FLAT','REPORT')",
            name="ck_coupon_discount_type",
        ),
        sa.CheckConstraint("discount_value >= 0", name="ck_coupon_discount_value"),
        sa.CheckConstraint(
            "max_usage IS NULL OR max_usage > 0",
            name="ck_coupon_max_usage",
        ),
        sa.CheckConstraint(
            "max_usage_per_user IS NULL OR max_usage_per_user > 0",
            name="ck_coupon_max_usage_per_user",
        ),
        sa.CheckConstraint(
            "end_date IS NULL OR start_date IS NULL OR end_date >= start_date",
            name="ck_coupon_window",
        ),
    )
    op.create_index("idx_coupons_code", "coupons", ["code"])
    op.create_index("idx_coupons_live", "coupons", ["is_deleted", "end_date"])

    op.create_table(
        "coupon_usages",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("coupon_id", UUID(as_uuid=True), nullable=False),
        sa.Column("coupon_code", sa.Text(), nullable=False),
        sa.Column("user_email", sa.Text(), nullable=False),
        sa.Column("discount_applied", sa.Numeric(12, 2), nullable=False),
        sa.Column("transaction_status", sa.Text(), nullable=False),
        sa.Column("redemption_key", sa.Text(), nullable=True, unique=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("seq", sa.BigInteger(), sa.Identity(always=True), nullable=False, unique=True),
    )
    op.create_index("idx_coupon_usages_coupon", "coupon_usages", ["coupon_id"])
    op.create_index("idx_coupon_usages_user_code", "coupon_usages", ["user_email", "coupon_code"])
    op.create_index("idx_coupon_usages_user_seq", "coupon_usages", ["user_email", "seq"])

    op.create_table(
        "audit_log",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column(
            "admin_id",
            UUID(as_uuid=True),
            sa.ForeignKey("admin_users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("target_type", sa.Text(), nullable=True),
        sa.Column("target_id", sa.Text(), nullable=True),
        sa.Column("detail", JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )
    op.create_index("idx_audit_log_time", "audit_log", ["created_at"])
    op.create_index("idx_audit_log_action", "audit_log", ["action", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_audit_log_action", table_name="audit_log")
    op.drop_index("idx_audit_log_time", table_name="audit_log")
    op.drop_table("audit_log")

    op.drop_index("idx_coupon_usages_user_seq", table_name="coupon_usages")
    op.drop_index("idx_coupon_usages_user_code", table_name="coupon_usages")
    op.drop_index("idx_coupon_usages_coupon", table_name="coupon_usages")
    op.drop_table("coupon_usages")

    op.drop_index("idx_coupons_live", table_name="coupons")
    op.drop_index("idx_coupons_code", table_name="coupons")
    op.drop_table("coupons")

    op.drop_table("users")
    op.drop_table("admin_users")
