"""Pydantic schemas for coupon requests.

Bodies arrive from admin dashboards and CSV sheets, so numbers may come in
as strings, empty strings stand for "no limit", and dates are usually epoch
milliseconds. All of that is normalized here, once, before the engine sees it.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from couponhub.services.coupon_codes import as_utc, normalize_coupon_code, normalize_email

DiscountType = Literal["PERCENTAGE", "FLAT", "REPORT"]


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _coerce_timestamp(value: object) -> object:
    """Accept epoch milliseconds (number or digit string) or ISO-8601."""
    value = _blank_to_none(value)
    if value is None or isinstance(value, (datetime, bool)):
        return value
    millis: int | float | None = None
    if isinstance(value, (int, float)):
        millis = value
    elif isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            millis = int(stripped)
        else:
            return stripped
    if millis is None:
        return value
    try:
        return datetime.fromtimestamp(millis / 1000, tz=UTC)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValueError(f"Timestamp out of range: {value}") from exc


def _validated_email(value: str) -> str:
    normalized = normalize_email(value)
    local, sep, domain = normalized.partition("@")
    if not sep or not local or "." not in domain or domain.endswith("."):
        raise ValueError("Invalid email address")
    return normalized


class CouponDraft(BaseModel):
    """Coupon fields as accepted from a CSV row; dates are optional."""

    code: str = Field(min_length=2, max_length=64)
    offer_name: str = Field(min_length=1, max_length=200)
    discount_type: DiscountType
    discount_value: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    max_usage: int | None = Field(default=None, ge=1)
    max_usage_per_user: int | None = Field(default=None, ge=1)
    start_date: datetime | None = None
    end_date: datetime | None = None
    terms_url: str | None = Field(default=None, max_length=2000)
    description: str | None = Field(
        default=None,
        max_length=2000,
        validation_alias=AliasChoices("description", "coupon_description"),
    )

    @field_validator("code")
    @classmethod
    def _validate_code(cls, value: str) -> str:
        return normalize_coupon_code(value)

    @field_validator("offer_name")
    @classmethod
    def _trim_offer_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("offer_name cannot be blank")
        return trimmed

    @field_validator("discount_type", mode="before")
    @classmethod
    def _upper_discount_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("max_usage", "max_usage_per_user", "terms_url", "description", mode="before")
    @classmethod
    def _blank_optional(cls, value: object) -> object:
        return _blank_to_none(value)

    @field_validator("terms_url", "description")
    @classmethod
    def _trim_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _parse_dates(cls, value: object) -> object:
        return _coerce_timestamp(value)

    @field_validator("start_date", "end_date")
    @classmethod
    def _dates_to_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @model_validator(mode="after")
    def _validate_discount(self) -> CouponDraft:
        if self.discount_type == "PERCENTAGE" and self.discount_value > 100:
            raise ValueError("discount_value cannot exceed 100 for PERCENTAGE coupons")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CouponCreateRequest(CouponDraft):
    """Admin create body; both ends of the validity window are required."""

    start_date: datetime
    end_date: datetime


class CouponUpdateRequest(BaseModel):
    code: str | None = Field(default=None, min_length=2, max_length=64)
    offer_name: str | None = Field(default=None, min_length=1, max_length=200)
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    max_usage: int | None = Field(default=None, ge=1)
    max_usage_per_user: int | None = Field(default=None, ge=1)
    start_date: datetime | None = None
    end_date: datetime | None = None
    terms_url: str | None = Field(default=None, max_length=2000)
    description: str | None = Field(
        default=None,
        max_length=2000,
        validation_alias=AliasChoices("description", "coupon_description"),
    )

    @field_validator("code")
    @classmethod
    def _validate_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_coupon_code(value)

    @field_validator("offer_name")
    @classmethod
    def _trim_offer_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("offer_name cannot be blank")
        return trimmed

    @field_validator("discount_type", mode="before")
    @classmethod
    def _upper_discount_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("max_usage", "max_usage_per_user", "terms_url", "description", mode="before")
    @classmethod
    def _blank_optional(cls, value: object) -> object:
        return _blank_to_none(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _parse_dates(cls, value: object) -> object:
        return _coerce_timestamp(value)

    @field_validator("start_date", "end_date")
    @classmethod
    def _dates_to_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class CouponValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    email: str = Field(min_length=3, max_length=320)

    @field_validator("code")
    @classmethod
    def _trim_code(cls, value: str) -> str:
        return value.strip()

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return _validated_email(value)


class RedemptionFields(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    discount_applied: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    original_price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    transaction_status: str = Field(min_length=1, max_length=40)
    redemption_key: str | None = Field(default=None, min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return _validated_email(value)

    @field_validator("transaction_status")
    @classmethod
    def _normalize_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("transaction_status cannot be blank")
        return normalized


class RedemptionRequest(RedemptionFields):
    """Log a redemption of a coupon already validated by the caller."""

    coupon_id: uuid.UUID


class ApplyCouponRequest(RedemptionFields):
    """Validate a code for a user and log the redemption in one step."""

    code: str = Field(min_length=1, max_length=64)

    @field_validator("code")
    @classmethod
    def _trim_code(cls, value: str) -> str:
        return value.strip()
