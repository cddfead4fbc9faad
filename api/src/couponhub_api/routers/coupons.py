"""Client-facing coupon validation and redemption."""

from __future__ import annotations

from couponhub.models import AdminUser
from couponhub.schemas.coupon import (
    ApplyCouponRequest,
    CouponValidateRequest,
    RedemptionRequest,
)
from couponhub.services.coupon_engine import CouponEngine
from couponhub_api.dependencies import get_coupon_engine, require_admin
from couponhub_api.routers.admin_coupons import serialize_usage
from fastapi import APIRouter, Depends

router = APIRouter()


@router.post("/validate")
async def validate_coupon(
    req: CouponValidateRequest,
    engine: CouponEngine = Depends(get_coupon_engine),
):
    grant = await engine.validate(req.code, req.email)
    return {"valid": True, **grant.as_dict()}


@router.post("/apply")
async def apply_coupon(
    req: ApplyCouponRequest,
    engine: CouponEngine = Depends(get_coupon_engine),
    caller: AdminUser = Depends(require_admin),
):
    del caller
    grant, usage = await engine.apply(
        code=req.code,
        email=req.email,
        discount_applied=req.discount_applied,
        original_price=req.original_price,
        transaction_status=req.transaction_status,
        redemption_key=req.redemption_key,
    )
    return {"applied": True, "coupon": grant.as_dict(), "usage": serialize_usage(usage)}


@router.post("/redemptions")
async def record_redemption(
    req: RedemptionRequest,
    engine: CouponEngine = Depends(get_coupon_engine),
    caller: AdminUser = Depends(require_admin),
):
    del caller
    usage = await engine.redeem(
        email=req.email,
        coupon_id=req.coupon_id,
        discount_applied=req.discount_applied,
        original_price=req.original_price,
        transaction_status=req.transaction_status,
        redemption_key=req.redemption_key,
    )
    return serialize_usage(usage)
