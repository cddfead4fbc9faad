"""Admin coupon management."""

from __future__ import annotations

import asyncio
import os
import tempfile
import uuid
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from couponhub.config import get_settings
from couponhub.errors import CouponValidationError, NotFoundError, Reason
from couponhub.models import AdminUser, Coupon, CouponUsage
from couponhub.schemas.coupon import CouponCreateRequest, CouponUpdateRequest
from couponhub.services.bulk_import import import_coupons, read_coupon_csv
from couponhub.services.coupon_codes import as_utc, is_coupon_active, is_within_window
from couponhub.services.coupon_engine import CouponEngine
from couponhub.services.coupon_store import CouponStore
from couponhub_api.dependencies import get_coupon_engine, get_coupon_store, require_admin
from fastapi import APIRouter, Depends, File, Query, UploadFile

router = APIRouter()


def _iso(value: datetime | None) -> str | None:
    normalized = as_utc(value)
    return normalized.isoformat() if normalized else None


def _jsonable_detail(payload: dict) -> dict:
    normalized: dict[str, object] = {}
    for key, value in payload.items():
        if isinstance(value, datetime):
            normalized[key] = _iso(value)
        elif isinstance(value, (int, float, str, bool)) or value is None:
            normalized[key] = value
        else:
            normalized[key] = str(value)
    return normalized


def serialize_coupon(coupon: Coupon, now: datetime) -> dict:
    return {
        "id": str(coupon.id),
        "code": coupon.code,
        "offer_name": coupon.offer_name,
        "discount_type": coupon.discount_type,
        "discount_value": float(coupon.discount_value),
        "max_usage": coupon.max_usage,
        "max_usage_per_user": coupon.max_usage_per_user,
        "start_date": _iso(coupon.start_date),
        "end_date": _iso(coupon.end_date),
        "terms_url": coupon.terms_url,
        "description": coupon.description,
        "is_deleted": bool(coupon.is_deleted),
        "deleted_at": _iso(coupon.deleted_at),
        "is_active": is_coupon_active(coupon, now),
        "is_usable_now": not coupon.is_deleted and is_within_window(coupon, now),
        "created_at": _iso(coupon.created_at),
        "updated_at": _iso(coupon.updated_at),
    }


def serialize_usage(usage: CouponUsage) -> dict:
    return {
        "id": str(usage.id) if usage.id else None,
        "coupon_id": str(usage.coupon_id),
        "coupon_code": usage.coupon_code,
        "user_email": usage.user_email,
        "discount_applied": float(usage.discount_applied),
        "transaction_status": usage.transaction_status,
        "redemption_key": usage.redemption_key,
        "applied_at": _iso(usage.applied_at),
    }


def _spool_upload(source: BinaryIO, target: Path, max_bytes: int) -> int:
    written = 0
    with target.open("wb") as fh:
        while True:
            chunk = source.read(64 * 1024)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                raise CouponValidationError(f"CSV file exceeds {max_bytes} bytes")
            fh.write(chunk)
    return written


@router.get("/coupons")
async def list_coupons(
    include_deleted: bool = False,
    limit: int | None = Query(default=None, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    engine: CouponEngine = Depends(get_coupon_engine),
    admin: AdminUser = Depends(require_admin),
):
    del admin
    coupons = await engine.store.list_coupons(
        include_deleted=include_deleted, limit=limit, offset=offset
    )
    now = engine.now()
    return [serialize_coupon(coupon, now) for coupon in coupons]


@router.post("/coupons")
async def create_coupon(
    req: CouponCreateRequest,
    engine: CouponEngine = Depends(get_coupon_engine),
    admin: AdminUser = Depends(require_admin),
):
    coupon = await engine.create_coupon(req, admin_id=admin.id)
    await engine.store.record_audit(
        admin_id=admin.id,
        action="coupon.create",
        target_id=str(coupon.id),
        detail={
            "code": coupon.code,
            "discount_type": coupon.discount_type,
            "discount_value": float(coupon.discount_value),
        },
    )
    return serialize_coupon(coupon, engine.now())


@router.post("/coupons/import")
async def import_coupons_csv(
    file: UploadFile = File(...),
    store: CouponStore = Depends(get_coupon_store),
    engine: CouponEngine = Depends(get_coupon_engine),
    admin: AdminUser = Depends(require_admin),
):
    filename = (file.filename or "").strip()
    if not filename.lower().endswith(".csv"):
        raise CouponValidationError("Upload a .csv file")

    settings = get_settings()
    fd, tmp_name = tempfile.mkstemp(prefix="couponhub_import_", suffix=".csv")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        await asyncio.to_thread(_spool_upload, file.file, tmp_path, settings.import_max_bytes)
        rows = await asyncio.to_thread(read_coupon_csv, tmp_path)
        summary = await import_coupons(store, rows, now=engine.now(), admin_id=admin.id)
    finally:
        tmp_path.unlink(missing_ok=True)
        await file.close()

    await store.record_audit(
        admin_id=admin.id,
        action="coupon.import",
        target_id=None,
        detail={
            "filename": filename,
            "total": summary["total"],
            "created": summary["created"],
            "skipped": summary["skipped"],
        },
    )
    return summary


@router.get("/coupons/{coupon_id}")
async def get_coupon(
    coupon_id: uuid.UUID,
    engine: CouponEngine = Depends(get_coupon_engine),
    admin: AdminUser = Depends(require_admin),
):
    del admin
    coupon = await engine.get_coupon(coupon_id)
    return serialize_coupon(coupon, engine.now())


@router.patch("/coupons/{coupon_id}")
async def update_coupon(
    coupon_id: uuid.UUID,
    req: CouponUpdateRequest,
    engine: CouponEngine = Depends(get_coupon_engine),
    admin: AdminUser = Depends(require_admin),
):
    changes = req.model_dump(exclude_unset=True)
    coupon = await engine.update_coupon(coupon_id, changes)
    await engine.store.record_audit(
        admin_id=admin.id,
        action="coupon.update",
        target_id=str(coupon.id),
        detail=_jsonable_detail(changes),
    )
    return serialize_coupon(coupon, engine.now())


@router.delete("/coupons/{coupon_id}")
async def soft_delete_coupon(
    coupon_id: uuid.UUID,
    engine: CouponEngine = Depends(get_coupon_engine),
    admin: AdminUser = Depends(require_admin),
):
    coupon = await engine.soft_delete_coupon(coupon_id)
    await engine.store.record_audit(
        admin_id=admin.id,
        action="coupon.soft_delete",
        target_id=str(coupon.id),
        detail={"code": coupon.code},
    )
    return {"status": "deleted", "id": str(coupon.id), "deleted_at": _iso(coupon.deleted_at)}


@router.delete("/coupons/{coupon_id}/permanent")
async def hard_delete_coupon(
    coupon_id: uuid.UUID,
    engine: CouponEngine = Depends(get_coupon_engine),
    admin: AdminUser = Depends(require_admin),
):
    coupon = await engine.hard_delete_coupon(coupon_id)
    await engine.store.record_audit(
        admin_id=admin.id,
        action="coupon.hard_delete",
        target_id=str(coupon_id),
        detail={"code": coupon.code},
    )
    return {"status": "purged", "id": str(coupon_id)}


@router.get("/coupons/{coupon_id}/usages")
async def list_coupon_usages(
    coupon_id: uuid.UUID,
    engine: CouponEngine = Depends(get_coupon_engine),
    admin: AdminUser = Depends(require_admin),
):
    del admin
    await engine.get_coupon(coupon_id)
    usages = await engine.store.list_coupon_usages(coupon_id)
    return [serialize_usage(usage) for usage in usages]


@router.get("/users/{email}/coupon-ledger")
async def get_coupon_ledger(
    email: str,
    engine: CouponEngine = Depends(get_coupon_engine),
    admin: AdminUser = Depends(require_admin),
):
    del admin
    user = await engine.store.find_user(email)
    codes = await engine.ledger(email)
    if user is None and not codes:
        raise NotFoundError("User not found", reason=Reason.USER_NOT_FOUND)
    return {
        "email": email.strip().lower(),
        "coupon_codes_used": codes,
        "counts": dict(Counter(codes)),
        "is_coupon_report_free": user.is_coupon_report_free if user else None,
    }
