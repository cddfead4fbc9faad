"""FastAPI dependency injection."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

from couponhub.database import get_session_factory
from couponhub.models import AdminUser
from couponhub.services.coupon_engine import CouponEngine
from couponhub.services.coupon_store import CouponStore
from couponhub_api.middleware.auth import TokenRejected, verify_access_token
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

ROLE_LEVELS = {
    "readonly": 10,
    "service": 20,
    "admin": 30,
}


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_coupon_store(db: AsyncSession = Depends(get_db)) -> CouponStore:
    return CouponStore(db)


def get_coupon_engine(store: CouponStore = Depends(get_coupon_store)) -> CouponEngine:
    return CouponEngine(store)


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        token = auth[7:].strip()
        return token or None
    return None


def _decode_token(request: Request) -> dict:
    try:
        return verify_access_token(_extract_bearer_token(request))
    except TokenRejected as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message)


async def get_current_admin(request: Request, db: AsyncSession = Depends(get_db)) -> AdminUser:
    payload = _decode_token(request)
    try:
        admin_id = uuid.UUID(str(payload["sub"]))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    admin = await db.get(AdminUser, admin_id)
    if not admin or not admin.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin not found")
    return admin


def _required_level(path: str, method: str) -> int:
    method_upper = method.upper()

    if path.startswith("/v1/coupons"):
        return ROLE_LEVELS["service"]
    if path.startswith("/admin/users"):
        return ROLE_LEVELS["readonly"]
    if path.startswith("/admin"):
        if method_upper == "GET":
            return ROLE_LEVELS["readonly"]
        return ROLE_LEVELS["admin"]

    return ROLE_LEVELS["admin"]


def require_admin(
    request: Request,
    admin: AdminUser = Depends(get_current_admin),
) -> AdminUser:
    role = str(getattr(admin, "role", "")).strip().lower()
    level = ROLE_LEVELS.get(role)
    if level is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin role")

    if level < _required_level(request.url.path, request.method):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient role permissions",
        )
    return admin
