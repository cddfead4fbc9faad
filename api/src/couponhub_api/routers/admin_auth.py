"""Admin authentication endpoints."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from couponhub.config import get_settings
from couponhub.models import AdminUser
from couponhub_api.dependencies import get_current_admin, get_db
from couponhub_api.middleware.auth import create_access_token, verify_password
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    email: str
    password: str


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
    )


@router.post("/login")
async def login(
    req: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    normalized_email = req.email.strip().lower()
    result = await db.execute(
        select(AdminUser).where(func.lower(AdminUser.email) == normalized_email)
    )
    admin = result.scalars().first()
    if not admin or not admin.is_active:
        logger.info("Admin login rejected for %s", normalized_email)
        raise _invalid_credentials()

    if not verify_password(req.password, admin.password_hash):
        logger.info("Admin login rejected for %s", normalized_email)
        raise _invalid_credentials()

    admin.last_login_at = datetime.now(UTC)
    settings = get_settings()
    token = create_access_token(
        admin_id=str(admin.id),
        email=admin.email,
        role=admin.role,
    )
    return {
        "message": "Login successful",
        "email": admin.email,
        "access_token": token,
        "token_type": "bearer",
        "expires_in_minutes": settings.jwt_expire_minutes,
    }


@router.get("/me")
async def me(admin: AdminUser = Depends(get_current_admin)) -> dict[str, str]:
    return {
        "id": str(admin.id),
        "email": admin.email,
        "role": admin.role,
    }
