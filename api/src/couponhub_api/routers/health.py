"""Liveness and database readiness probes."""

from __future__ import annotations

import logging

from couponhub.database import get_session
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "ok", "service": "couponhub-api"}


@router.get("/health/ready")
async def readiness_check():
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Readiness check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "database": "unreachable", "error": str(exc)},
        )
    return {"status": "ready", "database": "ok"}
