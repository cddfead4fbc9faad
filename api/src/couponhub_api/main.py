"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from alembic.config import Config as AlembicConfig
from alembic.script import ScriptDirectory
from couponhub.config import get_settings
from couponhub.database import close_engine, get_engine
from couponhub.errors import CouponError, ErrorKind
from couponhub_api.routers import admin_auth, admin_coupons, coupons, health
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.EXPIRED: 410,
    ErrorKind.ALREADY_USED: 409,
    ErrorKind.LIMIT_EXCEEDED: 403,
    ErrorKind.DUPLICATE: 409,
    ErrorKind.VALIDATION: 422,
    ErrorKind.UPSTREAM_FAILURE: 502,
}


async def _assert_database_revision_current() -> None:
    settings = get_settings()
    if settings.skip_migration_check:
        return

    repo_root = Path(__file__).resolve().parents[3]
    alembic_ini = repo_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found; skipping migration revision check")
        return

    alembic_cfg = AlembicConfig(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str(repo_root / "alembic"))
    script = ScriptDirectory.from_config(alembic_cfg)
    expected_heads = set(script.get_heads())
    if not expected_heads:
        return

    engine = get_engine()
    try:
        async with engine.connect() as connection:
            result = await connection.execute(text("SELECT version_num FROM alembic_version"))
            current_revisions = {str(row[0]) for row in result.fetchall() if row and row[0]}
    except Exception as exc:
        raise RuntimeError(
            "Database migration revision check failed. "
            "Run `alembic upgrade head` before starting the API."
        ) from exc

    if current_revisions != expected_heads:
        raise RuntimeError(
            "Database schema revision mismatch: "
            f"db={sorted(current_revisions)} expected={sorted(expected_heads)}. "
            "Run `alembic upgrade head`."
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    try:
        await _assert_database_revision_current()
        yield
    finally:
        await close_engine()


def _warn_insecure_defaults() -> None:
    settings = get_settings()
    if settings.secret_key == "change-me-in-production":
        logger.warning("SECRET_KEY uses insecure default value")


async def _coupon_error_handler(request: Request, exc: CouponError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(exc.kind, 500)
    if exc.kind is ErrorKind.UPSTREAM_FAILURE:
        logger.error("%s %s failed upstream: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.as_dict())


def create_app() -> FastAPI:
    app = FastAPI(title="Couponhub API", version="0.1.0", lifespan=lifespan)
    settings = get_settings()
    _warn_insecure_defaults()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.site_url, settings.admin_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(CouponError, _coupon_error_handler)
    app.include_router(admin_auth.router, prefix="/admin", tags=["admin"])
    app.include_router(admin_coupons.router, prefix="/admin", tags=["admin"])
    app.include_router(coupons.router, prefix="/v1/coupons", tags=["coupons"])
    app.include_router(health.router, tags=["health"])
    return app


app = create_app()
