"""API test configuration."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from couponhub.services.coupon_engine import CouponEngine
from couponhub_api.dependencies import (
    get_coupon_engine,
    get_coupon_store,
    get_current_admin,
    get_db,
)
from couponhub_api.main import create_app
from httpx import ASGITransport, AsyncClient


class FakeAdminUser:
    """Minimal stand-in for AdminUser model."""

    def __init__(self, role: str = "admin") -> None:
        self.id = uuid.uuid4()
        self.email = "admin@test.local"
        self.password_hash = ""
        self.is_active = True
        self.role = role
        self.last_login_at = None


@pytest.fixture
def fake_admin():
    return FakeAdminUser()


@pytest.fixture
def mock_db():
    """Creates a mock AsyncSession with common patterns pre-configured."""
    session = AsyncMock()
    # AsyncSession.add() is synchronous; use MagicMock to avoid un-awaited coroutine warnings.
    session.add = MagicMock()
    empty_result = MagicMock()
    empty_result.scalars.return_value.all.return_value = []
    empty_result.scalars.return_value.first.return_value = None
    empty_result.scalar.return_value = 0
    session.execute.return_value = empty_result
    session.get.return_value = None
    return session


@pytest.fixture
def app(store, now, fake_admin, mock_db):
    """App wired to the in-memory store; role checks still run against ``fake_admin``."""
    a = create_app()

    async def _override_db():
        yield mock_db

    a.dependency_overrides[get_db] = _override_db
    a.dependency_overrides[get_coupon_store] = lambda: store
    a.dependency_overrides[get_coupon_engine] = lambda: CouponEngine(store, clock=lambda: now)
    a.dependency_overrides[get_current_admin] = lambda: fake_admin
    return a


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def unauthenticated_client(mock_db):
    """Client with NO auth override -- tests that endpoints require auth."""
    a = create_app()

    async def _override_db():
        yield mock_db

    a.dependency_overrides[get_db] = _override_db
    transport = ASGITransport(app=a)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
