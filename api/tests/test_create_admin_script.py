"""Tests for the create-admin command."""

from unittest.mock import AsyncMock, MagicMock

import bcrypt
import pytest
from couponhub_api.scripts import create_admin


def _factory_for(session):
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    return factory


@pytest.fixture
def script_db(monkeypatch, mock_db):
    monkeypatch.setattr(create_admin, "get_session_factory", lambda: _factory_for(mock_db))
    monkeypatch.setattr(create_admin, "close_engine", AsyncMock())
    return mock_db


class TestUpsertAdmin:
    async def test_creates_new_admin(self, script_db):
        outcome = await create_admin.upsert_admin(
            email=" Ops@Example.com ", password="s3cret-pass", role="service"
        )

        assert outcome == "created"
        added = script_db.add.call_args.args[0]
        assert added.email == "ops@example.com"
        assert added.role == "service"
        assert bcrypt.checkpw(b"s3cret-pass", added.password_hash.encode())
        script_db.commit.assert_awaited_once()

    async def test_updates_existing_admin(self, script_db, fake_admin):
        fake_admin.is_active = False
        result = MagicMock()
        result.scalars.return_value.first.return_value = fake_admin
        script_db.execute.return_value = result

        outcome = await create_admin.upsert_admin(
            email="admin@test.local", password="new-password", role="readonly"
        )

        assert outcome == "updated"
        assert fake_admin.role == "readonly"
        assert fake_admin.is_active is True
        assert bcrypt.checkpw(b"new-password", fake_admin.password_hash.encode())
        script_db.add.assert_not_called()


class TestMain:
    def test_short_password_rejected(self, monkeypatch):
        monkeypatch.setattr(
            "sys.argv", ["create_admin", "--email", "a@example.com", "--password", "short"]
        )
        with pytest.raises(SystemExit, match="at least 8"):
            create_admin.main()
