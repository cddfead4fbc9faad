"""Create an admin account, or reset the password and role of an existing one."""

from __future__ import annotations

import argparse
import asyncio
import getpass

from couponhub.database import close_engine, get_session_factory
from couponhub.models import AdminUser
from couponhub_api.dependencies import ROLE_LEVELS
from couponhub_api.middleware.auth import hash_password
from sqlalchemy import func, select


async def upsert_admin(*, email: str, password: str, role: str) -> str:
    """Return ``"created"`` or ``"updated"``."""
    normalized_email = email.strip().lower()
    factory = get_session_factory()
    async with factory() as db:
        result = await db.execute(
            select(AdminUser).where(func.lower(AdminUser.email) == normalized_email)
        )
        admin = result.scalars().first()
        if admin is None:
            db.add(
                AdminUser(
                    email=normalized_email,
                    password_hash=hash_password(password),
                    role=role,
                    is_active=True,
                )
            )
            outcome = "created"
        else:
            admin.password_hash = hash_password(password)
            admin.role = role
            admin.is_active = True
            outcome = "updated"
        await db.commit()

    await close_engine()
    return outcome


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create or update an admin account.")
    parser.add_argument("--email", required=True)
    parser.add_argument(
        "--password",
        help="Password for the account (prompted when omitted).",
    )
    parser.add_argument(
        "--role",
        choices=sorted(ROLE_LEVELS),
        default="admin",
        help="Access level (default: admin).",
    )
    return parser


def main() -> None:
    args = _parser().parse_args()
    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        raise SystemExit("Password must be at least 8 characters")
    outcome = asyncio.run(upsert_admin(email=args.email, password=password, role=args.role))
    print(f"admin {outcome}: {args.email.strip().lower()} ({args.role})")


if __name__ == "__main__":
    main()
