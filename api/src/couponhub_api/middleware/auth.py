"""Password hashing and admin session tokens."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import bcrypt
from couponhub.config import get_settings
from jose import ExpiredSignatureError, JWTError, jwt

TOKEN_MISSING = "MISSING"
TOKEN_INVALID = "INVALID"
TOKEN_EXPIRED = "EXPIRED"

REQUIRED_CLAIMS = ("sub", "email", "role")


class TokenRejected(Exception):
    """Bearer token could not be accepted; ``status`` says why."""

    def __init__(self, status: str, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()

def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())

def create_access_token(
    admin_id: str,
    email: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": admin_id,
        "email": email,
        "role": role,
        "type": "admin",
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)

def verify_access_token(raw_token: str | None) -> dict:
    if not raw_token:
        raise TokenRejected(TOKEN_MISSING, "Access denied: no token provided")
    settings = get_settings()
    try:
        payload = jwt.decode(raw_token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise TokenRejected(TOKEN_EXPIRED, "Token expired. Please log in again.")
    except JWTError:
        raise TokenRejected(TOKEN_INVALID, "Invalid token")
    if payload.get("type") != "admin" or any(not payload.get(claim) for claim in REQUIRED_CLAIMS):
        raise TokenRejected(TOKEN_INVALID, "Invalid token: missing required fields")
    return payload
