from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

ALGORITHM = "HS256"
IDENTITY_TOKEN_TTL_MINUTES = 60


def _secret() -> str:
    return os.getenv("JWT_SECRET_KEY", "dev-insecure-secret-key")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def create_identity_token(
    subject: str,
    email: str | None = None,
    name: str | None = None,
    ttl_minutes: int = IDENTITY_TOKEN_TTL_MINUTES,
) -> str:
    """Custom sign-in token; ``sub`` becomes the user's stable key."""
    now = _now_utc()
    payload: dict[str, Any] = {
        "sub": subject,
        "type": "identity",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    if email:
        payload["email"] = email
    if name:
        payload["name"] = name
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired token") from exc
