from __future__ import annotations

import time
from typing import Any

import jwt
from flask import current_app

ALGORITHM = "HS256"
ACCESS = "access"
DEFAULT_TTL_SECONDS = 60 * 60 * 24 * 7


def _signing_key() -> str:
    return current_app.config["SECRET_KEY"]


def create_access_token(user_id: int, ttl_seconds: int | None = None) -> str:
    issued = int(time.time())
    ttl = int(ttl_seconds or current_app.config.get("JWT_TTL_SECONDS") or DEFAULT_TTL_SECONDS)
    claims = {"sub": str(int(user_id)), "type": ACCESS, "iat": issued, "exp": issued + ttl}
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM)


def decode_token(token: str) -> dict[str, Any] | None:
    """Return the claims of a valid, unexpired token, else None."""
    try:
        return jwt.decode(token, _signing_key(), algorithms=[ALGORITHM], options={"require": ["sub", "exp"]})
    except jwt.PyJWTError:
        return None


def get_bearer_token(header: str | None) -> str | None:
    scheme, _, token = (header or "").strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
