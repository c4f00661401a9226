"""
Bearer token helpers.

Tokens are HS256 JWTs whose ``sub`` claim is the user id.  Issuing tokens
is left to the identity provider in front of the API; ``create_access_token``
is used by the seed script and the test-suite.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from src.config import settings

DEFAULT_TTL = timedelta(hours=24)


def create_access_token(user_id: int, expires: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + (expires or DEFAULT_TTL)).timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[int]:
    """Return the user id carried by *token*, or ``None`` if it is not valid."""
    try:
        claims = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        return None
    try:
        return int(claims.get("sub"))
    except (TypeError, ValueError):
        return None
