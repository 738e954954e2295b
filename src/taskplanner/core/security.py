"""JWT helpers used to authenticate callers.

Token issuance (login, refresh, revocation) lives in a separate identity
service; this module only signs tokens for local tooling and tests, and
verifies the bearer tokens presented to the API and the notification socket.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from jose import JWTError, jwt

from .config import Settings


class TokenType(str, Enum):
    """Enumerates supported JWT token types."""

    ACCESS = "access"


@dataclass(slots=True)
class GeneratedToken:
    """Represents a generated JWT token with associated metadata."""

    token: str
    expires_at: datetime
    jti: str


def create_access_token(
    *,
    subject: str | int,
    role: str,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> GeneratedToken:
    """Create a signed JWT access token carrying the caller id and role."""

    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    expire = now + expires_delta
    payload: dict[str, Any] = {
        "sub": str(subject),
        "role": role,
        "iat": now,
        "exp": expire,
        "type": TokenType.ACCESS.value,
        "jti": uuid4().hex,
    }
    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return GeneratedToken(token=token, expires_at=expire, jti=payload["jti"])


def decode_token(*, token: str, secret: str, algorithm: str) -> dict[str, Any]:
    """Decode a JWT token and return its payload."""

    return jwt.decode(token, secret, algorithms=[algorithm])


__all__ = [
    "GeneratedToken",
    "JWTError",
    "TokenType",
    "create_access_token",
    "decode_token",
]
