"""Schemas describing the bearer token contents."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from ..core.security import TokenType
from ..models import UserRole


class TokenPayload(BaseModel):
    """Validated JWT payload."""

    model_config = ConfigDict(extra="ignore")

    sub: str
    role: UserRole
    exp: datetime
    iat: datetime
    jti: str
    type: TokenType


__all__ = ["TokenPayload"]
