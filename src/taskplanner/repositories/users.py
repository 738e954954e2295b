"""Repository for the user records tasks are assigned to."""

from __future__ import annotations

from sqlmodel.ext.asyncio.session import AsyncSession

from ..models import User
from .base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Concrete repository encapsulating ``User`` lookups."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, User)
