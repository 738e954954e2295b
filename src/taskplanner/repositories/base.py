"""Base repository implementation supporting asynchronous SQLModel sessions."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Generic, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from ..errors import InfrastructureError, OverlapError

ModelType = TypeVar("ModelType", bound=SQLModel)

OVERLAP_CONSTRAINT_NAME = "ex_tasks_assignee_no_overlap"

logger = logging.getLogger("taskplanner.repositories")


@asynccontextmanager
async def translate_store_error(operation: str) -> AsyncIterator[None]:
    """Map store failures onto application errors.

    A violation of the assignee exclusion constraint becomes ``OverlapError``;
    other integrity errors propagate untouched; anything else raised by the
    driver is reported as ``InfrastructureError``.
    """

    try:
        yield
    except IntegrityError as exc:
        if OVERLAP_CONSTRAINT_NAME in str(exc.orig):
            raise OverlapError() from exc
        raise
    except SQLAlchemyError as exc:
        logger.error(
            "Task store failure during %s",
            operation,
            exc_info=True,
            extra={"operation": operation},
        )
        raise InfrastructureError(
            "The task store is unavailable.",
            details={"operation": operation},
        ) from exc


class BaseRepository(Generic[ModelType]):
    """Provide shared persistence helpers for repositories."""

    def __init__(self, session: AsyncSession, model_type: type[ModelType]) -> None:
        self._session = session
        self._model_type = model_type

    @property
    def session(self) -> AsyncSession:
        """Return the session associated with the repository."""
        return self._session

    async def get(self, entity_id: int) -> ModelType | None:
        """Retrieve a fresh copy of a model instance by its primary key."""
        async with translate_store_error(f"get {self._model_type.__name__}"):
            return await self._session.get(self._model_type, entity_id, populate_existing=True)

    async def add(self, instance: ModelType) -> ModelType:
        """Add and flush a new entity instance."""
        async with translate_store_error(f"add {self._model_type.__name__}"):
            self._session.add(instance)
            await self._session.flush()
        return instance


__all__ = ["BaseRepository", "ModelType", "OVERLAP_CONSTRAINT_NAME", "translate_store_error"]
