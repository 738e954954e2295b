"""Recompute a user's availability after their schedule changed."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sqlmodel.ext.asyncio.session import AsyncSession

from ..core.context import bind_request_id, clear_request_id, reset_request_id
from ..core.jobs import execute_in_job_session
from ..repositories import TaskRepository
from ..schemas.availability import AvailabilitySnapshot
from ..services.availability import AvailabilityService

logger = logging.getLogger("taskplanner.jobs.availability")


async def _build_snapshot(user_id: int) -> AvailabilitySnapshot:
    async def _invoke(session: AsyncSession) -> AvailabilitySnapshot:
        service = AvailabilityService(TaskRepository(session))
        return await service.build_snapshot(user_id)

    return await execute_in_job_session(_invoke)


def update_availability_job(user_id: int, request_id: str | None = None) -> dict[str, Any]:
    """Rebuild the committed schedule of ``user_id`` and return it."""

    if user_id <= 0:
        raise ValueError("user_id must be a positive integer")

    token = None
    if request_id:
        token = bind_request_id(request_id)
    else:
        clear_request_id()

    try:
        snapshot = asyncio.run(_build_snapshot(user_id))
        logger.info(
            "Processing availability update for user %s with %d task(s)",
            user_id,
            snapshot.window_count,
            extra={"user_id": user_id, "task_count": snapshot.window_count},
        )
        return {
            "success": True,
            "task_count": snapshot.window_count,
            "snapshot": snapshot.model_dump(mode="json"),
        }
    finally:
        if token is not None:
            reset_request_id(token)
        else:
            clear_request_id()


__all__ = ["update_availability_job"]
