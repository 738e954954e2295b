"""Availability queries over a user's committed tasks."""

from __future__ import annotations

import logging
from datetime import datetime

from ..domain.overlap import TimeWindow, find_conflicts
from ..models import Task, TaskStatus, utcnow
from ..repositories import TaskRepository
from ..schemas.availability import AvailabilitySnapshot, AvailabilityWindow

logger = logging.getLogger("taskplanner.services.availability")


class AvailabilityService:
    """Answer whether a user is free over a window.

    Store failures propagate as ``InfrastructureError``; a failed lookup is
    never reported as "no overlap".
    """

    def __init__(self, repository: TaskRepository) -> None:
        self._repository = repository

    async def find_conflicting_tasks(
        self,
        user_id: int,
        start_date: datetime,
        end_date: datetime,
        exclude_task_id: int | None = None,
    ) -> list[Task]:
        """Return the user's non-completed tasks whose window meets ``[start_date, end_date]``."""
        committed = await self._repository.find_tasks_for_user(
            user_id,
            excluding_completed=True,
            exclude_task_id=exclude_task_id,
        )
        conflicts = find_conflicts(TimeWindow(start_date, end_date), committed)
        if conflicts:
            logger.debug(
                "User %s has %d conflicting task(s)",
                user_id,
                len(conflicts),
                extra={"user_id": user_id, "conflicting_task_ids": [task.id for task in conflicts]},
            )
        return conflicts

    async def check_overlap(
        self,
        user_id: int,
        start_date: datetime,
        end_date: datetime,
        exclude_task_id: int | None = None,
    ) -> bool:
        conflicts = await self.find_conflicting_tasks(
            user_id,
            start_date,
            end_date,
            exclude_task_id=exclude_task_id,
        )
        return bool(conflicts)

    async def get_user_tasks(self, user_id: int) -> list[Task]:
        """Return every task assigned to the user ordered by start date."""
        return await self._repository.list_for_availability(user_id)

    async def build_snapshot(self, user_id: int) -> AvailabilitySnapshot:
        """Collect the busy windows of ``user_id``; completed tasks are skipped."""
        tasks = await self.get_user_tasks(user_id)
        windows = [
            AvailabilityWindow(
                task_id=task.id,
                title=task.title,
                start_date=task.start_date,
                end_date=task.end_date,
            )
            for task in tasks
            if task.status != TaskStatus.COMPLETED
        ]
        return AvailabilitySnapshot(user_id=user_id, windows=windows, generated_at=utcnow())


__all__ = ["AvailabilityService"]
