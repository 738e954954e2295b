"""Task lifecycle notifications pushed to connected users."""

from __future__ import annotations

import logging
from typing import Any

from ..models import Task, ensure_utc
from .registry import NotificationRegistry

logger = logging.getLogger("taskplanner.notifications.service")

TASK_CREATED = "task:created"
TASK_COMPLETED = "task:completed"
TASK_REASSIGNED = "task:reassigned"
TASK_DELETED = "task:deleted"


def format_task_for_notification(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "start_date": ensure_utc(task.start_date),
        "end_date": ensure_utc(task.end_date),
        "status": task.status,
    }


class TaskNotificationService:
    """Compose task messages and hand them to the registry.

    Callers treat every method as fire-and-forget: delivery problems are the
    registry's to absorb and are never reported back as failures of the task
    operation.
    """

    def __init__(self, registry: NotificationRegistry, *, enabled: bool = True) -> None:
        self._registry = registry
        self._enabled = enabled

    async def _send(self, user_id: int | None, event: str, task: Task, message: str) -> int:
        if not self._enabled or user_id is None:
            return 0
        delivered = await self._registry.notify_user(
            user_id,
            event,
            {"task": format_task_for_notification(task), "message": message},
        )
        logger.info(
            "Sent %s for task %s to user %s",
            event,
            task.id,
            user_id,
            extra={"event": event, "task_id": task.id, "user_id": user_id, "delivered": delivered},
        )
        return delivered

    async def notify_task_created(self, task: Task) -> int:
        return await self._send(
            task.assigned_user_id,
            TASK_CREATED,
            task,
            f'New task "{task.title}" has been assigned to you',
        )

    async def notify_task_completed(self, task: Task) -> int:
        """Tell the assigner that the assignee finished the task.

        ``task`` must have been loaded with its ``assigned_user`` relation.
        """

        assignee = task.assigned_user
        completed_by = assignee.display_name if assignee is not None else "the assigned user"
        return await self._send(
            task.assigned_by_id,
            TASK_COMPLETED,
            task,
            f'Task "{task.title}" has been completed by {completed_by}',
        )

    async def notify_task_reassigned(self, task: Task) -> int:
        return await self._send(
            task.assigned_user_id,
            TASK_REASSIGNED,
            task,
            f'Task "{task.title}" has been reassigned to you',
        )

    async def notify_task_deleted(self, task: Task) -> int:
        return await self._send(
            task.assigned_user_id,
            TASK_DELETED,
            task,
            f'Task "{task.title}" assigned to you has been deleted',
        )


__all__ = [
    "TASK_COMPLETED",
    "TASK_CREATED",
    "TASK_DELETED",
    "TASK_REASSIGNED",
    "TaskNotificationService",
    "format_task_for_notification",
]
