"""Service layer encapsulating task-related operations."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TypeVar

from sqlmodel.ext.asyncio.session import AsyncSession

from ..core.jobs import AvailabilityJobQueue
from ..core.locks import AssigneeLockRegistry
from ..domain.types import CallerIdentity, TaskFilter
from ..errors import NotFoundError, OperationError, PermissionDeniedError
from ..models import Task, UserRole, utcnow
from ..notifications import TaskNotificationService
from ..repositories import TaskRepository, UserRepository, translate_store_error
from ..schemas.task import TaskCreate, TaskReassign, TaskUpdate
from .availability import AvailabilityService
from .task_domain import TaskDomainService

logger = logging.getLogger("taskplanner.services.tasks")

T = TypeVar("T")


class TaskService:
    """High-level business orchestration for ``Task`` entities.

    Every mutation runs under the locks of the assignees whose schedules it
    checks, commits, and only then fires the recompute jobs and
    notifications. Those side effects are best effort: their failures are
    logged and never undo or fail the committed operation.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        job_queue: AvailabilityJobQueue | None = None,
        notifier: TaskNotificationService | None = None,
        locks: AssigneeLockRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._repository = TaskRepository(session)
        self._availability = AvailabilityService(self._repository)
        self._domain = TaskDomainService(
            self._repository,
            UserRepository(session),
            self._availability,
            clock=clock,
        )
        self._job_queue = job_queue
        self._notifier = notifier
        self._locks = locks or AssigneeLockRegistry()

    @property
    def repository(self) -> TaskRepository:
        """Expose the underlying repository for advanced scenarios."""
        return self._repository

    @property
    def availability(self) -> AvailabilityService:
        return self._availability

    @asynccontextmanager
    async def _hold_task_assignees(self, task_id: int, *extra: int | None) -> AsyncIterator[None]:
        # The assignee may move while we wait for its lock; retry until the
        # locked set still matches the stored assignee.
        while True:
            current = await self._repository.get(task_id)
            assignee_id = current.assigned_user_id if current is not None else None
            async with self._locks.hold([assignee_id, *extra]):
                latest = await self._repository.get(task_id)
                if latest is None or latest.assigned_user_id == assignee_id:
                    yield
                    return

    async def _persist(self, operation: str, write: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await write()
            async with translate_store_error(f"commit {operation}"):
                await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise
        return result

    async def _reload(self, task_id: int) -> Task:
        task = await self._repository.get_with_relations(task_id)
        if task is None:
            raise OperationError(
                f"Task {task_id} was saved but could not be loaded.",
                details={"task_id": task_id},
            )
        return task

    async def _enqueue_availability(self, user_id: int | None) -> None:
        if self._job_queue is None or user_id is None:
            return
        try:
            await self._job_queue.enqueue(user_id)
        except Exception:
            logger.warning(
                "Could not enqueue availability update for user %s",
                user_id,
                exc_info=True,
                extra={"user_id": user_id},
            )

    async def _notify(self, send: Callable[[Task], Awaitable[int]], task: Task) -> None:
        try:
            await send(task)
        except Exception:
            logger.warning(
                "Could not deliver notification for task %s",
                task.id,
                exc_info=True,
                extra={"task_id": task.id},
            )

    async def create_task(self, request: TaskCreate, caller: CallerIdentity) -> Task:
        """Validate, check availability and persist a new task."""
        async with self._locks.hold([request.assigned_user_id]):
            fields = await self._domain.prepare_task_creation(request, caller.id)
            created = await self._persist("create task", lambda: self._repository.persist_new(fields))
            task_id = created.id
        logger.info(
            "Task %s created for user %s",
            task_id,
            fields["assigned_user_id"],
            extra={"task_id": task_id, "user_id": fields["assigned_user_id"]},
        )

        await self._enqueue_availability(fields["assigned_user_id"])
        task = await self._reload(task_id)
        if self._notifier is not None:
            await self._notify(self._notifier.notify_task_created, task)
        return task

    async def update_task(self, task_id: int, request: TaskUpdate, caller: CallerIdentity) -> Task:
        """Apply a sparse update; may also move the task to another assignee."""
        requested_assignee = (
            request.assigned_user_id if "assigned_user_id" in request.model_fields_set else None
        )
        async with self._hold_task_assignees(task_id, requested_assignee):
            plan = await self._domain.prepare_task_update(task_id, request, caller)
            updated = await self._persist(
                "update task",
                lambda: self._repository.persist_patch(task_id, plan.patch),
            )
        if not updated:
            raise NotFoundError(f"Task {task_id} not found.", details={"task_id": task_id})
        logger.info(
            "Task %s updated",
            task_id,
            extra={"task_id": task_id, "fields": sorted(plan.patch)},
        )

        if plan.schedule_changed:
            await self._enqueue_availability(plan.assignee_id)
        if plan.assignee_changed:
            await self._enqueue_availability(plan.previous_assignee_id)

        task = await self._reload(task_id)
        if self._notifier is not None and plan.completes_task:
            await self._notify(self._notifier.notify_task_completed, task)
        return task

    async def reassign_task(self, task_id: int, request: TaskReassign, caller: CallerIdentity) -> Task:
        """Move a task to ``request.assigned_user_id``."""
        async with self._hold_task_assignees(task_id, request.assigned_user_id):
            plan = await self._domain.prepare_task_reassignment(task_id, request, caller.id)
            updated = await self._persist(
                "reassign task",
                lambda: self._repository.persist_patch(task_id, plan.patch),
            )
        if not updated:
            raise NotFoundError(f"Task {task_id} not found.", details={"task_id": task_id})
        logger.info(
            "Task %s reassigned from user %s to user %s",
            task_id,
            plan.previous_assignee_id,
            plan.assignee_id,
            extra={
                "task_id": task_id,
                "previous_user_id": plan.previous_assignee_id,
                "user_id": plan.assignee_id,
            },
        )

        await self._enqueue_availability(plan.assignee_id)
        if plan.assignee_changed:
            await self._enqueue_availability(plan.previous_assignee_id)

        task = await self._reload(task_id)
        if self._notifier is not None and plan.assignee_changed:
            await self._notify(self._notifier.notify_task_reassigned, task)
        return task

    async def delete_task(self, task_id: int) -> None:
        async with self._hold_task_assignees(task_id):
            task = await self._domain.validate_task_deletion(task_id)
            assignee_id = task.assigned_user_id
            deleted = await self._persist("delete task", lambda: self._repository.delete(task_id))
        if not deleted:
            raise NotFoundError(f"Task {task_id} not found.", details={"task_id": task_id})
        logger.info("Task %s deleted", task_id, extra={"task_id": task_id, "user_id": assignee_id})

        await self._enqueue_availability(assignee_id)
        if self._notifier is not None:
            await self._notify(self._notifier.notify_task_deleted, task)

    async def list_tasks(self, task_filter: TaskFilter) -> tuple[list[Task], int]:
        """Return tasks matching the filter; plain users only see their own."""
        return await self._domain.find_tasks(task_filter)

    async def get_task(self, task_id: int, caller: CallerIdentity) -> Task:
        task = await self._domain.get_task(task_id)
        if caller.role == UserRole.USER and task.assigned_user_id != caller.id:
            raise PermissionDeniedError(
                "You can only view tasks assigned to you.",
                details={"task_id": task_id},
            )
        return task


__all__ = ["TaskService"]
