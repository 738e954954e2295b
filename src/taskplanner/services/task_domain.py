"""Validation pipelines that turn task requests into write plans.

Each operation runs ``Requested -> Validated -> AvailabilityChecked ->
Prepared`` and stops at the first failure. Nothing here writes to the store;
:class:`~taskplanner.services.tasks.TaskService` persists the returned plans.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..domain.overlap import TimeWindow
from ..domain.preparation import (
    apply_task_reassignment,
    calculate_effective_date_range,
    prepare_task_for_creation,
    prepare_task_for_update,
    requires_overlap_validation,
)
from ..domain.types import CallerIdentity, TaskFilter
from ..domain.validation import (
    validate_date_range,
    validate_task_creation_data,
    validate_task_reassignment_data,
    validate_task_update_data,
    validate_task_update_permissions,
)
from ..errors import NotFoundError, OverlapError, ValidationError
from ..models import Task, TaskStatus, utcnow
from ..repositories import TaskRepository, UserRepository
from ..schemas.task import TaskCreate, TaskReassign, TaskUpdate
from .availability import AvailabilityService


@dataclass(slots=True)
class TaskUpdatePlan:
    """Validated patch for one task plus the state it replaces."""

    task: Task
    patch: dict[str, Any] = field(default_factory=dict)
    previous_assignee_id: int | None = None
    previous_status: TaskStatus = TaskStatus.IN_PROGRESS

    @property
    def assignee_changed(self) -> bool:
        return (
            "assigned_user_id" in self.patch
            and self.patch["assigned_user_id"] != self.previous_assignee_id
        )

    @property
    def schedule_changed(self) -> bool:
        return (
            self.assignee_changed
            or "start_date" in self.patch
            or "end_date" in self.patch
            or "status" in self.patch
        )

    @property
    def completes_task(self) -> bool:
        return (
            self.patch.get("status") == TaskStatus.COMPLETED
            and self.previous_status != TaskStatus.COMPLETED
        )

    @property
    def assignee_id(self) -> int | None:
        return self.patch.get("assigned_user_id", self.previous_assignee_id)


@dataclass(slots=True)
class TaskReassignmentPlan:
    """Validated move of a task to a new assignee."""

    task: Task
    patch: dict[str, Any]
    previous_assignee_id: int | None

    @property
    def assignee_id(self) -> int:
        return self.patch["assigned_user_id"]

    @property
    def assignee_changed(self) -> bool:
        return self.assignee_id != self.previous_assignee_id


class TaskDomainService:
    """Coordinate validation, availability checks and patch preparation."""

    def __init__(
        self,
        tasks: TaskRepository,
        users: UserRepository,
        availability: AvailabilityService,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._tasks = tasks
        self._users = users
        self._availability = availability
        self._clock = clock

    async def _load_task(self, task_id: int) -> Task:
        task = await self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found.", details={"task_id": task_id})
        return task

    async def _ensure_assignable(self, user_id: int) -> None:
        user = await self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.", details={"user_id": user_id})
        if not user.is_active:
            raise ValidationError(
                "Tasks cannot be assigned to an inactive user.",
                details={"user_id": user_id},
            )

    async def _ensure_available(
        self,
        user_id: int,
        window: TimeWindow,
        *,
        exclude_task_id: int | None = None,
    ) -> None:
        conflicts = await self._availability.find_conflicting_tasks(
            user_id,
            window.start,
            window.end,
            exclude_task_id=exclude_task_id,
        )
        if conflicts:
            raise OverlapError(
                user_id=user_id,
                conflicting_task_ids=[task.id for task in conflicts if task.id is not None],
            )

    async def prepare_task_creation(self, request: TaskCreate, creator_id: int) -> dict[str, Any]:
        """Validate a creation request and return the columns of the new task."""

        window = validate_task_creation_data(request, now=self._clock())
        await self._ensure_assignable(request.assigned_user_id)
        await self._ensure_available(request.assigned_user_id, window)
        return prepare_task_for_creation(request, creator_id)

    async def prepare_task_update(
        self,
        task_id: int,
        request: TaskUpdate,
        caller: CallerIdentity,
    ) -> TaskUpdatePlan:
        """Validate an update and return the patch to apply.

        The overlap check runs when the request touches the assignee or the
        window, and when a completed task is reopened, because the task then
        starts holding time again.
        """

        task = await self._load_task(task_id)
        validate_task_update_permissions(task, request, caller.role, caller.id)
        validate_task_update_data(request)

        provided = request.model_fields_set
        if "assigned_user_id" in provided and request.assigned_user_id is None:
            raise ValidationError(
                "A task must keep an assignee.",
                details={"field": "assigned_user_id"},
            )
        assignee_changed = (
            "assigned_user_id" in provided
            and request.assigned_user_id != task.assigned_user_id
        )
        reopening = (
            request.status == TaskStatus.IN_PROGRESS
            and task.status == TaskStatus.COMPLETED
        )

        if requires_overlap_validation(request) or reopening:
            window = calculate_effective_date_range(task, request)
            validate_date_range(window.start, window.end, allow_past=True)
            assignee_id = request.assigned_user_id if assignee_changed else task.assigned_user_id
            if assignee_changed and assignee_id is not None:
                await self._ensure_assignable(assignee_id)
            if assignee_id is not None:
                await self._ensure_available(assignee_id, window, exclude_task_id=task_id)

        patch = prepare_task_for_update(task, request)
        if assignee_changed:
            patch.update(apply_task_reassignment(request, caller.id))
        return TaskUpdatePlan(
            task=task,
            patch=patch,
            previous_assignee_id=task.assigned_user_id,
            previous_status=task.status,
        )

    async def prepare_task_reassignment(
        self,
        task_id: int,
        request: TaskReassign,
        actor_id: int,
    ) -> TaskReassignmentPlan:
        task = await self._load_task(task_id)
        validate_task_reassignment_data(request)
        await self._ensure_assignable(request.assigned_user_id)
        await self._ensure_available(request.assigned_user_id, TimeWindow.of(task), exclude_task_id=task_id)
        return TaskReassignmentPlan(
            task=task,
            patch=apply_task_reassignment(request, actor_id),
            previous_assignee_id=task.assigned_user_id,
        )

    async def validate_task_deletion(self, task_id: int) -> Task:
        return await self._load_task(task_id)

    async def find_tasks(self, task_filter: TaskFilter) -> tuple[list[Task], int]:
        return await self._tasks.list_filtered(task_filter)

    async def get_task(self, task_id: int) -> Task:
        """Return a task with its assignee and assigner loaded."""

        task = await self._tasks.get_with_relations(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found.", details={"task_id": task_id})
        return task


__all__ = ["TaskDomainService", "TaskReassignmentPlan", "TaskUpdatePlan"]
