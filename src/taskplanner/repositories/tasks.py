"""Repository for interacting with task persistence models."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, or_, update
from sqlalchemy.orm import selectinload
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..domain.types import TaskFilter
from ..models import Task, TaskStatus, utcnow
from .base import BaseRepository, translate_store_error


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class TaskRepository(BaseRepository[Task]):
    """Concrete repository encapsulating ``Task`` persistence operations.

    The assignee is only ever written through ``assigned_user_id`` with
    column-level statements, so no stale relation can overwrite it.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Task)

    async def find_tasks_for_user(
        self,
        user_id: int,
        *,
        excluding_completed: bool = True,
        exclude_task_id: int | None = None,
    ) -> list[Task]:
        """Return the tasks that hold time in ``user_id``'s schedule."""
        query = select(Task).where(Task.assigned_user_id == user_id)
        if excluding_completed:
            query = query.where(Task.status != TaskStatus.COMPLETED)
        if exclude_task_id is not None:
            query = query.where(Task.id != exclude_task_id)
        query = query.order_by(Task.start_date, Task.id)
        async with translate_store_error("find tasks for user"):
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def get_with_relations(self, task_id: int) -> Task | None:
        """Load a task together with its assignee and assigner."""
        query = (
            select(Task)
            .where(Task.id == task_id)
            .options(selectinload(Task.assigned_user), selectinload(Task.assigned_by))
            .execution_options(populate_existing=True)
        )
        async with translate_store_error("get task with relations"):
            result = await self.session.execute(query)
            return result.scalar_one_or_none()

    async def persist_new(self, fields: dict[str, Any]) -> Task:
        return await self.add(Task(**fields))

    async def persist_patch(self, task_id: int, fields: dict[str, Any]) -> bool:
        """Apply ``fields`` to one row; return ``False`` when the row is gone."""
        if not fields:
            return await self.get(task_id) is not None
        statement = (
            update(Task)
            .where(Task.id == task_id)
            .values(**fields, updated_at=utcnow())
        )
        async with translate_store_error("update task"):
            result = await self.session.execute(statement)
        return bool(result.rowcount)

    async def delete(self, task_id: int) -> bool:
        async with translate_store_error("delete task"):
            result = await self.session.execute(delete(Task).where(Task.id == task_id))
        return bool(result.rowcount)

    async def list_filtered(self, task_filter: TaskFilter) -> tuple[list[Task], int]:
        """Return one page of tasks matching ``task_filter`` and the total count."""
        conditions = []
        assignee_id = task_filter.effective_assignee_id
        if assignee_id is not None:
            conditions.append(Task.assigned_user_id == assignee_id)
        if task_filter.status is not None:
            conditions.append(Task.status == task_filter.status)
        if task_filter.search:
            pattern = _like_pattern(task_filter.search.strip())
            conditions.append(
                or_(
                    Task.title.ilike(pattern, escape="\\"),
                    Task.description.ilike(pattern, escape="\\"),
                )
            )
        date_range = task_filter.date_range
        if date_range is not None:
            if date_range.start_date is not None:
                conditions.append(Task.start_date >= date_range.start_date)
            if date_range.end_date is not None:
                conditions.append(Task.end_date <= date_range.end_date)

        query = (
            select(Task)
            .where(*conditions)
            .options(selectinload(Task.assigned_user), selectinload(Task.assigned_by))
            .order_by(Task.created_at.desc(), Task.id.desc())
            .limit(task_filter.limit)
            .offset(task_filter.offset)
        )
        count_query = select(func.count()).select_from(Task).where(*conditions)
        async with translate_store_error("list tasks"):
            result = await self.session.execute(query)
            tasks = list(result.scalars().all())
            total_result = await self.session.execute(count_query)
            total = int(total_result.scalar_one())
        return tasks, total

    async def list_for_availability(self, user_id: int) -> list[Task]:
        """Return every task assigned to ``user_id``, earliest first."""
        return await self.find_tasks_for_user(user_id, excluding_completed=False)


__all__ = ["TaskRepository"]
