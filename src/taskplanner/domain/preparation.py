"""Turn validated requests into the field sets handed to the store."""

from __future__ import annotations

from typing import Any

from ..models import Task, TaskStatus, ensure_utc
from ..schemas.task import TaskCreate, TaskReassign, TaskUpdate
from .overlap import TimeWindow
from .validation import parse_timestamp

SCHEDULE_FIELDS = frozenset({"assigned_user_id", "start_date", "end_date"})
_PATCHABLE_FIELDS = ("title", "description", "status", "start_date", "end_date")


def _clean_description(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def prepare_task_for_creation(request: TaskCreate, creator_id: int) -> dict[str, Any]:
    """Build the column values for a new task; expects a validated request."""

    return {
        "title": (request.title or "").strip(),
        "description": _clean_description(request.description),
        "status": request.status or TaskStatus.IN_PROGRESS,
        "start_date": parse_timestamp(request.start_date, "start_date"),
        "end_date": parse_timestamp(request.end_date, "end_date"),
        "assigned_user_id": request.assigned_user_id,
        "assigned_by_id": creator_id,
    }


def prepare_task_for_update(existing: Task, request: TaskUpdate) -> dict[str, Any]:
    """Return the sparse patch of fields the request changes.

    Values equal to what ``existing`` already holds are left out. The assignee
    is never part of this patch; see :func:`apply_task_reassignment`.
    """

    provided = request.model_fields_set
    patch: dict[str, Any] = {}
    for field in _PATCHABLE_FIELDS:
        if field not in provided:
            continue
        value = getattr(request, field)
        current = getattr(existing, field)
        if field == "title":
            value = value.strip()
        elif field == "description":
            value = _clean_description(value)
        elif field in ("start_date", "end_date"):
            value = parse_timestamp(value, field)
            current = ensure_utc(current)
        if value != current:
            patch[field] = value
    return patch


def apply_task_reassignment(request: TaskReassign | TaskUpdate, actor_id: int) -> dict[str, Any]:
    """Return the column patch that moves a task to ``request.assigned_user_id``."""

    return {
        "assigned_user_id": request.assigned_user_id,
        "assigned_by_id": actor_id,
    }


def requires_overlap_validation(request: TaskUpdate) -> bool:
    return bool(request.model_fields_set & SCHEDULE_FIELDS)


def calculate_effective_date_range(existing: Task, request: TaskUpdate) -> TimeWindow:
    """Resolve the window the task would occupy once ``request`` is applied."""

    provided = request.model_fields_set
    start = (
        parse_timestamp(request.start_date, "start_date")
        if "start_date" in provided
        else existing.start_date
    )
    end = (
        parse_timestamp(request.end_date, "end_date")
        if "end_date" in provided
        else existing.end_date
    )
    return TimeWindow(start, end)


__all__ = [
    "SCHEDULE_FIELDS",
    "apply_task_reassignment",
    "calculate_effective_date_range",
    "prepare_task_for_creation",
    "prepare_task_for_update",
    "requires_overlap_validation",
]
