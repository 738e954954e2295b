"""Business rules checked before any task is written."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..errors import PermissionDeniedError, ValidationError
from ..models import Task, UserRole, ensure_utc, utcnow
from ..schemas.task import TaskCreate, TaskReassign, TaskUpdate
from .overlap import TimeWindow

_DATETIME_ADAPTER: TypeAdapter[datetime] = TypeAdapter(datetime)

# Fields a plain user may change on a task assigned to them.
USER_UPDATABLE_FIELDS = frozenset({"status"})


def parse_timestamp(value: Any, field: str) -> datetime:
    """Parse ``value`` (a datetime or an ISO-8601 string) into an aware UTC datetime."""

    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{field} must be an ISO-8601 timestamp.",
            details={"field": field},
        )
    try:
        parsed = _DATETIME_ADAPTER.validate_python(value.strip())
    except PydanticValidationError as exc:
        raise ValidationError(
            f"{field} must be an ISO-8601 timestamp.",
            details={"field": field, "value": value},
        ) from exc
    return ensure_utc(parsed)


def validate_date_range(
    start: datetime,
    end: datetime,
    *,
    now: datetime | None = None,
    allow_past: bool = False,
) -> TimeWindow:
    """Check that ``start < end`` and, unless ``allow_past``, that ``start`` is not in the past."""

    window = TimeWindow(start, end)
    if window.start >= window.end:
        raise ValidationError(
            "Start date must be before end date.",
            details={"start_date": window.start.isoformat(), "end_date": window.end.isoformat()},
        )
    if not allow_past:
        reference = ensure_utc(now) if now is not None else utcnow()
        if window.start < reference:
            raise ValidationError(
                "Start date cannot be in the past.",
                details={"start_date": window.start.isoformat()},
            )
    return window


def _require_title(title: str | None) -> None:
    if title is None or not title.strip():
        raise ValidationError("Title is required.", details={"field": "title"})


def validate_task_creation_data(request: TaskCreate, *, now: datetime | None = None) -> TimeWindow:
    """Validate a creation request and return its parsed window."""

    _require_title(request.title)
    if request.start_date is None:
        raise ValidationError("Start date is required.", details={"field": "start_date"})
    if request.end_date is None:
        raise ValidationError("End date is required.", details={"field": "end_date"})
    start = parse_timestamp(request.start_date, "start_date")
    end = parse_timestamp(request.end_date, "end_date")
    if request.assigned_user_id is None:
        raise ValidationError("Assigned user is required.", details={"field": "assigned_user_id"})
    return validate_date_range(start, end, now=now)


def validate_task_update_data(request: TaskUpdate) -> None:
    """Reject explicit nulls and unparseable values in an update request."""

    provided = request.model_fields_set
    if "title" in provided:
        _require_title(request.title)
    for field in ("start_date", "end_date"):
        if field not in provided:
            continue
        value = getattr(request, field)
        if value is None:
            raise ValidationError(f"{field} cannot be cleared.", details={"field": field})
        parse_timestamp(value, field)
    if "status" in provided and request.status is None:
        raise ValidationError("status cannot be cleared.", details={"field": "status"})


def validate_task_update_permissions(
    task: Task,
    request: TaskUpdate,
    caller_role: UserRole,
    caller_id: int,
) -> None:
    """Plain users may only change the status of tasks assigned to them."""

    if caller_role != UserRole.USER:
        return
    if task.assigned_user_id != caller_id:
        raise PermissionDeniedError(
            "You can only update tasks assigned to you.",
            details={"task_id": task.id},
        )
    forbidden = sorted(request.model_fields_set - USER_UPDATABLE_FIELDS)
    if forbidden:
        raise PermissionDeniedError(
            "Users can only update the status of their tasks.",
            details={"fields": forbidden},
        )


def validate_task_reassignment_data(request: TaskReassign) -> None:
    if request.assigned_user_id is None:
        raise ValidationError(
            "Assigned user is required for reassignment.",
            details={"field": "assigned_user_id"},
        )


__all__ = [
    "USER_UPDATABLE_FIELDS",
    "parse_timestamp",
    "validate_date_range",
    "validate_task_creation_data",
    "validate_task_reassignment_data",
    "validate_task_update_data",
    "validate_task_update_permissions",
]
