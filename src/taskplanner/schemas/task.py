"""Task-related Pydantic schemas.

Request models are deliberately permissive about dates, blank titles and
missing assignees: those rules belong to the scheduling domain, which reports
them through ``ValidationError`` with the same envelope as any other failure.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models import TaskStatus, UserRole, ensure_utc

TASK_READ_EXAMPLE = {
    "id": 7,
    "title": "Quarterly stock count",
    "description": "Count the east warehouse aisles.",
    "start_date": "2030-03-04T09:00:00Z",
    "end_date": "2030-03-04T17:00:00Z",
    "status": TaskStatus.IN_PROGRESS.value,
    "assigned_user_id": 12,
    "assigned_by_id": 3,
    "assigned_user": {"id": 12, "full_name": "Dana Brooks", "email": "dana@example.com", "role": "user"},
    "assigned_by": {"id": 3, "full_name": "Lee Park", "email": "lee@example.com", "role": "manager"},
    "created_at": "2030-03-01T12:00:00Z",
    "updated_at": "2030-03-01T12:00:00Z",
}


class TaskCreate(BaseModel):
    """Payload for creating a new task."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Quarterly stock count",
                "description": "Count the east warehouse aisles.",
                "start_date": "2030-03-04T09:00:00Z",
                "end_date": "2030-03-04T17:00:00Z",
                "assigned_user_id": 12,
            }
        }
    )

    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None)
    start_date: datetime | str | None = Field(default=None)
    end_date: datetime | str | None = Field(default=None)
    status: TaskStatus | None = Field(default=None)
    assigned_user_id: int | None = Field(default=None)


class TaskUpdate(BaseModel):
    """Payload for partially updating an existing task."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": TaskStatus.COMPLETED.value,
            }
        }
    )

    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None)
    start_date: datetime | str | None = Field(default=None)
    end_date: datetime | str | None = Field(default=None)
    status: TaskStatus | None = Field(default=None)
    assigned_user_id: int | None = Field(default=None)

    @model_validator(mode="after")
    def _ensure_payload_not_empty(self) -> "TaskUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update.")
        return self


class TaskReassign(BaseModel):
    """Payload for moving a task to another assignee."""

    model_config = ConfigDict(json_schema_extra={"example": {"assigned_user_id": 15}})

    assigned_user_id: int | None = Field(default=None)


class UserSummary(BaseModel):
    """Display fields of a user attached to a task."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: str | None = None
    role: UserRole


class TaskRead(BaseModel):
    """Public representation of a task."""

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={"example": TASK_READ_EXAMPLE},
    )

    id: int
    title: str
    description: str | None = None
    start_date: datetime
    end_date: datetime
    status: TaskStatus
    assigned_user_id: int | None = None
    assigned_by_id: int | None = None
    assigned_user: UserSummary | None = None
    assigned_by: UserSummary | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("start_date", "end_date", "created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class TaskListResponse(BaseModel):
    """Paginated collection of tasks."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": [TASK_READ_EXAMPLE],
                "total": 1,
                "limit": 50,
                "offset": 0,
            }
        }
    )

    items: list[TaskRead]
    total: int
    limit: int
    offset: int


__all__ = [
    "TaskCreate",
    "TaskListResponse",
    "TaskReassign",
    "TaskRead",
    "TaskUpdate",
    "UserSummary",
]
