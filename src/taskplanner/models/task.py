"""Task models built with SQLModel."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlmodel import Field, Relationship, SQLModel

from .common import TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .user import User


class TaskStatus(str, Enum):
    """Enumeration of possible task states."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskBase(SQLModel, table=False):
    """Shared attributes for task models."""

    title: str = Field(
        max_length=255,
        sa_column=sa.Column(sa.String(length=255), nullable=False),
    )
    description: Optional[str] = Field(
        default=None,
        sa_column=sa.Column(sa.Text(), nullable=True),
    )
    start_date: datetime = Field(
        sa_column=sa.Column(sa.DateTime(timezone=True), nullable=False),
    )
    end_date: datetime = Field(
        sa_column=sa.Column(sa.DateTime(timezone=True), nullable=False),
    )
    status: TaskStatus = Field(
        default=TaskStatus.IN_PROGRESS,
        sa_column=sa.Column(
            sa.Enum(
                TaskStatus,
                name="task_status",
                native_enum=False,
                validate_strings=True,
                values_callable=lambda enum: [member.value for member in enum],
            ),
            nullable=False,
            server_default=TaskStatus.IN_PROGRESS.value,
        ),
    )
    assigned_user_id: Optional[int] = Field(
        default=None,
        sa_column=sa.Column(
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    assigned_by_id: Optional[int] = Field(
        default=None,
        sa_column=sa.Column(
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )


class Task(TaskBase, TimestampMixin, table=True):
    """Persistent task model.

    The assignee is written through ``assigned_user_id`` only. The
    ``assigned_user`` and ``assigned_by`` relations are read-only views that
    repositories load explicitly when rendering a task.
    """

    __tablename__ = "tasks"
    __table_args__ = (
        sa.CheckConstraint("length(title) > 0", name="ck_tasks_title_length"),
        sa.CheckConstraint("start_date < end_date", name="ck_tasks_window_order"),
        sa.Index("ix_tasks_assignee_window", "assigned_user_id", "start_date", "end_date"),
        sa.Index("ix_tasks_status", "status"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    assigned_user: Optional["User"] = Relationship(
        sa_relationship_kwargs={
            "foreign_keys": "[Task.assigned_user_id]",
            "lazy": "raise",
            "viewonly": True,
        },
    )
    assigned_by: Optional["User"] = Relationship(
        sa_relationship_kwargs={
            "foreign_keys": "[Task.assigned_by_id]",
            "lazy": "raise",
            "viewonly": True,
        },
    )


__all__ = ["Task", "TaskBase", "TaskStatus"]
