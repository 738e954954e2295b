"""Persistence models for users and scheduled tasks."""

from __future__ import annotations

from .common import TimestampMixin, ensure_utc, utcnow
from .task import Task, TaskBase, TaskStatus
from .user import User, UserBase, UserRole

__all__ = [
    "Task",
    "TaskBase",
    "TaskStatus",
    "TimestampMixin",
    "User",
    "UserBase",
    "UserRole",
    "ensure_utc",
    "utcnow",
]
