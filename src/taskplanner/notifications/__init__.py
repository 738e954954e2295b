"""Realtime task notifications over websockets."""

from __future__ import annotations

from .registry import ConnectionLimitExceeded, NotificationRegistry
from .service import (
    TASK_COMPLETED,
    TASK_CREATED,
    TASK_DELETED,
    TASK_REASSIGNED,
    TaskNotificationService,
    format_task_for_notification,
)

__all__ = [
    "ConnectionLimitExceeded",
    "NotificationRegistry",
    "TASK_COMPLETED",
    "TASK_CREATED",
    "TASK_DELETED",
    "TASK_REASSIGNED",
    "TaskNotificationService",
    "format_task_for_notification",
]
