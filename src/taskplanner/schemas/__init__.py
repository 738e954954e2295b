"""Pydantic schemas exposed by the HTTP and notification surfaces."""

from __future__ import annotations

from .auth import TokenPayload
from .availability import AvailabilitySnapshot, AvailabilityWindow
from .system import ErrorResponse, HealthCheckResponse, MetadataResponse
from .task import (
    TaskCreate,
    TaskListResponse,
    TaskReassign,
    TaskRead,
    TaskUpdate,
    UserSummary,
)

__all__ = [
    "AvailabilitySnapshot",
    "AvailabilityWindow",
    "ErrorResponse",
    "HealthCheckResponse",
    "MetadataResponse",
    "TaskCreate",
    "TaskListResponse",
    "TaskReassign",
    "TaskRead",
    "TaskUpdate",
    "TokenPayload",
    "UserSummary",
]
