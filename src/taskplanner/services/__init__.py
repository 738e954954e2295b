"""Service layer: availability queries, domain pipelines and orchestration."""

from __future__ import annotations

from .availability import AvailabilityService
from .task_domain import TaskDomainService, TaskReassignmentPlan, TaskUpdatePlan
from .tasks import TaskService

__all__ = [
    "AvailabilityService",
    "TaskDomainService",
    "TaskReassignmentPlan",
    "TaskService",
    "TaskUpdatePlan",
]
