"""Router registrations for the task planner."""

from __future__ import annotations

from fastapi import APIRouter

from .availability import router as availability_router
from .health import router as health_router
from .notifications import router as notifications_router
from .tasks import router as tasks_router

api_router = APIRouter()
api_router.include_router(tasks_router)
api_router.include_router(availability_router)

__all__ = ["api_router", "health_router", "notifications_router"]
