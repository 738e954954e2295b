"""Database repositories for encapsulating persistence logic."""

from __future__ import annotations

from .base import OVERLAP_CONSTRAINT_NAME, translate_store_error
from .tasks import TaskRepository
from .users import UserRepository

__all__ = ["OVERLAP_CONSTRAINT_NAME", "TaskRepository", "UserRepository", "translate_store_error"]
