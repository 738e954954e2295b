"""Schemas describing a user's committed schedule."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from ..models import ensure_utc


class AvailabilityWindow(BaseModel):
    """A block of time held by one non-completed task."""

    task_id: int
    title: str
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class AvailabilitySnapshot(BaseModel):
    """Busy windows of a user, ordered by start."""

    user_id: int
    windows: list[AvailabilityWindow] = Field(default_factory=list)
    generated_at: datetime

    @property
    def window_count(self) -> int:
        return len(self.windows)


__all__ = ["AvailabilitySnapshot", "AvailabilityWindow"]
