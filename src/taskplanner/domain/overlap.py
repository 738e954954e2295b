"""Interval overlap checks for task windows.

Windows are closed intervals: a task ending at 10:00 conflicts with another
starting at 10:00 for the same user. Completed tasks never reach these
functions; callers filter them out when loading a schedule.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, TypeVar

from ..models.common import ensure_utc


class Scheduled(Protocol):
    start_date: datetime
    end_date: datetime


S = TypeVar("S", bound=Scheduled)


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """A ``[start, end]`` interval, normalised to UTC."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))

    @classmethod
    def of(cls, item: Scheduled) -> "TimeWindow":
        return cls(item.start_date, item.end_date)


def windows_overlap(first: TimeWindow, second: TimeWindow) -> bool:
    """Return ``True`` when the closed windows share at least one instant."""

    return first.start <= second.end and first.end >= second.start


def find_conflicts(candidate: TimeWindow, items: Iterable[S]) -> list[S]:
    """Return the scheduled items whose window overlaps ``candidate``."""

    return [item for item in items if windows_overlap(candidate, TimeWindow.of(item))]


__all__ = ["Scheduled", "TimeWindow", "find_conflicts", "windows_overlap"]
