"""Pure scheduling rules: overlap checks, validation and patch preparation."""

from __future__ import annotations

from .overlap import TimeWindow, find_conflicts, windows_overlap
from .types import CallerIdentity, DateRange, TaskFilter

__all__ = [
    "CallerIdentity",
    "DateRange",
    "TaskFilter",
    "TimeWindow",
    "find_conflicts",
    "windows_overlap",
]
