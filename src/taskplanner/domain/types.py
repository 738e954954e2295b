"""Value objects passed between the transport, domain and store layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..models import TaskStatus, UserRole

PRIVILEGED_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER})


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """Authenticated caller as asserted by the bearer token."""

    id: int
    role: UserRole

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


@dataclass(frozen=True, slots=True)
class DateRange:
    """Bounds a listing to tasks that fall entirely inside the range."""

    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass(slots=True)
class TaskFilter:
    """Criteria accepted by task listings."""

    caller: CallerIdentity
    status: TaskStatus | None = None
    assigned_user_id: int | None = None
    search: str | None = None
    date_range: DateRange | None = None
    limit: int = 50
    offset: int = 0

    @property
    def effective_assignee_id(self) -> int | None:
        """Plain users only ever see their own tasks."""

        if self.caller.role == UserRole.USER:
            return self.caller.id
        return self.assigned_user_id


__all__ = ["CallerIdentity", "DateRange", "PRIVILEGED_ROLES", "TaskFilter"]
