"""Background job implementations executed by the RQ worker."""

from __future__ import annotations

from .availability import update_availability_job

__all__ = ["update_availability_job"]
