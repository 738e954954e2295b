"""Read-only view of a user's committed schedule."""

from __future__ import annotations

from fastapi import APIRouter

from ...deps import CurrentCallerDependency, TaskServiceDependency
from ...errors import PermissionDeniedError
from ...schemas.availability import AvailabilitySnapshot

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get(
    "/{user_id}",
    response_model=AvailabilitySnapshot,
    summary="List the busy windows of a user",
)
async def read_availability(
    user_id: int,
    caller: CurrentCallerDependency,
    service: TaskServiceDependency,
) -> AvailabilitySnapshot:
    if not caller.is_privileged and caller.id != user_id:
        raise PermissionDeniedError(
            "You can only view your own availability.",
            details={"user_id": user_id},
        )
    return await service.availability.build_snapshot(user_id)
