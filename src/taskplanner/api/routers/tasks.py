"""Routes for scheduling, updating and removing tasks."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query, Response, status

from ...deps import CurrentCallerDependency, SchedulerCallerDependency, TaskServiceDependency
from ...domain.types import DateRange, TaskFilter
from ...models import Task, TaskStatus, ensure_utc
from ...schemas import ErrorResponse, TaskCreate, TaskListResponse, TaskReassign, TaskRead, TaskUpdate

router = APIRouter(prefix="/tasks", tags=["tasks"])

LimitQuery = Annotated[
    int,
    Query(
        ge=1,
        le=200,
        description="Maximum number of tasks to return in a single response.",
    ),
]
OffsetQuery = Annotated[
    int,
    Query(
        ge=0,
        description="Number of tasks to skip before collecting results.",
    ),
]
StatusQuery = Annotated[
    TaskStatus | None,
    Query(description="Filter results to tasks matching the supplied status."),
]
AssigneeQuery = Annotated[
    int | None,
    Query(
        ge=1,
        description="Restrict results to tasks assigned to this user. Ignored for plain users.",
    ),
]
SearchQuery = Annotated[
    str | None,
    Query(
        max_length=255,
        description="Case-insensitive text matched against title and description.",
    ),
]
RangeStartQuery = Annotated[
    datetime | None,
    Query(description="Only tasks starting at or after this instant."),
]
RangeEndQuery = Annotated[
    datetime | None,
    Query(description="Only tasks ending at or before this instant."),
]

_ERROR_RESPONSES = {
    status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
}


def _map_task(task: Task) -> TaskRead:
    return TaskRead.model_validate(task)


@router.get(
    "",
    response_model=TaskListResponse,
    summary="List tasks with pagination and optional filtering",
)
async def list_tasks(
    caller: CurrentCallerDependency,
    service: TaskServiceDependency,
    status: StatusQuery = None,
    assigned_user_id: AssigneeQuery = None,
    search: SearchQuery = None,
    start_date: RangeStartQuery = None,
    end_date: RangeEndQuery = None,
    limit: LimitQuery = 50,
    offset: OffsetQuery = 0,
) -> TaskListResponse:
    date_range = None
    if start_date is not None or end_date is not None:
        date_range = DateRange(
            start_date=ensure_utc(start_date) if start_date is not None else None,
            end_date=ensure_utc(end_date) if end_date is not None else None,
        )
    task_filter = TaskFilter(
        caller=caller,
        status=status,
        assigned_user_id=assigned_user_id,
        search=search or None,
        date_range=date_range,
        limit=limit,
        offset=offset,
    )
    tasks, total = await service.list_tasks(task_filter)
    return TaskListResponse(
        items=[_map_task(task) for task in tasks],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{task_id}",
    response_model=TaskRead,
    summary="Retrieve a task by id",
    responses=_ERROR_RESPONSES,
)
async def get_task(
    task_id: int,
    caller: CurrentCallerDependency,
    service: TaskServiceDependency,
) -> TaskRead:
    return _map_task(await service.get_task(task_id, caller))


@router.post(
    "",
    response_model=TaskRead,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a new task for a user",
    responses=_ERROR_RESPONSES,
)
async def create_task(
    payload: TaskCreate,
    caller: SchedulerCallerDependency,
    service: TaskServiceDependency,
) -> TaskRead:
    return _map_task(await service.create_task(payload, caller))


@router.api_route(
    "/{task_id}",
    methods=["PUT", "PATCH"],
    response_model=TaskRead,
    summary="Update an existing task",
    responses=_ERROR_RESPONSES,
)
async def update_task(
    task_id: int,
    payload: TaskUpdate,
    caller: CurrentCallerDependency,
    service: TaskServiceDependency,
) -> TaskRead:
    """Plain users may only change the status of tasks assigned to them."""
    return _map_task(await service.update_task(task_id, payload, caller))


@router.put(
    "/{task_id}/reassign",
    response_model=TaskRead,
    summary="Move a task to another user",
    responses=_ERROR_RESPONSES,
)
async def reassign_task(
    task_id: int,
    payload: TaskReassign,
    caller: SchedulerCallerDependency,
    service: TaskServiceDependency,
) -> TaskRead:
    return _map_task(await service.reassign_task(task_id, payload, caller))


@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a task",
    responses=_ERROR_RESPONSES,
)
async def delete_task(
    task_id: int,
    caller: SchedulerCallerDependency,
    service: TaskServiceDependency,
) -> Response:
    await service.delete_task(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
