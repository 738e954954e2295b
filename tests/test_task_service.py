from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from taskplanner.domain.types import DateRange, TaskFilter
from taskplanner.errors import (
    InfrastructureError,
    NotFoundError,
    OperationError,
    OverlapError,
    PermissionDeniedError,
    ValidationError,
)
from taskplanner.models import Task, TaskStatus, User, ensure_utc
from taskplanner.notifications import TaskNotificationService
from taskplanner.schemas import TaskCreate, TaskReassign, TaskUpdate
from taskplanner.services import TaskService

from .conftest import FIXED_NOW, RecordingJobQueue, RecordingRegistry, at, caller_for

pytestmark = pytest.mark.asyncio

MakeTask = Callable[..., Awaitable[Task]]
MakeUser = Callable[..., Awaitable[User]]


def _create_request(
    assignee: User,
    start_hour: int = 9,
    end_hour: int = 17,
    *,
    title: str = "Stock count",
    description: str | None = None,
) -> TaskCreate:
    return TaskCreate(
        title=title,
        description=description,
        start_date=at(start_hour),
        end_date=at(end_hour),
        assigned_user_id=assignee.id,
    )


async def _stored(session: AsyncSession, task_id: int) -> Task:
    task = await session.get(Task, task_id, populate_existing=True)
    assert task is not None
    return task


async def test_create_task_persists_and_fires_side_effects(
    task_service: TaskService,
    manager: User,
    worker: User,
    job_queue: RecordingJobQueue,
    registry: RecordingRegistry,
) -> None:
    task = await task_service.create_task(
        _create_request(worker, title="  Stock count  ", description="East aisles"),
        caller_for(manager),
    )

    assert task.id is not None
    assert task.title == "Stock count"
    assert task.status is TaskStatus.IN_PROGRESS
    assert task.assigned_user_id == worker.id
    assert task.assigned_by_id == manager.id
    assert task.assigned_user is not None and task.assigned_user.id == worker.id
    assert task.assigned_by is not None and task.assigned_by.id == manager.id

    assert job_queue.enqueued == [worker.id]
    assert registry.events() == [(worker.id, "task:created")]
    _, _, payload = registry.sent[0]
    assert payload["message"] == 'New task "Stock count" has been assigned to you'
    assert payload["task"]["id"] == task.id
    assert payload["task"]["description"] == "East aisles"


async def test_overlapping_window_is_rejected(
    task_service: TaskService, manager: User, worker: User, make_task: MakeTask,
    job_queue: RecordingJobQueue, registry: RecordingRegistry,
) -> None:
    existing = await make_task(worker, at(9), at(17))

    with pytest.raises(OverlapError) as exc_info:
        await task_service.create_task(_create_request(worker, 16, 18), caller_for(manager))

    assert exc_info.value.status_code == 409
    assert exc_info.value.details == {
        "conflicting_task_ids": [existing.id],
        "user_id": worker.id,
    }
    assert job_queue.enqueued == []
    assert registry.sent == []


async def test_touching_boundary_is_a_conflict(
    task_service: TaskService, manager: User, worker: User, make_task: MakeTask
) -> None:
    # Windows are closed: ending at 17:00 blocks a task starting at 17:00.
    await make_task(worker, at(9), at(17))

    with pytest.raises(OverlapError):
        await task_service.create_task(_create_request(worker, 17, 19), caller_for(manager))


async def test_completed_task_frees_its_window(
    task_service: TaskService, manager: User, worker: User, make_task: MakeTask
) -> None:
    await make_task(worker, at(9), at(17), status=TaskStatus.COMPLETED)

    task = await task_service.create_task(_create_request(worker), caller_for(manager))

    assert task.assigned_user_id == worker.id


async def test_create_rejects_past_start(
    task_service: TaskService, manager: User, worker: User
) -> None:
    request = TaskCreate(
        title="Yesterday",
        start_date=at(7),
        end_date=at(9),
        assigned_user_id=worker.id,
    )
    with pytest.raises(ValidationError, match="Start date cannot be in the past."):
        await task_service.create_task(request, caller_for(manager))


async def test_create_for_unknown_or_inactive_user(
    task_service: TaskService, manager: User, make_user: MakeUser
) -> None:
    request = TaskCreate(title="Ghost", start_date=at(9), end_date=at(10), assigned_user_id=999)
    with pytest.raises(NotFoundError, match="User 999 not found."):
        await task_service.create_task(request, caller_for(manager))

    inactive = await make_user(is_active=False)
    with pytest.raises(ValidationError, match="inactive"):
        await task_service.create_task(_create_request(inactive), caller_for(manager))


async def test_assignee_completing_task_notifies_assigner(
    task_service: TaskService,
    session: AsyncSession,
    manager: User,
    worker: User,
    make_task: MakeTask,
    job_queue: RecordingJobQueue,
    registry: RecordingRegistry,
) -> None:
    task = await make_task(worker, at(9), at(17), title="Stock count", assigned_by=manager)

    updated = await task_service.update_task(
        task.id, TaskUpdate(status=TaskStatus.COMPLETED), caller_for(worker)
    )

    assert updated.status is TaskStatus.COMPLETED
    assert registry.events() == [(manager.id, "task:completed")]
    assert registry.sent[0][2]["message"] == 'Task "Stock count" has been completed by Wren Worker'
    assert job_queue.enqueued == [worker.id]

    # Completing an already completed task is not a transition.
    await task_service.update_task(task.id, TaskUpdate(status=TaskStatus.COMPLETED), caller_for(worker))
    assert len(registry.sent) == 1
    assert job_queue.enqueued == [worker.id]
    assert (await _stored(session, task.id)).status is TaskStatus.COMPLETED


async def test_user_cannot_update_other_fields_or_tasks(
    task_service: TaskService, worker: User, other_worker: User, make_task: MakeTask
) -> None:
    task = await make_task(worker, at(9), at(17))

    with pytest.raises(PermissionDeniedError, match="only update the status"):
        await task_service.update_task(task.id, TaskUpdate(title="Mine now"), caller_for(worker))
    with pytest.raises(PermissionDeniedError, match="assigned to you"):
        await task_service.update_task(
            task.id, TaskUpdate(status=TaskStatus.COMPLETED), caller_for(other_worker)
        )


async def test_update_moving_window_checks_overlap_excluding_itself(
    task_service: TaskService,
    session: AsyncSession,
    manager: User,
    worker: User,
    make_task: MakeTask,
    job_queue: RecordingJobQueue,
) -> None:
    task = await make_task(worker, at(9), at(11))
    blocker = await make_task(worker, at(14), at(15))

    moved = await task_service.update_task(task.id, TaskUpdate(end_date=at(12)), caller_for(manager))
    assert ensure_utc(moved.end_date) == at(12)
    assert job_queue.enqueued == [worker.id]

    with pytest.raises(OverlapError) as exc_info:
        await task_service.update_task(task.id, TaskUpdate(end_date=at(14, 30)), caller_for(manager))
    assert exc_info.value.conflicting_task_ids == [blocker.id]
    assert ensure_utc((await _stored(session, task.id)).end_date) == at(12)


async def test_update_rejects_inverted_window(
    task_service: TaskService, manager: User, worker: User, make_task: MakeTask
) -> None:
    task = await make_task(worker, at(9), at(11))

    with pytest.raises(ValidationError, match="Start date must be before end date."):
        await task_service.update_task(task.id, TaskUpdate(start_date=at(12)), caller_for(manager))


async def test_update_title_only_has_no_side_effects(
    task_service: TaskService,
    manager: User,
    worker: User,
    make_task: MakeTask,
    job_queue: RecordingJobQueue,
    registry: RecordingRegistry,
) -> None:
    task = await make_task(worker, at(9), at(11))

    updated = await task_service.update_task(task.id, TaskUpdate(title="Renamed"), caller_for(manager))

    assert updated.title == "Renamed"
    assert job_queue.enqueued == []
    assert registry.sent == []


async def test_reopening_completed_task_checks_overlap(
    task_service: TaskService, manager: User, worker: User, make_task: MakeTask
) -> None:
    done = await make_task(worker, at(9), at(11), status=TaskStatus.COMPLETED)
    await make_task(worker, at(10), at(12))

    with pytest.raises(OverlapError):
        await task_service.update_task(done.id, TaskUpdate(status=TaskStatus.IN_PROGRESS), caller_for(manager))


async def test_reopening_completed_task_recomputes_availability(
    task_service: TaskService,
    manager: User,
    worker: User,
    make_task: MakeTask,
    job_queue: RecordingJobQueue,
    registry: RecordingRegistry,
) -> None:
    done = await make_task(worker, at(9), at(11), status=TaskStatus.COMPLETED)

    reopened = await task_service.update_task(
        done.id, TaskUpdate(status=TaskStatus.IN_PROGRESS), caller_for(manager)
    )

    assert reopened.status is TaskStatus.IN_PROGRESS
    assert job_queue.enqueued == [worker.id]
    assert registry.sent == []


async def test_update_can_move_assignee(
    task_service: TaskService,
    manager: User,
    worker: User,
    other_worker: User,
    make_task: MakeTask,
    job_queue: RecordingJobQueue,
    registry: RecordingRegistry,
) -> None:
    task = await make_task(worker, at(9), at(11))

    updated = await task_service.update_task(
        task.id, TaskUpdate(assigned_user_id=other_worker.id), caller_for(manager)
    )

    assert updated.assigned_user_id == other_worker.id
    assert updated.assigned_by_id == manager.id
    assert job_queue.enqueued == [other_worker.id, worker.id]
    assert registry.events() == []


async def test_update_cannot_clear_assignee(
    task_service: TaskService, manager: User, worker: User, make_task: MakeTask
) -> None:
    task = await make_task(worker, at(9), at(11))

    with pytest.raises(ValidationError, match="keep an assignee"):
        await task_service.update_task(task.id, TaskUpdate(assigned_user_id=None), caller_for(manager))


async def test_update_missing_task(task_service: TaskService, manager: User) -> None:
    with pytest.raises(NotFoundError, match="Task 404 not found."):
        await task_service.update_task(404, TaskUpdate(title="Nope"), caller_for(manager))


async def test_reassign_into_conflict_keeps_original_assignee(
    task_service: TaskService,
    session: AsyncSession,
    manager: User,
    worker: User,
    other_worker: User,
    make_task: MakeTask,
    registry: RecordingRegistry,
) -> None:
    task = await make_task(worker, at(9), at(17))
    await make_task(other_worker, at(16), at(18))

    with pytest.raises(OverlapError):
        await task_service.reassign_task(
            task.id, TaskReassign(assigned_user_id=other_worker.id), caller_for(manager)
        )

    assert (await _stored(session, task.id)).assigned_user_id == worker.id
    assert registry.sent == []


async def test_reassign_moves_task_and_notifies_new_assignee(
    task_service: TaskService,
    session: AsyncSession,
    manager: User,
    worker: User,
    other_worker: User,
    make_task: MakeTask,
    job_queue: RecordingJobQueue,
    registry: RecordingRegistry,
) -> None:
    task = await make_task(worker, at(9), at(17), title="Stock count")

    moved = await task_service.reassign_task(
        task.id, TaskReassign(assigned_user_id=other_worker.id), caller_for(manager)
    )

    assert moved.assigned_user_id == other_worker.id
    assert moved.assigned_user is not None and moved.assigned_user.id == other_worker.id
    assert moved.assigned_by_id == manager.id
    assert (await _stored(session, task.id)).assigned_user_id == other_worker.id
    assert job_queue.enqueued == [other_worker.id, worker.id]
    assert registry.events() == [(other_worker.id, "task:reassigned")]
    assert registry.sent[0][2]["message"] == 'Task "Stock count" has been reassigned to you'


async def test_reassign_to_same_user_does_not_notify(
    task_service: TaskService,
    manager: User,
    worker: User,
    make_task: MakeTask,
    job_queue: RecordingJobQueue,
    registry: RecordingRegistry,
) -> None:
    task = await make_task(worker, at(9), at(17))

    await task_service.reassign_task(task.id, TaskReassign(assigned_user_id=worker.id), caller_for(manager))

    assert job_queue.enqueued == [worker.id]
    assert registry.sent == []


async def test_reassign_requires_target(
    task_service: TaskService, manager: User, worker: User, make_task: MakeTask
) -> None:
    task = await make_task(worker, at(9), at(17))

    with pytest.raises(ValidationError):
        await task_service.reassign_task(task.id, TaskReassign(), caller_for(manager))


async def test_delete_notifies_assignee_and_enqueues_recompute(
    task_service: TaskService,
    session: AsyncSession,
    manager: User,
    worker: User,
    make_task: MakeTask,
    job_queue: RecordingJobQueue,
    registry: RecordingRegistry,
) -> None:
    task = await make_task(worker, at(9), at(17), title="Stock count")

    await task_service.delete_task(task.id)

    assert await session.get(Task, task.id, populate_existing=True) is None
    assert registry.events() == [(worker.id, "task:deleted")]
    assert registry.sent[0][2]["message"] == 'Task "Stock count" assigned to you has been deleted'
    assert job_queue.enqueued == [worker.id]

    with pytest.raises(NotFoundError):
        await task_service.delete_task(task.id)


async def test_get_task_visibility(
    task_service: TaskService, manager: User, worker: User, other_worker: User, make_task: MakeTask
) -> None:
    task = await make_task(worker, at(9), at(17), assigned_by=manager)

    assert (await task_service.get_task(task.id, caller_for(worker))).id == task.id
    assert (await task_service.get_task(task.id, caller_for(manager))).assigned_by is not None
    with pytest.raises(PermissionDeniedError):
        await task_service.get_task(task.id, caller_for(other_worker))
    with pytest.raises(NotFoundError):
        await task_service.get_task(12345, caller_for(manager))


async def test_list_tasks_filters_and_scopes(
    task_service: TaskService, manager: User, worker: User, other_worker: User, make_task: MakeTask
) -> None:
    first = await make_task(worker, at(9), at(10), title="Count 100% of aisle")
    second = await make_task(worker, at(11), at(12), title="Restock", status=TaskStatus.COMPLETED)
    third = await make_task(other_worker, at(9), at(10), title="Count shelves")

    tasks, total = await task_service.list_tasks(TaskFilter(caller=caller_for(worker)))
    assert total == 2
    assert {task.id for task in tasks} == {first.id, second.id}

    tasks, total = await task_service.list_tasks(
        TaskFilter(caller=caller_for(worker), assigned_user_id=other_worker.id)
    )
    assert {task.id for task in tasks} == {first.id, second.id}

    tasks, total = await task_service.list_tasks(TaskFilter(caller=caller_for(manager), search="count"))
    assert {task.id for task in tasks} == {first.id, third.id}

    tasks, _ = await task_service.list_tasks(TaskFilter(caller=caller_for(manager), search="100%"))
    assert [task.id for task in tasks] == [first.id]

    tasks, _ = await task_service.list_tasks(
        TaskFilter(caller=caller_for(manager), status=TaskStatus.COMPLETED)
    )
    assert [task.id for task in tasks] == [second.id]

    tasks, _ = await task_service.list_tasks(
        TaskFilter(caller=caller_for(manager), date_range=DateRange(start_date=at(10, 30)))
    )
    assert [task.id for task in tasks] == [second.id]

    tasks, total = await task_service.list_tasks(TaskFilter(caller=caller_for(manager), limit=2, offset=0))
    assert total == 3
    assert len(tasks) == 2


async def test_side_effect_failures_do_not_fail_the_operation(
    session: AsyncSession, manager: User, worker: User, caplog: pytest.LogCaptureFixture
) -> None:
    service = TaskService(
        session,
        job_queue=RecordingJobQueue(fail=True),
        notifier=TaskNotificationService(RecordingRegistry(fail=True)),
        clock=lambda: FIXED_NOW,
    )

    with caplog.at_level("WARNING", logger="taskplanner.services.tasks"):
        task = await service.create_task(_create_request(worker), caller_for(manager))

    assert task.id is not None
    assert (await _stored(session, task.id)).title == "Stock count"
    messages = [record.getMessage() for record in caplog.records]
    assert f"Could not enqueue availability update for user {worker.id}" in messages
    assert f"Could not deliver notification for task {task.id}" in messages


async def test_disabled_notifications_are_skipped(
    session: AsyncSession, manager: User, worker: User
) -> None:
    registry = RecordingRegistry()
    service = TaskService(
        session,
        notifier=TaskNotificationService(registry, enabled=False),
        clock=lambda: FIXED_NOW,
    )

    await service.create_task(_create_request(worker), caller_for(manager))

    assert registry.sent == []


async def test_missing_row_after_commit_raises_operation_error(
    task_service: TaskService, manager: User, worker: User, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def _vanished(task_id: int) -> None:
        return None

    monkeypatch.setattr(task_service.repository, "get_with_relations", _vanished)

    with pytest.raises(OperationError):
        await task_service.create_task(_create_request(worker), caller_for(manager))


async def test_store_failure_is_not_reported_as_free(
    task_service: TaskService,
    session: AsyncSession,
    manager: User,
    worker: User,
    job_queue: RecordingJobQueue,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def _broken_execute(*args: object, **kwargs: object) -> None:
        raise OperationalError("SELECT tasks", {}, Exception("database is unreachable"))

    monkeypatch.setattr(session, "execute", _broken_execute)

    with pytest.raises(InfrastructureError) as exc_info:
        await task_service.create_task(_create_request(worker), caller_for(manager))

    assert exc_info.value.status_code == 503
    assert job_queue.enqueued == []


async def test_concurrent_creates_for_one_user_admit_exactly_one(
    session_factory: async_sessionmaker[AsyncSession],
    build_service: Callable[[AsyncSession], TaskService],
    manager: User,
    worker: User,
) -> None:
    async def _attempt(start_hour: int, end_hour: int) -> Task:
        async with session_factory() as db_session:
            service = build_service(db_session)
            return await service.create_task(
                _create_request(worker, start_hour, end_hour), caller_for(manager)
            )

    results = await asyncio.gather(_attempt(9, 12), _attempt(11, 14), return_exceptions=True)

    created = [result for result in results if isinstance(result, Task)]
    rejected = [result for result in results if isinstance(result, OverlapError)]
    assert len(created) == 1
    assert len(rejected) == 1

