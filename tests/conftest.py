from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from itertools import count
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from taskplanner.core.config import Settings
from taskplanner.core.locks import AssigneeLockRegistry
from taskplanner.core.security import create_access_token
from taskplanner.deps import get_db_session
from taskplanner.domain.types import CallerIdentity
from taskplanner.main import create_app
from taskplanner.models import Task, TaskStatus, User, UserRole
from taskplanner.notifications import NotificationRegistry, TaskNotificationService
from taskplanner.services import TaskService

# Service tests run against a frozen clock; every window below lies after it.
FIXED_NOW = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, *, day: int = 1) -> datetime:
    """Return an aware UTC instant on January ``day``, 2030."""

    return datetime(2030, 1, day, hour, minute, tzinfo=timezone.utc)


def caller_for(user: User) -> CallerIdentity:
    assert user.id is not None
    return CallerIdentity(id=user.id, role=user.role)


class RecordingJobQueue:
    """Availability job sink that remembers which users were enqueued."""

    def __init__(self, *, fail: bool = False) -> None:
        self.enqueued: list[int] = []
        self.fail = fail

    async def enqueue(self, user_id: int) -> None:
        if self.fail:
            raise ConnectionError("redis is down")
        self.enqueued.append(user_id)


class RecordingRegistry(NotificationRegistry):
    """Registry double that records every message instead of sending it."""

    def __init__(self, *, fail: bool = False) -> None:
        super().__init__()
        self.sent: list[tuple[int, str, dict[str, Any]]] = []
        self.fail = fail

    async def notify_user(self, user_id: int, event: str, payload: dict[str, Any]) -> int:
        if self.fail:
            raise RuntimeError("socket layer exploded")
        self.sent.append((user_id, event, payload))
        return 1

    def events(self) -> list[tuple[int, str]]:
        return [(user_id, event) for user_id, event, _ in self.sent]


def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'taskplanner.db'}"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        environment="test",
        database_url=database_url(tmp_path),
        jwt_secret_key="test-secret",
        jobs_enabled=False,
    )


@pytest_asyncio.fixture()
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture()
def make_user(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Awaitable[User]]:
    counter = count(1)

    async def _factory(
        role: UserRole = UserRole.USER,
        *,
        full_name: str | None = None,
        is_active: bool = True,
    ) -> User:
        number = next(counter)
        account = User(
            email=f"user-{number}@example.com",
            full_name=full_name,
            role=role,
            is_active=is_active,
        )
        async with session_factory() as db_session:
            db_session.add(account)
            await db_session.commit()
            await db_session.refresh(account)
        return account

    return _factory


@pytest.fixture()
def make_task(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Awaitable[Task]]:
    async def _factory(
        assignee: User,
        start: datetime,
        end: datetime,
        *,
        title: str = "Existing task",
        status: TaskStatus = TaskStatus.IN_PROGRESS,
        assigned_by: User | None = None,
    ) -> Task:
        task = Task(
            title=title,
            start_date=start,
            end_date=end,
            status=status,
            assigned_user_id=assignee.id,
            assigned_by_id=assigned_by.id if assigned_by is not None else None,
        )
        async with session_factory() as db_session:
            db_session.add(task)
            await db_session.commit()
            await db_session.refresh(task)
        return task

    return _factory


@pytest_asyncio.fixture()
async def manager(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user(UserRole.MANAGER, full_name="Morgan Manager")


@pytest_asyncio.fixture()
async def worker(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user(UserRole.USER, full_name="Wren Worker")


@pytest_asyncio.fixture()
async def other_worker(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user(UserRole.USER, full_name="Olive Other")


@pytest.fixture()
def job_queue() -> RecordingJobQueue:
    return RecordingJobQueue()


@pytest.fixture()
def registry() -> RecordingRegistry:
    return RecordingRegistry()


@pytest.fixture()
def locks() -> AssigneeLockRegistry:
    return AssigneeLockRegistry()


@pytest.fixture()
def build_service(
    session_factory: async_sessionmaker[AsyncSession],
    job_queue: RecordingJobQueue,
    registry: RecordingRegistry,
    locks: AssigneeLockRegistry,
) -> Callable[[AsyncSession], TaskService]:
    def _build(db_session: AsyncSession) -> TaskService:
        return TaskService(
            db_session,
            job_queue=job_queue,
            notifier=TaskNotificationService(registry),
            locks=locks,
            clock=lambda: FIXED_NOW,
        )

    return _build


@pytest.fixture()
def task_service(session: AsyncSession, build_service: Callable[[AsyncSession], TaskService]) -> TaskService:
    return build_service(session)


@pytest.fixture()
def auth_headers(settings: Settings) -> Callable[[User], dict[str, str]]:
    def _headers(user: User) -> dict[str, str]:
        assert user.id is not None
        token = create_access_token(subject=user.id, role=user.role.value, settings=settings)
        return {"Authorization": f"Bearer {token.token}"}

    return _headers


@pytest.fixture()
def app(settings: Settings, session_factory: async_sessionmaker[AsyncSession]) -> FastAPI:
    application = create_app(settings)

    async def _override_db_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as db_session:
            yield db_session

    application.dependency_overrides[get_db_session] = _override_db_session
    return application


@pytest_asyncio.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
