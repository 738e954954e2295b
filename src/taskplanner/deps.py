"""Reusable FastAPI dependencies."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Mapping
from typing import Annotated, Awaitable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import ValidationError
from sqlmodel.ext.asyncio.session import AsyncSession

from .core.config import Settings, get_settings
from .core.context import bind_caller_id
from .core.jobs import RQAvailabilityJobQueue
from .core.security import TokenType, decode_token
from .db.session import get_session
from .domain.types import CallerIdentity
from .models import UserRole
from .notifications import TaskNotificationService
from .schemas.auth import TokenPayload
from .services import TaskService

SettingsDependency = Annotated[Settings, Depends(get_settings)]

_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


class InvalidTokenError(ValueError):
    """Raised when a bearer token cannot be turned into a caller."""


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields a database session."""

    async for session in get_session():
        yield session


DatabaseSessionDependency = Annotated[AsyncSession, Depends(get_db_session)]


def _unauthorized(detail: str = "Could not validate credentials.") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden(detail: str = "Not enough permissions.") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def extract_bearer_token(headers: Mapping[str, str]) -> str | None:
    """Pull a bearer token out of the provided header mapping."""

    auth = headers.get("authorization") or headers.get("Authorization")
    if not auth:
        return None
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def resolve_caller(token: str, settings: Settings) -> CallerIdentity:
    """Decode ``token`` into the caller it asserts.

    The identity service is trusted: role and id come from the token without
    a user lookup.
    """

    try:
        payload = decode_token(
            token=token,
            secret=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        token_payload = TokenPayload.model_validate(payload)
    except (JWTError, ValidationError) as exc:
        raise InvalidTokenError("Could not validate credentials.") from exc

    if token_payload.type is not TokenType.ACCESS:
        raise InvalidTokenError("Invalid token type.")
    try:
        caller_id = int(token_payload.sub)
    except ValueError as exc:
        raise InvalidTokenError("Invalid token subject.") from exc
    return CallerIdentity(id=caller_id, role=token_payload.role)


async def get_current_caller(
    token: Annotated[str, Depends(_oauth2_scheme)],
    settings: SettingsDependency,
) -> CallerIdentity:
    try:
        caller = resolve_caller(token, settings)
    except InvalidTokenError as exc:
        raise _unauthorized(str(exc)) from exc
    bind_caller_id(caller.id)
    return caller


CurrentCallerDependency = Annotated[CallerIdentity, Depends(get_current_caller)]


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[CallerIdentity]]:
    """Return a dependency admitting only callers holding one of ``roles``."""

    allowed = frozenset(roles)

    async def _dependency(caller: CurrentCallerDependency) -> CallerIdentity:
        if caller.role not in allowed:
            raise _forbidden()
        return caller

    return _dependency


SchedulerCallerDependency = Annotated[
    CallerIdentity,
    Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
]


def get_task_service(
    request: Request,
    session: DatabaseSessionDependency,
    settings: SettingsDependency,
) -> TaskService:
    state = request.app.state
    return TaskService(
        session,
        job_queue=RQAvailabilityJobQueue(settings),
        notifier=TaskNotificationService(
            state.notification_registry,
            enabled=settings.notifications_enabled,
        ),
        locks=state.assignee_locks,
    )


TaskServiceDependency = Annotated[TaskService, Depends(get_task_service)]


__all__ = [
    "CurrentCallerDependency",
    "DatabaseSessionDependency",
    "InvalidTokenError",
    "SchedulerCallerDependency",
    "SettingsDependency",
    "TaskServiceDependency",
    "extract_bearer_token",
    "get_current_caller",
    "get_db_session",
    "get_task_service",
    "require_roles",
    "resolve_caller",
]
