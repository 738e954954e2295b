"""Entry point for the task planner FastAPI application."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routers import api_router, health_router, notifications_router
from .core.config import Settings, get_settings
from .core.jobs import close_job_connection
from .core.locks import AssigneeLockRegistry
from .core.logging import configure_logging
from .core.middleware import CorrelationIdMiddleware
from .db.session import init_db, reset_engine
from .deps import SettingsDependency
from .errors import register_exception_handlers
from .notifications import NotificationRegistry
from .schemas.system import MetadataResponse

logger = logging.getLogger("taskplanner.main")


def _normalise_prefix(raw_prefix: str) -> str:
    router_prefix = raw_prefix.strip()
    if router_prefix and not router_prefix.startswith("/"):
        router_prefix = f"/{router_prefix}"
    router_prefix = router_prefix.rstrip("/")
    return "" if router_prefix == "/" else router_prefix


def create_app(settings: Settings | None = None) -> FastAPI:
    """Instantiate and configure the FastAPI application."""

    explicit_settings = settings is not None
    settings = settings or get_settings()
    configure_logging(settings)
    router_prefix = _normalise_prefix(settings.api_prefix)
    openapi_url = "/openapi.json" if not router_prefix else f"{router_prefix}/openapi.json"

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Starting %s (%s)",
            settings.project_name,
            settings.environment,
            extra={"version": settings.version},
        )
        if settings.environment == "development":
            # Local runs without migrations still get the tables.
            await init_db()
        try:
            yield
        finally:
            await application.state.notification_registry.reset()
            close_job_connection()
            await reset_engine()

    application = FastAPI(
        title=settings.project_name,
        version=settings.version,
        summary="Task assignment and scheduling service.",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url=openapi_url,
        lifespan=lifespan,
    )

    application.state.settings = settings
    application.state.notification_registry = NotificationRegistry(
        max_connections=settings.websocket_max_connections,
    )
    application.state.assignee_locks = AssigneeLockRegistry()
    if explicit_settings:
        application.dependency_overrides[get_settings] = lambda: settings

    application.add_middleware(CorrelationIdMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    application.include_router(api_router, prefix=router_prefix)
    application.include_router(health_router)
    application.include_router(notifications_router)

    @application.get(
        f"{router_prefix}/metadata",
        response_model=MetadataResponse,
        summary="Service metadata",
        tags=["system"],
    )
    async def read_api_metadata(settings: SettingsDependency) -> MetadataResponse:
        """Expose minimal service metadata for API clients."""

        return MetadataResponse(
            name=settings.project_name,
            environment=settings.environment,
            version=settings.version,
            api_prefix=settings.api_prefix,
        )

    register_exception_handlers(application)
    return application


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""

    settings = get_settings()
    uvicorn.run(
        "taskplanner.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.reload,
        log_config=None,
    )


__all__ = ["create_app", "run"]
