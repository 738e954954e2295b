"""Health and readiness endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ...deps import DatabaseSessionDependency
from ...schemas.system import HealthCheckResponse

router = APIRouter(tags=["system"])

logger = logging.getLogger("taskplanner.api.health")


@router.get(
    "/healthz",
    response_model=HealthCheckResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": HealthCheckResponse}},
)
async def read_health(session: DatabaseSessionDependency) -> HealthCheckResponse | JSONResponse:
    """Report liveness together with task store reachability."""
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check could not reach the task store.", exc_info=True)
        payload = HealthCheckResponse(status="degraded", database="unavailable")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=payload.model_dump())
    return HealthCheckResponse(status="ok")
