"""Application middleware implementations."""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .context import REQUEST_ID_HEADER, bind_request_id, reset_request_id

logger = logging.getLogger("taskplanner.core.middleware")

_MAX_REQUEST_ID_LENGTH = 128


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind a correlation identifier per request and log its outcome."""

    def __init__(self, app, header_name: str = REQUEST_ID_HEADER):  # type: ignore[override]
        super().__init__(app)
        self._header_name = header_name

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = self._accept_request_id(request.headers.get(self._header_name))
        token = bind_request_id(request_id)
        request.state.request_id = request_id
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.info(
                "%s %s -> %s",
                request.method,
                request.url.path,
                response.status_code,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
            )
        finally:
            reset_request_id(token)
        response.headers.setdefault(self._header_name, request_id)
        return response

    @staticmethod
    def _accept_request_id(raw: str | None) -> str:
        # Client supplied ids end up in every log line; keep them short and printable.
        if raw:
            candidate = raw.strip()
            if 0 < len(candidate) <= _MAX_REQUEST_ID_LENGTH and candidate.isprintable():
                return candidate
        return str(uuid.uuid4())


__all__ = ["CorrelationIdMiddleware"]
