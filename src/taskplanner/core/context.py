"""Request-scoped context shared by log records and background jobs."""

from __future__ import annotations

from contextvars import ContextVar, Token

REQUEST_ID_HEADER = "X-Request-ID"

_request_id_ctx_var: ContextVar[str] = ContextVar("request_id", default="-")
_caller_id_ctx_var: ContextVar[int | None] = ContextVar("caller_id", default=None)


def get_request_id() -> str:
    """Return the request identifier for the current execution context."""

    return _request_id_ctx_var.get()


def bind_request_id(request_id: str) -> Token[str]:
    return _request_id_ctx_var.set(request_id)


def reset_request_id(token: Token[str]) -> None:
    _request_id_ctx_var.reset(token)


def clear_request_id() -> None:
    _request_id_ctx_var.set("-")


def get_caller_id() -> int | None:
    """Return the authenticated caller bound to this context, if any."""

    return _caller_id_ctx_var.get()


def bind_caller_id(caller_id: int | None) -> Token[int | None]:
    """Bind the acting user so that log records can attribute mutations."""

    return _caller_id_ctx_var.set(caller_id)


def reset_caller_id(token: Token[int | None]) -> None:
    _caller_id_ctx_var.reset(token)


__all__ = [
    "REQUEST_ID_HEADER",
    "bind_caller_id",
    "bind_request_id",
    "clear_request_id",
    "get_caller_id",
    "get_request_id",
    "reset_caller_id",
    "reset_request_id",
]
