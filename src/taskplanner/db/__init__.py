"""Database engine and session helpers."""

from __future__ import annotations

from .session import get_engine, get_session, get_session_factory, init_db, reset_engine

__all__ = ["get_engine", "get_session", "get_session_factory", "init_db", "reset_engine"]
