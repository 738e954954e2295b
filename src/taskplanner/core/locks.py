"""Per-assignee serialization of schedule mutations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import AsyncExitStack, asynccontextmanager


class AssigneeLockRegistry:
    """Hand out one ``asyncio.Lock`` per assignee id.

    Mutations hold the locks of every assignee whose schedule they check from
    the overlap query until commit. Locks are always taken in ascending id
    order so two operations touching the same pair of users cannot deadlock.
    The registry is process-local; cross-process safety comes from the
    exclusion constraint on the ``tasks`` table. A lock is dropped once no
    holder or waiter references it.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._references: dict[int, int] = {}

    @asynccontextmanager
    async def _held(self, user_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._references[user_id] = self._references.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._references[user_id] -= 1
            if not self._references[user_id]:
                del self._references[user_id]
                del self._locks[user_id]

    @asynccontextmanager
    async def hold(self, user_ids: Iterable[int | None]) -> AsyncIterator[tuple[int, ...]]:
        """Acquire the locks for ``user_ids``; ``None`` entries are ignored."""

        ordered = tuple(sorted({user_id for user_id in user_ids if user_id is not None}))
        async with AsyncExitStack() as stack:
            for user_id in ordered:
                await stack.enter_async_context(self._held(user_id))
            yield ordered

    def is_locked(self, user_id: int) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["AssigneeLockRegistry"]
