"""In-process keyed locks.

Serializes operations that touch the same ``(repository_url, branch)`` pair
or the same base repository.  Ephemeral and process-local: there is no
cross-host coordination.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

from loguru import logger


class KeyedLock:
    """One ``asyncio.Lock`` per key, discarded once nobody holds or waits on it."""

    def __init__(self, name: str = "lock") -> None:
        self._name = name
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        if lock.locked():
            logger.debug("{}: waiting for {}", self._name, key)
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_held(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


def workspace_key(repository_url: str, branch: str | None) -> tuple[str, str | None]:
    return (repository_url, branch or None)
