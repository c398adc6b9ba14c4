"""In-process mutual exclusion keyed by conversation id."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class ConversationLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits for it.

    Only serialises turns inside a single process; the versioned state write
    covers concurrent workers.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def holders(self, key: str) -> int:
        """Turns currently holding or waiting for ``key``."""
        return self._users.get(key, 0)
