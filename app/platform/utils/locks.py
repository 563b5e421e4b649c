import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class KeyedLock:
    """
    One asyncio.Lock per key, created on demand and dropped once nobody holds or waits for it.

    Used to serialize writers per project inside one process. Cross-process exclusion
    comes from the row lock the caller takes in the database.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


project_locks = KeyedLock()
