# /app/utils/locks.py

import asyncio
from contextlib import asynccontextmanager
from typing import Dict

# The flow engine assumes one in-flight message per user. WhatsApp can deliver
# several webhooks for the same sender concurrently, so processing is
# serialized here with one asyncio.Lock per user id.


class UserLockRegistry:
    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: str):
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._waiters[user_id] = self._waiters.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[user_id] -= 1
            if self._waiters[user_id] == 0:
                # Nobody else queued on this user: drop the lock so the map stays small.
                del self._waiters[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)
