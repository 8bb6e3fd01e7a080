"""
In-process lock strategy backed by asyncio locks.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from washq.core.metrics import lock_wait_latency
from washq.services.interfaces.lock import LockStrategy


class LocalLockStrategy(LockStrategy):
    """
    One asyncio.Lock per key, dropped once nobody holds or waits for it.

    Use when:
    - A single API process serves all clients
    - Tests and local development
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        start = time.perf_counter()
        try:
            async with lock:
                lock_wait_latency.observe(time.perf_counter() - start)
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def tracked(self) -> int:
        """Number of keys currently held or waited on."""
        return len(self._locks)
