"""
Redis lock strategy for multi-process deployments.
Implements LockStrategy using redis-py's Lock (SET NX PX + token release).

Circuit Breaker Pattern:
  On Redis failure the strategy falls back to an in-process lock.
  Serialization then only holds within one worker, but the document store
  is still re-read under the lock and the bookings table keeps its
  one-booking-per-user constraint, so the invariant holds at commit time.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.exceptions import RedisError

from washq.core.config import get_settings
from washq.core.exceptions import Unavailable
from washq.core.logging import get_logger
from washq.core.metrics import redis_connection_errors, redis_circuit_breaker_open
from washq.infrastructure.redis_client import get_redis
from washq.services.interfaces.lock import LockStrategy
from washq.services.interfaces.local_lock import LocalLockStrategy

logger = get_logger(__name__)


class RedisLockStrategy(LockStrategy):
    """
    Redis-based per-key locks.

    Use when:
    - Several API workers or hosts share one store
    - Bookings for the same machine can arrive at different workers
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout or get_settings().LOCK_TIMEOUT_SECONDS
        self._fallback = LocalLockStrategy()

    @staticmethod
    def busy_message(key: str) -> str:
        if key.startswith("user:"):
            return "Another change to your booking is still in progress. Please try again."
        return "This machine is busy right now. Please try again."

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        client = await get_redis()
        lock = None
        if client is not None:
            lock = client.lock(f"washq:lock:{key}", timeout=self.timeout, blocking_timeout=self.timeout)
            try:
                acquired = await lock.acquire()
            except RedisError as e:
                redis_connection_errors.inc()
                redis_circuit_breaker_open.set(1)
                logger.warning("redis_lock_unavailable", key=key, error=str(e))
                lock = None
            else:
                if not acquired:
                    logger.warning("redis_lock_timeout", key=key, timeout=self.timeout)
                    raise Unavailable(self.busy_message(key))
                redis_circuit_breaker_open.set(0)

        if lock is None:
            async with self._fallback.hold(key):
                yield
            return

        try:
            yield
        finally:
            try:
                await lock.release()
            except RedisError as e:
                # Lock expired under us; the store re-read already guarded the write
                logger.warning("redis_lock_release_failed", key=key, error=str(e))
