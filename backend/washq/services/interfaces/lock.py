"""
Lock strategy interface.
Allows swapping between in-process and cross-process serialization.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager


def machine_key(machine_id: str) -> str:
    return f"machine:{machine_id}"


def user_key(user_id: str) -> str:
    return f"user:{user_id}"


class LockStrategy(ABC):
    """
    Interface for per-key mutual exclusion.

    The booking core holds one lock per machine for every read-modify-write
    against that machine, and one lock per user around booking changes.
    Lock order is always user before machine.

    Implementations:
    - LocalLockStrategy: asyncio locks, single process
    - RedisLockStrategy: Redis locks shared by every API worker
    """

    @abstractmethod
    def hold(self, key: str) -> AsyncContextManager[None]:
        """
        Acquire the lock for `key` for the duration of the context.

        Args:
            key: lock name, built with machine_key() or user_key()
        """
        pass
