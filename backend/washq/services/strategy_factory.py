"""
Lock strategy factory.
Configures which serialization strategy the booking core uses.
"""

from washq.core.config import get_settings
from washq.services.interfaces.lock import LockStrategy
from washq.services.interfaces.local_lock import LocalLockStrategy
from washq.services.lock_service import RedisLockStrategy


def get_lock_strategy() -> LockStrategy:
    """
    Get configured lock strategy.

    - local: LocalLockStrategy (single process, default)
    - redis: RedisLockStrategy (several workers)

    Selected with the LOCK_STRATEGY env var.
    """
    strategy = get_settings().LOCK_STRATEGY

    if strategy == 'redis':
        return RedisLockStrategy()
    return LocalLockStrategy()
