"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .lock import LockStrategy, machine_key, user_key
from .local_lock import LocalLockStrategy

__all__ = ['LockStrategy', 'LocalLockStrategy', 'machine_key', 'user_key']
