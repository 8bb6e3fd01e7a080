"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .document_store import DocumentStore, Create, Update, Delete
from .memory_store import MemoryDocumentStore
from .redis_client import get_redis, close_redis

__all__ = [
    'DocumentStore', 'Create', 'Update', 'Delete',
    'MemoryDocumentStore', 'get_redis', 'close_redis',
]
