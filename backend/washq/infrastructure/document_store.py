"""
Document store interface.

The booking core treats persistence as a collection-keyed document store:
per-collection CRUD, equality queries, and an atomic multi-write `commit`.
Records are plain dicts that always carry `id` and `created_at`.

Implementations:
- SqlDocumentStore: SQLAlchemy async (PostgreSQL in deployment)
- MemoryDocumentStore: in-process dicts (tests, local demo)

Every backend failure must surface as PersistenceError so callers never see
driver-specific exceptions.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union

MACHINES = "machines"
BOOKINGS = "bookings"
USERS = "users"
FEEDBACK = "feedback"
IDENTITIES = "identities"

COLLECTIONS = (MACHINES, BOOKINGS, USERS, FEEDBACK, IDENTITIES)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Create:
    collection: str
    fields: dict[str, Any]
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class Update:
    collection: str
    id: str
    fields: dict[str, Any]


@dataclass(frozen=True)
class Delete:
    collection: str
    id: str


WriteOp = Union[Create, Update, Delete]


class DocumentStore(ABC):
    """Interface for the persisted source of truth."""

    @abstractmethod
    async def list_all(self, collection: str) -> list[dict[str, Any]]:
        """All records of a collection in creation order."""

    @abstractmethod
    async def get_by_id(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    async def create(self, collection: str, fields: dict[str, Any], record_id: Optional[str] = None) -> str:
        """Insert a record and return its id."""

    @abstractmethod
    async def update(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        """Patch an existing record. Raises NotFound if it does not exist."""

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> None:
        """Delete a record. Deleting a missing record is a no-op."""

    @abstractmethod
    async def query_equals(self, collection: str, field_name: str, value: Any) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def batch_delete(self, collection: str, record_ids: Sequence[str]) -> None:
        pass

    @abstractmethod
    async def commit(self, writes: Sequence[WriteOp]) -> None:
        """
        Apply every write or none of them.

        Updates of missing records fail the whole batch with NotFound.
        """

    async def close(self) -> None:
        pass
