"""
In-memory document store.

Used by the test suite and for running the API without a database. An
optional per-operation latency turns every call into a real suspension point
so interleavings behave like they would against a remote store.
"""

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from washq.core.exceptions import NotFound, PersistenceError
from washq.core.logging import get_logger
from washq.core.metrics import record_store_operation
from washq.infrastructure.document_store import (
    COLLECTIONS, Create, Delete, DocumentStore, Update, WriteOp, new_id,
)

logger = get_logger(__name__)


class MemoryDocumentStore(DocumentStore):

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.available = True
        self._data: dict[str, dict[str, dict[str, Any]]] = {name: {} for name in COLLECTIONS}

    async def _io(self, operation: str, collection: str) -> None:
        if collection not in self._data:
            raise PersistenceError(operation, collection, "unknown collection")
        if self.latency:
            await asyncio.sleep(self.latency)
        else:
            await asyncio.sleep(0)
        if not self.available:
            record_store_operation(operation, ok=False)
            logger.error("store_unavailable", operation=operation, collection=collection)
            raise PersistenceError(operation, collection, "store unavailable")
        record_store_operation(operation, ok=True)

    async def list_all(self, collection: str) -> list[dict[str, Any]]:
        await self._io("list_all", collection)
        return [copy.deepcopy(r) for r in self._data[collection].values()]

    async def get_by_id(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        await self._io("get_by_id", collection)
        record = self._data[collection].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def create(self, collection: str, fields: dict[str, Any], record_id: Optional[str] = None) -> str:
        await self._io("create", collection)
        op = Create(collection, fields, record_id or new_id())
        self._apply(op, self._data)
        return op.id

    async def update(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        await self._io("update", collection)
        self._apply(Update(collection, record_id, fields), self._data)

    async def delete(self, collection: str, record_id: str) -> None:
        await self._io("delete", collection)
        self._data[collection].pop(record_id, None)

    async def query_equals(self, collection: str, field_name: str, value: Any) -> list[dict[str, Any]]:
        await self._io("query_equals", collection)
        return [
            copy.deepcopy(r) for r in self._data[collection].values()
            if r.get(field_name) == value
        ]

    async def batch_delete(self, collection: str, record_ids: Sequence[str]) -> None:
        await self.commit([Delete(collection, record_id) for record_id in record_ids])

    async def commit(self, writes: Sequence[WriteOp]) -> None:
        for op in writes:
            await self._io("commit", op.collection)
        # Stage on a copy so a failing write leaves nothing behind
        staged = copy.deepcopy(self._data)
        for op in writes:
            self._apply(op, staged)
        self._data = staged

    @staticmethod
    def _apply(op: WriteOp, data: dict[str, dict[str, dict[str, Any]]]) -> None:
        records = data[op.collection]
        if isinstance(op, Create):
            record = copy.deepcopy(op.fields)
            record["id"] = op.id
            if record.get("created_at") is None:
                record["created_at"] = datetime.now(timezone.utc)
            records[op.id] = record
        elif isinstance(op, Update):
            if op.id not in records:
                raise NotFound(op.collection, op.id)
            records[op.id].update(copy.deepcopy(op.fields))
        else:
            records.pop(op.id, None)
