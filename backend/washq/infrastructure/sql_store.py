"""
SQLAlchemy-backed document store.

Each collection maps to one ORM model. Every public call runs in its own
transaction; `commit()` runs its whole batch in a single transaction and
flushes after each write so constraint violations surface in write order.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from washq.core.exceptions import AlreadyBooked, NotFound, PersistenceError
from washq.core.logging import get_logger
from washq.core.metrics import record_store_operation
from washq.db.base import Base
from washq.db.session import create_session_factory, session_scope
from washq.infrastructure.document_store import (
    BOOKINGS, FEEDBACK, IDENTITIES, MACHINES, USERS,
    Create, Delete, DocumentStore, Update, WriteOp, new_id,
)
from washq.models import Booking, Feedback, Identity, Machine, User

logger = get_logger(__name__)

MODELS: dict[str, type[Base]] = {
    MACHINES: Machine,
    BOOKINGS: Booking,
    USERS: User,
    FEEDBACK: Feedback,
    IDENTITIES: Identity,
}


ONE_BOOKING_CONSTRAINT = "uq_one_booking_per_user"


def _is_double_booking(error: IntegrityError) -> bool:
    # PostgreSQL names the constraint, SQLite names the column
    message = str(error.orig)
    return ONE_BOOKING_CONSTRAINT in message or "bookings.user_id" in message


def _to_record(obj: Base) -> dict[str, Any]:
    return {attr.key: getattr(obj, attr.key) for attr in obj.__mapper__.column_attrs}


class SqlDocumentStore(DocumentStore):

    def __init__(self, engine: AsyncEngine, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.engine = engine
        self.session_factory = session_factory or create_session_factory(engine)

    async def create_schema(self) -> None:
        """Create tables directly (tests, local demo). Deployments use Alembic."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError("create_schema", "*", str(e))

    def _model(self, collection: str) -> type[Base]:
        try:
            return MODELS[collection]
        except KeyError:
            raise PersistenceError("resolve", collection, "unknown collection")

    async def _run(self, operation: str, collection: str, fn):
        try:
            async with session_scope(self.session_factory) as session:
                result = await fn(session)
        except IntegrityError as e:
            record_store_operation(operation, ok=False)
            if _is_double_booking(e):
                logger.warning("store_rejected_double_booking", operation=operation, collection=collection)
                raise AlreadyBooked()
            logger.error("store_operation_failed", operation=operation, collection=collection, error=str(e))
            raise PersistenceError(operation, collection, str(e))
        except (SQLAlchemyError, OSError) as e:
            record_store_operation(operation, ok=False)
            logger.error("store_operation_failed", operation=operation, collection=collection, error=str(e))
            raise PersistenceError(operation, collection, str(e))
        record_store_operation(operation, ok=True)
        return result

    async def list_all(self, collection: str) -> list[dict[str, Any]]:
        model = self._model(collection)

        async def fn(session: AsyncSession):
            result = await session.execute(select(model).order_by(model.created_at, model.id))
            return [_to_record(obj) for obj in result.scalars().all()]

        return await self._run("list_all", collection, fn)

    async def get_by_id(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        model = self._model(collection)

        async def fn(session: AsyncSession):
            obj = await session.get(model, record_id)
            return _to_record(obj) if obj is not None else None

        return await self._run("get_by_id", collection, fn)

    async def create(self, collection: str, fields: dict[str, Any], record_id: Optional[str] = None) -> str:
        op = Create(collection, fields, record_id or new_id())
        await self._run("create", collection, lambda session: self._apply(session, op))
        return op.id

    async def update(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        op = Update(collection, record_id, fields)
        await self._run("update", collection, lambda session: self._apply(session, op))

    async def delete(self, collection: str, record_id: str) -> None:
        op = Delete(collection, record_id)
        await self._run("delete", collection, lambda session: self._apply(session, op))

    async def query_equals(self, collection: str, field_name: str, value: Any) -> list[dict[str, Any]]:
        model = self._model(collection)
        column = getattr(model, field_name, None)
        if column is None:
            raise PersistenceError("query_equals", collection, f"unknown field {field_name}")

        async def fn(session: AsyncSession):
            result = await session.execute(
                select(model).where(column == value).order_by(model.created_at, model.id)
            )
            return [_to_record(obj) for obj in result.scalars().all()]

        return await self._run("query_equals", collection, fn)

    async def batch_delete(self, collection: str, record_ids: Sequence[str]) -> None:
        if not record_ids:
            return
        model = self._model(collection)

        async def fn(session: AsyncSession):
            await session.execute(delete(model).where(model.id.in_(list(record_ids))))

        await self._run("batch_delete", collection, fn)

    async def commit(self, writes: Sequence[WriteOp]) -> None:
        if not writes:
            return

        async def fn(session: AsyncSession):
            for op in writes:
                await self._apply(session, op)

        await self._run("commit", ",".join(sorted({op.collection for op in writes})), fn)

    async def close(self) -> None:
        await self.engine.dispose()

    async def _apply(self, session: AsyncSession, op: WriteOp) -> None:
        model = self._model(op.collection)
        if isinstance(op, Create):
            fields = {k: v for k, v in op.fields.items() if k != "id"}
            if fields.get("created_at") is None:
                fields["created_at"] = datetime.now(timezone.utc)
            session.add(model(id=op.id, **fields))
        elif isinstance(op, Update):
            obj = await session.get(model, op.id)
            if obj is None:
                raise NotFound(op.collection, op.id)
            for key, value in op.fields.items():
                setattr(obj, key, value)
        else:
            obj = await session.get(model, op.id)
            if obj is not None:
                await session.delete(obj)
        await session.flush()
