"""
Machine registry: the in-memory view of every machine, reconciled with the
document store.

CONSISTENCY STRATEGY: store first, then local
==============================================

Every mutation is a read-modify-write against the store while holding the
machine's lock:

  1. Read the machine record from the store (not from the local view)
  2. Compute the new state with the pure transitions in domain.machine_state
  3. Commit all writes (machine + any booking release) in one batch
  4. Only after the store confirms, apply the new state locally and run one
     update cycle (listeners receive the full ordered machine list)

A failed commit raises PersistenceError and leaves the local view untouched,
so there is never speculative state to roll back.

Reads (`list`, `get`) also reconcile: whenever the store disagrees with the
local view (another worker or device changed something) the local view is
replaced and an update cycle runs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional

from washq.core.exceptions import NotFound, PersistenceError, ValidationError
from washq.core.logging import get_logger
from washq.core.metrics import machine_transitions
from washq.core.permissions import require_admin
from washq.domain.machine_state import apply_status
from washq.infrastructure.document_store import (
    MACHINES, Create, Delete, DocumentStore, Update, WriteOp, new_id,
)
from washq.schemas.machine import Machine, MachineStatus
from washq.schemas.user import User
from washq.services.interfaces.lock import LockStrategy, machine_key

logger = get_logger(__name__)

Listener = Callable[[list[Machine]], Awaitable[None]]
ReleasePlanner = Callable[[str], Awaitable[list[WriteOp]]]


def status_fields(machine: Machine) -> dict:
    return {
        "status": machine.status,
        "queue_count": machine.queue_count,
        "time_remaining": machine.time_remaining,
    }


class MachineRegistry:

    def __init__(self, store: DocumentStore, locks: LockStrategy):
        self.store = store
        self.locks = locks
        self._machines: dict[str, Machine] = {}
        self._starting: set[str] = set()
        self._listeners: list[Listener] = []
        self._release_planner: Optional[ReleasePlanner] = None

    # ------------------------------------------------------------------
    # Wiring

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def set_release_planner(self, planner: ReleasePlanner) -> None:
        """Set the callback that returns the writes releasing a machine's bookings."""
        self._release_planner = planner

    # ------------------------------------------------------------------
    # Reads

    def snapshot(self) -> list[Machine]:
        """Local view in creation order, without touching the store."""
        return [self.view(m) for m in self._machines.values()]

    def view(self, machine: Machine) -> Machine:
        return machine.model_copy(update={"starting": machine.id in self._starting})

    async def load(self) -> list[Machine]:
        """Replace the local view with the store's. Raises PersistenceError."""
        records = await self.store.list_all(MACHINES)
        machines = {r["id"]: Machine.model_validate(r) for r in records}
        if machines != self._machines:
            self._machines = machines
            await self._emit()
        return self.snapshot()

    async def list(self) -> list[Machine]:
        """All machines in creation order; empty if the store is unreachable."""
        try:
            return await self.load()
        except PersistenceError as e:
            logger.warning("machine_list_degraded", error=e.error)
            return []

    async def read(self, machine_id: str) -> Machine:
        """Fresh store read, reconciled into the local view."""
        record = await self.store.get_by_id(MACHINES, machine_id)
        if record is None:
            if self._machines.pop(machine_id, None) is not None:
                await self._emit()
            raise NotFound("Machine", machine_id)
        machine = Machine.model_validate(record)
        if self._machines.get(machine_id) != machine:
            self._machines[machine_id] = machine
            await self._emit()
        return machine

    async def get(self, machine_id: str) -> Machine:
        return self.view(await self.read(machine_id))

    async def fetch_machine_details(self, machine_id: str) -> Machine:
        """Machine detail view for a scanned or linked machine id."""
        return await self.get(machine_id)

    # ------------------------------------------------------------------
    # Admin mutations

    async def create(self, name: str, actor: Optional[User]) -> Machine:
        require_admin(actor)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter a machine name")

        machine = Machine(
            id=new_id(),
            name=name,
            status=MachineStatus.AVAILABLE,
            created_at=datetime.now(timezone.utc),
        )
        await self.store.commit([Create(MACHINES, machine.to_record(), machine.id)])
        await self.apply([machine])
        logger.info("machine_created", machine_id=machine.id, name=machine.name, actor=actor.id)
        return self.view(machine)

    async def set_status(self, machine_id: str, status: MachineStatus | str, actor: Optional[User]) -> Machine:
        require_admin(actor)
        async with self.locks.hold(machine_key(machine_id)):
            return await self.transition(machine_id, status)

    async def remove(self, machine_id: str, actor: Optional[User]) -> bool:
        """Delete a machine and release its bookings. Returns False if already gone."""
        require_admin(actor)
        async with self.locks.hold(machine_key(machine_id)):
            record = await self.store.get_by_id(MACHINES, machine_id)
            writes = await self._plan_release(machine_id)
            if record is not None:
                writes.insert(0, Delete(MACHINES, machine_id))
            if writes:
                await self.store.commit(writes)
            existed = self._machines.pop(machine_id, None) is not None
            self._starting.discard(machine_id)
            if existed or record is not None:
                await self._emit()

        logger.info(
            "machine_removed",
            machine_id=machine_id,
            existed=record is not None,
            released_writes=len(writes),
            actor=actor.id,
        )
        return record is not None

    # ------------------------------------------------------------------
    # Used by the booking coordinator (caller holds the machine lock)

    async def transition(self, machine_id: str, status: MachineStatus | str) -> Machine:
        """
        Move a machine to `status`, keeping auxiliary fields consistent.

        Entering `available` releases every booking on the machine in the
        same batch. Caller must hold the machine lock.
        """
        current = await self.read(machine_id)
        updated = apply_status(current, status)

        writes: list[WriteOp] = [Update(MACHINES, machine_id, status_fields(updated))]
        if updated.status == MachineStatus.AVAILABLE:
            writes.extend(await self._plan_release(machine_id))

        await self.store.commit(writes)
        await self.apply([updated])
        machine_transitions.labels(status=updated.status).inc()
        logger.info(
            "machine_status_changed",
            machine_id=machine_id,
            from_status=current.status,
            to_status=updated.status,
            released_writes=len(writes) - 1,
        )
        return self.view(updated)

    async def mark_starting(self, machine_id: str, starting: bool) -> None:
        if starting:
            self._starting.add(machine_id)
        else:
            self._starting.discard(machine_id)
        await self._emit()

    async def apply(self, machines: Iterable[Machine]) -> None:
        """Apply store-confirmed state locally and run one update cycle."""
        for machine in machines:
            self._machines[machine.id] = machine.model_copy(update={"starting": False})
            self._starting.discard(machine.id)
        await self._emit()

    # ------------------------------------------------------------------

    async def _plan_release(self, machine_id: str) -> list[WriteOp]:
        if self._release_planner is None:
            return []
        return await self._release_planner(machine_id)

    async def _emit(self) -> None:
        machines = self.snapshot()
        for listener in list(self._listeners):
            try:
                await listener(machines)
            except Exception:
                # The mutation is already committed; a failing observer
                # must not turn it into an error for the caller.
                logger.exception("machine_listener_failed", listener=getattr(listener, "__qualname__", repr(listener)))
