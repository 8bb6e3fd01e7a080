"""
Booking coordinator: book, start, cancel and complete washes.

CONCURRENCY STRATEGY: per-user lock, then per-machine lock
===========================================================

The one-booking-per-user rule and the queue counters are both
read-modify-write cycles, so every mutation runs under

  1. the user's lock (serializes one user's concurrent attempts), then
  2. the machine's lock (serializes everyone touching that machine)

Locks are always taken in that order; when several machines are involved
they are taken in sorted id order. Inside the locks the store is re-read and
all writes for the operation go into one `commit()` batch:

  book:     Create booking + Update machine + Update user.active_booking
  complete: Update machine + Delete each booking + clear each user pointer

Local state (registry view, active-booking cache) changes only after the
batch is confirmed. The active-booking cache only decides whether to look
the user up before queueing for locks; a rejection always comes from a
store read.

start_wash holds its locks across the start delay. A second start on the
same machine queues behind the first and then fails its status check, and
the delayed completion runs in its own task so an abandoned caller cannot
cut it short.
"""

import asyncio
import time
from contextlib import AsyncExitStack
from datetime import datetime, timezone
from typing import Optional

from washq.core.exceptions import (
    AlreadyBooked, NotFound, Unavailable, WashQError,
)
from washq.core.logging import get_logger
from washq.core.metrics import booking_latency, record_booking_attempt
from washq.core.permissions import require_admin
from washq.domain import machine_state
from washq.infrastructure.document_store import (
    BOOKINGS, MACHINES, USERS, Create, Delete, DocumentStore, Update, WriteOp, new_id,
)
from washq.schemas.booking import Booking, BookingOutcome
from washq.schemas.machine import Machine, MachineStatus
from washq.schemas.user import User
from washq.services.interfaces.lock import LockStrategy, machine_key, user_key
from washq.services.machine_registry import MachineRegistry, status_fields

logger = get_logger(__name__)


class BookingCoordinator:

    def __init__(
        self,
        store: DocumentStore,
        registry: MachineRegistry,
        locks: LockStrategy,
        start_delay: float = 2.0,
    ):
        self.store = store
        self.registry = registry
        self.locks = locks
        self.start_delay = start_delay
        # user_id -> machine_id, only ever filled from confirmed writes or reads
        self._active: dict[str, str] = {}
        self._pending: set[asyncio.Task] = set()

        registry.set_release_planner(self.plan_release)
        registry.add_listener(self._forget_released)

    # ------------------------------------------------------------------
    # Booking

    async def book(self, user_id: str, machine_id: str) -> BookingOutcome:
        """
        Book an available machine or join the queue of a busy one.

        Raises AlreadyBooked, NotFound, Unavailable (out of order) or
        PersistenceError. On any error nothing has changed.
        """
        start = time.perf_counter()
        try:
            outcome = await self._book(user_id, machine_id)
        except WashQError as e:
            record_booking_attempt(e.code)
            raise

        booking_latency.observe(time.perf_counter() - start)
        record_booking_attempt("joined_queue" if outcome.joined_queue else "booked")
        logger.info(
            "booking_created",
            booking_id=outcome.booking.id,
            user_id=user_id,
            machine_id=machine_id,
            status=outcome.machine.status,
            queue_count=outcome.machine.queue_count,
            joined_queue=outcome.joined_queue,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return outcome

    async def _book(self, user_id: str, machine_id: str) -> BookingOutcome:
        held = await self._confirmed_booking(user_id)
        if held is not None:
            logger.warning("booking_rejected", reason="already_booked", user_id=user_id, held=held)
            raise AlreadyBooked(held)

        async with self.locks.hold(user_key(user_id)):
            async with self.locks.hold(machine_key(machine_id)):
                existing = await self.store.query_equals(BOOKINGS, "user_id", user_id)
                if existing:
                    held = existing[0]["machine_id"]
                    self._active[user_id] = held
                    logger.warning("booking_rejected", reason="already_booked", user_id=user_id, held=held)
                    raise AlreadyBooked(held)

                machine = await self.registry.read(machine_id)
                joined_queue = machine.status != MachineStatus.AVAILABLE
                updated = machine_state.join_queue(machine)

                if await self.store.get_by_id(USERS, user_id) is None:
                    raise NotFound("User", user_id)

                now = datetime.now(timezone.utc)
                booking = Booking(
                    id=new_id(),
                    user_id=user_id,
                    machine_id=machine_id,
                    start_time=now,
                    created_at=now,
                )
                await self.store.commit([
                    Create(BOOKINGS, booking.model_dump(), booking.id),
                    Update(MACHINES, machine_id, status_fields(updated)),
                    Update(USERS, user_id, {"active_booking": machine_id}),
                ])

                self._active[user_id] = machine_id
                await self.registry.apply([updated])

        return BookingOutcome(
            booking=booking,
            machine=self.registry.view(updated),
            joined_queue=joined_queue,
        )

    async def _confirmed_booking(self, user_id: str) -> Optional[str]:
        """
        Reject early, without waiting for any lock, when the user is known to
        hold a booking. A cache entry is only a hint: another worker sharing
        the store may have cleared it, so the store has the last word.
        """
        if user_id not in self._active:
            return None
        records = await self.store.query_equals(BOOKINGS, "user_id", user_id)
        if not records:
            self._active.pop(user_id, None)
            return None
        self._active[user_id] = records[0]["machine_id"]
        return records[0]["machine_id"]

    # ------------------------------------------------------------------
    # Starting a wash

    async def start_wash(self, user_id: str, machine_id: str) -> Machine:
        """
        Move the caller's waiting machine to running after the start delay.

        The machine reports `starting` while the delay runs. Cancelling the
        awaiting caller does not cancel the transition.
        """
        task = asyncio.ensure_future(self._start_wash(user_id, machine_id))
        self._pending.add(task)
        task.add_done_callback(self._start_finished)
        return await asyncio.shield(task)

    async def _start_wash(self, user_id: str, machine_id: str) -> Machine:
        async with self.locks.hold(user_key(user_id)):
            async with self.locks.hold(machine_key(machine_id)):
                user = await self.store.get_by_id(USERS, user_id)
                if user is None:
                    raise NotFound("User", user_id)
                if user.get("active_booking") != machine_id:
                    raise Unavailable("You have no booking on this machine")

                machine = await self.registry.read(machine_id)
                updated = machine_state.start_running(machine)
                bookings = await self.store.query_equals(BOOKINGS, "user_id", user_id)

                await self.registry.mark_starting(machine_id, True)
                try:
                    await asyncio.sleep(self.start_delay)
                    now = datetime.now(timezone.utc)
                    writes: list[WriteOp] = [Update(MACHINES, machine_id, status_fields(updated))]
                    writes.extend(
                        Update(BOOKINGS, b["id"], {"wash_started_at": now})
                        for b in bookings if b["machine_id"] == machine_id
                    )
                    await self.store.commit(writes)
                except BaseException:
                    await self.registry.mark_starting(machine_id, False)
                    raise

                await self.registry.apply([updated])

        logger.info(
            "wash_started",
            user_id=user_id,
            machine_id=machine_id,
            time_remaining=updated.time_remaining,
            queue_count=updated.queue_count,
        )
        return self.registry.view(updated)

    def _start_finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.info("wash_start_failed", error=str(error), code=getattr(error, "code", None))

    async def drain(self) -> None:
        """Wait for in-flight start_wash transitions (shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Cancelling and completing

    async def clear_active_booking(self, user_id: str) -> bool:
        """
        Cancel the user's booking. Returns False when there was nothing to clear.

        A queued user leaving shrinks the machine's queue; a waiting machine
        whose queue empties becomes available. The user washing on a running
        machine leaves the queue count alone.
        """
        async with self.locks.hold(user_key(user_id)):
            # Only tells us which machine locks to take; re-read once they are held
            seen = await self.store.query_equals(BOOKINGS, "user_id", user_id)
            machine_ids = sorted({b["machine_id"] for b in seen})

            async with AsyncExitStack() as stack:
                for machine_id in machine_ids:
                    await stack.enter_async_context(self.locks.hold(machine_key(machine_id)))

                # A completion may have released these bookings while we waited,
                # and someone else may already hold the freed machine.
                bookings = [
                    b for b in await self.store.query_equals(BOOKINGS, "user_id", user_id)
                    if b["machine_id"] in machine_ids
                ]
                user = await self.store.get_by_id(USERS, user_id)
                pointer = user.get("active_booking") if user else None

                if not bookings and pointer is None:
                    self._active.pop(user_id, None)
                    return False

                writes: list[WriteOp] = [Delete(BOOKINGS, b["id"]) for b in bookings]
                if user is not None:
                    writes.append(Update(USERS, user_id, {"active_booking": None}))

                updated: dict[str, Machine] = {}
                for booking in bookings:
                    if booking.get("wash_started_at") is not None:
                        continue
                    machine = updated.get(booking["machine_id"])
                    if machine is None:
                        record = await self.store.get_by_id(MACHINES, booking["machine_id"])
                        if record is None:
                            continue
                        machine = Machine.model_validate(record)
                    updated[machine.id] = machine_state.leave_queue(machine)

                writes.extend(Update(MACHINES, m.id, status_fields(m)) for m in updated.values())
                await self.store.commit(writes)

                self._active.pop(user_id, None)
                await self.registry.apply(updated.values())

        logger.info(
            "booking_cleared",
            user_id=user_id,
            bookings=len(bookings),
            machines={m.id: m.status for m in updated.values()},
        )
        return True

    async def complete_to_available(self, machine_id: str, actor: Optional[User] = None) -> Machine:
        """
        Finish a machine's cycle: machine becomes available, every booking on
        it is released. Admin-only when called on behalf of a user; the wash
        clock calls it without an actor.
        """
        if actor is not None:
            require_admin(actor)
        async with self.locks.hold(machine_key(machine_id)):
            machine = await self.registry.transition(machine_id, MachineStatus.AVAILABLE)
        logger.info("machine_completed", machine_id=machine_id, actor=actor.id if actor else None)
        return machine

    async def plan_release(self, machine_id: str) -> list[WriteOp]:
        """Writes that delete every booking on a machine and clear the users' pointers."""
        bookings = await self.store.query_equals(BOOKINGS, "machine_id", machine_id)
        pointing = await self.store.query_equals(USERS, "active_booking", machine_id)

        writes: list[WriteOp] = [Delete(BOOKINGS, b["id"]) for b in bookings]
        writes.extend(Update(USERS, u["id"], {"active_booking": None}) for u in pointing)
        return writes

    async def _forget_released(self, machines: list[Machine]) -> None:
        live = {m.id for m in machines if m.status != MachineStatus.AVAILABLE}
        for user_id, machine_id in list(self._active.items()):
            if machine_id not in live:
                self._active.pop(user_id, None)

    # ------------------------------------------------------------------
    # Reads and maintenance

    async def active_booking(self, user_id: str) -> tuple[Optional[Booking], Optional[Machine]]:
        records = await self.store.query_equals(BOOKINGS, "user_id", user_id)
        if not records:
            self._active.pop(user_id, None)
            return None, None

        booking = Booking.model_validate(records[0])
        self._active[user_id] = booking.machine_id
        try:
            machine = await self.registry.get(booking.machine_id)
        except NotFound:
            machine = None
        return booking, machine

    async def purge_orphaned_bookings(self) -> int:
        """Delete bookings whose machine no longer exists and clear their users' pointers."""
        machines = {m["id"] for m in await self.store.list_all(MACHINES)}
        orphans = [b for b in await self.store.list_all(BOOKINGS) if b["machine_id"] not in machines]
        if orphans:
            await self.store.batch_delete(BOOKINGS, [b["id"] for b in orphans])

        stale = [
            u for u in await self.store.list_all(USERS)
            if u.get("active_booking") and u["active_booking"] not in machines
        ]
        for user in stale:
            await self.store.update(USERS, user["id"], {"active_booking": None})
            self._active.pop(user["id"], None)

        if orphans or stale:
            logger.warning("orphaned_bookings_purged", bookings=len(orphans), users=len(stale))
        return len(orphans)

    async def tick(self, minutes: int = 1) -> list[str]:
        """Advance every running machine's clock; returns ids that finished."""
        finished = []
        for machine in await self.registry.list():
            if machine.status != MachineStatus.RUNNING:
                continue
            async with self.locks.hold(machine_key(machine.id)):
                try:
                    current = await self.registry.read(machine.id)
                except NotFound:
                    continue
                if current.status != MachineStatus.RUNNING:
                    continue

                ticked = machine_state.tick(current, minutes)
                if ticked.time_remaining == 0:
                    await self.registry.transition(machine.id, MachineStatus.AVAILABLE)
                    finished.append(machine.id)
                else:
                    await self.store.commit([Update(MACHINES, machine.id, status_fields(ticked))])
                    await self.registry.apply([ticked])

        if finished:
            logger.info("wash_cycles_finished", machine_ids=finished)
        return finished
