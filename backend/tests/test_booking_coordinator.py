"""
Tests for the booking coordinator: the booking scenarios, start/cancel/complete
flows, and the invariants under concurrent callers.
"""

import asyncio

import pytest
import pytest_asyncio

from washq.core.exceptions import AlreadyBooked, Forbidden, NotFound, PersistenceError, Unavailable
from washq.domain.machine_state import is_consistent
from washq.infrastructure.document_store import BOOKINGS, MACHINES, USERS
from washq.infrastructure.memory_store import MemoryDocumentStore
from washq.schemas.machine import Machine
from washq.services.app_state import WashQ
from washq.services.interfaces.local_lock import LocalLockStrategy

from conftest import seed_machine, seed_user


async def machine(store, machine_id: str) -> Machine:
    return Machine.model_validate(await store.get_by_id(MACHINES, machine_id))


async def pointer(store, user_id: str):
    return (await store.get_by_id(USERS, user_id))["active_booking"]


@pytest.mark.asyncio
async def test_book_available_machine(washq, store, machines):
    """A free machine becomes waiting with a queue of one."""
    await seed_user(store, "u1")

    outcome = await washq.coordinator.book("u1", "m1")

    assert outcome.joined_queue is False
    m1 = await machine(store, "m1")
    assert m1.status == "waiting"
    assert m1.queue_count == 1
    assert await pointer(store, "u1") == "m1"
    assert len(await store.query_equals(BOOKINGS, "user_id", "u1")) == 1


@pytest.mark.asyncio
async def test_second_user_joins_queue_and_first_cannot_rebook(washq, store, machines):
    for uid in ("u1", "u2"):
        await seed_user(store, uid)
    await washq.coordinator.book("u1", "m1")

    await washq.coordinator.book("u2", "m1")
    assert (await machine(store, "m1")).queue_count == 2

    with pytest.raises(AlreadyBooked):
        await washq.coordinator.book("u1", "m2")
    assert await pointer(store, "u1") == "m1"
    assert (await machine(store, "m2")).queue_count is None


@pytest.mark.asyncio
async def test_join_running_machine(washq, store, machines):
    """Joining a running machine bumps the queue and leaves status alone."""
    await seed_user(store, "u3")

    outcome = await washq.coordinator.book("u3", "m2")

    assert outcome.joined_queue is True
    m2 = await machine(store, "m2")
    assert m2.status == "running"
    assert m2.time_remaining == 15
    assert m2.queue_count == 1


@pytest.mark.asyncio
async def test_out_of_order_rejected(washq, store, machines):
    await seed_user(store, "u4")

    with pytest.raises(Unavailable):
        await washq.coordinator.book("u4", "m5")

    assert await store.query_equals(BOOKINGS, "user_id", "u4") == []
    assert await pointer(store, "u4") is None


@pytest.mark.asyncio
async def test_unknown_machine(washq, store):
    await seed_user(store, "u1")
    with pytest.raises(NotFound):
        await washq.coordinator.book("u1", "ghost")


@pytest.mark.asyncio
async def test_start_wash_with_concurrent_booking(washq, store, machines):
    """A booking issued while the start is pending lands after it, consistently."""
    for uid in ("u1", "u5"):
        await seed_user(store, uid)
    await washq.coordinator.book("u1", "m1")

    start = asyncio.create_task(washq.coordinator.start_wash("u1", "m1"))
    await asyncio.sleep(0.01)
    assert {m.id: m for m in washq.registry.snapshot()}["m1"].starting is True

    outcome, started = await asyncio.gather(washq.coordinator.book("u5", "m1"), start)

    assert started.status == "running"
    assert started.time_remaining == 30
    m1 = await machine(store, "m1")
    assert m1.status == "running"
    assert m1.time_remaining == 30
    assert m1.queue_count == 1
    assert outcome.machine.queue_count == 1
    assert is_consistent(m1)


@pytest.mark.asyncio
async def test_start_wash_requires_waiting_machine(washq, store, machines):
    await seed_user(store, "u1")
    await washq.coordinator.book("u1", "m2")

    with pytest.raises(Unavailable):
        await washq.coordinator.start_wash("u1", "m2")
    assert {m.id: m for m in washq.registry.snapshot()}["m2"].starting is False


@pytest.mark.asyncio
async def test_start_wash_completes_when_caller_gives_up(washq, store, machines):
    """Cancelling the caller does not cancel the transition."""
    await seed_user(store, "u1")
    await washq.coordinator.book("u1", "m1")

    caller = asyncio.create_task(washq.coordinator.start_wash("u1", "m1"))
    await asyncio.sleep(0.01)
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    await washq.coordinator.drain()
    assert (await machine(store, "m1")).status == "running"


@pytest.mark.asyncio
async def test_clear_last_booking_frees_machine(washq, store, machines):
    await seed_user(store, "u1")
    await washq.coordinator.book("u1", "m1")

    assert await washq.coordinator.clear_active_booking("u1") is True

    m1 = await machine(store, "m1")
    assert m1.status == "available"
    assert m1.queue_count is None
    assert await pointer(store, "u1") is None
    assert await washq.coordinator.clear_active_booking("u1") is False


@pytest.mark.asyncio
async def test_clear_shrinks_queue(washq, store, machines):
    for uid in ("u1", "u2"):
        await seed_user(store, uid)
    await washq.coordinator.book("u1", "m1")
    await washq.coordinator.book("u2", "m1")

    await washq.coordinator.clear_active_booking("u2")

    m1 = await machine(store, "m1")
    assert m1.status == "waiting"
    assert m1.queue_count == 1


@pytest.mark.asyncio
async def test_washer_clearing_keeps_queue_count(washq, store, machines):
    """The user whose wash is running is not part of the queue count."""
    for uid in ("u1", "u2"):
        await seed_user(store, uid)
    await washq.coordinator.book("u1", "m1")
    await washq.coordinator.start_wash("u1", "m1")
    await washq.coordinator.book("u2", "m1")

    await washq.coordinator.clear_active_booking("u1")

    m1 = await machine(store, "m1")
    assert m1.status == "running"
    assert m1.queue_count == 1


@pytest.mark.asyncio
async def test_complete_to_available_releases_everyone(washq, store, machines):
    for uid in ("u1", "u2"):
        await seed_user(store, uid)
    await washq.coordinator.book("u1", "m2")
    await washq.coordinator.book("u2", "m2")

    result = await washq.coordinator.complete_to_available("m2")

    assert result.status == "available"
    assert result.queue_count is None
    assert result.time_remaining is None
    assert await store.query_equals(BOOKINGS, "machine_id", "m2") == []
    assert await pointer(store, "u1") is None
    assert await pointer(store, "u2") is None

    # Released users can book again right away
    await washq.coordinator.book("u1", "m1")


@pytest.mark.asyncio
async def test_complete_requires_admin_when_actor_given(washq, store, machines):
    user = await seed_user(store, "u1")
    with pytest.raises(Forbidden):
        await washq.coordinator.complete_to_available("m2", actor=user)


@pytest.mark.asyncio
async def test_failed_commit_changes_nothing(washq, store, machines, monkeypatch):
    """A rejected commit leaves store and local view untouched."""
    await seed_user(store, "u1")
    await washq.registry.list()
    before = washq.registry.snapshot()

    async def broken_commit(writes):
        raise PersistenceError("commit", "bookings", "connection reset")

    monkeypatch.setattr(store, "commit", broken_commit)
    with pytest.raises(PersistenceError):
        await washq.coordinator.book("u1", "m1")
    monkeypatch.undo()

    assert washq.registry.snapshot() == before
    assert (await machine(store, "m1")).status == "available"
    assert await pointer(store, "u1") is None

    # Nothing cached either: the retry goes through
    await washq.coordinator.book("u1", "m1")


@pytest.mark.asyncio
async def test_active_booking(washq, store, machines):
    await seed_user(store, "u1")
    assert await washq.coordinator.active_booking("u1") == (None, None)

    await washq.coordinator.book("u1", "m1")
    booking, m1 = await washq.coordinator.active_booking("u1")
    assert booking.machine_id == "m1"
    assert m1.status == "waiting"


@pytest.mark.asyncio
async def test_purge_orphaned_bookings(washq, store, machines):
    await seed_user(store, "u1")
    await washq.coordinator.book("u1", "m1")
    # Machine vanishes behind the coordinator's back
    await store.delete(MACHINES, "m1")

    purged = await washq.coordinator.purge_orphaned_bookings()

    assert purged == 1
    assert await store.query_equals(BOOKINGS, "user_id", "u1") == []
    assert await pointer(store, "u1") is None


@pytest.mark.asyncio
async def test_tick_counts_down_and_completes(washq, store):
    await seed_machine(store, "m1", status="running", time_remaining=2)
    await seed_user(store, "u1")
    await washq.coordinator.book("u1", "m1")

    assert await washq.coordinator.tick() == []
    assert (await machine(store, "m1")).time_remaining == 1

    assert await washq.coordinator.tick() == ["m1"]
    m1 = await machine(store, "m1")
    assert m1.status == "available"
    assert await pointer(store, "u1") is None


@pytest.mark.asyncio
async def test_many_users_one_machine_with_store_latency(test_settings):
    """Interleaved bookings never lose a queue increment or double-book a user."""
    store = MemoryDocumentStore(latency=0.001)
    washq = WashQ(store, locks=LocalLockStrategy(), settings=test_settings, use_cache=False)
    await seed_machine(store, "m1")
    await seed_machine(store, "m2")
    users = [f"u{i}" for i in range(20)]
    for uid in users:
        await seed_user(store, uid)

    attempts = [washq.coordinator.book(uid, "m1") for uid in users]
    attempts += [washq.coordinator.book(uid, "m2") for uid in users]
    results = await asyncio.gather(*attempts, return_exceptions=True)

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == len(users)
    assert all(isinstance(f, AlreadyBooked) for f in failures)

    bookings = await store.list_all(BOOKINGS)
    assert len(bookings) == len(users)
    assert len({b["user_id"] for b in bookings}) == len(users)

    for machine_id in ("m1", "m2"):
        m = await machine(store, machine_id)
        on_machine = [b for b in bookings if b["machine_id"] == machine_id]
        assert is_consistent(m)
        assert (m.queue_count or 0) == len(on_machine)


# ----------------------------------------------------------------------
# Interleavings against a slow store


async def after(delay: float, coro):
    await asyncio.sleep(delay)
    return await coro


@pytest_asyncio.fixture
async def slow(test_settings):
    store = MemoryDocumentStore(latency=0.01)
    washq = WashQ(store, locks=LocalLockStrategy(), settings=test_settings, use_cache=False)
    return washq


@pytest.mark.asyncio
async def test_stale_clear_does_not_shrink_rebooked_machine(slow):
    """A clear that loses the race to a completion leaves the next booker alone."""
    store = slow.store
    await seed_machine(store, "m1")
    for uid in ("u1", "u2"):
        await seed_user(store, uid)
    await slow.coordinator.book("u1", "m1")

    await asyncio.gather(
        slow.coordinator.complete_to_available("m1"),
        after(0.001, slow.coordinator.book("u2", "m1")),
        after(0.005, slow.coordinator.clear_active_booking("u1")),
    )

    m1 = await machine(store, "m1")
    assert m1.status == "waiting"
    assert m1.queue_count == 1
    assert [b["user_id"] for b in await store.query_equals(BOOKINGS, "machine_id", "m1")] == ["u2"]
    assert await pointer(store, "u2") == "m1"
    assert await pointer(store, "u1") is None


@pytest.mark.asyncio
async def test_tick_finishing_machine_while_queued_user_clears(slow):
    store = slow.store
    await seed_machine(store, "m2", status="running", time_remaining=1)
    await seed_user(store, "u2")
    await slow.coordinator.book("u2", "m2")

    await asyncio.gather(
        slow.coordinator.tick(),
        after(0.005, slow.coordinator.clear_active_booking("u2")),
    )

    m2 = await machine(store, "m2")
    assert m2.status == "available"
    assert m2.queue_count is None
    assert await store.list_all(BOOKINGS) == []
    assert await pointer(store, "u2") is None


@pytest.mark.asyncio
async def test_queued_user_clears_while_wash_starts(slow):
    store = slow.store
    await seed_machine(store, "m1")
    for uid in ("u1", "u2"):
        await seed_user(store, uid)
    await slow.coordinator.book("u1", "m1")
    await slow.coordinator.book("u2", "m1")

    await asyncio.gather(
        slow.coordinator.start_wash("u1", "m1"),
        after(0.005, slow.coordinator.clear_active_booking("u2")),
    )

    m1 = await machine(store, "m1")
    assert m1.status == "running"
    assert m1.time_remaining == 30
    assert m1.queue_count is None
    remaining = await store.list_all(BOOKINGS)
    assert [b["user_id"] for b in remaining] == ["u1"]
    assert remaining[0]["wash_started_at"] is not None


@pytest.mark.asyncio
async def test_start_wash_alongside_tick(slow):
    """The clock never counts down a machine mid-start or loses the start."""
    store = slow.store
    await seed_machine(store, "m1")
    await seed_machine(store, "m2", status="running", time_remaining=1)
    await seed_user(store, "u1")
    await slow.coordinator.book("u1", "m1")

    _, finished = await asyncio.gather(
        slow.coordinator.start_wash("u1", "m1"),
        after(0.005, slow.coordinator.tick()),
    )

    assert finished == ["m2"]
    m1 = await machine(store, "m1")
    assert m1.status == "running"
    assert m1.time_remaining == 30
    assert is_consistent(m1)
    assert (await machine(store, "m2")).status == "available"


@pytest.mark.asyncio
async def test_booking_cleared_by_another_worker(store, test_settings, machines):
    """A worker's cached booking never outranks the shared store."""
    worker_a = WashQ(store, locks=LocalLockStrategy(), settings=test_settings, use_cache=False)
    worker_b = WashQ(store, locks=LocalLockStrategy(), settings=test_settings, use_cache=False)
    await seed_machine(store, "m3")
    for uid in ("u1", "u2"):
        await seed_user(store, uid)
    await worker_a.coordinator.book("u1", "m1")
    await worker_a.coordinator.book("u2", "m1")

    assert await worker_b.coordinator.clear_active_booking("u1") is True

    outcome = await worker_a.coordinator.book("u1", "m3")
    assert outcome.machine.status == "waiting"
    assert await pointer(store, "u1") == "m3"
    assert (await machine(store, "m1")).queue_count == 1
