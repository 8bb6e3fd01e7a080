"""
Tests for the pure machine status transitions.
"""

import pytest

from washq.core.exceptions import Unavailable, ValidationError
from washq.domain.machine_state import (
    CANONICAL_WASH_MINUTES, apply_status, is_consistent, join_queue, leave_queue, start_running, tick,
)
from washq.schemas.machine import Machine


def make(status="available", queue_count=None, time_remaining=None) -> Machine:
    return Machine(id="m", name="Washer", status=status, queue_count=queue_count, time_remaining=time_remaining)


@pytest.mark.parametrize("status", ["available", "running", "waiting", "out-of-order"])
def test_apply_status_always_consistent(status):
    """Every target status yields auxiliary fields that match it."""
    for source in (make(), make("running", 2, 12), make("waiting", 3)):
        result = apply_status(source, status)
        assert result.status == status
        assert is_consistent(result)


def test_running_uses_canonical_duration():
    result = apply_status(make("waiting", 1), "running")
    assert result.time_remaining == CANONICAL_WASH_MINUTES == 30


def test_unknown_status_rejected():
    with pytest.raises(ValidationError):
        apply_status(make(), "spinning")


def test_join_queue():
    waiting = join_queue(make())
    assert (waiting.status, waiting.queue_count) == ("waiting", 1)
    assert join_queue(waiting).queue_count == 2
    running = join_queue(make("running", None, 10))
    assert (running.status, running.queue_count, running.time_remaining) == ("running", 1, 10)

    with pytest.raises(Unavailable):
        join_queue(make("out-of-order"))


def test_leave_queue_last_user_frees_machine():
    assert leave_queue(make("waiting", 1)).status == "available"
    assert leave_queue(make("waiting", 3)).queue_count == 2
    assert leave_queue(make("running", 1, 5)).queue_count is None


def test_start_running():
    result = start_running(make("waiting", 2))
    assert result.status == "running"
    assert result.time_remaining == 30
    assert result.queue_count == 1

    with pytest.raises(Unavailable):
        start_running(make("available"))


def test_tick_stops_at_zero():
    assert tick(make("running", None, 1), 5).time_remaining == 0
    assert tick(make("waiting", 1)).status == "waiting"
