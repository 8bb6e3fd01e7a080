"""Machine status transitions.

Pure functions over the Machine schema. Each returns a new Machine whose
auxiliary fields agree with its status:

- waiting       -> queue_count >= 1, no time_remaining
- running       -> time_remaining set; queue_count counts users queued behind
- available     -> neither field
- out-of-order  -> neither field
"""

from washq.core.exceptions import Unavailable, ValidationError
from washq.schemas.machine import Machine, MachineStatus

# Applied whenever a machine enters `running`, whatever the caller asked for.
CANONICAL_WASH_MINUTES = 30


def apply_status(machine: Machine, status: MachineStatus | str) -> Machine:
    try:
        status = MachineStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown machine status: {status}")

    if status == MachineStatus.RUNNING:
        return machine.model_copy(update={
            "status": status.value,
            "time_remaining": CANONICAL_WASH_MINUTES,
            "queue_count": machine.queue_count or None,
        })
    if status == MachineStatus.WAITING:
        return machine.model_copy(update={
            "status": status.value,
            "queue_count": max(machine.queue_count or 0, 1),
            "time_remaining": None,
        })
    return machine.model_copy(update={
        "status": status.value,
        "queue_count": None,
        "time_remaining": None,
    })


def join_queue(machine: Machine) -> Machine:
    """Book an available machine or join the queue of a busy one."""
    if machine.status == MachineStatus.AVAILABLE:
        return machine.model_copy(update={
            "status": MachineStatus.WAITING.value,
            "queue_count": 1,
            "time_remaining": None,
        })
    if machine.status in (MachineStatus.WAITING, MachineStatus.RUNNING):
        return machine.model_copy(update={"queue_count": (machine.queue_count or 0) + 1})
    raise Unavailable(f"{machine.name} is out of order")


def leave_queue(machine: Machine) -> Machine:
    """One queued user gave up their booking."""
    remaining = max((machine.queue_count or 0) - 1, 0)
    if machine.status == MachineStatus.WAITING:
        if remaining == 0:
            return apply_status(machine, MachineStatus.AVAILABLE)
        return machine.model_copy(update={"queue_count": remaining})
    if machine.status == MachineStatus.RUNNING:
        return machine.model_copy(update={"queue_count": remaining or None})
    return machine


def start_running(machine: Machine) -> Machine:
    """The user at the head of the queue starts washing."""
    if machine.status != MachineStatus.WAITING:
        raise Unavailable(f"{machine.name} is not ready to start (status: {machine.status})")
    remaining = max((machine.queue_count or 1) - 1, 0)
    return machine.model_copy(update={
        "status": MachineStatus.RUNNING.value,
        "time_remaining": CANONICAL_WASH_MINUTES,
        "queue_count": remaining or None,
    })


def tick(machine: Machine, minutes: int = 1) -> Machine:
    if machine.status != MachineStatus.RUNNING:
        return machine
    return machine.model_copy(update={
        "time_remaining": max((machine.time_remaining or 0) - minutes, 0),
    })


def is_consistent(machine: Machine) -> bool:
    if machine.status == MachineStatus.WAITING:
        return (machine.queue_count or 0) >= 1 and machine.time_remaining is None
    if machine.status == MachineStatus.RUNNING:
        return machine.time_remaining is not None
    return machine.queue_count is None and machine.time_remaining is None
