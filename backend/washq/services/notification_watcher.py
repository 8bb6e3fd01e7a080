"""
"Your machine is ready" notifications.

A NotificationWatcher remembers the previous machine snapshot for one user
and reports each running -> available transition on the machine that user
had booked. The NotificationCenter owns one watcher per signed-in user,
feeds them from the registry's update cycles and queues the results until
the client collects them.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Optional

from washq.core.logging import get_logger
from washq.core.metrics import notifications_emitted
from washq.infrastructure.document_store import USERS, DocumentStore
from washq.schemas.machine import Machine, MachineStatus
from washq.schemas.notification import MachineReadyNotification
from washq.schemas.user import User

logger = get_logger(__name__)


@dataclass
class _Snapshot:
    statuses: dict[str, str] = field(default_factory=dict)
    active_booking: Optional[str] = None


class NotificationWatcher:
    """Detects ready machines for one user across successive observations."""

    def __init__(self, user_id: str, machines: Iterable[Machine] = (), active_booking: Optional[str] = None):
        self.user_id = user_id
        self._previous = _Snapshot({m.id: m.status for m in machines}, active_booking)

    def observe(self, machines: Iterable[Machine], active_booking: Optional[str]) -> list[MachineReadyNotification]:
        """
        Compare with the previous observation and return new notifications.

        A machine qualifies when it went running -> available and it is the
        machine the user had booked before the change or has booked now.
        The booking is usually released in the same batch that frees the
        machine, so the previous pointer is what identifies the owner.
        """
        machines = list(machines)
        previous = self._previous
        watched = {previous.active_booking, active_booking} - {None}

        events = []
        for machine in machines:
            before = previous.statuses.get(machine.id)
            if (
                before == MachineStatus.RUNNING
                and machine.status == MachineStatus.AVAILABLE
                and machine.id in watched
            ):
                events.append(MachineReadyNotification(
                    user_id=self.user_id,
                    machine_id=machine.id,
                    machine_name=machine.name,
                    message=f"{machine.name} has finished. Please collect your laundry.",
                ))

        self._previous = _Snapshot({m.id: m.status for m in machines}, active_booking)
        return events


class NotificationCenter:

    def __init__(self, store: DocumentStore, registry, max_pending: int = 50):
        self.store = store
        self.registry = registry
        self.max_pending = max_pending
        self._watchers: dict[str, NotificationWatcher] = {}
        self._pending: dict[str, deque[MachineReadyNotification]] = {}
        self._lock = asyncio.Lock()
        registry.add_listener(self.on_cycle)

    def watch(self, user: User) -> None:
        if user.id in self._watchers:
            return
        self._watchers[user.id] = NotificationWatcher(user.id, self.registry.snapshot(), user.active_booking)
        self._pending.setdefault(user.id, deque(maxlen=self.max_pending))
        logger.debug("notification_watch_started", user_id=user.id)

    def unwatch(self, user: User) -> None:
        self._watchers.pop(user.id, None)
        self._pending.pop(user.id, None)
        logger.debug("notification_watch_stopped", user_id=user.id)

    def drain(self, user_id: str) -> list[MachineReadyNotification]:
        pending = self._pending.get(user_id)
        if not pending:
            return []
        events = list(pending)
        pending.clear()
        return events

    async def on_cycle(self, machines: list[Machine]) -> None:
        # Serialized and always observing the latest registry view, so a
        # slow cycle can never move a watcher's snapshot backwards.
        async with self._lock:
            for user_id, watcher in list(self._watchers.items()):
                record = await self.store.get_by_id(USERS, user_id)
                active_booking = record.get("active_booking") if record else None
                for event in watcher.observe(self.registry.snapshot(), active_booking):
                    self._pending[user_id].append(event)
                    notifications_emitted.inc()
                    logger.info("notification_emitted", user_id=user_id, machine_id=event.machine_id)
