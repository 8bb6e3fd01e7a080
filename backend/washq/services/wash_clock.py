"""
Background wash clock: counts down running machines once per interval and
completes them when they reach zero.
"""

import asyncio
from typing import Optional

from washq.core.exceptions import WashQError
from washq.core.logging import get_logger

logger = get_logger(__name__)


class WashClock:

    def __init__(self, coordinator, interval_seconds: int = 60):
        self.coordinator = coordinator
        self.interval_seconds = interval_seconds
        self._stop = False
        self._task: Optional[asyncio.Task] = None

    async def run(self) -> None:
        self._stop = False
        logger.info("wash_clock_started", interval_seconds=self.interval_seconds)

        while not self._stop:
            await asyncio.sleep(self.interval_seconds)
            if self._stop:
                break
            minutes = max(self.interval_seconds // 60, 1)
            try:
                await self.coordinator.tick(minutes)
            except WashQError as e:
                logger.error("wash_clock_tick_failed", error=e.detail, code=e.code)

        logger.info("wash_clock_stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self._stop = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
