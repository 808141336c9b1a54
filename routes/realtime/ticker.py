import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union
import inspect
import logging

from configurations.config import settings
from routes.monitoring.alert_rules import club_now

logger = logging.getLogger(__name__)

TickCallback = Callable[[datetime], Union[Any, Awaitable[Any]]]


class RecomputeTicker:
    """
    Periodic recompute trigger for the live views.

    The callback receives the instant of the tick; it must only rederive
    state from memory and never call the database.
    """

    def __init__(
        self,
        callback: TickCallback,
        interval_seconds: float = settings.TICK_SECONDS,
        clock: Callable[[], datetime] = club_now,
    ):
        self.callback = callback
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    async def tick(self):
        now = self.clock()
        self.ticks += 1
        try:
            result = self.callback(now)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Recompute tick failed: {str(e)}")

    async def run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.tick()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
