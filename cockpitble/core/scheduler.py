"""Periodic tick scheduling with an injectable sleep."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

LOGGER = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class CadenceCounter:
    """Fires once every ``threshold`` steps."""

    def __init__(self, threshold: int) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.threshold = threshold
        self.count = 0

    def step(self) -> bool:
        self.count += 1
        if self.count < self.threshold:
            return False
        self.count = 0
        return True

    def reset(self) -> None:
        self.count = 0


class Ticker:
    """Calls ``callback`` every ``interval_s`` on the running event loop."""

    def __init__(
        self,
        interval_s: float,
        callback: Callable[[], None],
        *,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.interval_s = interval_s
        self._callback = callback
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="cockpitble-tick")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await self._sleep(self.interval_s)
            try:
                self._callback()
            except Exception:
                LOGGER.exception("Tick callback failed")
