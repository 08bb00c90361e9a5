"""Cancellable fixed-interval asyncio timers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Union[None, Awaitable[None]]]


class PeriodicTask:
    """Run ``callback`` every ``interval_s`` seconds on the running loop.

    The first tick fires one interval (or ``initial_delay_s``) after
    :meth:`start`. ``start`` always goes through ``stop`` first, so calling it
    twice never leaves a second timer behind. A failing tick is logged and the
    schedule continues.
    """

    def __init__(
        self,
        name: str,
        interval_s: float,
        callback: TickCallback,
        *,
        initial_delay_s: Optional[float] = None,
    ) -> None:
        self.name = name
        self.interval_s = max(0.0, float(interval_s))
        self.initial_delay_s = initial_delay_s
        self._callback = callback
        self._task: Optional[asyncio.Task[None]] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"pool-sync-{self.name}")

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self) -> None:
        delay = self.interval_s if self.initial_delay_s is None else max(0.0, self.initial_delay_s)
        while True:
            await asyncio.sleep(delay)
            delay = self.interval_s
            self.ticks += 1
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("%s tick failed", self.name, exc_info=True)


__all__ = ["PeriodicTask"]
