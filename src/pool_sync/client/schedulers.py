"""Fixed-interval full-state fetch schedules."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .context import ConnectionStatus
from .messages import ORIGIN_POLL, ORIGIN_REFRESH
from .synchronizer import StateSynchronizer
from .timers import PeriodicTask

logger = logging.getLogger(__name__)


class FallbackPoller:
    """Poll the full state while the stream is not confirmed connected.

    :meth:`arm` waits ``start_delay_s`` and then starts the interval timer.
    Ticks are skipped while the stream reports CONNECTED, so polling covers
    any stretch where streaming is down. A successful poll marks the server
    reachable on the context.
    """

    def __init__(
        self,
        synchronizer: StateSynchronizer,
        stream_status: Callable[[], ConnectionStatus],
        *,
        interval_s: float = 5.0,
        start_delay_s: float = 3.0,
    ) -> None:
        self._synchronizer = synchronizer
        self._stream_status = stream_status
        self.start_delay_s = float(start_delay_s)
        self._timer = PeriodicTask("fallback-poll", interval_s, self._tick)
        self._arm_task: Optional[asyncio.Task[None]] = None

    @property
    def armed(self) -> bool:
        return self._arm_task is not None and not self._arm_task.done()

    @property
    def running(self) -> bool:
        return self._timer.running

    def arm(self) -> None:
        self.stop()
        loop = asyncio.get_running_loop()
        self._arm_task = loop.create_task(self._start_after_delay(), name="pool-sync-fallback-arm")

    def stop(self) -> None:
        task, self._arm_task = self._arm_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        self._timer.stop()

    async def _start_after_delay(self) -> None:
        await asyncio.sleep(self.start_delay_s)
        self._arm_task = None
        if self._stream_status() is ConnectionStatus.CONNECTED:
            logger.debug("stream connected; fallback polling standing by")
        else:
            logger.info("stream not connected; polling every %.1fs", self._timer.interval_s)
        self._timer.start()

    def _tick(self) -> None:
        if self._stream_status() is ConnectionStatus.CONNECTED:
            return
        self._synchronizer.schedule_refetch(ORIGIN_POLL)


class ConsistencyRefresh:
    """Unconditional periodic refetch, independent of stream health."""

    def __init__(self, synchronizer: StateSynchronizer, *, interval_s: float = 5.0) -> None:
        self._synchronizer = synchronizer
        self._timer = PeriodicTask("consistency-refresh", interval_s, self._tick)

    @property
    def running(self) -> bool:
        return self._timer.running

    def start(self) -> None:
        logger.info("starting periodic refresh every %.1fs", self._timer.interval_s)
        self._timer.start()

    def stop(self) -> None:
        if self._timer.running:
            logger.info("stopped periodic refresh")
        self._timer.stop()

    def _tick(self) -> None:
        self._synchronizer.schedule_refetch(ORIGIN_REFRESH)


__all__ = ["ConsistencyRefresh", "FallbackPoller"]
