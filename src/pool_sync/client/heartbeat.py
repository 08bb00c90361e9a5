"""Liveness probes on an open stream."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .timers import PeriodicTask

logger = logging.getLogger(__name__)


class HeartbeatMonitor:
    """Send a transport-level ping every ``interval_s`` while connected.

    A failed ping is logged and reported through ``on_failure``; it never
    tears the connection down. The transport's own close notification is what
    drives reconnection.
    """

    def __init__(
        self,
        interval_s: float = 30.0,
        on_failure: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.interval_s = float(interval_s)
        self.on_failure = on_failure
        self._timer: Optional[PeriodicTask] = None
        self._websocket: Any = None
        self.probes_sent = 0
        self.probe_failures = 0

    @property
    def running(self) -> bool:
        return self._timer is not None and self._timer.running

    def start(self, websocket: Any) -> None:
        self.stop()
        self._websocket = websocket
        self._timer = PeriodicTask("heartbeat", self.interval_s, self._probe)
        self._timer.start()

    def stop(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.stop()
        self._websocket = None

    async def _probe(self) -> None:
        ws = self._websocket
        if ws is None:
            return
        try:
            await ws.ping()
        except Exception as exc:
            self.probe_failures += 1
            logger.warning("heartbeat ping failed: %s", exc or exc.__class__.__name__)
            if self.on_failure is not None:
                try:
                    self.on_failure(exc)
                except Exception:
                    logger.debug("heartbeat on_failure callback failed", exc_info=True)
            return
        self.probes_sent += 1
        logger.debug("heartbeat ping sent")


__all__ = ["HeartbeatMonitor"]
