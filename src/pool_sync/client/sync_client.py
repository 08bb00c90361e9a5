"""Top-level client wiring the stream, schedules and command path together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

from .config import ClientConfig, load_client_config
from .connection import ConnectionManager, Connector, ReconnectPolicy
from .context import ConnectionStatus, Snapshot, SyncContext
from .dispatcher import CommandDispatcher, CommandResult
from .errors import SyncError
from .heartbeat import HeartbeatMonitor
from .http_api import PoolApi
from .messages import ORIGIN_INITIAL, ORIGIN_MANUAL, FrameReceived, SyncMessage
from .schedulers import ConsistencyRefresh, FallbackPoller
from .synchronizer import StateSynchronizer

logger = logging.getLogger(__name__)


class PoolSyncClient:
    """Keep a local snapshot of the controller state in sync.

    Connection status changes, event frames and background fetch results go
    through one inbound queue, applied in arrival order by a single
    coordinating task. Awaited calls such as :meth:`refetch`, :meth:`connect`
    and the command methods apply their own result on the same event loop
    when it completes, so those writes interleave with the queue by time.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        api: Optional[PoolApi] = None,
        connector: Optional[Connector] = None,
        context: Optional[SyncContext] = None,
    ) -> None:
        self.config = config if config is not None else load_client_config()
        self.context = context if context is not None else SyncContext()
        self.api = api if api is not None else PoolApi(self.config.base_url)

        self._inbox: Optional[asyncio.Queue[SyncMessage]] = None
        self._pump_task: Optional[asyncio.Task[None]] = None
        # Bumped by disconnect(); a connect() that outlives it must not start anything.
        self._generation = 0

        self.synchronizer = StateSynchronizer(
            self.context,
            self.api.fetch_state,
            post=self._post,
            single_flight=self.config.single_flight_refetch,
            fetch_schedules=self.api.fetch_schedules,
            fill_missing_schedules=self.config.fill_missing_schedules,
        )
        self.connection = ConnectionManager(
            self.config.websocket_url,
            emit=self._post,
            heartbeat=HeartbeatMonitor(self.config.heartbeat_interval_s),
            policy=ReconnectPolicy(
                short_delay_s=self.config.reconnect_short_delay_s,
                default_delay_s=self.config.reconnect_default_delay_s,
                max_attempts=self.config.max_reconnect_attempts,
            ),
            connector=connector,
        )
        self.poller = FallbackPoller(
            self.synchronizer,
            lambda: self.connection.status,
            interval_s=self.config.polling_interval_s,
            start_delay_s=self.config.fallback_delay_s,
        )
        self.refresher = ConsistencyRefresh(self.synchronizer, interval_s=self.config.refresh_interval_s)
        self.dispatcher = CommandDispatcher(
            self.api,
            self.synchronizer,
            self.context,
            heat_mode_settle_s=self.config.heat_mode_settle_s,
        )

    async def __aenter__(self) -> "PoolSyncClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- read side ------------------------------------------------------
    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self.context.snapshot

    @property
    def status(self) -> ConnectionStatus:
        return self.context.status

    @property
    def last_error(self) -> Optional[SyncError]:
        return self.context.last_error

    # --- lifecycle ------------------------------------------------------
    async def connect(self) -> None:
        """Load the initial state, open the stream and start the schedules."""

        self._ensure_pump()
        generation = self._generation
        logger.info("connecting to %s", self.config.base_url)
        await self.synchronizer.refetch(ORIGIN_INITIAL)
        if generation != self._generation:
            logger.info("disconnect requested during initial load; not opening the stream")
            return
        self.connection.connect()
        self.refresher.start()
        self.poller.arm()

    async def disconnect(self) -> None:
        """Stop every timer and close the stream. Safe to call repeatedly."""

        self._generation += 1
        self.poller.stop()
        self.refresher.stop()
        await self.connection.disconnect()

    async def close(self) -> None:
        await self.disconnect()
        self.synchronizer.cancel_pending()
        await self._stop_pump()
        await self.api.close()

    async def refetch(self) -> bool:
        return await self.synchronizer.refetch(ORIGIN_MANUAL)

    async def fetch_schedules(self) -> bool:
        """Fetch schedules separately and install a snapshot carrying them."""
        return await self.synchronizer.refresh_schedules()

    # --- commands -------------------------------------------------------
    async def dispatch(
        self,
        endpoint: str,
        parameters: Mapping[str, Any],
        *,
        method: str = "PUT",
    ) -> CommandResult:
        return await self.dispatcher.dispatch(endpoint, parameters, method=method)

    async def toggle_circuit(self, circuit_id: int) -> CommandResult:
        return await self.dispatcher.toggle_circuit(circuit_id)

    async def toggle_feature(self, feature_id: int) -> CommandResult:
        return await self.dispatcher.toggle_feature(feature_id)

    async def set_body_setpoint(self, body_id: int, temperature: float) -> CommandResult:
        return await self.dispatcher.set_body_setpoint(body_id, temperature)

    async def set_body_heat_mode(self, body_id: int, mode: Any) -> CommandResult:
        return await self.dispatcher.set_body_heat_mode(body_id, mode)

    async def set_pump_speed(self, pump_id: int, rpm: int) -> CommandResult:
        return await self.dispatcher.set_pump_speed(pump_id, rpm)

    # --- coordinating loop ------------------------------------------------
    def _post(self, message: SyncMessage) -> None:
        inbox = self._inbox
        if inbox is None:
            self.synchronizer.handle(message)
            return
        inbox.put_nowait(message)

    def _ensure_pump(self) -> None:
        if self._pump_task is not None and not self._pump_task.done():
            return
        self._inbox = asyncio.Queue()
        self._pump_task = asyncio.get_running_loop().create_task(self._pump(self._inbox), name="pool-sync-inbox")

    async def _pump(self, inbox: "asyncio.Queue[SyncMessage]") -> None:
        while True:
            message = await inbox.get()
            try:
                self.synchronizer.handle(message)
            except Exception:
                logger.exception("failed to apply %s", type(message).__name__)

    async def _stop_pump(self) -> None:
        inbox, self._inbox = self._inbox, None
        task, self._pump_task = self._pump_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        # Apply queued status and fetch results; events would only start new fetches.
        while inbox is not None and not inbox.empty():
            message = inbox.get_nowait()
            if isinstance(message, FrameReceived):
                continue
            try:
                self.synchronizer.handle(message)
            except Exception:
                logger.exception("failed to apply %s", type(message).__name__)


__all__ = ["PoolSyncClient"]
