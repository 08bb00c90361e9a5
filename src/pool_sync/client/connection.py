"""Streaming connection lifecycle and reconnection policy.

:class:`ConnectionManager` owns the socket: it opens it, answers handshake
and heartbeat frames through the codec, forwards event frames, and decides
after every close whether (and how soon) to try again. Status changes and
event frames leave the manager only through the ``emit`` callable, which the
client wires to its inbound message queue.
"""

from __future__ import annotations

import asyncio
import errno
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from pool_sync.protocol import EventFrame, HandshakeFrame, RawFrame, decode_frame, encode_event

from .context import ConnectionStatus
from .heartbeat import HeartbeatMonitor
from .logging_policy import maybe_enable_debug_logger
from .messages import ConnectivityChanged, FrameReceived, SyncMessage

logger = logging.getLogger(__name__)

_STATE_DEBUG = maybe_enable_debug_logger(logger)


CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_NO_STATUS = 1005
CLOSE_ABNORMAL = 1006
CLOSE_INTERNAL_ERROR = 1011

# Closes the peer (or we) asked for; these are honored and never retried.
_FINAL_CLOSE_CODES = frozenset({CLOSE_NORMAL, CLOSE_GOING_AWAY})

_TRANSITIONS = {
    ConnectionStatus.DISCONNECTED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.CONNECTING: frozenset({ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED}),
    ConnectionStatus.CONNECTED: frozenset({ConnectionStatus.DISCONNECTED}),
}

Connector = Callable[[str], Awaitable[Any]]


async def _default_connector(url: str) -> Any:
    # Liveness is probed by HeartbeatMonitor; the library keepalive would
    # otherwise close the socket on a missed pong.
    return await websockets.connect(url, ping_interval=None, max_size=None)


def _is_not_connected(error: Optional[BaseException]) -> bool:
    return isinstance(error, OSError) and error.errno == errno.ENOTCONN


def _close_code_of(exc: ConnectionClosed) -> int:
    rcvd = getattr(exc, "rcvd", None)
    if rcvd is not None:
        return int(rcvd.code)
    return CLOSE_ABNORMAL


@dataclass(frozen=True)
class ReconnectPolicy:
    """Fixed reconnect delays looked up by close reason."""

    short_delay_s: float = 2.0
    default_delay_s: float = 3.0
    max_attempts: int = 10

    def should_reconnect(self, close_code: Optional[int]) -> bool:
        return close_code not in _FINAL_CLOSE_CODES

    def delay_for(self, close_code: Optional[int], error: Optional[BaseException] = None) -> float:
        if close_code == CLOSE_NO_STATUS or _is_not_connected(error):
            return self.short_delay_s
        return self.default_delay_s


@dataclass
class RetrySchedule:
    attempt: int = 0
    next_delay_s: Optional[float] = None
    last_close_code: Optional[int] = None
    last_error: Optional[str] = None
    scheduled_total: int = 0


class ConnectionManager:
    """Maintains the streaming socket and reconnects after unexpected closes."""

    def __init__(
        self,
        url: str,
        *,
        emit: Callable[[SyncMessage], None],
        heartbeat: Optional[HeartbeatMonitor] = None,
        policy: Optional[ReconnectPolicy] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.url = url
        self._emit = emit
        self.heartbeat = heartbeat if heartbeat is not None else HeartbeatMonitor()
        self.policy = policy if policy is not None else ReconnectPolicy()
        self._connector = connector if connector is not None else _default_connector
        self.retry = RetrySchedule()
        self._status = ConnectionStatus.DISCONNECTED
        self._websocket: Any = None
        self._session_task: Optional[asyncio.Task[None]] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._explicit_disconnect = False

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def websocket(self) -> Any:
        return self._websocket

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Open the stream unless it is already connecting or connected."""

        if self._status is not ConnectionStatus.DISCONNECTED:
            return
        self._explicit_disconnect = False
        self._cancel_reconnect()
        self._set_status(ConnectionStatus.CONNECTING)
        loop = asyncio.get_running_loop()
        self._session_task = loop.create_task(self._session(), name="pool-sync-stream")

    async def disconnect(self) -> None:
        """Close with "going away" and suppress any reconnection."""

        self._explicit_disconnect = True
        self._cancel_reconnect()
        self.heartbeat.stop()

        ws, self._websocket = self._websocket, None
        task, self._session_task = self._session_task, None
        if ws is not None:
            try:
                await ws.close(code=CLOSE_GOING_AWAY, reason="client disconnect")
            except Exception:
                logger.debug("stream close failed", exc_info=True)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        self.retry.last_close_code = CLOSE_GOING_AWAY
        if self._status is not ConnectionStatus.DISCONNECTED:
            self._set_status(ConnectionStatus.DISCONNECTED, close_code=CLOSE_GOING_AWAY)
        logger.info("stream disconnected by client")

    async def send_event(self, name: str, payload: Any) -> bool:
        """Send an event frame on the open stream; False when not connected."""
        return await self.send_text(encode_event(name, payload))

    async def send_text(self, text: str) -> bool:
        ws = self._websocket
        if ws is None:
            return False
        try:
            await ws.send(text)
        except Exception:
            logger.debug("stream send failed", exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    def _set_status(
        self,
        status: ConnectionStatus,
        *,
        close_code: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if status is self._status:
            return
        if status not in _TRANSITIONS[self._status]:
            logger.warning("ignoring illegal status transition %s -> %s", self._status.value, status.value)
            return
        logger.debug("stream status %s -> %s", self._status.value, status.value)
        self._status = status
        try:
            self._emit(ConnectivityChanged(status, close_code=close_code, error=error))
        except Exception:
            logger.debug("status emit failed", exc_info=True)

    async def _session(self) -> None:
        logger.info("connecting to stream at %s", self.url)
        try:
            ws = await self._connector(self.url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._log_failure(exc)
            self._on_closed(None, exc)
            return

        if self._explicit_disconnect:
            try:
                await ws.close(code=CLOSE_GOING_AWAY)
            except Exception:
                logger.debug("stream close after cancelled connect failed", exc_info=True)
            return

        self._on_open(ws)
        close_code, error = await self._receive(ws)
        if self._explicit_disconnect:
            return
        if close_code is None:
            # No close frame: the socket may still be open, release it before reconnecting.
            await self._close_quietly(ws, CLOSE_INTERNAL_ERROR, "receive failed")
        if error is not None and not isinstance(error, ConnectionClosed):
            self._log_failure(error)
        self._on_closed(close_code, error)

    async def _receive(self, ws: Any) -> tuple[Optional[int], Optional[BaseException]]:
        try:
            async for message in ws:
                await self._handle_message(ws, message)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as exc:
            return _close_code_of(exc), exc
        except Exception as exc:
            return None, exc
        return getattr(ws, "close_code", None), None

    async def _handle_message(self, ws: Any, message: Any) -> None:
        decoded = decode_frame(message)
        if decoded is None:
            return
        if decoded.reply is not None:
            try:
                await ws.send(decoded.reply)
            except Exception:
                logger.debug("frame reply %r failed", decoded.reply, exc_info=True)
        frame = decoded.frame
        if isinstance(frame, EventFrame):
            logger.debug("event %s: %s", frame.name, frame.payload)
            try:
                self._emit(FrameReceived(frame))
            except Exception:
                logger.debug("frame emit failed", exc_info=True)
        elif isinstance(frame, HandshakeFrame):
            logger.info("stream handshake received (sid=%s)", frame.payload.get("sid"))
        elif isinstance(frame, RawFrame):
            logger.debug("raw frame ignored: %s", frame.payload)

    def _on_open(self, ws: Any) -> None:
        logger.info("stream connected")
        self._websocket = ws
        self.retry.attempt = 0
        self.retry.next_delay_s = None
        self.retry.last_error = None
        self._set_status(ConnectionStatus.CONNECTED)
        self.heartbeat.start(ws)

    def _on_closed(self, close_code: Optional[int], error: Optional[BaseException]) -> None:
        self.heartbeat.stop()
        self._websocket = None
        self._session_task = None
        self.retry.last_close_code = close_code
        self.retry.last_error = (str(error) or error.__class__.__name__) if error is not None else None
        self._set_status(ConnectionStatus.DISCONNECTED, close_code=close_code, error=error)

        if self._explicit_disconnect:
            return
        if not self.policy.should_reconnect(close_code):
            logger.info("stream closed (code %s); not reconnecting", close_code)
            return
        self._schedule_reconnect(close_code, error)

    def _schedule_reconnect(self, close_code: Optional[int], error: Optional[BaseException]) -> None:
        delay = self.policy.delay_for(close_code, error)
        self.retry.attempt = min(self.retry.attempt + 1, max(1, self.policy.max_attempts))
        self.retry.next_delay_s = delay
        self.retry.scheduled_total += 1
        logger.info("stream will reconnect in %.1fs (close code %s)", delay, close_code)
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_task = loop.create_task(self._reconnect_after(delay), name="pool-sync-reconnect")

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        if self._explicit_disconnect:
            return
        logger.info("attempting stream reconnection")
        self.connect()

    async def _close_quietly(self, ws: Any, code: int, reason: str) -> None:
        try:
            await ws.close(code=code, reason=reason)
        except Exception:
            logger.debug("stream close (%d) failed", code, exc_info=True)

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _log_failure(self, exc: BaseException) -> None:
        msg = str(exc) or exc.__class__.__name__
        if isinstance(exc, (EOFError, ConnectionRefusedError)):
            logger.info("stream unavailable (%s)", msg)
        elif isinstance(exc, InvalidHandshake):
            logger.info("stream handshake failed (%s)", msg)
        elif isinstance(exc, OSError):
            logger.info("stream socket error (%s)", msg)
        else:
            logger.error("stream error", exc_info=exc)


__all__ = [
    "CLOSE_ABNORMAL",
    "CLOSE_GOING_AWAY",
    "CLOSE_INTERNAL_ERROR",
    "CLOSE_NORMAL",
    "CLOSE_NO_STATUS",
    "ConnectionManager",
    "ReconnectPolicy",
    "RetrySchedule",
]
