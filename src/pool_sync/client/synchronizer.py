"""Canonical snapshot ownership and the "event received -> refetch" policy.

Every path that learns about remote state (initial load, fallback polling,
periodic refresh, streamed events, command acknowledgements) ends in the same
full ``/state/all`` fetch. Results replace the snapshot whole; a failure only
records the error and leaves the previous snapshot in place. Event payloads
are never interpreted.

The optional separate ``/config/schedules`` fetch is the one exception: it
derives a new snapshot with that section swapped in.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Set

from pool_sync.protocol import EventFrame

from .context import ConnectionStatus, Snapshot, SyncContext
from .errors import ConnectionLostError, NetworkError, SyncError
from .logging_policy import maybe_enable_debug_logger
from .messages import (
    ORIGIN_EVENT,
    ORIGIN_INITIAL,
    ORIGIN_MANUAL,
    ORIGIN_POLL,
    ORIGIN_SCHEDULES,
    ConnectivityChanged,
    FetchCompleted,
    FrameReceived,
    SchedulesFetched,
    SyncMessage,
)

logger = logging.getLogger(__name__)

_STATE_DEBUG = maybe_enable_debug_logger(logger)

FetchState = Callable[[], Awaitable[Mapping[str, Any]]]
FetchSchedules = Callable[[], Awaitable[List[Any]]]

# Close codes of a deliberate shutdown; these do not count as a lost connection.
_DELIBERATE_CLOSE_CODES = frozenset({1000, 1001})


class StateSynchronizer:
    """Apply inbound messages to a :class:`SyncContext`.

    ``post`` is where background fetch results go; the client wires it to its
    inbound queue so results are applied in arrival order by one loop. Without
    it, results are applied directly.
    """

    def __init__(
        self,
        context: SyncContext,
        fetch_state: FetchState,
        *,
        post: Optional[Callable[[SyncMessage], None]] = None,
        single_flight: bool = False,
        fetch_schedules: Optional[FetchSchedules] = None,
        fill_missing_schedules: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.context = context
        self._fetch_state = fetch_state
        self._post = post
        self._single_flight = bool(single_flight)
        self._fetch_schedules = fetch_schedules
        self._fill_missing_schedules = bool(fill_missing_schedules)
        self._clock = clock
        self._background: Set[asyncio.Task[None]] = set()
        self._inflight: Optional[asyncio.Task[FetchCompleted]] = None
        self.fetches_started = 0

    # ------------------------------------------------------------------
    async def refetch(self, origin: str = ORIGIN_MANUAL) -> bool:
        """Fetch the full state now and apply it; True on success."""

        outcome = await self._fetch(origin)
        self.apply(outcome)
        return outcome.ok

    def schedule_refetch(self, origin: str) -> asyncio.Task[None]:
        """Start a refetch without waiting for it."""

        return self._spawn(self._background_refetch(origin))

    async def refresh_schedules(self) -> bool:
        """Fetch the schedule list on its own and fold it into the snapshot.

        Some controllers leave ``schedules`` out of the full state document.
        The fetched list replaces that section of whatever snapshot is current
        when the result lands; the previous snapshot object is not touched.
        Returns True when a new snapshot was installed.
        """

        outcome = await self._fetch_schedules_outcome()
        return self.apply_schedules(outcome)

    def on_event(self, frame: EventFrame) -> None:
        logger.debug("event %r received; scheduling refetch", frame.name)
        self.schedule_refetch(ORIGIN_EVENT)

    def handle(self, message: SyncMessage) -> None:
        if isinstance(message, ConnectivityChanged):
            self._on_connectivity(message)
        elif isinstance(message, FrameReceived):
            if isinstance(message.frame, EventFrame):
                self.on_event(message.frame)
        elif isinstance(message, FetchCompleted):
            self.apply(message)
        elif isinstance(message, SchedulesFetched):
            self.apply_schedules(message)
        else:
            logger.debug("ignoring unknown message %r", message)

    def apply(self, outcome: FetchCompleted) -> None:
        snapshot = outcome.snapshot
        if snapshot is not None:
            self.context.replace_snapshot(snapshot)
            self.context.record_error(None)
            if outcome.origin == ORIGIN_POLL:
                self.context.set_polling_reachable(True)
            if outcome.origin in (ORIGIN_INITIAL, ORIGIN_MANUAL):
                logger.info("state loaded: %s", snapshot.summary())
            else:
                logger.debug("state refreshed (%s): %s", outcome.origin, snapshot.summary())
            if self._wants_schedules(snapshot):
                logger.debug("state has no schedules; fetching them separately")
                self._spawn(self._background_schedules())
            return

        error = outcome.error if outcome.error is not None else NetworkError()
        self.context.record_error(error)
        if outcome.origin == ORIGIN_POLL:
            self.context.set_polling_reachable(False)
        logger.warning("state fetch (%s) failed: %s", outcome.origin, error)

    def apply_schedules(self, outcome: SchedulesFetched) -> bool:
        if outcome.schedules is None:
            error = outcome.error if outcome.error is not None else NetworkError()
            self.context.record_error(error)
            logger.warning("schedules fetch failed: %s", error)
            return False
        current = self.context.snapshot
        if current is None:
            logger.debug("no snapshot yet; dropping %d fetched schedules", len(outcome.schedules))
            return False
        snapshot = current.with_section(
            "schedules", outcome.schedules, fetched_at=self._clock(), origin=ORIGIN_SCHEDULES
        )
        self.context.replace_snapshot(snapshot)
        self.context.record_error(None)
        logger.debug("schedules applied: %d", len(outcome.schedules))
        return True

    def record_error(self, error: Optional[SyncError]) -> None:
        self.context.record_error(error)

    def cancel_pending(self) -> None:
        for task in list(self._background):
            task.cancel()
        self._background.clear()

    @property
    def pending(self) -> int:
        return len(self._background)

    # ------------------------------------------------------------------
    def _on_connectivity(self, message: ConnectivityChanged) -> None:
        self.context.update_status(message.status)
        if message.status is ConnectionStatus.CONNECTED:
            self.context.record_error(None)
        elif message.status is ConnectionStatus.DISCONNECTED:
            if message.close_code not in _DELIBERATE_CLOSE_CODES:
                self.context.record_error(ConnectionLostError())

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _wants_schedules(self, snapshot: Snapshot) -> bool:
        if not self._fill_missing_schedules or self._fetch_schedules is None:
            return False
        return not snapshot.complete and not isinstance(snapshot.document.get("schedules"), list)

    async def _background_schedules(self) -> None:
        outcome = await self._fetch_schedules_outcome()
        if self._post is not None:
            self._post(outcome)
        else:
            self.apply_schedules(outcome)

    async def _fetch_schedules_outcome(self) -> SchedulesFetched:
        if self._fetch_schedules is None:
            return SchedulesFetched(error=NetworkError("no schedules endpoint configured"))
        try:
            schedules = await self._fetch_schedules()
        except asyncio.CancelledError:
            raise
        except SyncError as exc:
            return SchedulesFetched(error=exc)
        except Exception as exc:
            logger.debug("schedules fetch raised unexpectedly", exc_info=True)
            return SchedulesFetched(error=NetworkError(str(exc) or None))
        return SchedulesFetched(schedules=list(schedules))

    async def _background_refetch(self, origin: str) -> None:
        outcome = await self._fetch(origin)
        if self._post is not None:
            self._post(outcome)
        else:
            self.apply(outcome)

    async def _fetch(self, origin: str) -> FetchCompleted:
        if not self._single_flight:
            return await self._do_fetch(origin)
        inflight = self._inflight
        if inflight is None or inflight.done():
            inflight = asyncio.get_running_loop().create_task(self._do_fetch(origin))
            self._inflight = inflight
        else:
            logger.debug("coalescing %s refetch into the one in flight", origin)
        outcome = await asyncio.shield(inflight)
        if outcome.origin != origin:
            return FetchCompleted(origin, snapshot=outcome.snapshot, error=outcome.error)
        return outcome

    async def _do_fetch(self, origin: str) -> FetchCompleted:
        self.fetches_started += 1
        try:
            document = await self._fetch_state()
        except asyncio.CancelledError:
            raise
        except SyncError as exc:
            return FetchCompleted(origin, error=exc)
        except Exception as exc:
            logger.debug("state fetch raised unexpectedly", exc_info=True)
            return FetchCompleted(origin, error=NetworkError(str(exc) or None))
        return FetchCompleted(origin, snapshot=Snapshot(document, fetched_at=self._clock(), origin=origin))


__all__ = ["FetchSchedules", "FetchState", "StateSynchronizer"]
