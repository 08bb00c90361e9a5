"""Tagged messages carried on the client's single inbound channel."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Union

from pool_sync.protocol import Frame

from .context import ConnectionStatus, Snapshot
from .errors import SyncError

# Fetch origins, used for logging and for the polling reachability signal.
ORIGIN_MANUAL = "manual"
ORIGIN_INITIAL = "initial"
ORIGIN_POLL = "poll"
ORIGIN_REFRESH = "refresh"
ORIGIN_EVENT = "event"
ORIGIN_COMMAND = "command"
ORIGIN_SCHEDULES = "schedules"


@dataclass(frozen=True)
class ConnectivityChanged:
    status: ConnectionStatus
    close_code: Optional[int] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class FrameReceived:
    frame: Frame


@dataclass(frozen=True)
class FetchCompleted:
    origin: str
    snapshot: Optional[Snapshot] = None
    error: Optional[SyncError] = None

    @property
    def ok(self) -> bool:
        return self.snapshot is not None


@dataclass(frozen=True)
class SchedulesFetched:
    """Result of a separate schedule fetch, merged into the snapshot current when applied."""

    schedules: Optional[List[Any]] = None
    error: Optional[SyncError] = None

    @property
    def ok(self) -> bool:
        return self.schedules is not None


SyncMessage = Union[ConnectivityChanged, FrameReceived, FetchCompleted, SchedulesFetched]


__all__ = [
    "ConnectivityChanged",
    "FetchCompleted",
    "FrameReceived",
    "ORIGIN_COMMAND",
    "ORIGIN_EVENT",
    "ORIGIN_INITIAL",
    "ORIGIN_MANUAL",
    "ORIGIN_POLL",
    "ORIGIN_REFRESH",
    "ORIGIN_SCHEDULES",
    "SchedulesFetched",
    "SyncMessage",
]
