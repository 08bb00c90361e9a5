"""Observable sync state: snapshot, connection status and last error.

One :class:`SyncContext` is created per client and injected into whatever
needs to read it. Only the synchronizer writes to it; consumers read the
properties or subscribe for ``(field, value)`` notifications.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import SyncError

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# Sections a full /state/all document carries; bodies may also sit under temps.
_EXPECTED_SECTIONS = ("circuits", "features", "pumps", "schedules")


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


@dataclass(frozen=True)
class Snapshot:
    """Full remote state as last fetched. Never mutated after creation.

    Only the top-level mapping is read-only. Nested lists and objects are
    the decoded JSON as received and must be treated as read-only too;
    use :meth:`with_section` to derive a new snapshot instead.
    """

    document: Mapping[str, Any]
    fetched_at: float = field(default_factory=time.time)
    origin: str = "manual"

    def __post_init__(self) -> None:
        if not isinstance(self.document, MappingProxyType):
            object.__setattr__(self, "document", MappingProxyType(dict(self.document)))

    def with_section(self, name: str, value: Any, *, fetched_at: float, origin: str) -> "Snapshot":
        """Return a copy with one top-level section replaced."""
        document = dict(self.document)
        document[name] = value
        return Snapshot(document, fetched_at=fetched_at, origin=origin)

    @property
    def bodies(self) -> list:
        temps = self.document.get("temps")
        if isinstance(temps, Mapping) and isinstance(temps.get("bodies"), list):
            return temps["bodies"]
        return _as_list(self.document.get("bodies"))

    @property
    def complete(self) -> bool:
        if not all(isinstance(self.document.get(name), list) for name in _EXPECTED_SECTIONS):
            return False
        temps = self.document.get("temps")
        has_temps_bodies = isinstance(temps, Mapping) and isinstance(temps.get("bodies"), list)
        return has_temps_bodies or isinstance(self.document.get("bodies"), list)

    def section(self, name: str) -> list:
        if name == "bodies":
            return self.bodies
        return _as_list(self.document.get(name))

    def entity(self, section: str, entity_id: Any) -> Optional[Mapping[str, Any]]:
        for item in self.section(section):
            if isinstance(item, Mapping) and item.get("id") == entity_id:
                return item
        return None

    def summary(self) -> Dict[str, Any]:
        status = self.document.get("status")
        return {
            "controller": self.document.get("controllerType") or "Unknown",
            "model": self.document.get("model") or "Unknown",
            "app_version": self.document.get("appVersion") or "Unknown",
            "status": (status.get("desc") if isinstance(status, Mapping) else None) or "Unknown",
            "bodies": len(self.bodies),
            "circuits": len(self.section("circuits")),
            "features": len(self.section("features")),
            "pumps": len(self.section("pumps")),
            "schedules": len(self.section("schedules")),
            "complete": self.complete,
        }


Listener = Callable[[str, Any], None]


class SyncContext:
    """Owns the live snapshot, stream status and the last recorded error."""

    def __init__(self) -> None:
        self._snapshot: Optional[Snapshot] = None
        self._status = ConnectionStatus.DISCONNECTED
        self._polling_reachable = False
        self._last_error: Optional[SyncError] = None
        self._listeners: List[Listener] = []

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def polling_reachable(self) -> bool:
        return self._polling_reachable

    @property
    def is_connected(self) -> bool:
        """Stream connected, or the polling fallback is reaching the server."""
        return self._status is ConnectionStatus.CONNECTED or self._polling_reachable

    @property
    def last_error(self) -> Optional[SyncError]:
        return self._last_error

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    # --- writer side (synchronizer only) ----------------------------------
    def replace_snapshot(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        self._notify("snapshot", snapshot)

    def record_error(self, error: Optional[SyncError]) -> None:
        if error is None and self._last_error is None:
            return
        self._last_error = error
        self._notify("last_error", error)

    def update_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        previous, self._status = self._status, status
        if previous is ConnectionStatus.CONNECTED:
            # Polling has to prove reachability again after a live stream drops.
            self.set_polling_reachable(False)
        self._notify("status", status)

    def set_polling_reachable(self, reachable: bool) -> None:
        if reachable == self._polling_reachable:
            return
        self._polling_reachable = reachable
        self._notify("polling_reachable", reachable)

    def _notify(self, name: str, value: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(name, value)
            except Exception:
                logger.debug("context listener failed for %s", name, exc_info=True)


__all__ = ["ConnectionStatus", "Snapshot", "SyncContext"]
