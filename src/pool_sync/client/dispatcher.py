"""Outbound commands: one HTTP call, then a refetch on success."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from .context import SyncContext
from .errors import CommandError, SyncError
from .http_api import (
    BODY_HEAT_MODE,
    BODY_SET_POINT,
    CIRCUIT_SET_STATE,
    FEATURE_SET_STATE,
    PUMP_SET_SPEED,
    PoolApi,
)
from .messages import ORIGIN_COMMAND
from .synchronizer import StateSynchronizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    endpoint: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    ok: bool = True
    error: Optional[SyncError] = None
    response: Optional[str] = None


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


class CommandDispatcher:
    """Send commands to the controller.

    No retries: a failed call is returned as a failed :class:`CommandResult`
    and recorded as the context's last error. Toggles invert whatever the
    current snapshot says, so a stale snapshot can pick the wrong target.
    """

    def __init__(
        self,
        api: PoolApi,
        synchronizer: StateSynchronizer,
        context: SyncContext,
        *,
        heat_mode_settle_s: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._api = api
        self._synchronizer = synchronizer
        self._context = context
        self.heat_mode_settle_s = float(heat_mode_settle_s)
        self._sleep = sleep

    async def dispatch(
        self,
        endpoint: str,
        parameters: Mapping[str, Any],
        *,
        method: str = "PUT",
        action: Optional[str] = None,
        settle_s: float = 0.0,
    ) -> CommandResult:
        params = dict(parameters)
        try:
            body = await self._api.send_command(endpoint, params, method=method)
        except SyncError as exc:
            error = CommandError(endpoint, exc, action=action)
            logger.warning("%s", error)
            self._synchronizer.record_error(error)
            return CommandResult(endpoint, params, ok=False, error=error)

        if settle_s > 0:
            await self._sleep(settle_s)
        await self._synchronizer.refetch(ORIGIN_COMMAND)
        return CommandResult(endpoint, params, ok=True, response=body)

    # --- command helpers ------------------------------------------------
    def _is_on(self, section: str, entity_id: Any) -> bool:
        snapshot = self._context.snapshot
        entity = snapshot.entity(section, entity_id) if snapshot is not None else None
        return bool(entity.get("isOn")) if entity is not None else False

    async def toggle_circuit(self, circuit_id: int) -> CommandResult:
        target = not self._is_on("circuits", circuit_id)
        logger.info("toggling circuit %s -> %s", circuit_id, target)
        return await self.dispatch(
            CIRCUIT_SET_STATE,
            {"id": circuit_id, "state": target},
            action="toggle circuit",
        )

    async def toggle_feature(self, feature_id: int) -> CommandResult:
        target = not self._is_on("features", feature_id)
        logger.info("toggling feature %s -> %s", feature_id, target)
        return await self.dispatch(
            FEATURE_SET_STATE,
            {"id": feature_id, "state": target},
            action="toggle feature",
        )

    async def set_body_setpoint(self, body_id: int, temperature: float) -> CommandResult:
        if not math.isfinite(temperature):
            raise ValueError(f"set point must be a finite number, got {temperature!r}")
        whole = _round_half_away(temperature)
        snapshot = self._context.snapshot
        if snapshot is not None and snapshot.entity("bodies", body_id) is None:
            logger.debug("body %s not in current snapshot; sending anyway", body_id)
        return await self.dispatch(
            BODY_SET_POINT,
            {"id": body_id, "heatSetpoint": whole},
            action="set temperature",
        )

    async def set_body_heat_mode(self, body_id: int, mode: Any) -> CommandResult:
        return await self.dispatch(
            BODY_HEAT_MODE,
            {"id": body_id, "mode": mode},
            action="set heat mode",
            settle_s=self.heat_mode_settle_s,
        )

    async def set_pump_speed(self, pump_id: int, rpm: int) -> CommandResult:
        return await self.dispatch(
            PUMP_SET_SPEED,
            {"id": pump_id, "rpm": int(rpm)},
            action="set pump speed",
        )


__all__ = ["CommandDispatcher", "CommandResult"]
