"""HTTP access to the controller: full-state fetch and command calls."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from .errors import DecodingError, InvalidURLError, NetworkError

logger = logging.getLogger(__name__)


STATE_ENDPOINT = "/state/all"
SCHEDULES_ENDPOINT = "/config/schedules"

CIRCUIT_SET_STATE = "/state/circuit/setState"
FEATURE_SET_STATE = "/state/feature/setState"
BODY_SET_POINT = "/state/body/setPoint"
BODY_HEAT_MODE = "/state/body/heatMode"
PUMP_SET_SPEED = "/state/pump/setSpeed"
LIGHT_GROUP_SET_THEME = "/state/lightGroup/setTheme"
LIGHT_GROUP_SET_COLOR = "/state/lightGroup/setColor"
SCHEDULE_SET_STATE = "/state/schedule/setState"

_COMMAND_METHODS = ("PUT", "POST")


class PoolApi:
    """Thin async wrapper over ``aiohttp`` for the controller's REST surface.

    The session is created on first use unless one is injected; an injected
    session is left open by :meth:`close`.
    """

    def __init__(self, base_url: str, *, session: Optional[aiohttp.ClientSession] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "PoolApi":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        session = self._session
        if session is not None and self._owns_session and not session.closed:
            await session.close()
        self._session = None

    def url_for(self, endpoint: str) -> str:
        return self.base_url + endpoint

    async def fetch_state(self) -> Dict[str, Any]:
        """GET the authoritative state document."""

        return await self._get_json(STATE_ENDPOINT, "state", dict)

    async def fetch_schedules(self) -> List[Any]:
        """GET the schedule list, for controllers whose state omits it."""

        return await self._get_json(SCHEDULES_ENDPOINT, "schedules", list)

    async def _get_json(self, endpoint: str, label: str, expected: type) -> Any:
        url = self.url_for(endpoint)
        logger.debug("fetching %s from %s", label, url)
        status, body = await self._request("GET", url)
        if status != 200:
            logger.warning("%s fetch failed: HTTP %d", label, status)
            raise NetworkError(status=status)
        try:
            document = json.loads(body)
        except (ValueError, RecursionError) as exc:
            logger.warning("%s fetch returned undecodable JSON: %s", label, exc)
            raise DecodingError() from exc
        if not isinstance(document, expected):
            logger.warning("%s fetch returned %s, expected %s", label, type(document).__name__, expected.__name__)
            raise DecodingError()
        return document

    async def send_command(
        self,
        endpoint: str,
        parameters: Mapping[str, Any],
        *,
        method: str = "PUT",
    ) -> str:
        """Send one command; returns the response body on HTTP 200."""

        verb = method.upper()
        if verb not in _COMMAND_METHODS:
            raise ValueError(f"unsupported command method {method!r}")
        url = self.url_for(endpoint)
        logger.info("command %s %s %s", verb, url, dict(parameters))
        status, body = await self._request(verb, url, payload=dict(parameters))
        logger.debug("command response %d: %s", status, body[:500])
        if status != 200:
            logger.warning("command %s failed: HTTP %d", endpoint, status)
            raise NetworkError(status=status)
        return body

    async def _request(
        self,
        method: str,
        url: str,
        *,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> tuple[int, str]:
        session = self._client()
        try:
            async with session.request(method, url, json=payload) as resp:
                body = await resp.text()
                return resp.status, body
        except aiohttp.InvalidURL as exc:
            raise InvalidURLError() from exc
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("%s %s failed: %s", method, url, exc or exc.__class__.__name__)
            raise NetworkError() from exc
        except UnicodeDecodeError as exc:
            raise DecodingError() from exc


__all__ = [
    "BODY_HEAT_MODE",
    "BODY_SET_POINT",
    "CIRCUIT_SET_STATE",
    "FEATURE_SET_STATE",
    "LIGHT_GROUP_SET_COLOR",
    "LIGHT_GROUP_SET_THEME",
    "PUMP_SET_SPEED",
    "PoolApi",
    "SCHEDULES_ENDPOINT",
    "SCHEDULE_SET_STATE",
    "STATE_ENDPOINT",
]
