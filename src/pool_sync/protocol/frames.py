"""Text-frame codec for the controller's streaming socket.

Every text message starts with a single ASCII digit naming the frame type,
optionally followed by a JSON document:

``0{...}``
    handshake; answered with a pong (``3``).
``2``
    bare ping from the server; nothing to answer, nothing to emit.
``2["name", {...}]`` / ``2{...}``
    event; the object-only form is tagged with the generic ``data`` name.
``3``
    pong; answered with a ping (``2``).

Anything else is tried as a bare JSON object and surfaced as a raw frame.
Undecodable input is logged and dropped; :func:`decode_frame` never raises.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

logger = logging.getLogger(__name__)


HANDSHAKE_TAG = "0"
PING_TAG = "2"
EVENT_TAG = "2"
PONG_TAG = "3"

GENERIC_EVENT_NAME = "data"

HEARTBEAT_PING = "ping"
HEARTBEAT_PONG = "pong"


@dataclass(frozen=True)
class HandshakeFrame:
    payload: Mapping[str, Any]


@dataclass(frozen=True)
class HeartbeatFrame:
    kind: str  # "ping" | "pong"


@dataclass(frozen=True)
class EventFrame:
    name: str
    payload: Any


@dataclass(frozen=True)
class RawFrame:
    payload: Mapping[str, Any]


Frame = Union[HandshakeFrame, HeartbeatFrame, EventFrame, RawFrame]


@dataclass(frozen=True)
class DecodedFrame:
    """A parsed frame plus the text the codec wants sent back, if any."""

    frame: Frame
    reply: Optional[str] = None


def _dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"))


def _loads_object(text: str) -> Optional[Mapping[str, Any]]:
    try:
        value = json.loads(text)
    except (TypeError, ValueError, RecursionError):
        return None
    return value if isinstance(value, dict) else None


def _decode_event(body: str) -> Optional[EventFrame]:
    try:
        value = json.loads(body)
    except (ValueError, RecursionError):
        # RecursionError: nesting deeper than the decoder can follow.
        return None
    if isinstance(value, list) and len(value) >= 2 and isinstance(value[0], str):
        return EventFrame(name=value[0], payload=value[1])
    if isinstance(value, dict):
        return EventFrame(name=GENERIC_EVENT_NAME, payload=value)
    return None


def decode_frame(message: Union[str, bytes, bytearray]) -> Optional[DecodedFrame]:
    """Classify one transport message; ``None`` means the message was dropped."""

    if isinstance(message, (bytes, bytearray)):
        # Binary messages carry bare JSON, no type tag.
        try:
            text = bytes(message).decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("dropping undecodable binary frame (%d bytes)", len(message))
            return None
        payload = _loads_object(text)
        if payload is None:
            logger.debug("dropping binary frame that is not a JSON object")
            return None
        return DecodedFrame(RawFrame(payload))

    text = str(message)

    if text.startswith(HANDSHAKE_TAG):
        payload = _loads_object(text[1:])
        if payload is not None:
            logger.debug("handshake received: %s", payload)
            return DecodedFrame(HandshakeFrame(payload), reply=PONG_TAG)
    elif text.startswith(EVENT_TAG):
        body = text[1:]
        if not body:
            return DecodedFrame(HeartbeatFrame(HEARTBEAT_PING))
        event = _decode_event(body)
        if event is not None:
            return DecodedFrame(event)
        logger.debug("could not parse event frame: %s", body[:200])
    elif text == PONG_TAG:
        return DecodedFrame(HeartbeatFrame(HEARTBEAT_PONG), reply=PING_TAG)

    payload = _loads_object(text)
    if payload is None:
        logger.debug("dropping unparseable frame: %s", text[:200])
        return None
    return DecodedFrame(RawFrame(payload))


def encode_event(name: str, payload: Any) -> str:
    """Encode ``(name, payload)`` as an event frame; inverse of :func:`decode_frame`."""
    return EVENT_TAG + _dumps([name, payload])


def encode_message(payload: Mapping[str, Any]) -> str:
    """Encode a bare JSON object as an event frame."""
    return EVENT_TAG + _dumps(dict(payload))


__all__ = [
    "DecodedFrame",
    "EventFrame",
    "Frame",
    "GENERIC_EVENT_NAME",
    "HEARTBEAT_PING",
    "HEARTBEAT_PONG",
    "HandshakeFrame",
    "HeartbeatFrame",
    "PING_TAG",
    "PONG_TAG",
    "RawFrame",
    "decode_frame",
    "encode_event",
    "encode_message",
]
