from __future__ import annotations

import json

import pytest

from pool_sync.protocol import (
    EventFrame,
    HandshakeFrame,
    HeartbeatFrame,
    RawFrame,
    decode_frame,
    encode_event,
    encode_message,
)


def test_handshake_replies_pong_without_event() -> None:
    decoded = decode_frame('0{"sid":"abc"}')

    assert decoded is not None
    assert decoded.frame == HandshakeFrame({"sid": "abc"})
    assert decoded.reply == "3"
    assert not isinstance(decoded.frame, EventFrame)


def test_event_array_form() -> None:
    decoded = decode_frame('2["circuit",{"id":5,"isOn":true}]')

    assert decoded is not None
    assert decoded.reply is None
    assert decoded.frame == EventFrame("circuit", {"id": 5, "isOn": True})


def test_event_object_form_uses_generic_name() -> None:
    decoded = decode_frame('2{"air":71.5}')

    assert decoded is not None
    assert decoded.frame == EventFrame("data", {"air": 71.5})


def test_bare_ping_is_heartbeat_and_not_answered() -> None:
    decoded = decode_frame("2")

    assert decoded is not None
    assert decoded.frame == HeartbeatFrame("ping")
    assert decoded.reply is None


def test_pong_is_answered_with_ping() -> None:
    decoded = decode_frame("3")

    assert decoded is not None
    assert decoded.frame == HeartbeatFrame("pong")
    assert decoded.reply == "2"


def test_untagged_json_object_is_raw() -> None:
    decoded = decode_frame('{"event":"temps"}')

    assert decoded is not None
    assert decoded.frame == RawFrame({"event": "temps"})


def test_binary_json_object_is_raw() -> None:
    decoded = decode_frame(b'{"pumps":[]}')

    assert decoded is not None
    assert decoded.frame == RawFrame({"pumps": []})


@pytest.mark.parametrize(
    "text",
    [
        "2[not json",
        "2[1,2]",
        "2 42",
        "0not-json",
        "40",
        "3probe",
        "",
        "garbage",
    ],
)
def test_malformed_frames_are_dropped(text: str) -> None:
    assert decode_frame(text) is None


@pytest.mark.parametrize("tag", ["2", "0", ""])
def test_deeply_nested_frames_are_dropped(tag: str) -> None:
    depth = 200_000

    assert decode_frame(tag + "[" * depth + "]" * depth) is None
    assert decode_frame(tag + '{"a":' * depth + "1" + "}" * depth) is None
    assert decode_frame((tag + "[" * depth + "]" * depth).encode()) is None


def test_binary_garbage_is_dropped() -> None:
    assert decode_frame(b"\xff\xfe\x00") is None
    assert decode_frame(b"[1,2,3]") is None


@pytest.mark.parametrize(
    "name,payload",
    [
        ("circuit", {"id": 5, "isOn": True}),
        ("temps", {"air": 70.2, "bodies": [{"id": 1, "temp": 82}]}),
        ("pump", {}),
        ("equipment", ["a", 1, None]),
    ],
)
def test_encode_event_decodes_to_same_event(name: str, payload: object) -> None:
    decoded = decode_frame(encode_event(name, payload))

    assert decoded is not None
    assert decoded.frame == EventFrame(name, payload)


def test_encode_message_prefixes_event_tag() -> None:
    text = encode_message({"id": 1, "state": False})

    assert text.startswith("2")
    assert json.loads(text[1:]) == {"id": 1, "state": False}
