from __future__ import annotations

import asyncio
import json
import socket
import struct

import pytest


def _free_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return int(port)


SCENE = {
    "version": "1.0",
    "gameInfo": {"name": "Hearthstone", "scene": "Gameplay", "resolution": {"width": 1920, "height": 1080}},
    "elements": [
        {
            "type": "Card",
            "name": "HandCard_0",
            "path": "GameBoard/Hand/HandCard_0",
            "screenRect": {"x": 400.4, "y": 700.6, "width": 120, "height": 180},
            "isInteractable": True,
            "isVisible": True,
            "value": "Fireball",
        },
        {
            "type": "Button",
            "name": "EndTurn",
            "path": "HUD/EndTurn",
            "screenRect": {"x": 1700, "y": 500, "width": 140, "height": 60},
            "isInteractable": True,
            "isVisible": False,
        },
        {
            "type": "Text",
            "name": "Collapsed",
            "path": "HUD/Collapsed",
            "screenRect": {"x": 0, "y": 0, "width": 0, "height": 20},
            "isInteractable": False,
            "isVisible": True,
        },
    ],
}


def _client(**cfg):
    from uiscout.config import EngineConfig
    from uiscout.game_bridge import GameBridgeClient

    return GameBridgeClient(EngineConfig(**cfg))


async def _serve_once(port: int, data: bytes, *, close: bool = True):
    async def handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            writer.write(data)
            await writer.drain()
            if not close:
                await asyncio.sleep(1.0)
        except ConnectionError:
            pass
        finally:
            writer.close()

    return await asyncio.start_server(handler, "127.0.0.1", port)


def test_decoder_handles_arbitrary_chunking() -> None:
    from uiscout.game_bridge import FrameDecoder, encode_frame

    frame = encode_frame(SCENE) + b"trailing-garbage"
    decoder = FrameDecoder()
    payload = None
    for i in range(0, len(frame), 3):
        payload = decoder.feed(frame[i : i + 3])
        if payload is not None:
            break
    assert payload is not None
    assert json.loads(payload) == SCENE
    assert decoder.complete is True
    assert decoder.expected == len(payload)


def test_decoder_header_split_across_chunks() -> None:
    from uiscout.game_bridge import FrameDecoder

    body = b'{"elements": []}'
    header = struct.pack(">I", len(body))
    decoder = FrameDecoder()
    assert decoder.feed(header[:1]) is None
    assert decoder.feed(header[1:3]) is None
    assert decoder.expected is None
    assert decoder.feed(header[3:] + body[:5]) is None
    assert decoder.expected == len(body)
    assert decoder.feed(body[5:]) == body


def test_oversized_length_rejected_before_payload() -> None:
    from uiscout.errors import GameBridgeProtocolError
    from uiscout.game_bridge import MAX_FRAME_BYTES, FrameDecoder

    decoder = FrameDecoder()
    with pytest.raises(GameBridgeProtocolError) as exc_info:
        decoder.feed(struct.pack(">I", MAX_FRAME_BYTES + 1) + b"x" * 64)
    assert exc_info.value.message == f"Invalid length: {MAX_FRAME_BYTES + 1}"
    assert decoder.received == 4


def test_map_wire_element() -> None:
    from uiscout.game_bridge import parse_snapshot

    snapshot = parse_snapshot(json.dumps(SCENE).encode("utf-8"))
    assert snapshot.version == "1.0"
    assert snapshot.game_info.name == "Hearthstone"
    assert snapshot.game_info.to_dict()["resolution"] == {"width": 1920, "height": 1080}
    assert [e.name for e in snapshot.elements] == ["HandCard_0", "EndTurn"]

    card, end_turn = snapshot.elements
    assert (card.x, card.y, card.width, card.height) == (400, 701, 120, 180)
    assert card.description == "GameBoard/Hand/HandCard_0"
    assert card.value == "Fireball"
    assert card.is_enabled is True
    assert end_turn.is_enabled is False


def test_parse_snapshot_rejects_bad_payloads() -> None:
    from uiscout.errors import GameBridgeProtocolError
    from uiscout.game_bridge import parse_snapshot

    for payload in (b"\xff\xfe", b"[1, 2]", b'{"version": "1.0"}', b"not json"):
        with pytest.raises(GameBridgeProtocolError):
            parse_snapshot(payload)


def test_get_elements_from_live_server() -> None:
    from uiscout.game_bridge import encode_frame

    port = _free_port()

    async def run():
        server = await _serve_once(port, encode_frame(SCENE))
        async with server:
            client = _client()
            assert await client.is_available(port=port) is True
            return client, await client.get_elements(port=port)

    client, snapshot = asyncio.run(run())
    assert snapshot.game_info.scene == "Gameplay"
    assert len(snapshot.elements) == 2
    assert client.breaker.failure_count == 0


def test_refused_connection_is_not_running() -> None:
    from uiscout.errors import GameBridgeNotRunningError

    client = _client()
    port = _free_port()
    assert asyncio.run(client.is_available(port=port)) is False
    with pytest.raises(GameBridgeNotRunningError) as exc_info:
        asyncio.run(client.get_elements(port=port))
    assert exc_info.value.code == "BRIDGE_NOT_RUNNING"
    assert client.breaker.failure_count == 1


def test_early_close_is_protocol_error() -> None:
    from uiscout.errors import GameBridgeProtocolError

    port = _free_port()
    truncated = struct.pack(">I", 100) + b'{"elements": ['

    async def run():
        server = await _serve_once(port, truncated)
        async with server:
            await _client().get_elements(port=port)

    with pytest.raises(GameBridgeProtocolError, match="Connection closed before full response"):
        asyncio.run(run())


def test_stalled_server_times_out() -> None:
    from uiscout.errors import GameBridgeTimeoutError

    port = _free_port()

    async def run():
        server = await _serve_once(port, struct.pack(">I", 50), close=False)
        async with server:
            await _client().get_elements(port=port, timeout=0.3)

    with pytest.raises(GameBridgeTimeoutError):
        asyncio.run(run())


def test_breaker_opens_after_three_failures() -> None:
    from uiscout.errors import GameBridgeCircuitOpenError, GameBridgeNotRunningError

    client = _client()
    port = _free_port()
    for _ in range(3):
        with pytest.raises(GameBridgeNotRunningError):
            asyncio.run(client.get_elements(port=port))
    with pytest.raises(GameBridgeCircuitOpenError):
        asyncio.run(client.get_elements(port=port))
    assert asyncio.run(client.is_available(port=port)) is False


def test_detect_game() -> None:
    from uiscout.game_bridge import detect_game

    assert detect_game("Hearthstone.exe", "") is True
    assert detect_game("", "UnityWndClass") is True
    assert detect_game("Among Us", "") is True
    assert detect_game("notepad.exe", "Notepad") is False


def test_encode_frame_rejects_oversized_payload() -> None:
    from uiscout.errors import GameBridgeProtocolError
    from uiscout.game_bridge import MAX_FRAME_BYTES, encode_frame

    assert encode_frame("hi") == b"\x00\x00\x00\x02hi"
    with pytest.raises(GameBridgeProtocolError):
        encode_frame(b"x" * (MAX_FRAME_BYTES + 1))


def test_non_finite_wire_geometry_is_skipped() -> None:
    from uiscout.game_bridge import map_wire_element, parse_snapshot

    raw = {"type": "Card", "name": "X", "screenRect": {"x": float("inf"), "y": 0, "width": 10, "height": 10}}
    assert map_wire_element(raw) is None
    payload = b'{"elements": [{"name": "Y", "screenRect": {"x": Infinity, "y": 0, "width": 5, "height": 5}}]}'
    assert parse_snapshot(payload).elements == []


def test_bad_resolution_is_protocol_error() -> None:
    from uiscout.errors import GameBridgeProtocolError
    from uiscout.game_bridge import parse_snapshot

    bad = dict(SCENE, gameInfo={"name": "Hearthstone", "resolution": {"width": "1920px", "height": 1080}})
    with pytest.raises(GameBridgeProtocolError, match="Invalid gameInfo"):
        parse_snapshot(json.dumps(bad).encode("utf-8"))
