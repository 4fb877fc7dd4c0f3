"""
Game-bridge client.

A companion plugin inside the game listens on loopback and, on every
connection, writes one frame: a 4-byte big-endian length followed by that
many bytes of UTF-8 JSON describing the UI scene.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import struct
import time
from typing import Any

from .circuit_breaker import CircuitBreaker
from .config import EngineConfig
from .errors import (
    GameBridgeCircuitOpenError,
    GameBridgeError,
    GameBridgeNotRunningError,
    GameBridgeProtocolError,
    GameBridgeTimeoutError,
)
from .types import BridgeSnapshot, GameInfo, UIElement

_LOGGER = logging.getLogger("uiscout.game_bridge")

HEADER = struct.Struct(">I")
MAX_FRAME_BYTES = 10 * 1024 * 1024
_READ_CHUNK = 64 * 1024

GAME_WINDOW_CLASSES = ("UnityWndClass", "UnityContainerWndClass")
GAME_PROCESS_MARKERS = ("hearthstone", "among us", "genshin", "hollow knight")


def detect_game(process_name: str, window_class: str) -> bool:
    """Coarse static check; nothing in-process is known before the bridge answers."""
    if any(cls in (window_class or "") for cls in GAME_WINDOW_CLASSES):
        return True
    proc = (process_name or "").lower()
    return any(marker in proc for marker in GAME_PROCESS_MARKERS)


def encode_frame(payload: bytes | str | dict[str, Any]) -> bytes:
    if isinstance(payload, dict):
        payload = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    if len(payload) > MAX_FRAME_BYTES:
        raise GameBridgeProtocolError(f"Frame too large: {len(payload)} bytes")
    return HEADER.pack(len(payload)) + payload


class FrameDecoder:
    """Incremental decoder for a single length-prefixed frame.

    ``feed`` returns the payload once complete and None while more bytes are
    needed. An oversized length is rejected as soon as the header is seen.
    Bytes past the end of the frame are ignored.
    """

    def __init__(self, max_bytes: int = MAX_FRAME_BYTES) -> None:
        self.max_bytes = int(max_bytes)
        self._header = bytearray()
        self._buf = bytearray()
        self.expected: int | None = None
        self.payload: bytes | None = None

    @property
    def received(self) -> int:
        return len(self._header) + len(self._buf)

    @property
    def complete(self) -> bool:
        return self.payload is not None

    def feed(self, chunk: bytes) -> bytes | None:
        if self.payload is not None:
            return self.payload
        view = memoryview(chunk)
        if self.expected is None:
            need = HEADER.size - len(self._header)
            self._header.extend(view[:need])
            view = view[need:]
            if len(self._header) < HEADER.size:
                return None
            (length,) = HEADER.unpack(self._header)
            if length > self.max_bytes:
                raise GameBridgeProtocolError(f"Invalid length: {length}", details={"length": length})
            self.expected = length
        self._buf.extend(view[: self.expected - len(self._buf)])
        if len(self._buf) >= self.expected:
            self.payload = bytes(self._buf[: self.expected])
            self._buf.clear()
            return self.payload
        return None


async def _read_until_frame(reader: asyncio.StreamReader, decoder: FrameDecoder) -> bytes:
    while True:
        chunk = await reader.read(_READ_CHUNK)
        if not chunk:
            raise GameBridgeProtocolError("Connection closed before full response")
        payload = decoder.feed(chunk)
        if payload is not None:
            return payload


async def read_frame(reader: asyncio.StreamReader, timeout: float, *, max_bytes: int = MAX_FRAME_BYTES) -> bytes:
    decoder = FrameDecoder(max_bytes)
    try:
        return await asyncio.wait_for(_read_until_frame(reader, decoder), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise GameBridgeTimeoutError(
            f"Bridge response timeout after {int(timeout * 1000)}ms",
            details={"received": decoder.received, "expected": decoder.expected},
        ) from exc


def map_wire_element(raw: Any) -> UIElement | None:
    if not isinstance(raw, dict):
        return None
    rect = raw.get("screenRect")
    if not isinstance(rect, dict):
        return None
    try:
        x = int(round(float(rect.get("x", 0))))
        y = int(round(float(rect.get("y", 0))))
        width = int(round(float(rect.get("width", 0))))
        height = int(round(float(rect.get("height", 0))))
    except (TypeError, ValueError, OverflowError):
        return None
    if width <= 0 or height <= 0:
        return None
    value = raw.get("value")
    automation_id = raw.get("automationId")
    return UIElement(
        type=str(raw.get("type") or "Control"),
        name=str(raw.get("name") or ""),
        description=str(raw.get("path") or "") or None,
        x=x,
        y=y,
        width=width,
        height=height,
        is_enabled=bool(raw.get("isInteractable")) and bool(raw.get("isVisible")),
        value=str(value) if value not in (None, "") else None,
        automation_id=str(automation_id) if automation_id else None,
    )


def parse_snapshot(payload: bytes) -> BridgeSnapshot:
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise GameBridgeProtocolError(f"Invalid JSON payload: {exc}") from exc
    if not isinstance(data, dict):
        raise GameBridgeProtocolError("Payload is not a JSON object")
    raw_elements = data.get("elements")
    if not isinstance(raw_elements, list):
        raise GameBridgeProtocolError("Payload has no elements list")
    elements = [e for e in (map_wire_element(r) for r in raw_elements) if e is not None]
    try:
        game_info = GameInfo.from_wire(data.get("gameInfo"))
    except (TypeError, ValueError, OverflowError) as exc:
        raise GameBridgeProtocolError(f"Invalid gameInfo: {exc}") from exc
    return BridgeSnapshot(elements=elements, game_info=game_info, version=str(data.get("version") or ""))


class GameBridgeClient:
    def __init__(self, config: EngineConfig | None = None, *, breaker: CircuitBreaker | None = None) -> None:
        self.config = config or EngineConfig.from_env()
        self.breaker = breaker or CircuitBreaker(
            self.config.breaker_threshold, self.config.breaker_reset_window, name="game_bridge"
        )

    async def is_available(self, host: str | None = None, port: int | None = None) -> bool:
        if self.breaker.is_open():
            return False
        host = host or self.config.bridge_host
        port = int(port or self.config.bridge_port)
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.config.bridge_probe_timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        with contextlib.suppress(Exception):
            await writer.wait_closed()
        return True

    async def get_elements(
        self, host: str | None = None, port: int | None = None, timeout: float | None = None
    ) -> BridgeSnapshot:
        host = host or self.config.bridge_host
        port = int(port or self.config.bridge_port)
        timeout = float(timeout if timeout is not None else self.config.bridge_timeout)
        self.breaker.guard(
            lambda: GameBridgeCircuitOpenError(
                f"Game bridge circuit open after {self.breaker.failure_count} failures",
                details={"host": host, "port": port},
            )
        )

        start = time.monotonic()
        writer: asyncio.StreamWriter | None = None
        try:
            try:
                reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
            except ConnectionRefusedError as exc:
                raise GameBridgeNotRunningError(
                    f"Game bridge not running on port {port}", details={"host": host, "port": port}
                ) from exc
            except asyncio.TimeoutError as exc:
                raise GameBridgeTimeoutError(f"Game bridge connection timeout after {int(timeout * 1000)}ms") from exc
            except OSError as exc:
                raise GameBridgeError(f"Game bridge connection failed: {exc}") from exc
            payload = await read_frame(reader, timeout)
            snapshot = parse_snapshot(payload)
        except GameBridgeError as exc:
            self.breaker.record_failure()
            _LOGGER.warning(
                "bridge_get_elements success=false host=%s port=%s code=%s failures=%s duration_ms=%s error=%s",
                host,
                port,
                exc.code,
                self.breaker.failure_count,
                int((time.monotonic() - start) * 1000),
                exc,
            )
            raise
        finally:
            if writer is not None:
                writer.close()
                with contextlib.suppress(Exception):
                    await writer.wait_closed()

        self.breaker.record_success()
        _LOGGER.info(
            "bridge_get_elements success=true game=%s scene=%s elements=%s duration_ms=%s",
            snapshot.game_info.name,
            snapshot.game_info.scene,
            len(snapshot.elements),
            int((time.monotonic() - start) * 1000),
        )
        return snapshot
