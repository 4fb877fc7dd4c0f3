"""
Debugger-protocol (CDP) client for Chromium-family browsers.

Connections are plain asyncio websocket sessions. ``CdpClient`` owns the
circuit breaker for its endpoint and wraps the raw connect in a short
exponential backoff; the breaker sees one failure per ``connect()`` call,
not one per attempt.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from .circuit_breaker import CircuitBreaker
from .config import EngineConfig
from .errors import (
    CdpCircuitOpenError,
    CdpCommandError,
    CdpConnectionError,
    CdpNotEnabledError,
    CdpTimeoutError,
)
from .http_client import HttpClientError, fetch_json
from .types import Rect

_LOGGER = logging.getLogger("uiscout.cdp")

_INTERNAL_PREFIXES = ("chrome://", "devtools://", "chrome-extension://", "edge://", "brave://")
_NEW_TAB_PREFIX = "chrome://newtab/"
_MAX_EVENTS = 1000


def is_internal_url(url: str) -> bool:
    return str(url or "").startswith(_INTERNAL_PREFIXES)


class CdpConnection:
    """One websocket session; commands are sent and answered in order."""

    def __init__(
        self,
        ws: Any,
        *,
        url: str = "",
        target_id: str | None = None,
        command_timeout: float = 10.0,
    ) -> None:
        self._ws = ws
        self.url = url
        self.target_id = target_id
        self.command_timeout = float(command_timeout)
        self._next_id = 0
        self.events: deque[dict[str, Any]] = deque(maxlen=_MAX_EVENTS)
        self.closed = False

    async def send(
        self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None
    ) -> dict[str, Any]:
        if self.closed:
            raise CdpConnectionError(f"{method}: connection is closed")
        self._next_id += 1
        msg_id = self._next_id
        payload: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            payload["params"] = params
        limit = self.command_timeout if timeout is None else float(timeout)
        try:
            await self._ws.send(json.dumps(payload))
            return await asyncio.wait_for(self._await_reply(method, msg_id), timeout=max(0.1, limit))
        except asyncio.TimeoutError as exc:
            raise CdpTimeoutError(f"{method} timed out after {limit:.1f}s") from exc
        except ConnectionClosed as exc:
            self.closed = True
            raise CdpConnectionError(f"{method}: connection closed ({exc})") from exc

    async def _await_reply(self, method: str, msg_id: int) -> dict[str, Any]:
        while True:
            raw = await self._ws.recv()
            try:
                msg = json.loads(raw)
            except (TypeError, ValueError):
                continue
            if not isinstance(msg, dict):
                continue
            if msg.get("id") == msg_id:
                if "error" in msg:
                    raise CdpCommandError(method, msg["error"])
                result = msg.get("result")
                return result if isinstance(result, dict) else {}
            if "method" in msg:
                self.events.append(msg)
            # Stale replies (ids from timed-out commands) are dropped.

    def pop_event(self, name: str) -> dict[str, Any] | None:
        for ev in list(self.events):
            if ev.get("method") == name:
                self.events.remove(ev)
                return ev
        return None

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._ws.close()


def _exception_chain(exc: BaseException) -> list[BaseException]:
    seen: list[BaseException] = []
    stack: list[BaseException | None] = [exc]
    while stack:
        cur = stack.pop()
        if cur is None or any(cur is s for s in seen):
            continue
        seen.append(cur)
        stack.append(cur.__cause__)
        stack.append(cur.__context__)
        reason = getattr(cur, "reason", None)
        if isinstance(reason, BaseException):
            stack.append(reason)
    return seen


def classify_connect_error(exc: BaseException, host: str, port: int) -> CdpConnectionError:
    """Map a raw connect failure to the connection-class taxonomy."""
    if isinstance(exc, CdpConnectionError):
        return exc
    chain = _exception_chain(exc)
    if any(isinstance(e, ConnectionRefusedError) for e in chain) or "refused" in str(exc).lower():
        return CdpNotEnabledError(
            f"Remote debugging not enabled on {host}:{port} - launch the browser with --remote-debugging-port={port}",
            details={"host": host, "port": port},
        )
    if any(isinstance(e, (asyncio.TimeoutError, TimeoutError)) for e in chain) or "timed out" in str(exc).lower():
        return CdpTimeoutError(
            f"Debugger connection to {host}:{port} timed out", details={"host": host, "port": port}
        )
    return CdpConnectionError(
        f"Failed to connect to debugger at {host}:{port}: {exc}", details={"host": host, "port": port}
    )


class CdpClient:
    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        breaker: CircuitBreaker | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or EngineConfig.from_env()
        self.breaker = breaker or CircuitBreaker(
            self.config.breaker_threshold, self.config.breaker_reset_window, name="cdp"
        )
        self._sleep = sleep

    # HTTP discovery endpoints

    async def list_targets(self, host: str | None = None, port: int | None = None) -> list[dict[str, Any]]:
        host = host or self.config.cdp_host
        port = int(port or self.config.cdp_port)
        data = await fetch_json(f"http://{host}:{port}/json/list", timeout=self.config.cdp_connect_timeout)
        return [t for t in data if isinstance(t, dict)] if isinstance(data, list) else []

    async def get_active_tab(self, host: str | None = None, port: int | None = None) -> dict[str, Any] | None:
        """First page target; the new-tab page counts, other internal pages do not."""
        try:
            targets = await self.list_targets(host, port)
        except HttpClientError as exc:
            _LOGGER.warning("cdp_active_tab_failed port=%s error=%s", port or self.config.cdp_port, exc)
            return None
        for target in targets:
            url = str(target.get("url") or "")
            if target.get("type") != "page":
                continue
            if not is_internal_url(url) or url.startswith(_NEW_TAB_PREFIX):
                return target
        _LOGGER.info("cdp_active_tab_none targets=%s", len(targets))
        return None

    async def is_debugging_enabled(self, port: int | None = None, host: str | None = None) -> bool:
        host = host or self.config.cdp_host
        port = int(port or self.config.cdp_port)
        try:
            data = await fetch_json(f"http://{host}:{port}/json/version", timeout=self.config.cdp_probe_timeout)
        except HttpClientError:
            return False
        return isinstance(data, dict) and bool(data.get("webSocketDebuggerUrl"))

    async def detect_debug_port(self, host: str | None = None) -> int | None:
        for port in self.config.debug_ports():
            if await self.is_debugging_enabled(port, host):
                return port
        return None

    # Websocket session

    async def _resolve_ws_url(self, host: str, port: int, target: str | None) -> tuple[str, str | None]:
        if target and target.startswith(("ws://", "wss://")):
            return target, None
        targets = [t for t in await self.list_targets(host, port) if t.get("webSocketDebuggerUrl")]
        if target is not None:
            for t in targets:
                if t.get("id") == target:
                    return str(t["webSocketDebuggerUrl"]), str(t.get("id"))
            raise CdpConnectionError(f"Target {target} not found on {host}:{port}")
        pages = [t for t in targets if t.get("type") == "page"]
        preferred = [
            t
            for t in pages
            if not is_internal_url(str(t.get("url") or "")) or str(t.get("url") or "").startswith(_NEW_TAB_PREFIX)
        ]
        for t in preferred or pages:
            return str(t["webSocketDebuggerUrl"]), str(t.get("id") or "") or None
        version = await fetch_json(f"http://{host}:{port}/json/version", timeout=self.config.cdp_connect_timeout)
        ws_url = version.get("webSocketDebuggerUrl") if isinstance(version, dict) else None
        if not ws_url:
            raise CdpConnectionError(f"No debuggable target on {host}:{port}")
        return str(ws_url), None

    async def _open(self, host: str, port: int, target: str | None) -> CdpConnection:
        ws_url, target_id = await self._resolve_ws_url(host, port, target)
        ws = await websockets.connect(
            ws_url,
            open_timeout=self.config.cdp_connect_timeout,
            max_size=None,
            ping_interval=None,
        )
        return CdpConnection(ws, url=ws_url, target_id=target_id, command_timeout=self.config.cdp_command_timeout)

    async def connect(
        self, host: str | None = None, port: int | None = None, target: str | None = None
    ) -> CdpConnection:
        host = host or self.config.cdp_host
        port = int(port or self.config.cdp_port)
        self.breaker.guard(
            lambda: CdpCircuitOpenError(
                "Circuit breaker open - too many consecutive failures",
                details={"host": host, "port": port, "failures": self.breaker.failure_count},
            )
        )

        start = time.monotonic()
        attempts = max(1, int(self.config.cdp_connect_attempts))
        last_exc: BaseException | None = None
        for attempt in range(attempts):
            try:
                conn = await asyncio.wait_for(
                    self._open(host, port, target), timeout=self.config.cdp_connect_timeout
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                if attempt < attempts - 1:
                    delay = self.config.cdp_backoff_initial * (2**attempt)
                    _LOGGER.debug("cdp_connect_retry attempt=%s delay_s=%s error=%s", attempt + 1, delay, exc)
                    await self._sleep(delay)
                continue
            self.breaker.record_success()
            _LOGGER.info(
                "cdp_connect_ok host=%s port=%s attempts=%s duration_ms=%s",
                host,
                port,
                attempt + 1,
                int((time.monotonic() - start) * 1000),
            )
            return conn

        self.breaker.record_failure()
        err = classify_connect_error(last_exc or CdpConnectionError("unknown"), host, port)
        _LOGGER.warning(
            "cdp_connect_failed host=%s port=%s code=%s failures=%s duration_ms=%s error=%s",
            host,
            port,
            err.code,
            self.breaker.failure_count,
            int((time.monotonic() - start) * 1000),
            last_exc,
        )
        raise err from last_exc

    async def close(self, conn: CdpConnection | None) -> None:
        if conn is None:
            return
        try:
            await conn.close()
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("cdp_close_failed error=%s", exc)

    # Protocol helpers

    async def list_page_targets(self, conn: CdpConnection, *, include_new_tab: bool = False) -> list[dict[str, Any]]:
        res = await conn.send("Target.getTargets")
        infos = res.get("targetInfos") if isinstance(res.get("targetInfos"), list) else []
        pages: list[dict[str, Any]] = []
        for info in infos:
            if not isinstance(info, dict) or info.get("type") != "page":
                continue
            url = str(info.get("url") or "")
            if not url:
                continue
            if is_internal_url(url) and not (include_new_tab and url.startswith(_NEW_TAB_PREFIX)):
                continue
            pages.append(info)
        return pages

    async def create_target(self, conn: CdpConnection, url: str) -> str:
        res = await conn.send("Target.createTarget", {"url": url})
        return str(res.get("targetId") or "")

    async def get_full_tree(self, conn: CdpConnection) -> list[dict[str, Any]]:
        await conn.send("Accessibility.enable")
        try:
            res = await conn.send("Accessibility.getFullAXTree")
        finally:
            with contextlib.suppress(Exception):
                await conn.send("Accessibility.disable")
        nodes = res.get("nodes")
        return [n for n in nodes if isinstance(n, dict)] if isinstance(nodes, list) else []

    async def get_partial_tree(self, conn: CdpConnection, backend_node_id: int) -> list[dict[str, Any]]:
        res = await conn.send(
            "Accessibility.getPartialAXTree",
            {"backendNodeId": int(backend_node_id), "fetchRelatives": False},
        )
        nodes = res.get("nodes")
        return [n for n in nodes if isinstance(n, dict)] if isinstance(nodes, list) else []

    async def get_box_model(self, conn: CdpConnection, backend_node_id: int) -> Rect | None:
        """Content-quad geometry, or None for nodes that are not rendered."""
        try:
            res = await conn.send("DOM.getBoxModel", {"backendNodeId": int(backend_node_id)})
        except CdpCommandError:
            return None
        model = res.get("model")
        if not isinstance(model, dict):
            return None
        quad = model.get("content")
        if not isinstance(quad, list) or len(quad) < 8:
            return None
        try:
            xs = [float(v) for v in quad[0::2]]
            ys = [float(v) for v in quad[1::2]]
            width = float(model.get("width", max(xs) - min(xs)))
            height = float(model.get("height", max(ys) - min(ys)))
        except (TypeError, ValueError):
            return None
        return Rect(x=min(xs), y=min(ys), width=width, height=height)

    async def get_node_for_location(self, conn: CdpConnection, x: int, y: int) -> int | None:
        try:
            res = await conn.send(
                "DOM.getNodeForLocation",
                {"x": int(x), "y": int(y), "includeUserAgentShadowDOM": False},
            )
        except CdpCommandError:
            return None
        node_id = res.get("backendNodeId")
        return int(node_id) if isinstance(node_id, int) else None

    async def evaluate(self, conn: CdpConnection, expression: str) -> Any:
        res = await conn.send("Runtime.evaluate", {"expression": expression, "returnByValue": True})
        if res.get("exceptionDetails"):
            raise CdpCommandError("Runtime.evaluate", res["exceptionDetails"])
        result = res.get("result")
        return result.get("value") if isinstance(result, dict) else None
