"""
Discovery sources: the narrow interface the dispatcher depends on.

OS-specific accessibility readers are opaque helper programs. Each one is
wrapped as a ``DiscoverySource`` whose ``run`` returns raw element dicts or
raises ``DiscoverySourceError``.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import shlex
import time
from typing import Any

from .errors import DiscoverySourceError
from .types import UIElement, WindowInfo

_LOGGER = logging.getLogger("uiscout.sources")

WINDOW_PLACEHOLDER = "{window}"


def build_helper_argv(command: str | list[str], window: str) -> list[str]:
    """Split a helper command and substitute the window title.

    Without a ``{window}`` placeholder the title is appended as the last
    argument (omitted when empty).
    """
    argv = shlex.split(command) if isinstance(command, str) else [str(a) for a in command]
    if any(WINDOW_PLACEHOLDER in a for a in argv):
        return [a.replace(WINDOW_PLACEHOLDER, window) for a in argv]
    return [*argv, window] if window else argv


async def run_json_helper(name: str, argv: list[str], timeout: float) -> Any:
    """Run a helper and parse its stdout as one JSON document (None when empty)."""
    if not argv:
        raise DiscoverySourceError(name, "no helper command configured")
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise DiscoverySourceError(name, f"cannot start helper: {exc}") from exc
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise DiscoverySourceError(name, f"helper timed out after {timeout}s") from exc
    if proc.returncode != 0:
        tail = err.decode("utf-8", errors="replace").strip()[-300:]
        raise DiscoverySourceError(name, f"helper exited with {proc.returncode}: {tail}")
    text = out.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError as exc:
        raise DiscoverySourceError(name, f"helper produced invalid JSON: {exc}") from exc


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None


def _opt_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def element_from_raw(raw: Any) -> UIElement | None:
    """Normalize one helper element; zero-size or malformed entries are dropped."""
    if not isinstance(raw, dict):
        return None
    rect = raw.get("bounds") if isinstance(raw.get("bounds"), dict) else raw
    x, y = _as_int(rect.get("x")), _as_int(rect.get("y"))
    width, height = _as_int(rect.get("width")), _as_int(rect.get("height"))
    if x is None or y is None or width is None or height is None:
        return None
    if width <= 0 or height <= 0:
        return None
    enabled = raw.get("isEnabled", raw.get("enabled", True))
    return UIElement(
        type=str(raw.get("type") or raw.get("role") or "Control"),
        name=str(raw.get("name") or ""),
        x=x,
        y=y,
        width=width,
        height=height,
        is_enabled=bool(enabled),
        description=_opt_text(raw.get("description")),
        value=_opt_text(raw.get("value")),
        automation_id=_opt_text(raw.get("automationId")),
    )


def elements_from_raw(items: list[dict[str, Any]]) -> list[UIElement]:
    out: list[UIElement] = []
    for raw in items:
        element = element_from_raw(raw)
        if element is not None:
            out.append(element)
    return out


class DiscoverySource(abc.ABC):
    name: str = "source"

    @abc.abstractmethod
    async def run(self, target: WindowInfo) -> list[dict[str, Any]]:
        """Return raw element dicts for ``target`` or raise ``DiscoverySourceError``."""


class SubprocessDiscoverySource(DiscoverySource):
    def __init__(self, name: str, command: str | list[str], *, timeout: float = 15.0) -> None:
        self.name = name
        self.command = command
        self.timeout = float(timeout)

    async def run(self, target: WindowInfo) -> list[dict[str, Any]]:
        argv = build_helper_argv(self.command, target.title)
        start = time.monotonic()
        data = await run_json_helper(self.name, argv, self.timeout)
        if data is None:
            items: list[Any] = []
        elif isinstance(data, list):
            items = data
        elif isinstance(data, dict) and "error" in data:
            raise DiscoverySourceError(self.name, str(data.get("error")))
        elif isinstance(data, dict) and isinstance(data.get("elements"), list):
            items = data["elements"]
        elif isinstance(data, dict):
            items = [data]
        else:
            raise DiscoverySourceError(self.name, f"unexpected helper payload: {type(data).__name__}")
        raws = [item for item in items if isinstance(item, dict)]
        _LOGGER.debug(
            "source_run name=%s window=%r elements=%s duration_ms=%s",
            self.name,
            target.title,
            len(raws),
            int((time.monotonic() - start) * 1000),
        )
        return raws

