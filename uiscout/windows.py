from __future__ import annotations

import abc
import logging
from typing import Any

from .errors import DiscoverySourceError
from .sources import build_helper_argv, run_json_helper
from .types import Rect, WindowInfo

_LOGGER = logging.getLogger("uiscout.windows")


def window_from_raw(raw: Any) -> WindowInfo | None:
    if not isinstance(raw, dict):
        return None
    pid = raw.get("pid", raw.get("processId"))
    return WindowInfo(
        title=str(raw.get("name") or raw.get("title") or ""),
        window_class=str(raw.get("className") or raw.get("windowClass") or ""),
        app=str(raw.get("app") or ""),
        process_name=str(raw.get("processName") or raw.get("app") or ""),
        process_id=int(pid) if isinstance(pid, int) and not isinstance(pid, bool) else None,
        bounds=Rect.from_dict(raw.get("bounds")),
    )


class WindowProvider(abc.ABC):
    @abc.abstractmethod
    async def active_window(self, title: str | None = None) -> WindowInfo | None:
        """Foreground window, or the window matching ``title`` when given."""


class SubprocessWindowProvider(WindowProvider):
    """Asks a helper program which window is active (JSON on stdout)."""

    def __init__(self, command: str | list[str], *, timeout: float = 5.0) -> None:
        self.command = command
        self.timeout = float(timeout)

    async def active_window(self, title: str | None = None) -> WindowInfo | None:
        try:
            data = await run_json_helper("window", build_helper_argv(self.command, title or ""), self.timeout)
        except DiscoverySourceError as exc:
            _LOGGER.warning("window_lookup_failed title=%r error=%s", title, exc)
            return None
        if isinstance(data, list):
            data = data[0] if data else None
        return window_from_raw(data)
