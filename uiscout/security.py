from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .config import EngineConfig
from .errors import RestrictedActionError
from .types import WindowInfo
from .windows import WindowProvider

_LOGGER = logging.getLogger("uiscout.security")

UI_ACTIONS = frozenset({"click", "type", "hotkey", "scroll"})


def normalize_hotkey(keys: Iterable[str]) -> str:
    """Sorted, lowercased form: Ctrl+Alt+Delete -> alt+ctrl+delete."""
    return "+".join(sorted(k.strip().lower() for k in keys if k.strip()))


def _hotkey_keys(params: dict[str, Any]) -> list[str]:
    keys = params.get("keys")
    if isinstance(keys, str):
        return keys.split("+")
    if isinstance(keys, (list, tuple)):
        return [str(k) for k in keys]
    return []


def check_restrictions(
    action: str,
    params: dict[str, Any] | None,
    window: WindowInfo | None,
    config: EngineConfig,
) -> None:
    """Raise ``RestrictedActionError`` when restricted mode forbids ``action``."""
    if not config.restricted_enabled:
        return
    params = params or {}

    if action == "hotkey":
        keys = _hotkey_keys(params)
        if keys:
            normalized = normalize_hotkey(keys)
            for pattern in config.blocked_hotkeys:
                if normalize_hotkey(pattern.split("+")) == normalized:
                    _LOGGER.warning("restricted_action code=BLOCKED_HOTKEY hotkey=%s", "+".join(keys))
                    raise RestrictedActionError(
                        "BLOCKED_HOTKEY",
                        f'Hotkey "{"+".join(keys)}" is blocked by security policy',
                        {"hotkey": keys, "pattern": pattern},
                    )

    if action not in UI_ACTIONS or window is None:
        return
    title = window.title.lower()

    if config.allowed_apps:
        if not any(app.lower() in title for app in config.allowed_apps):
            _LOGGER.warning("restricted_action code=APP_NOT_ALLOWED window=%r", window.title)
            raise RestrictedActionError(
                "APP_NOT_ALLOWED",
                f'App "{window.title}" is not in allowed list',
                {"window": window.title, "allowedApps": list(config.allowed_apps)},
            )
        return

    for app in config.blocked_apps:
        if app.lower() in title:
            _LOGGER.warning("restricted_action code=BLOCKED_APP window=%r pattern=%r", window.title, app)
            raise RestrictedActionError(
                "BLOCKED_APP",
                f'Actions blocked on "{window.title}" (matches: "{app}")',
                {"window": window.title, "pattern": app},
            )


class RestrictionPolicy:
    """Restricted-mode gate bound to a window provider for the active window."""

    def __init__(self, config: EngineConfig, windows: WindowProvider | None = None) -> None:
        self.config = config
        self.windows = windows

    async def check(self, action: str, params: dict[str, Any] | None = None) -> None:
        if not self.config.restricted_enabled:
            return
        window = None
        if action in UI_ACTIONS and self.windows is not None:
            window = await self.windows.active_window()
        check_restrictions(action, params, window, self.config)
