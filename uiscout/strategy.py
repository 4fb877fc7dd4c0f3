"""
Strategy rule table: which discovery technique to use for a window.

Lookup order: game-engine signature, exact process name, exact window class,
substring match either way against known classes, ordered heuristics, then
the table's fallback.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .game_bridge import detect_game

_LOGGER = logging.getLogger("uiscout.strategy")


class Strategy(str, enum.Enum):
    NATIVE = "native"
    EMBEDDED_WEBVIEW = "embedded-webview"
    ELECTRON_STYLE = "electron-style"
    UWP_SHELL = "uwp-shell"
    BROWSER = "browser"
    GAME_BRIDGE = "game-bridge"
    # No focused window: system/taskbar elements.
    SHELL = "shell"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, raw: Any) -> Strategy | None:
        key = str(raw or "").strip().lower().replace("_", "-")
        if not key:
            return None
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None


_ALIASES: dict[str, str] = {
    "webview": "embedded-webview",
    "webview2": "embedded-webview",
    "cef": "embedded-webview",
    "electron": "electron-style",
    "uwp": "uwp-shell",
    "unity": "game-bridge",
    "game": "game-bridge",
    "chrome": "browser",
    "cdp": "browser",
    "taskbar": "shell",
}

HEURISTICS: tuple[tuple[str, Strategy], ...] = (
    ("Chrome_WidgetWin", Strategy.ELECTRON_STYLE),
    ("WebView", Strategy.EMBEDDED_WEBVIEW),
    ("WinUI", Strategy.EMBEDDED_WEBVIEW),
    ("ApplicationFrame", Strategy.UWP_SHELL),
)


def _parse_entries(raw: Any, section: str) -> dict[str, Strategy]:
    out: dict[str, Strategy] = {}
    if not isinstance(raw, dict):
        return out
    for key, entry in raw.items():
        value = entry.get("strategy") if isinstance(entry, dict) else entry
        strategy = Strategy.parse(value)
        if strategy is None:
            _LOGGER.warning("strategy_rule_invalid section=%s key=%r value=%r", section, key, value)
            continue
        out[str(key)] = strategy
    return out


@dataclass
class StrategyRules:
    window_classes: dict[str, Strategy] = field(default_factory=dict)
    process_names: dict[str, Strategy] = field(default_factory=dict)
    fallback: Strategy = Strategy.NATIVE
    descriptions: dict[str, Any] = field(default_factory=dict)
    heuristics: tuple[tuple[str, Strategy], ...] = HEURISTICS

    @classmethod
    def from_dict(cls, data: Any) -> StrategyRules:
        if not isinstance(data, dict):
            return cls()
        fallback_raw = data.get("fallback")
        if isinstance(fallback_raw, dict):
            fallback_raw = fallback_raw.get("strategy")
        return cls(
            window_classes=_parse_entries(data.get("windowClasses"), "windowClasses"),
            process_names={
                k.casefold(): v for k, v in _parse_entries(data.get("processNames"), "processNames").items()
            },
            fallback=Strategy.parse(fallback_raw) or Strategy.NATIVE,
            descriptions=dict(data.get("strategies") or {}) if isinstance(data.get("strategies"), dict) else {},
        )

    @classmethod
    def load(cls, path: str | Path | None) -> StrategyRules:
        """Read a rule file; a missing or broken file yields an empty table."""
        if not path:
            return cls()
        p = Path(path)
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except FileNotFoundError:
            _LOGGER.warning("strategy_rules_missing path=%s", p)
            return cls()
        except (OSError, ValueError) as exc:
            _LOGGER.warning("strategy_rules_invalid path=%s error=%s", p, exc)
            return cls()
        rules = cls.from_dict(data)
        _LOGGER.debug(
            "strategy_rules_loaded path=%s classes=%s processes=%s",
            p,
            len(rules.window_classes),
            len(rules.process_names),
        )
        return rules

    def detect(self, window_class: str, process_name: str = "") -> Strategy:
        window_class = window_class or ""
        process_name = process_name or ""

        if detect_game(process_name, window_class):
            return Strategy.GAME_BRIDGE

        if process_name:
            hit = self.process_names.get(process_name.casefold())
            if hit is not None:
                return hit

        hit = self.window_classes.get(window_class)
        if hit is not None:
            return hit

        if window_class:
            for cls_name, strategy in self.window_classes.items():
                if cls_name and (cls_name in window_class or window_class in cls_name):
                    return strategy

        for needle, strategy in self.heuristics:
            if needle in window_class:
                return strategy

        return self.fallback
