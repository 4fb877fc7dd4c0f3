"""
Value types shared by discovery, recovery and the action loop.

Everything here is produced fresh per call and owned by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

_NON_UI_TYPES = frozenset({"Text", "Image"})


@dataclass(slots=True, frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, raw: Any) -> Rect | None:
        if not isinstance(raw, dict):
            return None
        try:
            return cls(
                x=float(raw.get("x", 0)),
                y=float(raw.get("y", 0)),
                width=float(raw.get("width", 0)),
                height=float(raw.get("height", 0)),
            )
        except (TypeError, ValueError):
            return None


@dataclass(slots=True, frozen=True)
class UIElement:
    """One discovered element in screen-absolute coordinates."""

    type: str
    name: str
    x: int
    y: int
    width: int
    height: int
    is_enabled: bool = True
    description: str | None = None
    value: str | None = None
    automation_id: str | None = None

    def center(self) -> tuple[int, int]:
        return (self.x + self.width // 2, self.y + self.height // 2)

    def moved(self, dx: float, dy: float) -> UIElement:
        return UIElement(
            type=self.type,
            name=self.name,
            x=int(round(self.x + dx)),
            y=int(round(self.y + dy)),
            width=self.width,
            height=self.height,
            is_enabled=self.is_enabled,
            description=self.description,
            value=self.value,
            automation_id=self.automation_id,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "name": self.name}
        if self.description:
            out["description"] = self.description
        if self.value:
            out["value"] = self.value
        out.update(
            {
                "x": self.x,
                "y": self.y,
                "width": self.width,
                "height": self.height,
                "isEnabled": self.is_enabled,
            }
        )
        if self.automation_id:
            out["automationId"] = self.automation_id
        return out


@dataclass(slots=True, frozen=True)
class WindowInfo:
    title: str = ""
    window_class: str = ""
    app: str = ""
    process_name: str = ""
    process_id: int | None = None
    bounds: Rect | None = None

    @property
    def is_empty(self) -> bool:
        return not self.title.strip() and not self.app.strip()


@dataclass(slots=True, frozen=True)
class UITree:
    window: str
    window_class: str
    strategy: str
    elements: tuple[UIElement, ...]
    ui: tuple[UIElement, ...]
    content: tuple[UIElement, ...]
    timestamp: str
    window_bounds: Rect | None = None
    bridge_active: bool | None = None

    @classmethod
    def build(
        cls,
        *,
        window: str,
        window_class: str,
        strategy: str,
        elements: list[UIElement] | tuple[UIElement, ...],
        window_bounds: Rect | None = None,
        bridge_active: bool | None = None,
        timestamp: str | None = None,
    ) -> UITree:
        items = tuple(elements)
        return cls(
            window=window,
            window_class=window_class,
            strategy=str(strategy),
            elements=items,
            ui=tuple(e for e in items if e.type not in _NON_UI_TYPES),
            content=tuple(e for e in items if e.type == "Text"),
            timestamp=timestamp or datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            window_bounds=window_bounds,
            bridge_active=bridge_active,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "window": self.window,
            "windowClass": self.window_class,
            "strategy": self.strategy,
            "elements": [e.to_dict() for e in self.elements],
            "ui": [e.to_dict() for e in self.ui],
            "content": [e.to_dict() for e in self.content],
            "timestamp": self.timestamp,
        }
        if self.window_bounds is not None:
            out["windowBounds"] = self.window_bounds.to_dict()
        if self.bridge_active is not None:
            out["bridgeActive"] = self.bridge_active
        return out


@dataclass(slots=True)
class BrowserInfo:
    type: str
    process_id: int | None = None
    debug_port: int | None = None
    is_debugging_enabled: bool = False
    window_title: str = ""
    window_class: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "processId": self.process_id,
            "debugPort": self.debug_port,
            "isDebuggingEnabled": self.is_debugging_enabled,
            "windowTitle": self.window_title,
            "windowClass": self.window_class,
        }


@dataclass(slots=True, frozen=True)
class CircuitBreakerState:
    failure_count: int
    last_failure_timestamp: float | None
    threshold: int
    reset_window: float
    is_open: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "failureCount": self.failure_count,
            "lastFailureTimestamp": self.last_failure_timestamp,
            "threshold": self.threshold,
            "resetWindow": self.reset_window,
            "isOpen": self.is_open,
        }


@dataclass(slots=True, frozen=True)
class Coordinates:
    x: int
    y: int
    confidence: float | None = None


@dataclass(slots=True)
class SmartClickResult:
    success: bool
    attempts: int
    coordinates: tuple[int, int] | None = None
    confidence: float | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success, "attempts": self.attempts}
        if self.coordinates is not None:
            out["coordinates"] = {"x": self.coordinates[0], "y": self.coordinates[1]}
        if self.confidence is not None:
            out["confidence"] = self.confidence
        if self.error:
            out["error"] = self.error
        return out


@dataclass(slots=True, frozen=True)
class GameInfo:
    name: str = ""
    scene: str = ""
    width: int = 0
    height: int = 0

    @classmethod
    def from_wire(cls, raw: Any) -> GameInfo:
        if not isinstance(raw, dict):
            return cls()
        res = raw.get("resolution") if isinstance(raw.get("resolution"), dict) else {}
        return cls(
            name=str(raw.get("name") or ""),
            scene=str(raw.get("scene") or ""),
            width=int(res.get("width") or 0),
            height=int(res.get("height") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "scene": self.scene,
            "resolution": {"width": self.width, "height": self.height},
        }


@dataclass(slots=True)
class BridgeSnapshot:
    elements: list[UIElement] = field(default_factory=list)
    game_info: GameInfo = field(default_factory=GameInfo)
    version: str = ""
