"""
Adaptive UI discovery and resilience engine.

Finds on-screen UI elements across native widgets, embedded web views,
browser tabs (debugger protocol) and game engines (bridge protocol), and
drives verified actions guarded by a kill switch.
"""

from __future__ import annotations

from .automation import SmartActOptions, smart_act
from .config import EngineConfig
from .discovery import StrategyDispatcher
from .errors import (
    CdpCircuitOpenError,
    CdpConnectionError,
    CdpNotEnabledError,
    CdpTimeoutError,
    GameBridgeError,
    GameBridgeNotRunningError,
    GameBridgeProtocolError,
    GameBridgeTimeoutError,
    RestrictedActionError,
    SafetyError,
    UiScoutError,
    UserInterruptError,
)
from .killswitch import KillSwitch
from .recovery import BrowserRecoverySaga, RecoveryResult
from .strategy import Strategy, StrategyRules
from .types import BrowserInfo, SmartClickResult, UIElement, UITree

__all__ = [
    "BrowserInfo",
    "BrowserRecoverySaga",
    "CdpCircuitOpenError",
    "CdpConnectionError",
    "CdpNotEnabledError",
    "CdpTimeoutError",
    "EngineConfig",
    "GameBridgeError",
    "GameBridgeNotRunningError",
    "GameBridgeProtocolError",
    "GameBridgeTimeoutError",
    "KillSwitch",
    "RecoveryResult",
    "RestrictedActionError",
    "SafetyError",
    "SmartActOptions",
    "SmartClickResult",
    "Strategy",
    "StrategyDispatcher",
    "StrategyRules",
    "UIElement",
    "UITree",
    "UiScoutError",
    "UserInterruptError",
    "smart_act",
]
