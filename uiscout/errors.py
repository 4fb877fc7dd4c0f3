from __future__ import annotations

from typing import Any


class UiScoutError(Exception):
    """Base class for every engine error; carries a stable machine code."""

    code = "ERROR"

    def __init__(self, message: str = "", *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details: dict[str, Any] = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": True, "code": self.code, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


# Debugger protocol (connection-class)


class CdpConnectionError(UiScoutError):
    code = "CONNECTION_FAILED"


class CdpNotEnabledError(CdpConnectionError):
    code = "NOT_ENABLED"


class CdpTimeoutError(CdpConnectionError):
    code = "TIMEOUT"


class CdpCircuitOpenError(CdpConnectionError):
    code = "CIRCUIT_BREAKER_OPEN"


class CdpCommandError(UiScoutError):
    """The endpoint answered a command with an error object."""

    code = "COMMAND_FAILED"

    def __init__(self, method: str, error: Any) -> None:
        message = error.get("message") if isinstance(error, dict) else str(error)
        super().__init__(f"{method}: {message}", details={"method": method, "error": error})
        self.method = method


# Game bridge (bridge-class)


class GameBridgeError(UiScoutError):
    code = "BRIDGE_ERROR"


class GameBridgeNotRunningError(GameBridgeError):
    code = "BRIDGE_NOT_RUNNING"


class GameBridgeTimeoutError(GameBridgeError):
    code = "BRIDGE_TIMEOUT"


class GameBridgeProtocolError(GameBridgeError):
    code = "BRIDGE_PROTOCOL_ERROR"


class GameBridgeCircuitOpenError(GameBridgeError):
    code = "CIRCUIT_BREAKER_OPEN"


# Safety-class: never retried automatically.


class SafetyError(UiScoutError):
    code = "SAFETY"


class UserInterruptError(SafetyError):
    code = "USER_INTERRUPT"

    def __init__(self, distance: float, threshold: float) -> None:
        self.distance = float(distance)
        self.threshold = float(threshold)
        super().__init__(
            f"Kill switch triggered: mouse moved {round(self.distance)}px "
            f"(threshold: {round(self.threshold)}px). Automation stopped.",
            details={"distance": self.distance, "threshold": self.threshold},
        )


class RestrictedActionError(SafetyError):
    code = "RESTRICTED_ACTION"

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details)
        # BLOCKED_HOTKEY, APP_NOT_ALLOWED or BLOCKED_APP
        self.code = code


class DiscoverySourceError(UiScoutError):
    code = "DISCOVERY_SOURCE_FAILED"

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}", details={"source": source})
        self.source = source

