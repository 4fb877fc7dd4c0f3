from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_CDP_PORT = 9222
DEFAULT_CDP_FALLBACK_PORTS: list[int] = [9222, 9223, 9224]
DEFAULT_BRIDGE_PORT = 9876

PROFILE_RESYNC_MODES = {"always", "if-missing"}


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _default_home() -> str:
    return str(Path.home() / ".uiscout")


def _default_window_types_path() -> str:
    return str(Path(__file__).resolve().parent / "data" / "window_types.json")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: list[str] | None = None) -> list[str]:
    raw = os.environ.get(name)
    if raw is None:
        return list(default or [])
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_ports(name: str, default: list[int]) -> list[int]:
    out: list[int] = []
    for item in _env_list(name):
        try:
            out.append(int(item))
        except ValueError:
            continue
    return out or list(default)


def _env_hotkeys(name: str, default: list[str]) -> list[str]:
    # Hotkeys are "+"-joined and separated by ";" (a hotkey may contain ",").
    raw = os.environ.get(name)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(";") if item.strip()]


def normalize_resync_mode(raw: str | None) -> str:
    mode = (raw or "").strip().lower().replace("_", "-")
    if mode in {"missing", "if-missing", "once"}:
        return "if-missing"
    return "always"


@dataclass
class EngineConfig:
    home_dir: str = field(default_factory=_default_home)

    # Debugger protocol
    cdp_host: str = "127.0.0.1"
    cdp_port: int = DEFAULT_CDP_PORT
    cdp_fallback_ports: list[int] = field(default_factory=lambda: list(DEFAULT_CDP_FALLBACK_PORTS))
    cdp_connect_timeout: float = 5.0
    cdp_command_timeout: float = 10.0
    cdp_connect_attempts: int = 3
    cdp_backoff_initial: float = 0.5
    cdp_probe_timeout: float = 2.0

    # Game bridge
    bridge_host: str = "127.0.0.1"
    bridge_port: int = DEFAULT_BRIDGE_PORT
    bridge_timeout: float = 3.0
    bridge_probe_timeout: float = 0.5

    # Circuit breakers (one instance per client, these are only the knobs)
    breaker_threshold: int = 3
    breaker_reset_window: float = 30.0

    # Kill switch
    kill_switch_enabled: bool = True
    kill_switch_threshold: float = 50.0
    kill_switch_cooldown: float = 0.3

    # Restricted mode
    restricted_enabled: bool = False
    blocked_apps: list[str] = field(default_factory=list)
    allowed_apps: list[str] = field(default_factory=list)
    blocked_hotkeys: list[str] = field(default_factory=list)

    # Recovery saga
    auto_recover: bool = True
    profile_dir: str = field(default_factory=lambda: str(Path(_default_home()) / "chrome-profile"))
    profile_resync: str = "always"
    close_wait: float = 2.0
    launch_wait: float = 3.0
    restore_poll_attempts: int = 10
    restore_poll_interval: float = 1.0

    # Discovery
    window_types_path: str = field(default_factory=_default_window_types_path)
    min_elements: int = 10
    helper_timeout: float = 15.0
    native_helper: str = ""
    document_helper: str = ""
    legacy_helper: str = ""
    system_helper: str = ""
    window_helper: str = ""

    @property
    def resume_file(self) -> str:
        return str(Path(expand_path(self.home_dir)) / "killswitch-resume")

    @classmethod
    def from_env(cls) -> EngineConfig:
        home = expand_path(os.environ.get("UISCOUT_HOME", _default_home()))
        profile = expand_path(os.environ.get("UISCOUT_PROFILE_DIR", str(Path(home) / "chrome-profile")))
        return cls(
            home_dir=home,
            cdp_host=os.environ.get("UISCOUT_CDP_HOST", "127.0.0.1").strip() or "127.0.0.1",
            cdp_port=int(os.environ.get("UISCOUT_CDP_PORT", str(DEFAULT_CDP_PORT))),
            cdp_fallback_ports=_env_ports("UISCOUT_CDP_FALLBACK_PORTS", DEFAULT_CDP_FALLBACK_PORTS),
            cdp_connect_timeout=float(os.environ.get("UISCOUT_CDP_TIMEOUT", "5")),
            cdp_command_timeout=float(os.environ.get("UISCOUT_CDP_COMMAND_TIMEOUT", "10")),
            bridge_host=os.environ.get("UISCOUT_BRIDGE_HOST", "127.0.0.1").strip() or "127.0.0.1",
            bridge_port=int(os.environ.get("UISCOUT_BRIDGE_PORT", str(DEFAULT_BRIDGE_PORT))),
            bridge_timeout=float(os.environ.get("UISCOUT_BRIDGE_TIMEOUT", "3")),
            kill_switch_enabled=_env_bool("UISCOUT_KILL_SWITCH", True),
            kill_switch_threshold=float(os.environ.get("UISCOUT_KILL_SWITCH_THRESHOLD", "50")),
            kill_switch_cooldown=float(os.environ.get("UISCOUT_KILL_SWITCH_COOLDOWN_MS", "300")) / 1000.0,
            restricted_enabled=_env_bool("UISCOUT_RESTRICTED", False),
            blocked_apps=_env_list("UISCOUT_BLOCKED_APPS"),
            allowed_apps=_env_list("UISCOUT_ALLOWED_APPS"),
            blocked_hotkeys=_env_hotkeys("UISCOUT_BLOCKED_HOTKEYS", []),
            auto_recover=_env_bool("UISCOUT_AUTO_RECOVER", True),
            profile_dir=profile,
            profile_resync=normalize_resync_mode(os.environ.get("UISCOUT_PROFILE_RESYNC")),
            window_types_path=expand_path(
                os.environ.get("UISCOUT_WINDOW_TYPES", _default_window_types_path())
            ),
            min_elements=int(os.environ.get("UISCOUT_MIN_ELEMENTS", "10")),
            helper_timeout=float(os.environ.get("UISCOUT_HELPER_TIMEOUT", "15")),
            native_helper=os.environ.get("UISCOUT_NATIVE_HELPER", ""),
            document_helper=os.environ.get("UISCOUT_DOCUMENT_HELPER", ""),
            legacy_helper=os.environ.get("UISCOUT_LEGACY_HELPER", ""),
            system_helper=os.environ.get("UISCOUT_SYSTEM_HELPER", ""),
            window_helper=os.environ.get("UISCOUT_WINDOW_HELPER", ""),
        )

    def debug_ports(self) -> list[int]:
        """Configured port first, then fallbacks (deduplicated, order kept)."""
        return list(dict.fromkeys([int(self.cdp_port), *[int(p) for p in self.cdp_fallback_ports]]))
