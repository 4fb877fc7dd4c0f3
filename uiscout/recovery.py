"""
Browser recovery saga.

Relaunches the user's browser with remote debugging enabled while keeping
their open tabs: detect -> save tabs -> close -> sync profile -> launch ->
restore tabs -> verify. Every step is recorded as a ``StepResult``; ``run``
always returns a ``RecoveryResult`` and never raises.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import sys
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .browser import MAC_APP_NAMES, BrowserType, detect_browser
from .cdp_client import CdpClient, is_internal_url
from .config import EngineConfig
from .launcher import DesktopBrowserLauncher, Runner, run_command
from .profile import ProfileSynchronizer
from .types import BrowserInfo
from .windows import WindowProvider

_LOGGER = logging.getLogger("uiscout.recovery")


class StepOutcome(str, enum.Enum):
    SKIPPED = "skipped"
    SUCCESS = "success"
    ERROR = "error"
    PENDING = "pending"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class StepResult:
    name: str
    outcome: StepOutcome
    message: str = ""
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "outcome": self.outcome.value,
            "message": self.message,
            "durationMs": self.duration_ms,
        }


@dataclass(slots=True)
class RecoveryResult:
    success: bool = False
    browser: str = BrowserType.UNKNOWN.value
    tabs_saved: int = 0
    tabs_restored: int = 0
    debugging_enabled: bool = False
    error: str | None = None
    steps: list[StepResult] = field(default_factory=list)

    def step(self, name: str) -> StepResult | None:
        return next((s for s in self.steps if s.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "browser": self.browser,
            "tabsSaved": self.tabs_saved,
            "tabsRestored": self.tabs_restored,
            "debuggingEnabled": self.debugging_enabled,
            "steps": [s.to_dict() for s in self.steps],
        }
        if self.error:
            out["error"] = self.error
        return out


class StepFailed(Exception):
    """Raised by a step to end the saga with a recorded error."""


@dataclass
class _SagaState:
    port: int
    app_hint: str | None
    browser: BrowserInfo | None = None
    kind: BrowserType = BrowserType.UNKNOWN
    urls: list[str] = field(default_factory=list)


_APPLESCRIPT_TABS = """
tell application "{app}"
  set tabUrls to {{}}
  repeat with w in windows
    repeat with t in tabs of w
      set end of tabUrls to URL of t
    end repeat
  end repeat
  return tabUrls
end tell
"""


class BrowserRecoverySaga:
    # (step name, aborts the saga on error)
    STEPS: tuple[tuple[str, bool], ...] = (
        ("detect_target", True),
        ("save_tabs", False),
        ("close_browser", True),
        ("sync_profile", False),
        ("launch_browser", True),
        ("restore_tabs", False),
        ("verify", False),
    )

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        client: CdpClient,
        launcher: DesktopBrowserLauncher | None = None,
        profiles: ProfileSynchronizer | None = None,
        windows: WindowProvider | None = None,
        platform: str | None = None,
        runner: Runner = run_command,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or EngineConfig.from_env()
        self.platform = platform or sys.platform
        self.client = client
        self.launcher = launcher or DesktopBrowserLauncher(self.config, platform=self.platform, sleep=sleep)
        self.profiles = profiles or ProfileSynchronizer(self.config, platform=self.platform)
        self.windows = windows
        self._run = runner
        self._sleep = sleep

    async def run(self, app_hint: str | None = None, *, port: int | None = None) -> RecoveryResult:
        state = _SagaState(port=int(port or self.config.cdp_port), app_hint=app_hint)
        result = RecoveryResult()
        start = time.monotonic()
        aborted = False
        for name, fatal in self.STEPS:
            if aborted:
                result.steps.append(StepResult(name=name, outcome=StepOutcome.PENDING, message="not reached"))
                continue
            step = await self._execute(name, state, result)
            result.steps.append(step)
            if step.outcome is StepOutcome.ERROR and fatal:
                result.error = step.message
                aborted = True

        result.success = not aborted and result.debugging_enabled
        if not aborted and not result.debugging_enabled and result.error is None:
            result.error = f"Debugging endpoint not reachable on port {state.port} after relaunch"
        _LOGGER.info(
            "recovery_done success=%s browser=%s port=%s tabs_saved=%s tabs_restored=%s duration_ms=%s error=%s",
            result.success,
            result.browser,
            state.port,
            result.tabs_saved,
            result.tabs_restored,
            int((time.monotonic() - start) * 1000),
            result.error,
        )
        return result

    async def _execute(self, name: str, state: _SagaState, result: RecoveryResult) -> StepResult:
        handler = getattr(self, f"_step_{name}")
        started = time.monotonic()
        try:
            outcome, message = await handler(state, result)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            outcome, message = StepOutcome.ERROR, str(exc) or type(exc).__name__
        step = StepResult(
            name=name,
            outcome=outcome,
            message=message,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        log = _LOGGER.warning if outcome is StepOutcome.ERROR else _LOGGER.info
        log(
            "recovery_step name=%s outcome=%s duration_ms=%s message=%s",
            step.name,
            step.outcome,
            step.duration_ms,
            step.message,
        )
        return step

    # Steps

    async def _step_detect_target(self, state: _SagaState, result: RecoveryResult) -> tuple[StepOutcome, str]:
        app = (state.app_hint or "").strip()
        window_class = ""
        title = ""
        if not app:
            if self.windows is None:
                raise StepFailed("No active window detected")
            window = await self.windows.active_window()
            if window is None or window.is_empty:
                raise StepFailed("No active window detected")
            if not window.app:
                raise StepFailed("Active window has no app name")
            app, window_class, title = window.app, window.window_class, window.title
        info = await detect_browser(
            window_class, app, client=self.client, platform=self.platform, window_title=title
        )
        if info is None:
            raise StepFailed(f"Window is not a supported Chromium browser (app: {app})")
        state.browser = info
        state.kind = BrowserType(info.type)
        result.browser = info.type
        return StepOutcome.SUCCESS, f"{info.type} (app: {app})"

    async def _step_save_tabs(self, state: _SagaState, result: RecoveryResult) -> tuple[StepOutcome, str]:
        urls: list[str] | None = None
        source = "none"
        for port in self.config.debug_ports():
            if not await self.client.is_debugging_enabled(port):
                continue
            try:
                urls = await self._tabs_via_debugger(port)
                source = f"debugger:{port}"
                break
            except Exception as exc:  # noqa: BLE001
                _LOGGER.warning("recovery_save_tabs_debugger_failed port=%s error=%s", port, exc)
        if urls is None and self.platform == "darwin":
            urls = await self._tabs_via_applescript(state.kind)
            source = "applescript"
        state.urls = list(urls or [])
        result.tabs_saved = len(state.urls)
        if not state.urls and source == "none":
            return StepOutcome.SKIPPED, "no tab source available; continuing with no tabs"
        return StepOutcome.SUCCESS, f"saved {len(state.urls)} tabs via {source}"

    async def _tabs_via_debugger(self, port: int) -> list[str]:
        conn = await self.client.connect(port=port)
        try:
            pages = await self.client.list_page_targets(conn)
        finally:
            await self.client.close(conn)
        return [str(p.get("url")) for p in pages if p.get("url")]

    async def _tabs_via_applescript(self, kind: BrowserType) -> list[str]:
        app = MAC_APP_NAMES.get(kind)
        if not app:
            return []
        res = await self._run(["osascript", "-e", _APPLESCRIPT_TABS.format(app=app)], 10.0)
        if not res.ok:
            _LOGGER.warning("recovery_save_tabs_applescript_failed rc=%s stderr=%s", res.returncode, res.stderr.strip())
            return []
        return [u.strip() for u in res.stdout.strip().split(", ") if u.strip() and not is_internal_url(u.strip())]

    async def _step_close_browser(self, state: _SagaState, result: RecoveryResult) -> tuple[StepOutcome, str]:
        if not await self.launcher.close(state.kind):
            raise StepFailed("Failed to close browser")
        return StepOutcome.SUCCESS, f"{state.kind} closed"

    async def _step_sync_profile(self, state: _SagaState, result: RecoveryResult) -> tuple[StepOutcome, str]:
        synced = await self.profiles.sync(state.kind)
        if synced.skipped:
            return StepOutcome.SKIPPED, synced.message
        if not synced.copied:
            # Non-fatal: a fresh profile still gives a controllable browser.
            return StepOutcome.ERROR, f"profile not copied: {synced.message}"
        return StepOutcome.SUCCESS, synced.message

    async def _step_launch_browser(self, state: _SagaState, result: RecoveryResult) -> tuple[StepOutcome, str]:
        launched = await self.launcher.launch(state.kind, state.port, self.config.profile_dir)
        if not launched:
            raise StepFailed("Failed to launch browser with debugging enabled")
        await self._sleep(self.config.launch_wait)
        return StepOutcome.SUCCESS, f"launched on port {state.port}"

    async def _step_restore_tabs(self, state: _SagaState, result: RecoveryResult) -> tuple[StepOutcome, str]:
        if not state.urls:
            return StepOutcome.SKIPPED, "no tabs to restore"
        ready = False
        for attempt in range(max(1, self.config.restore_poll_attempts)):
            if await self.client.is_debugging_enabled(state.port):
                ready = True
                break
            _LOGGER.debug("recovery_restore_wait attempt=%s port=%s", attempt + 1, state.port)
            await self._sleep(self.config.restore_poll_interval)
        if not ready:
            return StepOutcome.ERROR, "debugging endpoint not ready after launch"

        restored = 0
        conn = await self.client.connect(port=state.port)
        try:
            for url in state.urls:
                try:
                    await self.client.create_target(conn, url)
                except Exception as exc:  # noqa: BLE001
                    _LOGGER.warning("recovery_restore_tab_failed url=%s error=%s", url, exc)
                    continue
                restored += 1
        finally:
            await self.client.close(conn)
        result.tabs_restored = restored
        return StepOutcome.SUCCESS, f"restored {restored}/{len(state.urls)} tabs"

    async def _step_verify(self, state: _SagaState, result: RecoveryResult) -> tuple[StepOutcome, str]:
        result.debugging_enabled = await self.client.is_debugging_enabled(state.port)
        if not result.debugging_enabled:
            return StepOutcome.ERROR, f"debugging not reachable on port {state.port}"
        return StepOutcome.SUCCESS, f"debugging reachable on port {state.port}"
