"""
Strategy dispatcher: one entry point for element discovery.

Picks a strategy for the target window, runs the matching client or
helper chain, falls back when a path fails or finds too little, and
returns a single ``UITree``. Chains keep the largest result set seen;
results from different sources are never merged.
"""

from __future__ import annotations

import logging
import sys
import time

from .cdp_client import CdpClient
from .cdp_elements import get_chrome_ui_offset, get_interactive_elements, to_screen
from .config import EngineConfig
from .errors import CdpConnectionError, CdpNotEnabledError, DiscoverySourceError, GameBridgeError
from .game_bridge import GameBridgeClient
from .recovery import BrowserRecoverySaga
from .sources import DiscoverySource, SubprocessDiscoverySource, elements_from_raw
from .strategy import Strategy, StrategyRules
from .types import UIElement, UITree, WindowInfo
from .windows import SubprocessWindowProvider, WindowProvider

_LOGGER = logging.getLogger("uiscout.discovery")

DESKTOP_CLASSES = frozenset({"Progman", "WorkerW"})
SHELL_WINDOW = "Taskbar"
SHELL_CLASS = "Shell_TrayWnd"

SOURCE_NATIVE = "native"
SOURCE_DOCUMENT = "document"
SOURCE_LEGACY = "legacy"
SOURCE_SYSTEM = "system"

SWEEP_CHAINS: dict[Strategy, tuple[str, ...]] = {
    Strategy.ELECTRON_STYLE: (SOURCE_DOCUMENT, SOURCE_NATIVE, SOURCE_LEGACY),
    Strategy.EMBEDDED_WEBVIEW: (SOURCE_DOCUMENT, SOURCE_NATIVE, SOURCE_LEGACY),
    Strategy.NATIVE: (SOURCE_NATIVE, SOURCE_DOCUMENT),
    Strategy.UWP_SHELL: (SOURCE_NATIVE, SOURCE_DOCUMENT),
}


def is_desktop(window: WindowInfo) -> bool:
    if not window.title.strip():
        return True
    if window.window_class in DESKTOP_CLASSES:
        return True
    # Hosts without window classes (macOS) report the owning app instead.
    return not window.window_class and not window.app


class StrategyDispatcher:
    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        rules: StrategyRules | None = None,
        windows: WindowProvider | None = None,
        sources: dict[str, DiscoverySource] | None = None,
        cdp: CdpClient | None = None,
        bridge: GameBridgeClient | None = None,
        recovery: BrowserRecoverySaga | None = None,
        platform: str | None = None,
    ) -> None:
        self.config = config or EngineConfig.from_env()
        self.platform = platform or sys.platform
        self.rules = rules if rules is not None else StrategyRules.load(self.config.window_types_path)
        self.windows = windows
        self.sources = dict(sources or {})
        self.cdp = cdp or CdpClient(self.config)
        self.bridge = bridge or GameBridgeClient(self.config)
        self.recovery = recovery

    @classmethod
    def from_config(cls, config: EngineConfig | None = None) -> StrategyDispatcher:
        """Wire helper programs from configuration; unset helpers are skipped."""
        config = config or EngineConfig.from_env()
        sources: dict[str, DiscoverySource] = {}
        for name, command in (
            (SOURCE_NATIVE, config.native_helper),
            (SOURCE_DOCUMENT, config.document_helper),
            (SOURCE_LEGACY, config.legacy_helper),
            (SOURCE_SYSTEM, config.system_helper),
        ):
            if command.strip():
                sources[name] = SubprocessDiscoverySource(name, command, timeout=config.helper_timeout)
        windows = SubprocessWindowProvider(config.window_helper) if config.window_helper.strip() else None
        cdp = CdpClient(config)
        recovery = BrowserRecoverySaga(config, client=cdp, windows=windows) if config.auto_recover else None
        return cls(config, windows=windows, sources=sources, cdp=cdp, recovery=recovery)

    def detect(self, window_class: str, process_name: str = "") -> Strategy:
        return self.rules.detect(window_class, process_name)

    async def discover(self, window: WindowInfo | None = None, title: str | None = None) -> UITree:
        start = time.monotonic()
        if window is None and self.windows is not None:
            window = await self.windows.active_window(title)
        if window is None:
            window = WindowInfo(title=title or "")

        if is_desktop(window) and not title:
            tree = await self._discover_shell()
        else:
            strategy = self.detect(window.window_class, window.process_name or window.app)
            if strategy is Strategy.GAME_BRIDGE:
                tree = await self._discover_game(window)
            elif strategy is Strategy.BROWSER:
                tree = await self._discover_browser(window)
            else:
                elements = await self._sweep(SWEEP_CHAINS.get(strategy, SWEEP_CHAINS[Strategy.NATIVE]), window)
                tree = self._tree(window, strategy, elements)

        _LOGGER.info(
            "discover window=%r class=%r strategy=%s elements=%s ui=%s duration_ms=%s",
            tree.window,
            tree.window_class,
            tree.strategy,
            len(tree.elements),
            len(tree.ui),
            int((time.monotonic() - start) * 1000),
        )
        return tree

    def _tree(
        self, window: WindowInfo, strategy: Strategy, elements: list[UIElement], *, bridge_active: bool | None = None
    ) -> UITree:
        return UITree.build(
            window=window.title,
            window_class=window.window_class,
            strategy=strategy.value,
            elements=elements,
            window_bounds=window.bounds,
            bridge_active=bridge_active,
        )

    async def _run_source(self, name: str, window: WindowInfo) -> list[UIElement] | None:
        source = self.sources.get(name)
        if source is None:
            return None
        try:
            raws = await source.run(window)
        except DiscoverySourceError as exc:
            _LOGGER.info("discover_source_failed source=%s window=%r error=%s", name, window.title, exc)
            return []
        return elements_from_raw(raws)

    async def _sweep(self, chain: tuple[str, ...], window: WindowInfo) -> list[UIElement]:
        best: list[UIElement] = []
        best_source = ""
        for name in chain:
            if best and len(best) >= self.config.min_elements:
                break
            found = await self._run_source(name, window)
            if found is None:
                continue
            if len(found) > len(best):
                best, best_source = found, name
        _LOGGER.debug("discover_sweep chain=%s best_source=%s elements=%s", ",".join(chain), best_source, len(best))
        return best

    async def _discover_shell(self) -> UITree:
        elements = await self._run_source(SOURCE_SYSTEM, WindowInfo(title=SHELL_WINDOW, window_class=SHELL_CLASS))
        return UITree.build(
            window=SHELL_WINDOW,
            window_class=SHELL_CLASS,
            strategy=Strategy.SHELL.value,
            elements=elements or [],
        )

    async def _discover_game(self, window: WindowInfo) -> UITree:
        try:
            snapshot = await self.bridge.get_elements()
        except GameBridgeError as exc:
            _LOGGER.info("discover_bridge_fallback window=%r code=%s error=%s", window.title, exc.code, exc)
            elements = await self._sweep(SWEEP_CHAINS[Strategy.NATIVE], window)
            return self._tree(window, Strategy.GAME_BRIDGE, elements, bridge_active=False)
        return self._tree(window, Strategy.GAME_BRIDGE, snapshot.elements, bridge_active=True)

    async def _browser_elements(self, window: WindowInfo) -> list[UIElement]:
        conn = await self.cdp.connect()
        try:
            elements = await get_interactive_elements(self.cdp, conn)
            offset = await get_chrome_ui_offset(self.cdp, conn, self.platform)
        finally:
            await self.cdp.close(conn)
        return to_screen(elements, window.bounds, offset)

    async def _discover_browser(self, window: WindowInfo) -> UITree:
        try:
            return self._tree(window, Strategy.BROWSER, await self._browser_elements(window))
        except CdpNotEnabledError as exc:
            if not (self.config.auto_recover and self.recovery is not None):
                _LOGGER.info("discover_browser_fallback window=%r reason=%s", window.title, exc.code)
                return await self._native_fallback(window)
            _LOGGER.info("discover_browser_recover window=%r", window.title)
            result = await self.recovery.run(window.app or window.process_name or None, port=self.config.cdp_port)
            if not result.success:
                _LOGGER.warning("discover_browser_recover_failed window=%r error=%s", window.title, result.error)
                return await self._native_fallback(window)
        except CdpConnectionError as exc:
            _LOGGER.info("discover_browser_fallback window=%r reason=%s", window.title, exc.code)
            return await self._native_fallback(window)

        try:
            return self._tree(window, Strategy.BROWSER, await self._browser_elements(window))
        except CdpConnectionError as exc:
            _LOGGER.warning("discover_browser_retry_failed window=%r reason=%s", window.title, exc.code)
            return await self._native_fallback(window)

    async def _native_fallback(self, window: WindowInfo) -> UITree:
        elements = await self._sweep(SWEEP_CHAINS[Strategy.NATIVE], window)
        return self._tree(window, Strategy.NATIVE, elements)
