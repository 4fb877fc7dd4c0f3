from __future__ import annotations

import enum
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from .types import BrowserInfo

if TYPE_CHECKING:
    from .cdp_client import CdpClient

_LOGGER = logging.getLogger("uiscout.browser")


class BrowserType(str, enum.Enum):
    CHROME = "chrome"
    EDGE = "edge"
    BRAVE = "brave"
    ARC = "arc"
    OPERA = "opera"
    CHROMIUM = "chromium"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


MAC_APP_NAMES: dict[BrowserType, str] = {
    BrowserType.CHROME: "Google Chrome",
    BrowserType.EDGE: "Microsoft Edge",
    BrowserType.BRAVE: "Brave Browser",
    BrowserType.ARC: "Arc",
    BrowserType.OPERA: "Opera",
    BrowserType.CHROMIUM: "Chromium",
}

WINDOWS_PROCESS_NAMES: dict[BrowserType, str] = {
    BrowserType.CHROME: "chrome.exe",
    BrowserType.EDGE: "msedge.exe",
    BrowserType.BRAVE: "brave.exe",
    BrowserType.ARC: "arc.exe",
    BrowserType.OPERA: "opera.exe",
    BrowserType.CHROMIUM: "chromium.exe",
}

LINUX_PROCESS_NAMES: dict[BrowserType, str] = {
    BrowserType.CHROME: "chrome",
    BrowserType.EDGE: "msedge",
    BrowserType.BRAVE: "brave",
    BrowserType.ARC: "arc",
    BrowserType.OPERA: "opera",
    BrowserType.CHROMIUM: "chromium",
}

LINUX_BINARIES: dict[BrowserType, str] = {
    BrowserType.CHROME: "google-chrome",
    BrowserType.EDGE: "microsoft-edge",
    BrowserType.BRAVE: "brave-browser",
    BrowserType.ARC: "arc",
    BrowserType.OPERA: "opera",
    BrowserType.CHROMIUM: "chromium",
}

WINDOWS_BINARIES: dict[BrowserType, str] = {
    BrowserType.CHROME: "chrome",
    BrowserType.EDGE: "msedge",
    BrowserType.BRAVE: "brave",
    BrowserType.ARC: "arc",
    BrowserType.OPERA: "opera",
    BrowserType.CHROMIUM: "chromium",
}


def process_name_for(browser: BrowserType, platform: str | None = None) -> str:
    platform = platform or sys.platform
    if platform == "darwin":
        return MAC_APP_NAMES.get(browser, "")
    if platform == "win32":
        return WINDOWS_PROCESS_NAMES.get(browser, "")
    return LINUX_PROCESS_NAMES.get(browser, "")


def default_profile_path(browser: BrowserType, platform: str | None = None) -> str | None:
    """Location of the user's everyday profile for a browser family."""
    platform = platform or sys.platform
    home = Path.home()
    if platform == "darwin":
        base = home / "Library" / "Application Support"
        rel = {
            BrowserType.CHROME: "Google/Chrome",
            BrowserType.EDGE: "Microsoft Edge",
            BrowserType.BRAVE: "BraveSoftware/Brave-Browser",
            BrowserType.ARC: "Arc/User Data",
            BrowserType.OPERA: "com.operasoftware.Opera",
            BrowserType.CHROMIUM: "Chromium",
        }.get(browser)
        return str(base / rel) if rel else None
    if platform == "win32":
        roaming = Path(os.environ.get("APPDATA", ""))
        local = Path(os.environ.get("LOCALAPPDATA", ""))
        mapping = {
            BrowserType.CHROME: roaming / "Google" / "Chrome" / "User Data",
            BrowserType.EDGE: local / "Microsoft" / "Edge" / "User Data",
            BrowserType.BRAVE: local / "BraveSoftware" / "Brave-Browser" / "User Data",
            BrowserType.OPERA: roaming / "Opera Software" / "Opera Stable",
            BrowserType.CHROMIUM: local / "Chromium" / "User Data",
        }
        path = mapping.get(browser)
        return str(path) if path else None
    config = home / ".config"
    rel = {
        BrowserType.CHROME: "google-chrome",
        BrowserType.EDGE: "microsoft-edge",
        BrowserType.BRAVE: "BraveSoftware/Brave-Browser",
        BrowserType.OPERA: "opera",
        BrowserType.CHROMIUM: "chromium",
    }.get(browser)
    return str(config / rel) if rel else None


def _classify_windows(cls: str, proc: str) -> BrowserType:
    if "chrome_widgetwin" in cls or "chrome" in proc:
        if "msedge" in proc or "edge" in cls:
            return BrowserType.EDGE
        if "brave" in proc:
            return BrowserType.BRAVE
        if "opera" in proc:
            return BrowserType.OPERA
        return BrowserType.CHROME
    if "applicationframewindow" in cls or "msedge" in proc:
        return BrowserType.EDGE
    if "brave" in proc:
        return BrowserType.BRAVE
    if "arc" in proc:
        return BrowserType.ARC
    if "opera" in proc:
        return BrowserType.OPERA
    return BrowserType.UNKNOWN


def _classify_macos(title: str, app: str) -> BrowserType:
    if "google chrome" in app or "chrome" in title:
        return BrowserType.CHROME
    if "microsoft edge" in app or "edge" in title:
        return BrowserType.EDGE
    for needle, kind in (
        ("brave", BrowserType.BRAVE),
        ("arc", BrowserType.ARC),
        ("opera", BrowserType.OPERA),
        ("chromium", BrowserType.CHROMIUM),
    ):
        if needle in app:
            return kind
    return BrowserType.UNKNOWN


def _classify_linux(cls: str, proc: str) -> BrowserType:
    if "chrome" in cls or "chrome" in proc:
        return BrowserType.CHROME
    if "edge" in cls or "msedge" in proc:
        return BrowserType.EDGE
    if "brave" in cls or "brave" in proc:
        return BrowserType.BRAVE
    if "arc" in proc:
        return BrowserType.ARC
    if "opera" in cls or "opera" in proc:
        return BrowserType.OPERA
    if "chromium" in cls or "chromium" in proc:
        return BrowserType.CHROMIUM
    return BrowserType.UNKNOWN


def classify_browser(window_class: str, process_name: str = "", platform: str | None = None) -> BrowserType:
    """Classify a window into a Chromium browser family.

    On macOS ``window_class`` is the window title and ``process_name`` the
    owning application name.
    """
    platform = platform or sys.platform
    cls = (window_class or "").lower()
    proc = (process_name or "").lower()
    if platform == "win32":
        return _classify_windows(cls, proc)
    if platform == "darwin":
        return _classify_macos(cls, proc)
    return _classify_linux(cls, proc)


async def detect_browser(
    window_class: str,
    process_name: str = "",
    *,
    client: CdpClient,
    platform: str | None = None,
    window_title: str = "",
    process_id: int | None = None,
) -> BrowserInfo | None:
    """Fresh detection including a live debugging probe; never cached."""
    kind = classify_browser(window_class, process_name, platform)
    if kind is BrowserType.UNKNOWN:
        _LOGGER.debug("browser_detect_none class=%r process=%r", window_class, process_name)
        return None
    port = await client.detect_debug_port()
    info = BrowserInfo(
        type=kind.value,
        process_id=process_id,
        debug_port=port,
        is_debugging_enabled=port is not None,
        window_title=window_title or window_class,
        window_class=window_class,
    )
    _LOGGER.info("browser_detect type=%s debug_port=%s", info.type, info.debug_port)
    return info
