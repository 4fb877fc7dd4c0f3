from __future__ import annotations

import asyncio

import pytest


class _PortProbe:
    def __init__(self, port: int | None) -> None:
        self.port = port
        self.calls = 0

    async def detect_debug_port(self, host: str | None = None) -> int | None:
        self.calls += 1
        return self.port


@pytest.mark.parametrize(
    ("window_class", "process_name", "platform", "expected"),
    [
        ("Chrome_WidgetWin_1", "chrome.exe", "win32", "chrome"),
        ("Chrome_WidgetWin_1", "msedge.exe", "win32", "edge"),
        ("Chrome_WidgetWin_1", "brave.exe", "win32", "brave"),
        ("Chrome_WidgetWin_1", "opera.exe", "win32", "opera"),
        ("ApplicationFrameWindow", "", "win32", "edge"),
        ("Notepad", "notepad.exe", "win32", "unknown"),
        ("Inbox - Gmail", "Google Chrome", "darwin", "chrome"),
        ("Docs", "Microsoft Edge", "darwin", "edge"),
        ("Space", "Arc", "darwin", "arc"),
        ("Home", "Brave Browser", "darwin", "brave"),
        ("Untitled", "TextEdit", "darwin", "unknown"),
        ("google-chrome", "chrome", "linux", "chrome"),
        ("Brave-browser", "brave", "linux", "brave"),
        ("Chromium-browser", "chromium", "linux", "chromium"),
        ("gedit", "gedit", "linux", "unknown"),
    ],
)
def test_classify_browser(window_class: str, process_name: str, platform: str, expected: str) -> None:
    from uiscout.browser import classify_browser

    assert classify_browser(window_class, process_name, platform).value == expected


def test_detect_browser_probes_debug_port() -> None:
    from uiscout.browser import detect_browser

    probe = _PortProbe(9223)
    info = asyncio.run(
        detect_browser("Chrome_WidgetWin_1", "chrome.exe", client=probe, platform="win32", window_title="Tab - Chrome")
    )
    assert info is not None
    assert info.type == "chrome"
    assert info.debug_port == 9223
    assert info.is_debugging_enabled is True
    assert info.window_title == "Tab - Chrome"
    assert info.to_dict()["isDebuggingEnabled"] is True


def test_detect_browser_without_debugging() -> None:
    from uiscout.browser import detect_browser

    probe = _PortProbe(None)
    info = asyncio.run(detect_browser("Inbox", "Google Chrome", client=probe, platform="darwin"))
    assert info is not None
    assert info.is_debugging_enabled is False
    assert info.debug_port is None


def test_detect_browser_is_not_cached() -> None:
    from uiscout.browser import detect_browser

    probe = _PortProbe(None)
    asyncio.run(detect_browser("x", "chrome", client=probe, platform="linux"))
    probe.port = 9222
    info = asyncio.run(detect_browser("x", "chrome", client=probe, platform="linux"))
    assert probe.calls == 2
    assert info is not None and info.is_debugging_enabled is True


def test_unknown_browser_skips_probe() -> None:
    from uiscout.browser import detect_browser

    probe = _PortProbe(9222)
    assert asyncio.run(detect_browser("Notepad", "notepad.exe", client=probe, platform="win32")) is None
    assert probe.calls == 0


def test_process_names_and_profile_paths() -> None:
    from uiscout.browser import BrowserType, default_profile_path, process_name_for

    assert process_name_for(BrowserType.CHROME, "darwin") == "Google Chrome"
    assert process_name_for(BrowserType.EDGE, "win32") == "msedge.exe"
    assert process_name_for(BrowserType.BRAVE, "linux") == "brave"
    assert process_name_for(BrowserType.UNKNOWN, "linux") == ""

    linux = default_profile_path(BrowserType.CHROME, "linux")
    assert linux is not None and linux.endswith(".config/google-chrome")
    assert default_profile_path(BrowserType.ARC, "linux") is None
    mac = default_profile_path(BrowserType.CHROME, "darwin")
    assert mac is not None and mac.endswith("Library/Application Support/Google/Chrome")
