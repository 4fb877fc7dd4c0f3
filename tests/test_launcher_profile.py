from __future__ import annotations

import asyncio
from pathlib import Path

import pytest


class _Runner:
    """Scripted command runner: pgrep answers come from ``running`` in order."""

    def __init__(self, running: list[bool]) -> None:
        self.running = list(running)
        self.calls: list[list[str]] = []

    async def __call__(self, argv: list[str], timeout: float):
        from uiscout.launcher import CommandResult

        self.calls.append(list(argv))
        if argv[0] in {"pgrep", "tasklist"}:
            alive = self.running.pop(0) if self.running else False
            if argv[0] == "tasklist":
                return CommandResult(returncode=0, stdout="chrome.exe  1234 Console" if alive else "INFO: none")
            return CommandResult(returncode=0 if alive else 1, stdout="1234\n" if alive else "")
        return CommandResult(returncode=0)


async def _no_sleep(delay: float) -> None:
    return None


def _launcher(platform: str, runner: _Runner, spawned: list[list[str]] | None = None, **cfg):
    from uiscout.config import EngineConfig
    from uiscout.launcher import DesktopBrowserLauncher

    def _spawn(argv: list[str]) -> None:
        if spawned is not None:
            spawned.append(list(argv))

    return DesktopBrowserLauncher(
        EngineConfig(**cfg), platform=platform, runner=runner, spawner=_spawn, sleep=_no_sleep
    )


def test_launch_command_per_platform(tmp_path: Path) -> None:
    from uiscout.browser import BrowserType

    profile = str(tmp_path / "profile")
    mac = _launcher("darwin", _Runner([])).build_launch_command(BrowserType.CHROME, 9222, profile)
    assert mac[:4] == ["open", "-na", "Google Chrome", "--args"]
    assert "--remote-debugging-port=9222" in mac
    assert f"--user-data-dir={profile}" in mac

    win = _launcher("win32", _Runner([])).build_launch_command(BrowserType.EDGE, 9333, profile)
    assert win[:5] == ["cmd", "/c", "start", "", "msedge"]
    assert "--remote-debugging-port=9333" in win

    linux = _launcher("linux", _Runner([])).build_launch_command(BrowserType.BRAVE, 9222, profile)
    assert linux[0] == "brave-browser"
    assert "--no-first-run" in linux


def test_unknown_browser_is_rejected(tmp_path: Path) -> None:
    from uiscout.browser import BrowserType

    launcher = _launcher("linux", _Runner([]))
    with pytest.raises(ValueError):
        launcher.build_launch_command(BrowserType.UNKNOWN, 9222, str(tmp_path))
    with pytest.raises(ValueError):
        asyncio.run(launcher.close(BrowserType.UNKNOWN))


def test_close_graceful_when_process_exits() -> None:
    from uiscout.browser import BrowserType

    runner = _Runner([True, False])
    assert asyncio.run(_launcher("linux", runner).close(BrowserType.CHROME)) is True
    assert runner.calls[0] == ["pkill", "-TERM", "-f", "chrome"]
    assert not any("-KILL" in c for c in runner.calls)


def test_close_forces_after_grace_period() -> None:
    from uiscout.browser import BrowserType

    # close_wait=0.5 allows three polls before forcing.
    runner = _Runner([True, True, True, False])
    assert asyncio.run(_launcher("linux", runner, close_wait=0.5).close(BrowserType.CHROME)) is True
    assert ["pkill", "-KILL", "-f", "chrome"] in runner.calls


def test_close_on_macos_and_windows_commands() -> None:
    from uiscout.browser import BrowserType

    mac = _Runner([False])
    asyncio.run(_launcher("darwin", mac).close(BrowserType.CHROME))
    assert mac.calls[0] == ["osascript", "-e", 'quit app "Google Chrome"']

    win = _Runner([True, False])
    asyncio.run(_launcher("win32", win, close_wait=0).close(BrowserType.CHROME))
    assert win.calls[0] == ["taskkill", "/IM", "chrome.exe"]
    assert ["taskkill", "/F", "/IM", "chrome.exe"] in win.calls


def test_launch_spawns_and_creates_profile_parent(tmp_path: Path) -> None:
    from uiscout.browser import BrowserType

    spawned: list[list[str]] = []
    profile = tmp_path / "nested" / "profile"
    launcher = _launcher("linux", _Runner([]), spawned)
    assert asyncio.run(launcher.launch(BrowserType.CHROME, 9222, str(profile))) is True
    assert spawned and spawned[0][0] == "google-chrome"
    assert profile.parent.is_dir()


def test_launch_reports_missing_binary(tmp_path: Path) -> None:
    from uiscout.browser import BrowserType
    from uiscout.config import EngineConfig
    from uiscout.launcher import DesktopBrowserLauncher

    def _spawn(argv: list[str]) -> None:
        raise FileNotFoundError(argv[0])

    launcher = DesktopBrowserLauncher(EngineConfig(), platform="linux", runner=_Runner([]), spawner=_spawn)
    assert asyncio.run(launcher.launch(BrowserType.CHROME, 9222, str(tmp_path / "p"))) is False


def test_run_command_missing_binary_returns_127() -> None:
    from uiscout.launcher import run_command

    res = asyncio.run(run_command(["definitely-not-a-real-binary-uiscout"], 2.0))
    assert res.returncode == 127
    assert res.ok is False


def _profile_sync(tmp_path: Path, source: Path | None, resync: str = "always"):
    from uiscout.config import EngineConfig
    from uiscout.profile import ProfileSynchronizer

    cfg = EngineConfig(profile_dir=str(tmp_path / "dedicated"), profile_resync=resync)
    return ProfileSynchronizer(cfg, platform="linux", source_resolver=lambda browser, platform: source)


def test_profile_sync_copies_and_skips_lock_files(tmp_path: Path) -> None:
    from uiscout.browser import BrowserType

    source = tmp_path / "everyday"
    (source / "Default").mkdir(parents=True)
    (source / "Default" / "Bookmarks").write_text("{}", encoding="utf-8")
    (source / "Default" / "Cache").mkdir()
    (source / "Default" / "Cache" / "data_0").write_text("x", encoding="utf-8")
    (source / "SingletonLock").write_text("host-1", encoding="utf-8")

    sync = _profile_sync(tmp_path, source)
    (sync.target / "stale").mkdir(parents=True)
    res = asyncio.run(sync.sync(BrowserType.CHROME))

    assert res.copied is True
    assert (sync.target / "Default" / "Bookmarks").is_file()
    assert not (sync.target / "Default" / "Cache").exists()
    assert not (sync.target / "SingletonLock").exists()
    assert not (sync.target / "stale").exists()


def test_profile_sync_if_missing_keeps_existing(tmp_path: Path) -> None:
    from uiscout.browser import BrowserType

    source = tmp_path / "everyday"
    source.mkdir()
    sync = _profile_sync(tmp_path, source, resync="if-missing")
    sync.target.mkdir(parents=True)
    (sync.target / "keep").write_text("1", encoding="utf-8")

    res = asyncio.run(sync.sync(BrowserType.CHROME))
    assert res.skipped is True and res.copied is False
    assert (sync.target / "keep").is_file()


def test_profile_sync_without_source_creates_empty_profile(tmp_path: Path) -> None:
    from uiscout.browser import BrowserType

    sync = _profile_sync(tmp_path, None)
    res = asyncio.run(sync.sync(BrowserType.ARC))
    assert res.copied is False
    assert sync.target.is_dir()
