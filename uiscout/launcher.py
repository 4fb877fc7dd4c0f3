from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .browser import (
    LINUX_BINARIES,
    MAC_APP_NAMES,
    WINDOWS_BINARIES,
    BrowserType,
    process_name_for,
)
from .config import EngineConfig, expand_path

_LOGGER = logging.getLogger("uiscout.launcher")


@dataclass(slots=True)
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


Runner = Callable[[list[str], float], Awaitable[CommandResult]]
Spawner = Callable[[list[str]], Any]


async def run_command(argv: list[str], timeout: float = 10.0) -> CommandResult:
    """Run a short-lived command, capturing output; timeouts kill the child."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return CommandResult(returncode=127, stderr=str(exc))
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return CommandResult(returncode=124, stderr=f"timed out after {timeout}s")
    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else 1,
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
    )


def spawn_detached(argv: list[str]) -> subprocess.Popen:
    return subprocess.Popen(
        argv,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


class DesktopBrowserLauncher:
    """Closes and relaunches the user's desktop browser with debugging enabled."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        platform: str | None = None,
        runner: Runner = run_command,
        spawner: Spawner = spawn_detached,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or EngineConfig.from_env()
        self.platform = platform or sys.platform
        self._run = runner
        self._spawn = spawner
        self._sleep = sleep

    def _build_common_flags(self, port: int, profile: str) -> list[str]:
        return [
            f"--remote-debugging-port={int(port)}",
            f"--user-data-dir={expand_path(profile)}",
            "--remote-allow-origins=*",
            "--no-first-run",
            "--no-default-browser-check",
        ]

    def build_launch_command(self, browser: BrowserType, port: int, profile: str) -> list[str]:
        flags = self._build_common_flags(port, profile)
        if self.platform == "darwin":
            app = MAC_APP_NAMES.get(browser)
            if not app:
                raise ValueError(f"Unknown browser type: {browser}")
            return ["open", "-na", app, "--args", *flags]
        if self.platform == "win32":
            binary = WINDOWS_BINARIES.get(browser)
            if not binary:
                raise ValueError(f"Unknown browser type: {browser}")
            return ["cmd", "/c", "start", "", binary, *flags]
        binary = LINUX_BINARIES.get(browser)
        if not binary:
            raise ValueError(f"Unknown browser type: {browser}")
        return [binary, *flags]

    def _graceful_command(self, browser: BrowserType) -> list[str]:
        name = process_name_for(browser, self.platform)
        if self.platform == "darwin":
            return ["osascript", "-e", f'quit app "{name}"']
        if self.platform == "win32":
            return ["taskkill", "/IM", name]
        return ["pkill", "-TERM", "-f", name]

    def _forceful_command(self, browser: BrowserType) -> list[str]:
        name = process_name_for(browser, self.platform)
        if self.platform == "win32":
            return ["taskkill", "/F", "/IM", name]
        return ["pkill", "-KILL", "-f", name]

    async def is_running(self, browser: BrowserType) -> bool:
        name = process_name_for(browser, self.platform)
        if not name:
            return False
        if self.platform == "win32":
            res = await self._run(["tasklist", "/FI", f"IMAGENAME eq {name}", "/NH"], 5.0)
            return res.ok and name.lower() in res.stdout.lower()
        res = await self._run(["pgrep", "-f", name], 5.0)
        return res.ok

    async def _wait_for_exit(self, browser: BrowserType, timeout: float) -> bool:
        interval = 0.25
        waited = 0.0
        while True:
            if not await self.is_running(browser):
                return True
            if waited >= timeout:
                return False
            await self._sleep(interval)
            waited += interval

    async def close(self, browser: BrowserType) -> bool:
        """Graceful quit, then force-kill anything left; True once the process is gone."""
        if browser is BrowserType.UNKNOWN or not process_name_for(browser, self.platform):
            raise ValueError(f"Unknown browser type: {browser}")
        graceful = await self._run(self._graceful_command(browser), 5.0)
        _LOGGER.info(
            "browser_close_graceful browser=%s rc=%s stderr=%s", browser, graceful.returncode, graceful.stderr.strip()
        )
        if await self._wait_for_exit(browser, self.config.close_wait):
            return True
        forceful = await self._run(self._forceful_command(browser), 5.0)
        _LOGGER.warning("browser_close_forced browser=%s rc=%s", browser, forceful.returncode)
        return await self._wait_for_exit(browser, self.config.close_wait)

    async def launch(self, browser: BrowserType, port: int, profile: str) -> bool:
        cmd = self.build_launch_command(browser, port, profile)
        Path(expand_path(profile)).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._spawn(cmd)
        except OSError as exc:
            _LOGGER.warning("browser_launch_failed browser=%s cmd=%s error=%s", browser, cmd[0], exc)
            return False
        _LOGGER.info("browser_launch browser=%s port=%s profile=%s", browser, port, profile)
        return True
