from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from .browser import BrowserType, default_profile_path
from .config import EngineConfig, expand_path

_LOGGER = logging.getLogger("uiscout.profile")

# Lock files and caches a running browser holds or can rebuild.
_SKIP_PATTERNS = (
    "Singleton*",
    "lockfile",
    "LOCK",
    "Cache",
    "Code Cache",
    "GPUCache",
    "ShaderCache",
    "GrShaderCache",
    "Crashpad",
)


@dataclass(slots=True)
class SyncResult:
    copied: bool
    skipped: bool = False
    message: str = ""


class ProfileSynchronizer:
    """Seeds the dedicated debugging profile from the user's everyday profile.

    With ``resync="always"`` the dedicated profile is wiped and re-copied on
    every call. ``"if-missing"`` keeps an existing dedicated profile.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        platform: str | None = None,
        source_resolver=default_profile_path,  # noqa: ANN001
    ) -> None:
        self.config = config or EngineConfig.from_env()
        self.platform = platform
        self._source_resolver = source_resolver

    @property
    def target(self) -> Path:
        return Path(expand_path(self.config.profile_dir))

    def _copy(self, source: Path, target: Path) -> None:
        if target.exists():
            shutil.rmtree(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(
            source,
            target,
            symlinks=True,
            ignore=shutil.ignore_patterns(*_SKIP_PATTERNS),
            ignore_dangling_symlinks=True,
        )

    async def sync(self, browser: BrowserType) -> SyncResult:
        target = self.target
        if self.config.profile_resync == "if-missing" and target.exists():
            _LOGGER.info("profile_sync skipped=true reason=exists target=%s", target)
            return SyncResult(copied=False, skipped=True, message="dedicated profile already present")

        raw = self._source_resolver(browser, self.platform)
        source = Path(raw) if raw else None
        if source is None or not source.is_dir():
            _LOGGER.warning("profile_sync copied=false reason=no_source browser=%s source=%s", browser, raw)
            target.mkdir(parents=True, exist_ok=True)
            return SyncResult(copied=False, message=f"no default profile found for {browser}")

        try:
            await asyncio.to_thread(self._copy, source, target)
        except (OSError, shutil.Error) as exc:
            _LOGGER.warning("profile_sync copied=false source=%s target=%s error=%s", source, target, exc)
            return SyncResult(copied=False, message=str(exc))
        _LOGGER.info("profile_sync copied=true source=%s target=%s", source, target)
        return SyncResult(copied=True, message=f"copied {source} -> {target}")
