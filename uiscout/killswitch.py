from __future__ import annotations

import abc
import contextlib
import logging
import math
import time
from collections.abc import Callable
from pathlib import Path

from .config import EngineConfig
from .errors import UserInterruptError

_LOGGER = logging.getLogger("uiscout.killswitch")


class PointerSource(abc.ABC):
    @abc.abstractmethod
    async def position(self) -> tuple[float, float]:
        """Current pointer position in screen pixels."""


def request_resume(path: str | Path) -> Path:
    """Write the operator resume signal picked up by a tripped ``KillSwitch``."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(f"{time.time():.3f}\n", encoding="utf-8")
    return p


class KillSwitch:
    """Stops automation when the operator moves the pointer.

    The position is compared with the one recorded after the previous
    action. Checks within ``cooldown`` of our own last action are skipped.
    Once tripped, every check raises until ``reset()`` or until the resume
    file appears (it is consumed).
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        pointer: PointerSource,
        clock: Callable[[], float] = time.monotonic,
        resume_file: str | Path | None = None,
    ) -> None:
        self.config = config or EngineConfig.from_env()
        self.pointer = pointer
        self._clock = clock
        self.resume_file = Path(resume_file) if resume_file else Path(self.config.resume_file)
        self.last_position: tuple[float, float] | None = None
        self.last_action_time = 0.0
        self.tripped: UserInterruptError | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.config.kill_switch_enabled)

    @property
    def threshold(self) -> float:
        return float(self.config.kill_switch_threshold)

    def reset(self) -> None:
        if self.tripped is not None:
            _LOGGER.info("killswitch_reset distance=%s", round(self.tripped.distance))
        self.last_position = None
        self.last_action_time = 0.0
        self.tripped = None

    def _consume_resume(self) -> bool:
        if not self.resume_file.exists():
            return False
        with contextlib.suppress(OSError):
            self.resume_file.unlink()
        return True

    def _record(self, position: tuple[float, float]) -> None:
        self.last_position = position
        self.last_action_time = self._clock()

    async def check(self) -> None:
        if not self.enabled:
            return
        if self.tripped is not None:
            if not self._consume_resume():
                raise UserInterruptError(self.tripped.distance, self.tripped.threshold)
            self.reset()

        current = await self.pointer.position()
        if self.last_position is None:
            self._record(current)
            return
        if self._clock() - self.last_action_time < self.config.kill_switch_cooldown:
            self._record(current)
            return

        distance = math.dist(self.last_position, current)
        if distance > self.threshold:
            self.tripped = UserInterruptError(distance, self.threshold)
            _LOGGER.warning(
                "killswitch_triggered distance=%s threshold=%s from=%s to=%s",
                round(distance),
                self.threshold,
                self.last_position,
                current,
            )
            raise self.tripped
        self._record(current)

    async def record_action_done(self) -> None:
        if not self.enabled:
            return
        self._record(await self.pointer.position())
