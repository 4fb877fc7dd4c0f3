"""
Verified-action loop: capture, locate, act, capture again, verify, retry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import SafetyError
from .killswitch import KillSwitch
from .security import RestrictionPolicy
from .types import Coordinates, SmartClickResult
from .vision import ScreenCapture, VisionBackend

_LOGGER = logging.getLogger("uiscout.automation")

VERIFY_FAILED = "Action verification failed - no visible change detected"

Action = Callable[[Coordinates], Awaitable[Any]]


@dataclass(slots=True)
class SmartActOptions:
    max_attempts: int = 3
    verify_delay: float = 0.8
    screen: int = 0
    action_name: str = "click"
    action_params: dict[str, Any] = field(default_factory=dict)


async def smart_act(
    description: str,
    action: Action,
    *,
    capture: ScreenCapture,
    vision: VisionBackend,
    kill_switch: KillSwitch | None = None,
    restrictions: RestrictionPolicy | None = None,
    options: SmartActOptions | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> SmartClickResult:
    """Perform ``action`` on the element described by ``description`` until verified.

    Verification failures and ordinary errors are retried up to
    ``max_attempts``; the result then carries the last error. Safety errors
    (kill switch, restricted mode) are never retried and propagate.
    """
    opts = options or SmartActOptions()
    attempts = max(1, int(opts.max_attempts))
    last_error: str | None = None
    start = time.monotonic()

    for attempt in range(1, attempts + 1):
        if kill_switch is not None:
            await kill_switch.check()
        try:
            before = await capture.capture(opts.screen)
            coords = await vision.locate(description, before)

            if restrictions is not None:
                await restrictions.check(opts.action_name, {**opts.action_params, "x": coords.x, "y": coords.y})
            await action(coords)
            if kill_switch is not None:
                await kill_switch.record_action_done()

            await sleep(opts.verify_delay)
            after = await capture.capture(opts.screen)
            if await vision.verify(before, after, opts.action_name, description):
                _LOGGER.info(
                    "smart_act success=true action=%s target=%r attempts=%s x=%s y=%s duration_ms=%s",
                    opts.action_name,
                    description,
                    attempt,
                    coords.x,
                    coords.y,
                    int((time.monotonic() - start) * 1000),
                )
                return SmartClickResult(
                    success=True,
                    attempts=attempt,
                    coordinates=(coords.x, coords.y),
                    confidence=coords.confidence,
                )
            last_error = VERIFY_FAILED
        except SafetyError:
            raise
        except Exception as exc:  # noqa: BLE001
            last_error = str(exc) or type(exc).__name__
        _LOGGER.debug("smart_act_retry attempt=%s/%s error=%s", attempt, attempts, last_error)

    _LOGGER.warning(
        "smart_act success=false action=%s target=%r attempts=%s duration_ms=%s error=%s",
        opts.action_name,
        description,
        attempts,
        int((time.monotonic() - start) * 1000),
        last_error,
    )
    return SmartClickResult(success=False, attempts=attempts, error=last_error or "Unknown error")
