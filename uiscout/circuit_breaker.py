from __future__ import annotations

import logging
import time
from collections.abc import Callable

from .errors import UiScoutError
from .types import CircuitBreakerState

_LOGGER = logging.getLogger("uiscout.circuit_breaker")

DEFAULT_THRESHOLD = 3
DEFAULT_RESET_WINDOW = 30.0


class CircuitBreaker:
    """Failure-counting gate with two states, evaluated lazily on each call.

    Closed while ``failure_count < threshold``. Once open it stays open until
    ``reset_window`` seconds have passed since the last failure; the next
    ``is_open()`` after that resets the counters and lets the call through.
    """

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        reset_window: float = DEFAULT_RESET_WINDOW,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "breaker",
    ) -> None:
        self.threshold = max(1, int(threshold))
        self.reset_window = float(reset_window)
        self.name = name
        self._clock = clock
        self.failure_count = 0
        self.last_failure: float | None = None

    def _expired(self) -> bool:
        return self.last_failure is not None and self._clock() - self.last_failure > self.reset_window

    def is_open(self) -> bool:
        if self.failure_count < self.threshold:
            return False
        if self.last_failure is None:
            return False
        if self._expired():
            _LOGGER.info("breaker_reset name=%s failures=%s", self.name, self.failure_count)
            self.reset()
            return False
        return True

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure = self._clock()
        if self.failure_count == self.threshold:
            _LOGGER.warning(
                "breaker_open name=%s failures=%s reset_window_s=%s",
                self.name,
                self.failure_count,
                self.reset_window,
            )

    def record_success(self) -> None:
        self.failure_count = 0
        self.last_failure = None

    def reset(self) -> None:
        self.failure_count = 0
        self.last_failure = None

    def guard(self, error_factory: Callable[[], UiScoutError]) -> None:
        """Raise the caller's open-circuit error without touching the network."""
        if self.is_open():
            raise error_factory()

    def snapshot(self) -> CircuitBreakerState:
        return CircuitBreakerState(
            failure_count=self.failure_count,
            last_failure_timestamp=self.last_failure,
            threshold=self.threshold,
            reset_window=self.reset_window,
            is_open=self.failure_count >= self.threshold and self.last_failure is not None and not self._expired(),
        )
