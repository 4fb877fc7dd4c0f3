from __future__ import annotations

import pytest


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_opens_at_threshold_and_resets_after_window() -> None:
    from uiscout.circuit_breaker import CircuitBreaker

    clock = _Clock()
    breaker = CircuitBreaker(3, 30.0, clock=clock)

    breaker.record_failure()
    breaker.record_failure()
    assert breaker.is_open() is False
    breaker.record_failure()
    assert breaker.is_open() is True

    clock.now += 30.0
    assert breaker.is_open() is True

    clock.now += 0.5
    assert breaker.is_open() is False
    assert breaker.failure_count == 0
    assert breaker.last_failure is None


def test_success_resets_counter() -> None:
    from uiscout.circuit_breaker import CircuitBreaker

    breaker = CircuitBreaker(2, 30.0, clock=_Clock())
    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    assert breaker.is_open() is False
    assert breaker.failure_count == 1


def test_window_is_measured_from_latest_failure() -> None:
    from uiscout.circuit_breaker import CircuitBreaker

    clock = _Clock()
    breaker = CircuitBreaker(1, 10.0, clock=clock)
    breaker.record_failure()
    clock.now += 8
    breaker.record_failure()
    clock.now += 8
    assert breaker.is_open() is True


def test_guard_raises_callers_error_only_when_open() -> None:
    from uiscout.circuit_breaker import CircuitBreaker
    from uiscout.errors import CdpCircuitOpenError

    breaker = CircuitBreaker(1, 30.0, clock=_Clock())
    breaker.guard(lambda: CdpCircuitOpenError("open"))

    breaker.record_failure()
    with pytest.raises(CdpCircuitOpenError):
        breaker.guard(lambda: CdpCircuitOpenError("open"))


def test_instances_do_not_share_state() -> None:
    from uiscout.circuit_breaker import CircuitBreaker

    a = CircuitBreaker(1, 30.0, clock=_Clock())
    b = CircuitBreaker(1, 30.0, clock=_Clock())
    a.record_failure()
    assert a.is_open() is True
    assert b.is_open() is False


def test_snapshot_reports_state() -> None:
    from uiscout.circuit_breaker import CircuitBreaker

    clock = _Clock(50.0)
    breaker = CircuitBreaker(2, 5.0, clock=clock)
    breaker.record_failure()
    breaker.record_failure()

    state = breaker.snapshot()
    assert state.is_open is True
    assert state.failure_count == 2
    assert state.last_failure_timestamp == 50.0
    assert state.to_dict()["resetWindow"] == 5.0


def test_snapshot_agrees_with_is_open_after_window() -> None:
    from uiscout.circuit_breaker import CircuitBreaker

    clock = _Clock(10.0)
    breaker = CircuitBreaker(3, 30.0, clock=clock)
    for _ in range(3):
        breaker.record_failure()
    assert breaker.snapshot().is_open is True

    clock.now = 40.5
    state = breaker.snapshot()
    assert state.is_open is False
    assert state.failure_count == 3
    assert breaker.is_open() is False
    assert breaker.failure_count == 0
