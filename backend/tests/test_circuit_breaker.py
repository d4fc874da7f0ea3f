"""
Tests for CircuitBreaker state transitions.
"""

import pytest

from botfarm.services.circuit_breaker import CircuitBreaker, BreakerState


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_opens_after_threshold_consecutive_failures():
    breaker = CircuitBreaker(failure_threshold=3)

    for _ in range(2):
        breaker.record_failure()
        assert breaker.allow_request()

    breaker.record_failure()
    assert breaker.state == BreakerState.OPEN
    assert not breaker.allow_request()


def test_success_resets_failure_count():
    breaker = CircuitBreaker(failure_threshold=2)
    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    assert breaker.state == BreakerState.CLOSED


def test_stays_open_without_reset_timeout():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=1, clock=clock)
    breaker.record_failure()

    clock.now = 10_000
    assert not breaker.allow_request()


def test_half_open_trial_call_after_reset_timeout():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=300, clock=clock)
    breaker.record_failure()

    clock.now = 299
    assert not breaker.allow_request()

    clock.now = 300
    assert breaker.allow_request()
    assert breaker.state == BreakerState.HALF_OPEN

    breaker.record_success()
    assert breaker.state == BreakerState.CLOSED


def test_failed_trial_call_reopens():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=5, reset_timeout=60, clock=clock)
    for _ in range(5):
        breaker.record_failure()

    clock.now = 60
    assert breaker.allow_request()
    breaker.record_failure()

    assert breaker.state == BreakerState.OPEN
    assert not breaker.allow_request()


def test_threshold_must_be_positive():
    with pytest.raises(ValueError):
        CircuitBreaker(failure_threshold=0)
