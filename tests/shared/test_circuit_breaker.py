import pytest

from civicrag.shared.resilience import CircuitBreaker, CircuitState


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _breaker(clock, threshold=3, recovery=30.0):
    return CircuitBreaker(
        name="test", failure_threshold=threshold, recovery_timeout=recovery, clock=clock
    )


def test_opens_after_consecutive_failures():
    cb = _breaker(_Clock())

    for _ in range(2):
        cb.record_failure()
        assert cb.allow_request()

    cb.record_failure()
    assert cb.state == CircuitState.OPEN
    assert not cb.allow_request()


def test_success_resets_failure_count():
    cb = _breaker(_Clock())
    cb.record_failure()
    cb.record_failure()
    cb.record_success()
    cb.record_failure()

    assert cb.state == CircuitState.CLOSED
    assert cb.failure_count == 1


def test_half_open_allows_a_single_probe():
    clock = _Clock()
    cb = _breaker(clock, threshold=1, recovery=10.0)
    cb.record_failure()
    assert not cb.allow_request()

    clock.now += 10.0
    assert cb.allow_request()
    assert cb.state == CircuitState.HALF_OPEN
    assert not cb.allow_request()

    cb.record_success()
    assert cb.state == CircuitState.CLOSED
    assert cb.allow_request()


def test_failed_probe_reopens():
    clock = _Clock()
    cb = _breaker(clock, threshold=1, recovery=10.0)
    cb.record_failure()
    clock.now += 11.0
    assert cb.allow_request()

    cb.record_failure()

    assert cb.state == CircuitState.OPEN
    assert not cb.allow_request()


def test_threshold_must_be_positive():
    with pytest.raises(ValueError):
        CircuitBreaker(name="bad", failure_threshold=0)
