"""
Thread-safe circuit breaker guarding the cross-encoder.

Usage:
    cb = CircuitBreaker(name="cohere-rerank", failure_threshold=5, recovery_timeout=30.0)

    if not cb.allow_request():
        raise RerankError("circuit open")
    try:
        scores = call_provider()
    except Exception:
        cb.record_failure()
        raise
    cb.record_success()
"""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable, Optional

from civicrag.shared.observability import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"  # requests pass through
    OPEN = "open"  # fail fast
    HALF_OPEN = "half_open"  # one probe request allowed


class CircuitBreaker:
    """
    Closed/open/half-open breaker with consecutive-failure counting.

    All transitions happen under one lock, so the breaker can be shared by
    the worker threads of the retrieval fan-out.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold <= 0:
            raise ValueError("failure_threshold must be positive")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def allow_request(self) -> bool:
        """
        Return True when a call may proceed.

        An open breaker moves to half-open once ``recovery_timeout`` has
        elapsed and lets exactly one probe through until it resolves.
        """
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._opened_at or 0.0)
                if elapsed < self.recovery_timeout:
                    return False
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = True
                logger.info(
                    "circuit_breaker_half_open", name=self.name, elapsed_seconds=elapsed
                )
                return True

            # HALF_OPEN
            if self._probe_in_flight:
                return False
            self._probe_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info("circuit_breaker_closed", name=self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = None
            self._probe_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._probe_in_flight = False

            if self._state == CircuitState.HALF_OPEN:
                self._trip("probe_failed")
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._trip("threshold_reached")

    def _trip(self, reason: str) -> None:
        # caller holds the lock
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning(
            "circuit_breaker_opened",
            name=self.name,
            reason=reason,
            failure_count=self._failure_count,
            threshold=self.failure_threshold,
        )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = None
            self._probe_in_flight = False

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"CircuitBreaker(name={self.name!r}, state={self._state.value}, "
                f"failures={self._failure_count}/{self.failure_threshold})"
            )
