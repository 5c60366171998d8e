"""Resilience patterns for external service calls."""

from civicrag.shared.resilience.circuit_breaker import CircuitBreaker, CircuitState

__all__ = ["CircuitBreaker", "CircuitState"]
