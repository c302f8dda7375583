"""Retry, back-off and circuit breaking for upstream dependencies."""

from railstatus.resilience.backoff import BackoffPolicy, compute_backoff_delay
from railstatus.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerStats,
    CircuitState,
    CircuitTransition,
)
from railstatus.resilience.client import (
    ResilientClient,
    ResilientClientRegistry,
    is_retryable,
)

__all__ = [
    "BackoffPolicy",
    "compute_backoff_delay",
    "CircuitBreaker",
    "CircuitBreakerStats",
    "CircuitState",
    "CircuitTransition",
    "ResilientClient",
    "ResilientClientRegistry",
    "is_retryable",
]
