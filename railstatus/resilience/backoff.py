"""Exponential back-off with bounded jitter.

The delay for zero-indexed retry *attempt* is::

    min(base_delay * 2**attempt * (1 + jitter), max_delay)

with ``jitter`` drawn uniformly from ``[0, 0.3)``.  Injecting a fixed jitter
makes the function fully deterministic, which is how the tests pin it.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Final

__all__ = [
    "MAX_JITTER_FRACTION",
    "BackoffPolicy",
    "compute_backoff_delay",
]

#: Upper bound (exclusive) of the multiplicative jitter fraction.
MAX_JITTER_FRACTION: Final[float] = 0.3

_DEFAULT_BASE_DELAY: Final[float] = 1.0
_DEFAULT_MAX_DELAY: Final[float] = 10.0
_DEFAULT_MAX_RETRIES: Final[int] = 3


def _random_jitter() -> float:
    return random.random() * MAX_JITTER_FRACTION


def compute_backoff_delay(
    attempt: int,
    base_delay: float = _DEFAULT_BASE_DELAY,
    max_delay: float = _DEFAULT_MAX_DELAY,
    jitter: float | None = None,
) -> float:
    """Return the sleep (seconds) before retry number *attempt*.

    Args:
        attempt: Zero-indexed retry number.  Negative values are treated as 0.
        base_delay: Delay for the first retry before jitter.
        max_delay: Hard cap on the returned value.
        jitter: Fraction in ``[0, 0.3)``.  Drawn at random when ``None``;
            out-of-range values are clamped.

    Returns:
        Non-negative delay in seconds, never above *max_delay*.
    """
    if jitter is None:
        jitter = _random_jitter()
    jitter = min(max(jitter, 0.0), MAX_JITTER_FRACTION)
    exponential = max(base_delay, 0.0) * (2.0 ** max(attempt, 0))
    return min(exponential * (1.0 + jitter), max(max_delay, 0.0))


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry budget and delay curve for one dependency.

    Attributes:
        max_retries: Retries after the initial attempt (total attempts is
            ``max_retries + 1``).
        base_delay: Seconds before the first retry, pre-jitter.
        max_delay: Cap on any single delay.
        jitter_source: Zero-argument callable returning the jitter fraction.
            Override in tests for deterministic delays.
    """

    max_retries: int = _DEFAULT_MAX_RETRIES
    base_delay: float = _DEFAULT_BASE_DELAY
    max_delay: float = _DEFAULT_MAX_DELAY
    jitter_source: Callable[[], float] = field(default=_random_jitter, compare=False)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be ≥ 0, got {self.max_retries!r}.")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("base_delay and max_delay must be ≥ 0.")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Delay before zero-indexed retry *attempt*."""
        return compute_backoff_delay(
            attempt,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter_source(),
        )
