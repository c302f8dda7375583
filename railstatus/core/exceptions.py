"""railstatus exception taxonomy.

Every custom exception inherits from :class:`RailStatusError`.  Exceptions are
organised by architectural layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    RailStatusError
    ├── ConfigError
    ├── DependencyError
    │   ├── DependencyHTTPError
    │   │   └── DependencyRateLimitError
    │   ├── DependencyNetworkError
    │   └── DependencyResponseError
    ├── CircuitOpenError
    ├── MalformedRecordError
    └── OrchestratorError

:class:`CircuitOpenError` deliberately sits *outside* :class:`DependencyError`:
it means "we chose not to call the dependency", not "the dependency failed".

Usage:

    from railstatus.core.exceptions import DependencyHTTPError

    raise DependencyHTTPError("rtt", 503, "Service Unavailable")
"""

from __future__ import annotations

import logging
from typing import Final

__all__ = [
    "RailStatusError",
    # Config
    "ConfigError",
    # Dependency
    "DependencyError",
    "DependencyHTTPError",
    "DependencyRateLimitError",
    "DependencyNetworkError",
    "DependencyResponseError",
    "CircuitOpenError",
    # Data
    "MalformedRecordError",
    # Orchestrator
    "OrchestratorError",
    # Classification
    "RETRYABLE_STATUS",
    "NON_RETRYABLE_STATUS",
]

logger = logging.getLogger(__name__)

#: HTTP status codes that signal a transient fault (safe to retry).
RETRYABLE_STATUS: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})

#: HTTP status codes that must fail fast without consuming retry budget.
NON_RETRYABLE_STATUS: Final[frozenset[int]] = frozenset({400, 401, 403, 404})

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class RailStatusError(Exception):
    """Root exception for all railstatus errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(RailStatusError):
    """Raised when the configuration is invalid or incomplete.

    Examples:
        - RTT credentials are missing.
        - Origin or destination TIPLOC is blank.
    """


# ---------------------------------------------------------------------------
# Dependency layer
# ---------------------------------------------------------------------------


class DependencyError(RailStatusError):
    """Base class for failures talking to an upstream dependency.

    Args:
        dependency: Short name of the dependency (e.g. ``"rtt"``).
        message: Human-readable error description.
    """

    def __init__(self, dependency: str, message: str) -> None:
        self.dependency = dependency
        super().__init__(f"[{dependency}] {message}")

    @property
    def status_code(self) -> int | None:
        """HTTP status code, if the failure carried one."""
        return None

    @property
    def retryable(self) -> bool:
        """Whether a retry could plausibly succeed."""
        return False


class DependencyHTTPError(DependencyError):
    """Raised when the dependency answered with a non-2xx HTTP status.

    Args:
        dependency: Short name of the dependency.
        status_code: HTTP status code of the response.
        body: First bytes of the response body, for diagnostics.
    """

    def __init__(self, dependency: str, status_code: int, body: str = "") -> None:
        self._status_code = status_code
        self.body = body
        detail = f": {body[:200]}" if body else ""
        super().__init__(dependency, f"HTTP {status_code}{detail}")

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def retryable(self) -> bool:
        if self._status_code in NON_RETRYABLE_STATUS:
            return False
        return self._status_code in RETRYABLE_STATUS or self._status_code >= 500

    @property
    def is_auth_error(self) -> bool:
        """``True`` for 401/403: usually bad credentials."""
        return self._status_code in (401, 403)


class DependencyRateLimitError(DependencyHTTPError):
    """Raised on HTTP 429.

    Args:
        dependency: Short name of the dependency.
        retry_after: Back-off hint in seconds from ``Retry-After``, if any.
    """

    def __init__(self, dependency: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        hint = f"retry after {retry_after}s" if retry_after is not None else "no retry hint"
        super().__init__(dependency, 429, f"Rate limited, {hint}")


class DependencyNetworkError(DependencyError):
    """Raised when no HTTP response was received at all.

    Covers DNS failures, refused connections and timeouts.  Always retryable.
    """

    @property
    def retryable(self) -> bool:
        return True


class DependencyResponseError(DependencyError):
    """Raised when a 2xx response body cannot be decoded."""


class CircuitOpenError(RailStatusError):
    """Raised when a call is refused because the circuit breaker is OPEN.

    Synthetic and fail-fast: the underlying operation was not invoked, and the
    error is never retried.

    Args:
        dependency: Name of the guarded dependency.
        retry_in: Seconds until the breaker will admit a probe, if known.
    """

    def __init__(self, dependency: str, retry_in: float | None = None) -> None:
        self.dependency = dependency
        self.retry_in = retry_in
        detail = f"next attempt in {retry_in:.1f}s" if retry_in is not None else "probe in flight"
        super().__init__(f"[{dependency}] Circuit breaker is OPEN ({detail})")


# ---------------------------------------------------------------------------
# Data layer
# ---------------------------------------------------------------------------


class MalformedRecordError(RailStatusError):
    """Raised when a single timetable record cannot be parsed.

    Never propagated past the parsing loop: the record is dropped and the
    rest of the response is kept.
    """


# ---------------------------------------------------------------------------
# Orchestrator layer
# ---------------------------------------------------------------------------


class OrchestratorError(RailStatusError):
    """Raised for misuse of the polling orchestrator.

    Examples:
        - ``start()`` called on a poller that is already running.
    """
