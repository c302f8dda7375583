"""Circuit breaker guarding calls to one unreliable dependency.

After ``failure_threshold`` consecutive failed requests the circuit **opens**
and every call fails fast with
:class:`~railstatus.core.exceptions.CircuitOpenError` until ``open_timeout``
elapses.  The next call is then let through as a probe.

State machine
~~~~~~~~~~~~~
::

    CLOSED ──(failure_threshold consecutive failures)──▶ OPEN
      ▲                                                   │
      │                                                   │ (first call at/after
      │                                                   │  next_attempt_at)
      │                                                   ▼
      └──(success_threshold consecutive successes)── HALF_OPEN
                                                          │
                                                          │ (any failure)
                                                          ▼
                                                         OPEN  (timeout restarts)

Only one probe may be in flight while HALF_OPEN; a concurrent caller is
rejected exactly as if the circuit were OPEN.

:meth:`CircuitBreaker.before_call` returns an admission token (the transition
count at admission).  An outcome reported with a token from before the latest
transition is stale: a call admitted while CLOSED that finishes after the
circuit has opened is ignored rather than counted as a probe result.

Thread-safety
~~~~~~~~~~~~~
Plain in-process object with no locking.  Safe for single-threaded
``asyncio`` usage, which is how railstatus operates.

Typical usage::

    breaker = CircuitBreaker("rtt", failure_threshold=5, open_timeout=60.0)
    breaker.add_listener(lambda t: print(t.from_state, "->", t.to_state))

    data = await breaker.call(lambda: fetch_timetable())
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Final, TypeVar

from railstatus.core import events
from railstatus.core.exceptions import CircuitOpenError

__all__ = [
    "CircuitState",
    "CircuitTransition",
    "CircuitBreakerStats",
    "CircuitBreaker",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_DEFAULT_FAILURE_THRESHOLD: Final[int] = 5
_DEFAULT_SUCCESS_THRESHOLD: Final[int] = 2
_DEFAULT_OPEN_TIMEOUT: Final[float] = 60.0


# ---------------------------------------------------------------------------
# State types
# ---------------------------------------------------------------------------


class CircuitState(StrEnum):
    """Possible states of a circuit breaker."""

    CLOSED = "closed"
    """Normal operation: calls are allowed."""

    OPEN = "open"
    """Dependency is failing: calls are rejected until the timeout elapses."""

    HALF_OPEN = "half_open"
    """Timeout elapsed: probes are allowed one at a time."""


@dataclass(frozen=True)
class CircuitTransition:
    """A single state change, delivered to every registered listener.

    Attributes:
        dependency: Name of the guarded dependency.
        from_state: State before the transition.
        to_state: State after the transition.
        consecutive_failures: Failure counter at the time of the transition.
        reason: Short machine-friendly cause (``"threshold"``,
            ``"timeout_elapsed"``, ``"probe_failed"``, ``"recovered"``,
            ``"manual_reset"``, ``"manual_open"``).
    """

    dependency: str
    from_state: CircuitState
    to_state: CircuitState
    consecutive_failures: int
    reason: str


@dataclass(frozen=True)
class CircuitBreakerStats:
    """Read-only snapshot of a breaker, for health checks and logs."""

    name: str
    state: CircuitState
    consecutive_failures: int
    half_open_successes: int
    failure_threshold: int
    success_threshold: int
    open_timeout: float
    retry_in: float | None
    last_error: str | None
    transitions: int

    @property
    def is_healthy(self) -> bool:
        return self.state != CircuitState.OPEN


TransitionListener = Callable[[CircuitTransition], None]


# ---------------------------------------------------------------------------
# Breaker
# ---------------------------------------------------------------------------


class CircuitBreaker:
    """Three-state circuit breaker for one dependency.

    Args:
        name: Dependency label used in errors and log lines.
        failure_threshold: Consecutive failures (while CLOSED) that open the
            circuit.
        success_threshold: Consecutive probe successes (while HALF_OPEN) that
            close it again.
        open_timeout: Seconds the circuit stays OPEN before admitting a probe.
        clock: Callable returning a monotonic timestamp in seconds.  Defaults
            to :func:`time.monotonic`; override in tests.
        logger: Logger to use instead of the module logger.

    Raises:
        ValueError: If a threshold is below 1 or the timeout is negative.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = _DEFAULT_FAILURE_THRESHOLD,
        success_threshold: int = _DEFAULT_SUCCESS_THRESHOLD,
        open_timeout: float = _DEFAULT_OPEN_TIMEOUT,
        *,
        clock: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if failure_threshold < 1 or success_threshold < 1:
            raise ValueError("failure_threshold and success_threshold must be ≥ 1.")
        if open_timeout < 0:
            raise ValueError(f"open_timeout must be ≥ 0, got {open_timeout!r}.")

        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.open_timeout = open_timeout
        self._clock = clock or time.monotonic
        self._log = logger or logging.getLogger(__name__)

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._half_open_successes = 0
        self._next_attempt_at: float | None = None
        self._probe_in_flight = False
        self._last_error: str | None = None
        self._transitions = 0
        self._listeners: list[TransitionListener] = []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def half_open_successes(self) -> int:
        return self._half_open_successes

    @property
    def next_attempt_at(self) -> float | None:
        """Clock value at which OPEN may move to HALF_OPEN."""
        return self._next_attempt_at

    def stats(self) -> CircuitBreakerStats:
        retry_in: float | None = None
        if self._state == CircuitState.OPEN and self._next_attempt_at is not None:
            retry_in = max(self._next_attempt_at - self._clock(), 0.0)
        return CircuitBreakerStats(
            name=self.name,
            state=self._state,
            consecutive_failures=self._consecutive_failures,
            half_open_successes=self._half_open_successes,
            failure_threshold=self.failure_threshold,
            success_threshold=self.success_threshold,
            open_timeout=self.open_timeout,
            retry_in=retry_in,
            last_error=self._last_error,
            transitions=self._transitions,
        )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: TransitionListener) -> Callable[[], None]:
        """Register *listener* for every transition.

        Returns:
            A zero-argument callable that removes the listener again.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _transition(self, to_state: CircuitState, reason: str) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        self._transitions += 1

        level = logging.WARNING if to_state == CircuitState.OPEN else logging.INFO
        self._log.log(
            level,
            "Circuit %s for %s: %s -> %s (%s, consecutive failures=%d).",
            to_state.value.upper(),
            self.name,
            from_state.value,
            to_state.value,
            reason,
            self._consecutive_failures,
            extra={"event": events.CIRCUIT_TRANSITION, "dependency": self.name},
        )

        transition = CircuitTransition(
            dependency=self.name,
            from_state=from_state,
            to_state=to_state,
            consecutive_failures=self._consecutive_failures,
            reason=reason,
        )
        for listener in list(self._listeners):
            try:
                listener(transition)
            except Exception:  # noqa: BLE001
                self._log.exception("Circuit listener raised for %s; ignoring.", self.name)

    def _open(self, reason: str) -> None:
        self._half_open_successes = 0
        self._next_attempt_at = self._clock() + self.open_timeout
        self._transition(CircuitState.OPEN, reason)

    def _reject(self, retry_in: float | None) -> CircuitOpenError:
        self._log.debug(
            "Circuit OPEN for %s; call rejected.",
            self.name,
            extra={"event": events.CIRCUIT_REJECTED, "dependency": self.name},
        )
        return CircuitOpenError(self.name, retry_in)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def before_call(self) -> int:
        """Gate a call.  Must be paired with a ``record_*`` call on admission.

        * **CLOSED** → admitted.
        * **OPEN** before ``next_attempt_at`` → rejected.
        * **OPEN** at/after ``next_attempt_at`` → moves to HALF_OPEN, admitted
          as the probe.
        * **HALF_OPEN** → admitted only if no probe is in flight.

        Returns:
            Admission token to hand back to :meth:`record_success` or
            :meth:`record_failure`.

        Raises:
            CircuitOpenError: If the call must not reach the dependency.
        """
        if self._state == CircuitState.CLOSED:
            return self._transitions

        if self._state == CircuitState.OPEN:
            now = self._clock()
            assert self._next_attempt_at is not None  # noqa: S101
            if now < self._next_attempt_at:
                raise self._reject(self._next_attempt_at - now)
            self._half_open_successes = 0
            self._transition(CircuitState.HALF_OPEN, "timeout_elapsed")

        if self._probe_in_flight:
            raise self._reject(None)
        self._probe_in_flight = True
        return self._transitions

    def _is_stale(self, token: int | None, outcome: str) -> bool:
        if token is None or token == self._transitions:
            return False
        self._log.debug(
            "Ignoring stale %s for %s (admitted in %s, now %s).",
            outcome,
            self.name,
            token,
            self._transitions,
        )
        return True

    def record_success(self, token: int | None = None) -> None:
        """Report that an admitted call succeeded.

        Args:
            token: Value returned by :meth:`before_call`.  ``None`` means the
                call belongs to the current state.
        """
        if self._is_stale(token, "success"):
            return
        self._probe_in_flight = False
        self._last_error = None

        if self._state == CircuitState.HALF_OPEN:
            self._half_open_successes += 1
            if self._half_open_successes >= self.success_threshold:
                self._consecutive_failures = 0
                self._half_open_successes = 0
                self._next_attempt_at = None
                self._transition(CircuitState.CLOSED, "recovered")
            return

        if self._consecutive_failures > 0:
            self._log.debug(
                "%s recovered; resetting %d consecutive failure(s).",
                self.name,
                self._consecutive_failures,
            )
        self._consecutive_failures = 0

    def record_failure(
        self, error: BaseException | None = None, token: int | None = None
    ) -> None:
        """Report that an admitted call failed.

        Args:
            error: The failure, kept for :meth:`stats`.
            token: Value returned by :meth:`before_call`.
        """
        if self._is_stale(token, "failure"):
            return
        self._probe_in_flight = False
        self._consecutive_failures += 1
        if error is not None:
            self._last_error = str(error) or type(error).__name__

        if self._state == CircuitState.HALF_OPEN:
            self._open("probe_failed")
            return

        if self._state == CircuitState.CLOSED:
            if self._consecutive_failures >= self.failure_threshold:
                self._open("threshold")
            else:
                self._log.debug(
                    "%s failure %d / %d; circuit remains CLOSED.",
                    self.name,
                    self._consecutive_failures,
                    self.failure_threshold,
                )

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation* through the breaker.

        Raises:
            CircuitOpenError: Without invoking *operation* when rejected.
            Exception: Whatever *operation* raised, after recording it.
        """
        token = self.before_call()
        try:
            result = await operation()
        except Exception as exc:
            self.record_failure(exc, token)
            raise
        except BaseException:
            # Cancelled: the outcome is unknown, so free the probe slot only.
            if token == self._transitions:
                self._probe_in_flight = False
            raise
        self.record_success(token)
        return result

    def reset(self) -> None:
        """Force the circuit CLOSED and clear all counters."""
        self._log.info("Manually resetting circuit for %s.", self.name)
        self._consecutive_failures = 0
        self._half_open_successes = 0
        self._next_attempt_at = None
        self._probe_in_flight = False
        self._last_error = None
        self._transition(CircuitState.CLOSED, "manual_reset")

    def force_open(self) -> None:
        """Force the circuit OPEN for a fresh ``open_timeout``."""
        self._log.warning("Manually opening circuit for %s.", self.name)
        self._probe_in_flight = False
        self._open("manual_open")
