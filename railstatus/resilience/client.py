"""Fault-tolerant async client for one upstream dependency.

Composes three layers, outermost first:

* **Circuit breaker**: one :class:`~railstatus.resilience.circuit_breaker.CircuitBreaker`
  per dependency.  The breaker sees exactly one outcome per *logical* request,
  however many attempts the retry loop made.
* **Retry loop**: :class:`tenacity.AsyncRetrying` with the
  :class:`~railstatus.resilience.backoff.BackoffPolicy` delay curve.  HTTP 429
  with a ``Retry-After`` hint waits for the hint instead (capped at
  ``max_delay``).  Non-retryable failures (400/401/403/404, bad JSON) fail
  fast without consuming retry budget.
* **HTTP transport**: an :class:`httpx.AsyncClient` bounded by
  :class:`httpx.Timeout`, with responses mapped onto the
  :mod:`railstatus.core.exceptions` taxonomy.

Typical usage::

    async with ResilientClient("rtt") as client:
        data = await client.get_json(url, auth=httpx.BasicAuth(user, password))

Several dependencies are managed through :class:`ResilientClientRegistry`,
which hands out one client (and therefore one breaker) per name.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from types import TracebackType
from typing import Any, Final, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from railstatus.core import events
from railstatus.core.exceptions import (
    CircuitOpenError,
    DependencyError,
    DependencyHTTPError,
    DependencyNetworkError,
    DependencyRateLimitError,
    DependencyResponseError,
)
from railstatus.resilience.backoff import BackoffPolicy
from railstatus.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerStats

__all__ = [
    "is_retryable",
    "parse_retry_after",
    "ResilientClient",
    "ResilientClientRegistry",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default whole-request timeout in seconds.
_DEFAULT_TIMEOUT: Final[float] = 10.0

#: Default timeout waiting for a free connection from the pool.
_POOL_TIMEOUT: Final[float] = 5.0

_DEFAULT_HEADERS: Final[dict[str, str]] = {
    "Accept": "application/json",
    "User-Agent": "railstatus/1.0",
}


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def is_retryable(exc: BaseException) -> bool:
    """Return ``True`` if a retry of the failed attempt could succeed.

    * :class:`CircuitOpenError` → never (synthetic, fail-fast).
    * :class:`DependencyError` → its own ``retryable`` flag (429/5xx and
      network failures retry; 400/401/403/404 and undecodable bodies do not).
    * Raw transport failures (:class:`httpx.TransportError`,
      :class:`OSError`, :class:`TimeoutError`) → always; they carry no status.
    * Anything else → never.
    """
    if isinstance(exc, CircuitOpenError):
        return False
    if isinstance(exc, DependencyError):
        return exc.retryable
    return isinstance(exc, (httpx.TransportError, OSError, TimeoutError))


def parse_retry_after(response: httpx.Response) -> float | None:
    """Extract the back-off hint from a 429 response.

    Accepts both forms of ``Retry-After``: delta-seconds and an HTTP date.

    Returns:
        Seconds to wait (≥ 0), or ``None`` when absent or unparseable.
    """
    header = response.headers.get("retry-after", "").strip()
    if not header:
        return None
    try:
        return max(float(header), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        logger.debug("Could not parse Retry-After header %r.", header)
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max((when - datetime.now(UTC)).total_seconds(), 0.0)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ResilientClient:
    """Retrying, circuit-broken client for a single named dependency.

    Args:
        name: Dependency name used in errors, log lines and the breaker.
        breaker: Breaker to use.  A default one named *name* is created when
            omitted.
        policy: Retry budget and delay curve.  Defaults to
            :class:`BackoffPolicy` defaults (3 retries, 1 s base, 10 s cap).
        http: Pre-built :class:`httpx.AsyncClient`.  When given, the caller
            owns it and :meth:`close` leaves it open.
        base_url: Base URL for the owned HTTP client.
        headers: Extra default headers for the owned HTTP client.
        timeout: Whole-request timeout in seconds for the owned HTTP client.
        sleep: Awaitable sleep used between attempts.  Override in tests.
        logger: Logger to use instead of the module logger.
    """

    def __init__(
        self,
        name: str,
        *,
        breaker: CircuitBreaker | None = None,
        policy: BackoffPolicy | None = None,
        http: httpx.AsyncClient | None = None,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        sleep: SleepFn = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout!r}.")

        self.name = name
        self._log = logger or logging.getLogger(__name__)
        self._breaker = breaker or CircuitBreaker(name, logger=self._log)
        self._policy = policy or BackoffPolicy()
        self._base_url = base_url
        self._default_headers: dict[str, str] = headers or {}
        self._timeout = httpx.Timeout(timeout, pool=_POOL_TIMEOUT)
        self._sleep = sleep
        self._http = http
        self._owns_http = http is None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ResilientClient:
        self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the connection pool if this client created it.

        Safe to call multiple times.
        """
        if not self._owns_http:
            return
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            self._log.debug("%s HTTP session closed.", self.name)
        self._http = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation* behind the breaker, retrying transient failures.

        Args:
            operation: Zero-argument factory returning a fresh awaitable per
                attempt.

        Returns:
            The operation's result.

        Raises:
            CircuitOpenError: The breaker refused the call; *operation* was
                not invoked.
            Exception: The last failure after the retry budget was spent, or
                the first non-retryable failure.
        """
        try:
            return await self._breaker.call(lambda: self._with_retries(operation))
        except CircuitOpenError:
            raise
        except Exception as exc:
            self._log.warning(
                "%s request failed: %s",
                self.name,
                exc,
                extra={"event": events.REQUEST_FAILED, "dependency": self.name},
            )
            raise

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | None = None,
    ) -> Any:
        """GET *url* and decode the JSON body.

        Returns:
            The decoded JSON document.

        Raises:
            CircuitOpenError: The breaker is open.
            DependencyRateLimitError: HTTP 429 after exhausting retries.
            DependencyHTTPError: Any other non-2xx status.
            DependencyNetworkError: No response after exhausting retries.
            DependencyResponseError: The 2xx body is not valid JSON.
        """

        async def _attempt() -> Any:
            response = await self._single_get(url, params=params, headers=headers, auth=auth)
            try:
                return response.json()
            except ValueError as exc:
                raise DependencyResponseError(self.name, f"Invalid JSON body: {exc}") from exc

        return await self.execute(_attempt)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._http is None or (self._owns_http and self._http.is_closed):
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                follow_redirects=True,
                headers={**_DEFAULT_HEADERS, **self._default_headers},
            )
            self._owns_http = True
            self._log.debug(
                "%s HTTP session opened (base_url=%r).", self.name, self._base_url or "(none)"
            )
        return self._http

    def _wait(self, retry_state: RetryCallState) -> float:
        """Delay before the next attempt: Retry-After if hinted, else backoff."""
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, DependencyRateLimitError) and exc.retry_after is not None:
            return min(exc.retry_after, self._policy.max_delay)
        return self._policy.delay_for(retry_state.attempt_number - 1)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self._log.warning(
            "%s attempt %d/%d failed (%s). Retrying in %.1f s…",
            self.name,
            retry_state.attempt_number,
            self._policy.max_attempts,
            exc,
            delay,
            extra={"event": events.REQUEST_RETRY, "dependency": self.name},
        )

    async def _with_retries(self, operation: Callable[[], Awaitable[T]]) -> T:
        async for attempt in AsyncRetrying(
            wait=self._wait,
            stop=stop_after_attempt(self._policy.max_attempts),
            retry=retry_if_exception(is_retryable),
            sleep=self._sleep,
            reraise=True,
            before_sleep=self._before_sleep,
        ):
            with attempt:
                result = await operation()
        # tenacity reraises on failure, so reaching here means success.
        return result

    async def _single_get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        auth: httpx.Auth | None,
    ) -> httpx.Response:
        """Perform exactly one GET and map the outcome.

        Raises:
            DependencyRateLimitError: On HTTP 429.
            DependencyHTTPError: On any other non-2xx status.
            DependencyNetworkError: When no response was received.
        """
        client = self._ensure_client()
        request_kwargs: dict[str, Any] = {"params": params, "headers": headers}
        if auth is not None:
            request_kwargs["auth"] = auth

        try:
            response = await client.request("GET", url, **request_kwargs)
        except httpx.TransportError as exc:
            self._log.debug("Transport error on GET %s.", url, exc_info=True)
            raise DependencyNetworkError(self.name, str(exc) or type(exc).__name__) from exc

        self._log.debug("GET %s → %d", url, response.status_code)

        if response.is_success:
            return response

        if response.status_code == 429:
            retry_after = parse_retry_after(response)
            raise DependencyRateLimitError(self.name, retry_after=retry_after)

        raise DependencyHTTPError(self.name, response.status_code, response.text[:200])


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ResilientClientRegistry:
    """Explicit home for one :class:`ResilientClient` per dependency name.

    Clients created here share the registry's policy, breaker settings, clock
    and sleep, but never a breaker: distinct names get distinct breakers.

    Args:
        policy: Backoff policy for every client.
        failure_threshold: Breaker failure threshold.
        success_threshold: Breaker success threshold.
        open_timeout: Breaker open timeout in seconds.
        timeout: Per-request HTTP timeout in seconds.
        clock: Monotonic clock for the breakers.
        sleep: Awaitable sleep for the retry loops.
        logger: Logger handed to every client and breaker.
    """

    def __init__(
        self,
        *,
        policy: BackoffPolicy | None = None,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        open_timeout: float = 60.0,
        timeout: float = _DEFAULT_TIMEOUT,
        clock: Callable[[], float] | None = None,
        sleep: SleepFn = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._policy = policy or BackoffPolicy()
        self._breaker_kwargs: dict[str, Any] = {
            "failure_threshold": failure_threshold,
            "success_threshold": success_threshold,
            "open_timeout": open_timeout,
            "clock": clock,
        }
        self._timeout = timeout
        self._sleep = sleep
        self._log = logger
        self._clients: dict[str, ResilientClient] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    def get_or_create(
        self,
        name: str,
        *,
        http: httpx.AsyncClient | None = None,
        base_url: str = "",
        headers: dict[str, str] | None = None,
    ) -> ResilientClient:
        """Return the client for *name*, creating it on first use.

        ``http``, ``base_url`` and ``headers`` only apply on creation.
        """
        client = self._clients.get(name)
        if client is None:
            breaker = CircuitBreaker(name, logger=self._log, **self._breaker_kwargs)
            client = ResilientClient(
                name,
                breaker=breaker,
                policy=self._policy,
                http=http,
                base_url=base_url,
                headers=headers,
                timeout=self._timeout,
                sleep=self._sleep,
                logger=self._log,
            )
            self._clients[name] = client
            logger.debug("Registered resilient client for %s.", name)
        return client

    def get(self, name: str) -> ResilientClient | None:
        return self._clients.get(name)

    def health(self) -> dict[str, CircuitBreakerStats]:
        """Breaker snapshot for every registered dependency."""
        return {name: client.breaker.stats() for name, client in self._clients.items()}

    async def aclose(self) -> None:
        """Close every client, logging (not raising) individual failures."""
        for name, client in list(self._clients.items()):
            try:
                await client.close()
            except Exception:  # noqa: BLE001
                logger.exception("Error closing client for %s.", name)
        self._clients.clear()
