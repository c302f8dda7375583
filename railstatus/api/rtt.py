"""Realtime Trains (RTT) timetable search client.

Queries the RTT JSON search endpoint::

    GET https://api.rtt.io/api/v1/json/search/{origin}/to/{destination}/{YYYY}/{MM}/{DD}

with HTTP Basic authentication, through a
:class:`~railstatus.resilience.client.ResilientClient` so every search is
retried and circuit-broken.

The response is parsed record by record: one malformed ``services[]`` entry
is logged, counted and dropped without discarding the rest of the timetable.

Typical usage::

    from railstatus.api.rtt import RttClient

    async with RttClient(user, password) as rtt:
        response = await rtt.search("CAMBDGE", "KNGX")
        for record in response.services:
            ...
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date
from types import TracebackType
from typing import Any, Final

import httpx
from pydantic import ValidationError

from railstatus.core import events
from railstatus.core.exceptions import (
    ConfigError,
    DependencyResponseError,
    MalformedRecordError,
)
from railstatus.core.models import SearchResponse, ServiceRecord
from railstatus.resilience.client import ResilientClient

__all__ = [
    "RTT_DEPENDENCY",
    "DEFAULT_BASE_URL",
    "RttClient",
    "format_search_date",
    "parse_search_response",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Dependency name used for the breaker, errors and log lines.
RTT_DEPENDENCY: Final[str] = "rtt"

DEFAULT_BASE_URL: Final[str] = "https://api.rtt.io/api/v1/json"


# ---------------------------------------------------------------------------
# Helpers (module-level, stateless)
# ---------------------------------------------------------------------------


def format_search_date(run_date: date) -> str:
    """Render *run_date* as the ``YYYY/MM/DD`` path segment RTT expects."""
    return f"{run_date.year:04d}/{run_date.month:02d}/{run_date.day:02d}"


def _parse_record(raw: Any, index: int) -> ServiceRecord:
    """Validate one ``services[]`` entry.

    Raises:
        MalformedRecordError: If the entry is not a mapping or fails
            validation.
    """
    if not isinstance(raw, Mapping):
        raise MalformedRecordError(f"services[{index}] is {type(raw).__name__}, not an object")
    try:
        return ServiceRecord.model_validate(raw)
    except ValidationError as exc:
        raise MalformedRecordError(
            f"services[{index}] ({raw.get('serviceUid', '?')}): "
            f"{exc.error_count()} validation error(s)"
        ) from exc


def parse_search_response(payload: Any) -> SearchResponse:
    """Turn a decoded RTT search body into a :class:`SearchResponse`.

    ``services`` may be absent or ``null`` (no trains running); both yield an
    empty list.

    Raises:
        DependencyResponseError: If *payload* is not a JSON object, or
            ``services`` is neither a list nor ``null``.
    """
    if not isinstance(payload, Mapping):
        raise DependencyResponseError(
            RTT_DEPENDENCY, f"Expected a JSON object, got {type(payload).__name__}"
        )

    raw_services = payload.get("services")
    if raw_services is None:
        return SearchResponse()
    if not isinstance(raw_services, list):
        raise DependencyResponseError(
            RTT_DEPENDENCY, f"'services' is {type(raw_services).__name__}, not a list"
        )

    services: list[ServiceRecord] = []
    malformed = 0
    for index, raw in enumerate(raw_services):
        try:
            services.append(_parse_record(raw, index))
        except MalformedRecordError as exc:
            malformed += 1
            logger.warning(
                "Dropping malformed RTT record: %s",
                exc,
                extra={"event": events.RECORD_MALFORMED},
            )

    return SearchResponse(services=services, malformed_count=malformed)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RttClient:
    """Authenticated RTT search client.

    Args:
        username: RTT API username.
        password: RTT API password.
        resilient: Client that performs the HTTP call.  A default one named
            ``"rtt"`` is created (and owned) when omitted.
        base_url: API root, without trailing slash.
    """

    def __init__(
        self,
        username: str | None,
        password: str | None,
        *,
        resilient: ResilientClient | None = None,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self._username = username or ""
        self._password = password or ""
        self._owns_resilient = resilient is None
        self._resilient = resilient or ResilientClient(RTT_DEPENDENCY)
        self._base_url = base_url.rstrip("/")

    @property
    def resilient(self) -> ResilientClient:
        return self._resilient

    @property
    def configured(self) -> bool:
        """``True`` when both credentials are present."""
        return bool(self._username and self._password)

    async def __aenter__(self) -> RttClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_resilient:
            await self._resilient.close()

    def search_url(self, origin: str, destination: str, run_date: date) -> str:
        return (
            f"{self._base_url}/search/{origin}/to/{destination}/"
            f"{format_search_date(run_date)}"
        )

    async def search(
        self,
        origin: str,
        destination: str,
        run_date: date | None = None,
    ) -> SearchResponse:
        """Fetch the services running from *origin* to *destination*.

        Args:
            origin: Origin TIPLOC.
            destination: Destination TIPLOC.
            run_date: Day to search.  Defaults to today (local time).

        Returns:
            Parsed :class:`SearchResponse`; malformed records are dropped and
            counted.

        Raises:
            ConfigError: Blank TIPLOC or missing credentials; raised before
                any I/O.
            CircuitOpenError: The RTT breaker is open.
            DependencyError: The request failed after retries.
        """
        origin = (origin or "").strip().upper()
        destination = (destination or "").strip().upper()
        if not origin or not destination:
            raise ConfigError("RTT search requires both origin and destination TIPLOC.")
        if not self.configured:
            raise ConfigError("RTT API credentials not configured (RTT_USER / RTT_PASS).")

        url = self.search_url(origin, destination, run_date or date.today())
        logger.debug("Searching RTT %s -> %s (%s).", origin, destination, url)

        payload = await self._resilient.get_json(
            url, auth=httpx.BasicAuth(self._username, self._password)
        )
        response = parse_search_response(payload)

        logger.debug(
            "RTT returned %d service(s) for %s -> %s (%d malformed).",
            len(response.services),
            origin,
            destination,
            response.malformed_count,
        )
        return response
