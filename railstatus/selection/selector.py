"""Candidate selection: pick the one service worth reporting on.

Pure logic with no I/O apart from logging.  Given the services returned by a
timetable search, the selector:

1. Keeps services whose departure (booked, falling back to real-time) lies in
   the :class:`~railstatus.selection.timeutils.SearchWindow`, after rollover
   normalisation.  Unparseable departures are dropped quietly.
2. Keeps services that actually call at the destination.  A miss here is
   logged at WARNING under its own event, since it usually points at a data
   problem upstream rather than at timing.
3. Ranks survivors by earliest arrival, then earliest departure, with a
   stable sort.  Services whose arrival cannot be computed rank last.

Typical usage::

    record = select_next_service(response.services, "KNGX", now=datetime.now())
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from railstatus.core import events
from railstatus.core.models import CallPoint, LocationDetail, ServiceRecord
from railstatus.selection.timeutils import (
    MINUTES_PER_DAY,
    SearchWindow,
    hhmm_to_minutes,
)

__all__ = [
    "SelectionOptions",
    "Candidate",
    "build_candidates",
    "rank_candidates",
    "select_candidate",
    "select_next_service",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SelectionOptions:
    """Window configuration for one selection pass.

    Attributes:
        min_after_minutes: Offset from now to the start of the window.
        window_minutes: Width of the window.
    """

    min_after_minutes: int = 20
    window_minutes: int = 60

    def __post_init__(self) -> None:
        if self.min_after_minutes < 0 or self.window_minutes < 0:
            raise ValueError("min_after_minutes and window_minutes must be ≥ 0.")

    def window(self, now: datetime) -> SearchWindow:
        return SearchWindow.from_now(now, self.min_after_minutes, self.window_minutes)


@dataclass(frozen=True)
class Candidate:
    """A service that survived filtering, with its computed timings.

    Attributes:
        record: The underlying timetable record.
        departure: Raw departure clock string used for filtering.
        departure_minute: Rollover-normalised departure minute.
        arrival_minute: Normalised arrival minute (never before departure), or
            ``None`` when no arrival time could be parsed.
        duration_minutes: Origin-to-destination journey time, or ``None``.
        destination: The matching destination call point.
    """

    record: ServiceRecord
    departure: str
    departure_minute: int
    arrival_minute: int | None
    duration_minutes: int | None
    destination: CallPoint

    @property
    def service_uid(self) -> str:
        return self.record.service_uid

    @property
    def sort_key(self) -> tuple[bool, int, int]:
        return (
            self.arrival_minute is None,
            self.arrival_minute if self.arrival_minute is not None else 0,
            self.departure_minute,
        )


# ---------------------------------------------------------------------------
# Field resolution
# ---------------------------------------------------------------------------


def _departure_string(loc: LocationDetail) -> str | None:
    return loc.booked_departure or loc.realtime_departure


def _origin_time(loc: LocationDetail) -> str | None:
    first = loc.origin[0] if loc.origin else None
    if first is not None:
        return first.working_time or first.public_time or loc.booked_departure
    return loc.booked_departure


def _arrival_time(loc: LocationDetail, dest: CallPoint) -> str | None:
    return dest.working_time or dest.public_time or loc.booked_arrival or loc.realtime_arrival


def _find_destination(loc: LocationDetail, destination: str) -> CallPoint | None:
    for call_point in loc.destination:
        if call_point.tiploc.upper() == destination:
            return call_point
    return None


def _journey_duration(origin_minute: int | None, arrival_minute: int | None) -> int | None:
    if origin_minute is None or arrival_minute is None:
        return None
    duration = arrival_minute - origin_minute
    if duration < 0:
        duration += MINUTES_PER_DAY
    return duration


def _normalise_arrival(
    raw_minute: int | None, departure_minute: int, window: SearchWindow
) -> int | None:
    if raw_minute is None:
        return None
    arrival = window.normalise(raw_minute)
    if arrival < departure_minute:
        arrival += MINUTES_PER_DAY
    return arrival


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_candidates(
    services: Iterable[ServiceRecord] | None,
    destination: str,
    window: SearchWindow,
    *,
    logger: logging.Logger | None = None,
) -> list[Candidate]:
    """Filter *services* down to candidates, preserving input order.

    Args:
        services: Parsed timetable records; ``None`` is treated as empty.
        destination: TIPLOC the service must call at.
        window: Departure window for this pass.
        logger: Logger to use instead of the module logger.

    Returns:
        Candidates in input order (unranked).
    """
    log = logger or logging.getLogger(__name__)
    target = destination.strip().upper()
    candidates: list[Candidate] = []

    for record in services or ():
        loc = record.location_detail
        departure = _departure_string(loc)
        raw_departure = hhmm_to_minutes(departure)
        if departure is None or raw_departure is None:
            log.debug("Skipping %s: no parseable departure time.", record.label)
            continue

        departure_minute = window.normalise(raw_departure)
        if not window.contains(departure_minute):
            log.debug(
                "Excluding %s: departure %s (%d) outside window [%d, %d].",
                record.label,
                departure,
                departure_minute,
                window.earliest,
                window.latest,
                extra={"event": events.SERVICE_EXCLUDED_TIMING},
            )
            continue

        dest = _find_destination(loc, target)
        if dest is None:
            log.warning(
                "Excluding %s: no destination call point for %s.",
                record.label,
                target,
                extra={"event": events.SERVICE_EXCLUDED_NO_DESTINATION},
            )
            continue

        arrival = _arrival_time(loc, dest)
        raw_arrival = hhmm_to_minutes(arrival)
        candidate = Candidate(
            record=record,
            departure=departure,
            departure_minute=departure_minute,
            arrival_minute=_normalise_arrival(raw_arrival, departure_minute, window),
            duration_minutes=_journey_duration(hhmm_to_minutes(_origin_time(loc)), raw_arrival),
            destination=dest,
        )
        log.debug(
            "Candidate %s: dep=%s arr=%s duration=%s platform=%s",
            record.label,
            departure,
            arrival or "N/A",
            candidate.duration_minutes,
            loc.platform or "?",
        )
        candidates.append(candidate)

    return candidates


def rank_candidates(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Sort by (arrival, departure); equal keys keep their input order."""
    return sorted(candidates, key=lambda c: c.sort_key)


def select_candidate(
    services: Iterable[ServiceRecord] | None,
    destination: str,
    options: SelectionOptions | None = None,
    *,
    now: datetime | None = None,
    logger: logging.Logger | None = None,
) -> Candidate | None:
    """Return the top-ranked candidate, or ``None`` when nothing qualifies."""
    log = logger or logging.getLogger(__name__)
    options = options or SelectionOptions()
    window = options.window(now or datetime.now())

    ranked = rank_candidates(build_candidates(services, destination, window, logger=log))
    if not ranked:
        log.info(
            "No candidate service found (dest=%s min_after=%d window=%d).",
            destination,
            options.min_after_minutes,
            options.window_minutes,
            extra={"event": events.NO_CANDIDATE},
        )
        return None

    selected = ranked[0]
    log.info(
        "Selected %s departing %s (%d candidate(s)).",
        selected.record.label,
        selected.departure,
        len(ranked),
        extra={"event": events.SERVICE_SELECTED, "service_uid": selected.service_uid},
    )
    return selected


def select_next_service(
    services: Iterable[ServiceRecord] | None,
    destination: str,
    *,
    min_after_minutes: int = 20,
    window_minutes: int = 60,
    now: datetime | None = None,
    logger: logging.Logger | None = None,
) -> ServiceRecord | None:
    """Pick the next service to *destination*.

    Args:
        services: Parsed timetable records.
        destination: Destination TIPLOC.
        min_after_minutes: Window offset from *now*.
        window_minutes: Window width.
        now: Reference time.  Defaults to the local wall clock.
        logger: Logger to use instead of the module logger.

    Returns:
        The selected record, or ``None``.
    """
    candidate = select_candidate(
        services,
        destination,
        SelectionOptions(min_after_minutes, window_minutes),
        now=now,
        logger=logger,
    )
    return candidate.record if candidate is not None else None
