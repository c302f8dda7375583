"""Punctuality classification of a selected service.

Lateness is signed minutes (positive = late, negative = early) and is taken,
in order of preference, from:

1. the explicit public-timetable lateness field,
2. the explicit working-timetable lateness field,
3. ``realtime_departure - booked_departure``, with the difference wrapped
   into ``(-720, 720]`` so a departure crossing midnight is not read as a
   day late.

The absolute value is compared against three ascending cutoffs; an early
train is treated exactly like an equally late one.  A cancelled service is
always :attr:`~railstatus.core.models.TrainStatus.MAJOR_DELAY`.

When none of the three sources is available the lateness is taken as zero
(``ON_TIME``) for classification, but :class:`PunctualityAssessment` flags
the result with ``data_sufficient=False`` so callers can tell a measured
"on time" from a missing measurement.
"""

from __future__ import annotations

from dataclasses import dataclass

from railstatus.core.models import ServiceRecord, TrainStatus
from railstatus.selection.timeutils import MINUTES_PER_DAY, hhmm_to_minutes

__all__ = [
    "LatenessThresholds",
    "PunctualityAssessment",
    "assess_punctuality",
    "classify_lateness",
    "classify_punctuality",
    "compute_lateness",
]

_HALF_DAY = MINUTES_PER_DAY // 2


@dataclass(frozen=True)
class LatenessThresholds:
    """Inclusive upper bounds (minutes) for each non-major status.

    Attributes:
        on_time: ``|lateness| <= on_time`` → ON_TIME.
        minor: ``|lateness| <= minor`` → MINOR_DELAY.
        delayed: ``|lateness| <= delayed`` → DELAYED; above → MAJOR_DELAY.

    Raises:
        ValueError: If the cutoffs are negative or not strictly ascending.
    """

    on_time: int = 2
    minor: int = 5
    delayed: int = 10

    def __post_init__(self) -> None:
        if self.on_time < 0:
            raise ValueError(f"on_time threshold must be ≥ 0, got {self.on_time!r}.")
        if not self.on_time < self.minor < self.delayed:
            raise ValueError(
                "Lateness thresholds must be strictly ascending "
                f"(got {self.on_time}, {self.minor}, {self.delayed})."
            )


@dataclass(frozen=True)
class PunctualityAssessment:
    """Full outcome of classifying one service.

    Attributes:
        status: The discrete status.
        lateness_minutes: Measured signed lateness, or ``None`` if there was
            no record or no usable timing data.
        cancelled: Whether the service carries a cancellation marker.
        data_sufficient: ``False`` when lateness could not be measured and
            the status rests on the zero-lateness default.
    """

    status: TrainStatus
    lateness_minutes: int | None
    cancelled: bool = False
    data_sufficient: bool = True


def compute_lateness(record: ServiceRecord) -> int | None:
    """Signed lateness in minutes, or ``None`` when it cannot be determined."""
    loc = record.location_detail
    if loc.gbtt_departure_lateness is not None:
        return loc.gbtt_departure_lateness
    if loc.wtt_departure_lateness is not None:
        return loc.wtt_departure_lateness

    booked = hhmm_to_minutes(loc.booked_departure)
    actual = hhmm_to_minutes(loc.realtime_departure)
    if booked is None or actual is None:
        return None

    diff = actual - booked
    if diff > _HALF_DAY:
        diff -= MINUTES_PER_DAY
    elif diff <= -_HALF_DAY:
        diff += MINUTES_PER_DAY
    return diff


def classify_lateness(lateness: int, thresholds: LatenessThresholds | None = None) -> TrainStatus:
    """Map signed *lateness* onto a status using its absolute value."""
    t = thresholds or LatenessThresholds()
    magnitude = abs(lateness)
    if magnitude <= t.on_time:
        return TrainStatus.ON_TIME
    if magnitude <= t.minor:
        return TrainStatus.MINOR_DELAY
    if magnitude <= t.delayed:
        return TrainStatus.DELAYED
    return TrainStatus.MAJOR_DELAY


def assess_punctuality(
    record: ServiceRecord | None,
    thresholds: LatenessThresholds | None = None,
) -> PunctualityAssessment:
    """Classify *record* and report how the status was reached."""
    if record is None:
        return PunctualityAssessment(
            status=TrainStatus.UNKNOWN, lateness_minutes=None, data_sufficient=False
        )

    lateness = compute_lateness(record)
    if record.is_cancelled:
        return PunctualityAssessment(
            status=TrainStatus.MAJOR_DELAY,
            lateness_minutes=lateness,
            cancelled=True,
            data_sufficient=lateness is not None,
        )

    return PunctualityAssessment(
        status=classify_lateness(lateness if lateness is not None else 0, thresholds),
        lateness_minutes=lateness,
        data_sufficient=lateness is not None,
    )


def classify_punctuality(
    record: ServiceRecord | None,
    thresholds: LatenessThresholds | None = None,
) -> TrainStatus:
    """Return the :class:`TrainStatus` for *record* (``None`` → UNKNOWN)."""
    return assess_punctuality(record, thresholds).status
