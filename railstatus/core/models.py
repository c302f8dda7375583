"""railstatus core domain models.

Defines the timetable record shapes parsed from the Realtime Trains (RTT)
search API, the :class:`TrainStatus` enum, and the
:class:`StatusChangeEvent` handed to subscribers.

Field names are Pythonic; the RTT JSON keys are accepted through aliases so a
raw ``services[]`` entry can be validated directly::

    from railstatus.core.models import ServiceRecord

    record = ServiceRecord.model_validate(
        {
            "serviceUid": "W12345",
            "locationDetail": {
                "gbttBookedDeparture": "0810",
                "destination": [{"tiploc": "KNGX", "publicTime": "0902"}],
            },
        }
    )
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "TrainStatus",
    "CallPoint",
    "LocationDetail",
    "ServiceRecord",
    "SearchResponse",
    "StatusChangeEvent",
]

logger = logging.getLogger(__name__)

_RECORD_CONFIG = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

#: RTT ``displayAs`` value for a call that will not happen.
_CANCELLED_DISPLAY = "CANCELLED_CALL"


def _coerce_clock(v: object) -> object:
    """Accept integer clock values (``810``) as zero-padded strings (``"0810"``)."""
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return f"{v:04d}"
    if isinstance(v, str) and not v.strip():
        return None
    return v


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TrainStatus(StrEnum):
    """Discrete punctuality status of the selected service.

    :attr:`UNKNOWN` means no candidate was selected (or the fetch failed); it
    is never a lateness measurement.
    """

    ON_TIME = "on_time"
    MINOR_DELAY = "minor_delay"
    DELAYED = "delayed"
    MAJOR_DELAY = "major_delay"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Timetable records
# ---------------------------------------------------------------------------


class CallPoint(BaseModel):
    """A location a service calls at, with its scheduled times.

    Attributes:
        tiploc: Location code (TIPLOC).
        description: Human-readable station name.
        working_time: Working-timetable time (``HHmm``, may carry a suffix).
        public_time: Public (booked) time (``HHmm``).
        realtime: Real-time estimate or actual, if reported.
    """

    model_config = _RECORD_CONFIG

    tiploc: str = Field(..., min_length=1)
    description: str | None = None
    working_time: str | None = Field(None, alias="workingTime")
    public_time: str | None = Field(None, alias="publicTime")
    realtime: str | None = None

    @field_validator("working_time", "public_time", "realtime", mode="before")
    @classmethod
    def _clock_strings(cls, v: object) -> object:
        return _coerce_clock(v)


class LocationDetail(BaseModel):
    """Timings of a service at the searched origin station.

    Attributes:
        booked_departure: Scheduled public departure (``gbttBookedDeparture``).
        realtime_departure: Real-time departure estimate or actual.
        booked_arrival: Scheduled public arrival at this location.
        realtime_arrival: Real-time arrival estimate or actual.
        origin: Call points the service originates from.
        destination: Call points the service terminates at.
        gbtt_departure_lateness: Explicit public-timetable lateness (minutes).
        wtt_departure_lateness: Explicit working-timetable lateness (minutes).
        cancel_reason_code: Present when the service is cancelled.
        platform: Platform label.
        display_as: RTT display hint (``CALL``, ``CANCELLED_CALL``, …).
    """

    model_config = _RECORD_CONFIG

    booked_departure: str | None = Field(None, alias="gbttBookedDeparture")
    realtime_departure: str | None = Field(None, alias="realtimeDeparture")
    booked_arrival: str | None = Field(None, alias="gbttBookedArrival")
    realtime_arrival: str | None = Field(None, alias="realtimeArrival")
    origin: list[CallPoint] = Field(default_factory=list)
    destination: list[CallPoint] = Field(default_factory=list)
    gbtt_departure_lateness: int | None = Field(None, alias="realtimeGbttDepartureLateness")
    wtt_departure_lateness: int | None = Field(None, alias="realtimeWttDepartureLateness")
    cancel_reason_code: str | None = Field(None, alias="cancelReasonCode")
    platform: str | None = None
    display_as: str | None = Field(None, alias="displayAs")

    @field_validator(
        "booked_departure",
        "realtime_departure",
        "booked_arrival",
        "realtime_arrival",
        mode="before",
    )
    @classmethod
    def _clock_strings(cls, v: object) -> object:
        return _coerce_clock(v)

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def _null_list(cls, v: object) -> object:
        """RTT sends ``null`` rather than ``[]`` for some terminating services."""
        return [] if v is None else v

    @field_validator("cancel_reason_code", "platform", "display_as", mode="before")
    @classmethod
    def _blank_to_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ServiceRecord(BaseModel):
    """One timetable entry from an RTT search response.

    Immutable once parsed; owned by a single poll cycle.

    Attributes:
        service_uid: Stable service identifier.
        train_identity: Headcode (e.g. ``1A23``).
        run_date: Running date as reported by RTT (``YYYY-MM-DD``).
        operator: Train operating company name.
        location_detail: Timings at the searched station.
    """

    model_config = _RECORD_CONFIG

    service_uid: str = Field(..., min_length=1, alias="serviceUid")
    train_identity: str | None = Field(None, alias="trainIdentity")
    run_date: str | None = Field(None, alias="runDate")
    operator: str | None = Field(None, alias="atocName")
    location_detail: LocationDetail = Field(
        default_factory=LocationDetail, alias="locationDetail"
    )

    @field_validator("location_detail", mode="before")
    @classmethod
    def _null_detail(cls, v: object) -> object:
        return {} if v is None else v

    @property
    def is_cancelled(self) -> bool:
        """``True`` if the service carries a cancellation marker."""
        loc = self.location_detail
        return bool(loc.cancel_reason_code) or loc.display_as == _CANCELLED_DISPLAY

    @property
    def label(self) -> str:
        """Short identifier for log lines (``"W12345/1A23"``)."""
        if self.train_identity:
            return f"{self.service_uid}/{self.train_identity}"
        return self.service_uid


class SearchResponse(BaseModel):
    """Parsed result of one timetable search.

    Attributes:
        services: Records that validated successfully.
        malformed_count: Entries dropped because they could not be parsed.
    """

    model_config = {"frozen": True}

    services: list[ServiceRecord] = Field(default_factory=list)
    malformed_count: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Outbound notification
# ---------------------------------------------------------------------------


class StatusChangeEvent(BaseModel):
    """Notification emitted when the observed status (or delay) changes.

    Attributes:
        timestamp: When the poll that produced the event started.
        previous_status: Last emitted status; ``None`` on the first emission.
        current_status: Newly observed status.
        mode: Integer mode for :attr:`current_status` (see
            :mod:`railstatus.status.mapping`).
        delay_minutes: Signed lateness of the selected service, or ``None``
            when no service was selected or real-time data was insufficient.
        selected_service_id: ``service_uid`` of the selected service.
        error: Diagnostic message when the poll failed.
    """

    model_config = {"frozen": True}

    timestamp: datetime
    previous_status: TrainStatus | None = None
    current_status: TrainStatus
    mode: int
    delay_minutes: int | None = None
    selected_service_id: str | None = None
    error: str | None = None

    @property
    def status_changed(self) -> bool:
        """``True`` unless only the delay value moved."""
        return self.previous_status != self.current_status
