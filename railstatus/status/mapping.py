"""Status ↔ integer mode mapping for consumers that want a small number.

Modes are stable wire values: ``0`` on time … ``3`` major delay, ``4``
unknown.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Final

from railstatus.core.models import TrainStatus
from railstatus.status.classifier import LatenessThresholds, classify_lateness

__all__ = [
    "STATUS_TO_MODE",
    "MODE_TO_STATUS",
    "STATUS_LABELS",
    "SupportedMode",
    "derive_mode_from_delay",
    "status_to_mode",
    "supported_modes",
]

STATUS_TO_MODE: Final = MappingProxyType(
    {
        TrainStatus.ON_TIME: 0,
        TrainStatus.MINOR_DELAY: 1,
        TrainStatus.DELAYED: 2,
        TrainStatus.MAJOR_DELAY: 3,
        TrainStatus.UNKNOWN: 4,
    }
)

MODE_TO_STATUS: Final = MappingProxyType({mode: status for status, mode in STATUS_TO_MODE.items()})

#: Human-readable label per status.
STATUS_LABELS: Final = MappingProxyType(
    {
        TrainStatus.ON_TIME: "On Time",
        TrainStatus.MINOR_DELAY: "Minor Delay",
        TrainStatus.DELAYED: "Delayed",
        TrainStatus.MAJOR_DELAY: "Major Delay",
        TrainStatus.UNKNOWN: "Unknown",
    }
)


@dataclass(frozen=True)
class SupportedMode:
    mode: int
    label: str


def status_to_mode(status: TrainStatus | str) -> int:
    """Mode for *status*; anything unrecognised maps to the unknown mode."""
    try:
        return STATUS_TO_MODE[TrainStatus(status)]
    except ValueError:
        return STATUS_TO_MODE[TrainStatus.UNKNOWN]


def derive_mode_from_delay(
    delay_minutes: int | None,
    thresholds: LatenessThresholds | None = None,
) -> int:
    """Mode for a signed delay; ``None`` maps to the unknown mode."""
    if delay_minutes is None:
        return STATUS_TO_MODE[TrainStatus.UNKNOWN]
    return STATUS_TO_MODE[classify_lateness(delay_minutes, thresholds)]


def supported_modes() -> list[SupportedMode]:
    """All modes in ascending order, with labels."""
    return [
        SupportedMode(mode=STATUS_TO_MODE[status], label=STATUS_LABELS[status])
        for status in sorted(STATUS_TO_MODE, key=STATUS_TO_MODE.__getitem__)
    ]
