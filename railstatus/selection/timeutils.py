"""Clock-time helpers for timetable selection.

Every time is handled as *minutes since local midnight*.  A clock time that
falls before "now" is assumed to belong to the following day and is shifted
by :data:`MINUTES_PER_DAY` (rollover normalisation), so values up to
``2 * 1440`` are legal after normalisation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time
from typing import Final

__all__ = [
    "MINUTES_PER_DAY",
    "SearchWindow",
    "adjust_for_day_rollover",
    "hhmm_to_minutes",
    "is_within_window",
    "minute_of_day",
]

MINUTES_PER_DAY: Final[int] = 24 * 60

#: ``HHMM`` or ``HH:MM``, optionally followed by seconds (``SS``) or the
#: working-timetable half-minute marker ``H``.
_CLOCK_RE: Final[re.Pattern[str]] = re.compile(r"^(\d{2}):?(\d{2})(?:\d{2}|H)?$")


def hhmm_to_minutes(value: str | int | None) -> int | None:
    """Convert a 24-hour clock value to minutes since midnight.

    >>> hhmm_to_minutes("0830")
    510
    >>> hhmm_to_minutes("23:59")
    1439
    >>> hhmm_to_minutes("0815H")
    495
    >>> hhmm_to_minutes("") is None
    True

    Returns:
        Minutes in ``[0, 1439]``, or ``None`` when *value* is absent or not
        a valid clock time.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        if value < 0:
            return None
        value = f"{value:04d}"
    match = _CLOCK_RE.match(value.strip())
    if match is None:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def minute_of_day(now: datetime | time) -> int:
    """``now.hour * 60 + now.minute``; seconds are ignored."""
    return now.hour * 60 + now.minute


def adjust_for_day_rollover(minute: int, now_minute: int) -> int:
    """Shift *minute* to tomorrow if it is earlier than *now_minute*.

    >>> adjust_for_day_rollover(120, 1400)
    1560
    >>> adjust_for_day_rollover(1400, 500)
    1400
    """
    if minute < now_minute:
        return minute + MINUTES_PER_DAY
    return minute


def is_within_window(minute: int, earliest: int, latest: int) -> bool:
    """Inclusive range check on both bounds."""
    return earliest <= minute <= latest


@dataclass(frozen=True)
class SearchWindow:
    """Departure window for one selection pass.

    Attributes:
        now_minute: Reference minute of day.
        earliest: First acceptable (normalised) departure minute.
        latest: Last acceptable (normalised) departure minute.
    """

    now_minute: int
    earliest: int
    latest: int

    @classmethod
    def from_now(
        cls,
        now: datetime | time,
        min_after_minutes: int,
        window_minutes: int,
    ) -> SearchWindow:
        now_minute = minute_of_day(now)
        earliest = now_minute + min_after_minutes
        return cls(now_minute=now_minute, earliest=earliest, latest=earliest + window_minutes)

    def normalise(self, minute: int) -> int:
        return adjust_for_day_rollover(minute, self.now_minute)

    def contains(self, minute: int) -> bool:
        """Whether an already-normalised *minute* lies in the window."""
        return is_within_window(minute, self.earliest, self.latest)
