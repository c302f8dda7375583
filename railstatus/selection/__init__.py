"""Candidate filtering and ranking over wall-clock departure windows."""

from railstatus.selection.selector import (
    Candidate,
    SelectionOptions,
    build_candidates,
    rank_candidates,
    select_candidate,
    select_next_service,
)
from railstatus.selection.timeutils import (
    MINUTES_PER_DAY,
    SearchWindow,
    adjust_for_day_rollover,
    hhmm_to_minutes,
    is_within_window,
)

__all__ = [
    "Candidate",
    "SelectionOptions",
    "build_candidates",
    "rank_candidates",
    "select_candidate",
    "select_next_service",
    "MINUTES_PER_DAY",
    "SearchWindow",
    "adjust_for_day_rollover",
    "hhmm_to_minutes",
    "is_within_window",
]
