"""One fetch → select → classify pass for a route.

:func:`get_train_status` is the unit of work the poller runs every tick.  It
holds no state, so it can also be called directly (e.g. ``--once``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol

from railstatus.core.models import SearchResponse, TrainStatus
from railstatus.selection.selector import Candidate, SelectionOptions, select_candidate
from railstatus.status.classifier import (
    LatenessThresholds,
    PunctualityAssessment,
    assess_punctuality,
)

__all__ = ["TimetableFetcher", "TrainStatusResult", "get_train_status"]

logger = logging.getLogger(__name__)


class TimetableFetcher(Protocol):
    """Anything that can search a timetable, e.g. :class:`~railstatus.api.rtt.RttClient`."""

    async def search(
        self, origin: str, destination: str, run_date: date | None = None
    ) -> SearchResponse: ...


@dataclass(frozen=True)
class TrainStatusResult:
    """Outcome of one status pass.

    Attributes:
        status: Classified status (UNKNOWN when nothing was selected).
        selected: Winning candidate, if any.
        assessment: Classifier detail for the selected record.
        response: The parsed search response, or ``None`` when no search was
            made.
    """

    status: TrainStatus
    selected: Candidate | None
    assessment: PunctualityAssessment
    response: SearchResponse | None

    @property
    def delay_minutes(self) -> int | None:
        """Measured lateness; ``None`` when unmeasured or nothing selected."""
        return self.assessment.lateness_minutes

    @property
    def selected_service_id(self) -> str | None:
        return self.selected.service_uid if self.selected is not None else None


async def get_train_status(
    fetcher: TimetableFetcher,
    origin: str,
    destination: str,
    *,
    options: SelectionOptions | None = None,
    thresholds: LatenessThresholds | None = None,
    now: datetime | None = None,
    logger: logging.Logger | None = None,
) -> TrainStatusResult:
    """Fetch the timetable, select the next service and classify it.

    A blank origin or destination yields UNKNOWN without any I/O.

    Raises:
        Exception: Anything the fetcher raises (dependency errors, an open
            circuit, configuration errors) propagates unchanged.
    """
    log = logger or logging.getLogger(__name__)
    now = now or datetime.now()

    if not (origin or "").strip() or not (destination or "").strip():
        log.warning("Origin or destination TIPLOC not configured; status is UNKNOWN.")
        return TrainStatusResult(
            status=TrainStatus.UNKNOWN,
            selected=None,
            assessment=assess_punctuality(None),
            response=None,
        )

    response = await fetcher.search(origin, destination, now.date())
    selected = select_candidate(
        response.services, destination, options, now=now, logger=log
    )
    assessment = assess_punctuality(
        selected.record if selected is not None else None, thresholds
    )

    if selected is not None and not assessment.data_sufficient:
        log.info(
            "No lateness data for %s; reporting %s without a delay value.",
            selected.record.label,
            assessment.status,
        )

    return TrainStatusResult(
        status=assessment.status,
        selected=selected,
        assessment=assessment,
        response=response,
    )
