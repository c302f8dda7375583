"""Lifetime polling statistics.

:class:`PollStats` accumulates counters across every poll the
:class:`~railstatus.orchestrator.poller.StatusPoller` runs and renders them
as a one-line log summary or a JSON-serialisable dict.

Typical usage::

    stats = PollStats()
    poller = StatusPoller(rtt, route, dispatcher=dispatcher, stats=stats)
    ...
    logger.info("%s", stats.format_summary())
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

__all__ = ["PollStats"]

logger = logging.getLogger(__name__)


@dataclass
class PollStats:
    """Cumulative counters for one poller.

    Attributes:
        polls_run: Polls that ran to completion (successful or failed).
        successful: Polls whose fetch succeeded.
        failed: Polls whose fetch raised.
        skipped: Polls skipped because another was still in flight.
        circuit_open: Failed polls refused by an open circuit breaker.
        events_emitted: Status-change events handed to the dispatcher.
        malformed_records: Timetable records dropped at parse time.
        last_success_at: Wall-clock time of the last successful poll.
        last_failure_at: Wall-clock time of the last failed poll.
        last_error: Message of the last failure.
    """

    polls_run: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    circuit_open: int = 0
    events_emitted: int = 0
    malformed_records: int = 0
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    last_error: str | None = None

    _start_monotonic: float = field(default_factory=time.monotonic, repr=False)
    _started_at: datetime = field(default_factory=lambda: datetime.now(UTC), repr=False)

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self._start_monotonic

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def record_success(self, malformed: int = 0) -> None:
        self.polls_run += 1
        self.successful += 1
        self.malformed_records += malformed
        self.last_success_at = datetime.now(UTC)

    def record_failure(self, error: BaseException, *, circuit_open: bool = False) -> None:
        self.polls_run += 1
        self.failed += 1
        if circuit_open:
            self.circuit_open += 1
        self.last_failure_at = datetime.now(UTC)
        self.last_error = str(error) or type(error).__name__

    def record_skipped(self) -> None:
        self.skipped += 1

    def record_emitted(self) -> None:
        self.events_emitted += 1

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def format_summary(self) -> str:
        """Return a one-line summary for logging.

        Example::

            poll stats | uptime: 1h02m10s | polls=62 ok=60 failed=2
            (circuit_open=1) skipped=0 events=4 malformed=0
        """
        hours, rem = divmod(int(self.uptime_s), 3600)
        minutes, seconds = divmod(rem, 60)
        return (
            f"poll stats | uptime: {hours}h{minutes:02d}m{seconds:02d}s | "
            f"polls={self.polls_run} ok={self.successful} failed={self.failed} "
            f"(circuit_open={self.circuit_open}) skipped={self.skipped} "
            f"events={self.events_emitted} malformed={self.malformed_records}"
        )

    def as_dict(self) -> dict[str, object]:
        """JSON-serialisable snapshot; timestamps are ISO-8601 UTC strings."""

        def _iso(value: datetime | None) -> str | None:
            return value.isoformat() if value is not None else None

        return {
            "started_at": self._started_at.isoformat(),
            "uptime_s": round(self.uptime_s, 1),
            "polls_run": self.polls_run,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "circuit_open": self.circuit_open,
            "events_emitted": self.events_emitted,
            "malformed_records": self.malformed_records,
            "last_success_at": _iso(self.last_success_at),
            "last_failure_at": _iso(self.last_failure_at),
            "last_error": self.last_error,
        }
