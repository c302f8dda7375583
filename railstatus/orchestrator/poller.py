"""Polling orchestrator: run the status pass on a fixed cadence.

Every tick the :class:`StatusPoller`:

1. fetches the timetable for its route (through the resilient RTT client),
2. selects the next service and classifies its punctuality,
3. compares the result with the last *emitted* status and delay,
4. emits a :class:`~railstatus.core.models.StatusChangeEvent` through the
   :class:`~railstatus.notifiers.dispatcher.StatusEventDispatcher` only when
   either changed, or on the very first poll.

A fetch failure of any kind (retries exhausted, circuit open, bad
configuration) never escapes a tick: the status degrades to UNKNOWN, which
is emitted only if it differs from what was last emitted.  The loop always
survives to the next tick.

Ticks are serialised.  A :meth:`StatusPoller.poll_once` call made while
another is in flight is skipped and logged rather than overlapped.

Shutdown
~~~~~~~~
:meth:`StatusPoller.stop` is synchronous: it prevents further ticks and
cancels the in-flight tick (including any retry back-off) without waiting
for it.  Await :meth:`StatusPoller.wait_stopped` to join the loop.

Typical usage::

    poller = StatusPoller(rtt, RouteConfig("CAMBDGE", "KNGX"), dispatcher=dispatcher)
    poller.start()
    ...
    poller.stop()
    await poller.wait_stopped()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Final

from railstatus.core import events
from railstatus.core.exceptions import CircuitOpenError, OrchestratorError
from railstatus.core.logging_config import POLL_ID_CTX
from railstatus.core.models import StatusChangeEvent, TrainStatus
from railstatus.notifiers.dispatcher import StatusEventDispatcher
from railstatus.orchestrator.metrics import PollStats
from railstatus.orchestrator.service import (
    TimetableFetcher,
    TrainStatusResult,
    get_train_status,
)
from railstatus.selection.selector import SelectionOptions
from railstatus.status.classifier import LatenessThresholds
from railstatus.status.mapping import status_to_mode

__all__ = ["DEFAULT_INTERVAL_S", "RouteConfig", "StatusPoller"]

logger = logging.getLogger(__name__)

#: Default seconds between the starts of consecutive ticks.
DEFAULT_INTERVAL_S: Final[float] = 60.0


@dataclass(frozen=True)
class RouteConfig:
    """Origin/destination pair to report on (TIPLOC codes)."""

    origin: str
    destination: str

    def __str__(self) -> str:
        return f"{self.origin} -> {self.destination}"


class StatusPoller:
    """Drives :func:`~railstatus.orchestrator.service.get_train_status` on a timer.

    Args:
        fetcher: Timetable source, usually an
            :class:`~railstatus.api.rtt.RttClient`.
        route: Origin/destination to report on.
        dispatcher: Receives every emitted event.  A private dispatcher with
            no subscribers is created when omitted.
        options: Selection window.
        thresholds: Lateness cutoffs.
        interval_s: Seconds between the starts of consecutive ticks.
        clock: Zero-argument callable returning the current local
            :class:`datetime`.  Override in tests.
        stats: Lifetime counters to update.  A fresh :class:`PollStats` is
            created when omitted.
        logger: Logger to use instead of the module logger.

    Raises:
        ValueError: If *interval_s* is not positive.
    """

    def __init__(
        self,
        fetcher: TimetableFetcher,
        route: RouteConfig,
        *,
        dispatcher: StatusEventDispatcher | None = None,
        options: SelectionOptions | None = None,
        thresholds: LatenessThresholds | None = None,
        interval_s: float = DEFAULT_INTERVAL_S,
        clock: Callable[[], datetime] | None = None,
        stats: PollStats | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {interval_s!r}.")

        self._fetcher = fetcher
        self._route = route
        self._log = logger or logging.getLogger(__name__)
        self._dispatcher = dispatcher or StatusEventDispatcher(logger=self._log)
        self._options = options or SelectionOptions()
        self._thresholds = thresholds or LatenessThresholds()
        self._interval_s = interval_s
        self._clock = clock or datetime.now
        self._stats = stats or PollStats()

        self._has_emitted = False
        self._last_status: TrainStatus | None = None
        self._last_delay: int | None = None

        self._in_flight = False
        self._stopping = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[StatusChangeEvent | None] | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def route(self) -> RouteConfig:
        return self._route

    @property
    def dispatcher(self) -> StatusEventDispatcher:
        return self._dispatcher

    @property
    def stats(self) -> PollStats:
        return self._stats

    @property
    def last_status(self) -> TrainStatus | None:
        """Last emitted status; ``None`` before the first emission."""
        return self._last_status

    @property
    def last_delay_minutes(self) -> int | None:
        return self._last_delay

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Single tick
    # ------------------------------------------------------------------

    async def poll_once(self) -> StatusChangeEvent | None:
        """Run one tick.

        Returns:
            The emitted event, or ``None`` if nothing changed or the tick
            was skipped.
        """
        if self._in_flight:
            self._stats.record_skipped()
            self._log.warning(
                "Previous poll for %s still in flight; skipping this tick.",
                self._route,
                extra={"event": events.POLL_SKIPPED},
            )
            return None

        self._in_flight = True
        token = POLL_ID_CTX.set(uuid.uuid4().hex[:8])
        try:
            return await self._poll()
        finally:
            POLL_ID_CTX.reset(token)
            self._in_flight = False

    async def _poll(self) -> StatusChangeEvent | None:
        now = self._clock()
        self._log.debug(
            "Polling %s.", self._route, extra={"event": events.POLL_START}
        )

        try:
            result = await get_train_status(
                self._fetcher,
                self._route.origin,
                self._route.destination,
                options=self._options,
                thresholds=self._thresholds,
                now=now,
                logger=self._log,
            )
        except Exception as exc:  # noqa: BLE001
            circuit_open = isinstance(exc, CircuitOpenError)
            self._stats.record_failure(exc, circuit_open=circuit_open)
            self._log.warning(
                "Poll for %s failed; status is UNKNOWN: %s",
                self._route,
                exc,
                exc_info=not circuit_open,
                extra={"event": events.POLL_FAILED},
            )
            return self._handle_failure(now, exc)

        malformed = result.response.malformed_count if result.response is not None else 0
        self._stats.record_success(malformed)
        self._log.debug(
            "Poll for %s complete: %s (delay=%s).",
            self._route,
            result.status,
            result.delay_minutes,
            extra={"event": events.POLL_COMPLETE},
        )
        return self._handle_result(now, result)

    def _handle_result(
        self, now: datetime, result: TrainStatusResult
    ) -> StatusChangeEvent | None:
        changed = (
            not self._has_emitted
            or result.status != self._last_status
            or result.delay_minutes != self._last_delay
        )
        if not changed:
            return None
        return self._emit(
            now,
            result.status,
            delay_minutes=result.delay_minutes,
            service_id=result.selected_service_id,
            error=None,
        )

    def _handle_failure(self, now: datetime, exc: Exception) -> StatusChangeEvent | None:
        if self._has_emitted and self._last_status == TrainStatus.UNKNOWN:
            return None
        return self._emit(
            now,
            TrainStatus.UNKNOWN,
            delay_minutes=None,
            service_id=None,
            error=f"{type(exc).__name__}: {exc}",
        )

    def _emit(
        self,
        now: datetime,
        status: TrainStatus,
        *,
        delay_minutes: int | None,
        service_id: str | None,
        error: str | None,
    ) -> StatusChangeEvent:
        event = StatusChangeEvent(
            timestamp=now,
            previous_status=self._last_status,
            current_status=status,
            mode=status_to_mode(status),
            delay_minutes=delay_minutes,
            selected_service_id=service_id,
            error=error,
        )
        self._has_emitted = True
        self._last_status = status
        self._last_delay = delay_minutes

        self._log.info(
            "Train status %s: %s -> %s (delay=%s, service=%s).",
            "changed" if event.status_changed else "updated",
            event.previous_status or "-",
            status,
            delay_minutes,
            service_id or "-",
            extra={"event": events.STATUS_CHANGED},
        )
        self._dispatcher.emit(event)
        self._stats.record_emitted()
        return event

    # ------------------------------------------------------------------
    # Loop lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Tick every ``interval_s`` until :meth:`stop` is called."""
        if self._stopping:
            return
        loop = asyncio.get_running_loop()
        self._log.info(
            "Polling %s every %.0f s (min_after=%d, window=%d).",
            self._route,
            self._interval_s,
            self._options.min_after_minutes,
            self._options.window_minutes,
        )

        while not self._stopping:
            started = loop.time()
            self._tick_task = asyncio.create_task(self.poll_once(), name="railstatus-tick")
            try:
                await self._tick_task
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if self._stopping and (current is None or not current.cancelling()):
                    self._log.debug("In-flight poll cancelled by stop().")
                    break
                raise
            except Exception:
                self._log.exception("Unhandled exception in poll tick; continuing.")
            finally:
                self._tick_task = None

            delay = max(self._interval_s - (loop.time() - started), 0.0)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)

        self._log.info("Polling stopped. %s", self._stats.format_summary())

    def start(self) -> asyncio.Task[None]:
        """Schedule :meth:`run` as a background task and return it.

        Raises:
            OrchestratorError: If the poller is already running or was
                stopped.
        """
        if self.is_running:
            raise OrchestratorError("StatusPoller is already running.")
        if self._stopping:
            raise OrchestratorError("StatusPoller was stopped; create a new one.")
        self._task = asyncio.create_task(self.run(), name="railstatus-poller")
        return self._task

    def stop(self) -> None:
        """Prevent further ticks and cancel the in-flight one.  Does not wait."""
        if self._stopping:
            return
        self._stopping = True
        self._stop_event.set()
        if self._tick_task is not None and not self._tick_task.done():
            self._tick_task.cancel()
        self._log.info("Stop requested for poller %s.", self._route)

    async def wait_stopped(self) -> None:
        """Wait for the background task started by :meth:`start` to finish."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            # Only a cancelled poller task is expected; our own cancellation propagates.
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
