"""Tests for the status-event dispatcher, its adapters and the formatter."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from railstatus.core.models import StatusChangeEvent, TrainStatus
from railstatus.notifiers.dispatcher import (
    StatusEventDispatcher,
    log_subscriber,
    queue_subscriber,
)
from railstatus.notifiers.formatter import format_delay, format_status_event


def _event(
    previous: TrainStatus | None = TrainStatus.ON_TIME,
    current: TrainStatus = TrainStatus.DELAYED,
    *,
    delay: int | None = 7,
    service_id: str | None = "W12345",
    error: str | None = None,
) -> StatusChangeEvent:
    return StatusChangeEvent(
        timestamp=datetime(2026, 3, 1, 8, 5),
        previous_status=previous,
        current_status=current,
        mode=2,
        delay_minutes=delay,
        selected_service_id=service_id,
        error=error,
    )


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class TestDispatcher:
    def test_delivers_in_subscription_order(self) -> None:
        dispatcher = StatusEventDispatcher()
        seen: list[str] = []
        dispatcher.subscribe(lambda e: seen.append("first"))
        dispatcher.subscribe(lambda e: seen.append("second"))

        assert dispatcher.emit(_event()) == (2, 0)
        assert seen == ["first", "second"]

    def test_failing_subscriber_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        dispatcher = StatusEventDispatcher()
        good = MagicMock()
        dispatcher.subscribe(MagicMock(side_effect=RuntimeError("subscriber bug")))
        dispatcher.subscribe(good)

        event = _event()
        with caplog.at_level(logging.ERROR):
            assert dispatcher.emit(event) == (1, 1)

        good.assert_called_once_with(event)
        assert any(r.exc_info for r in caplog.records)

    def test_unsubscribe(self) -> None:
        dispatcher = StatusEventDispatcher()
        subscriber = MagicMock()
        unsubscribe = dispatcher.subscribe(subscriber)
        assert len(dispatcher) == 1

        unsubscribe()
        unsubscribe()

        assert len(dispatcher) == 0
        assert dispatcher.emit(_event()) == (0, 0)
        subscriber.assert_not_called()

    def test_no_subscribers_is_fine(self) -> None:
        assert StatusEventDispatcher().emit(_event()) == (0, 0)


class TestQueueSubscriber:
    async def test_events_forwarded_to_queue(self) -> None:
        queue: asyncio.Queue[StatusChangeEvent] = asyncio.Queue()
        dispatcher = StatusEventDispatcher()
        dispatcher.subscribe(queue_subscriber(queue))

        event = _event()
        dispatcher.emit(event)

        assert await asyncio.wait_for(queue.get(), timeout=1.0) is event

    async def test_full_queue_drops_without_raising(self) -> None:
        queue: asyncio.Queue[StatusChangeEvent] = asyncio.Queue(maxsize=1)
        dispatcher = StatusEventDispatcher()
        dispatcher.subscribe(queue_subscriber(queue))

        first, second = _event(), _event(current=TrainStatus.MAJOR_DELAY)
        assert dispatcher.emit(first) == (1, 0)
        assert dispatcher.emit(second) == (1, 0)

        assert queue.qsize() == 1
        assert queue.get_nowait() is first


def test_log_subscriber_writes_summary(caplog: pytest.LogCaptureFixture) -> None:
    target = logging.getLogger("tests.notifications")
    with caplog.at_level(logging.INFO, logger="tests.notifications"):
        log_subscriber(target)(_event())

    assert any("On Time -> Delayed" in r.getMessage() for r in caplog.records)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------


class TestFormatter:
    @pytest.mark.parametrize(
        ("delay", "expected"), [(7, "+7 min"), (-2, "-2 min"), (0, "0 min"), (None, "")]
    )
    def test_format_delay(self, delay: int | None, expected: str) -> None:
        assert format_delay(delay) == expected

    def test_change_line(self) -> None:
        assert format_status_event(_event()) == (
            "[2026-03-01 08:05] On Time -> Delayed (+7 min) service=W12345"
        )

    def test_first_emission_and_error(self) -> None:
        line = format_status_event(
            _event(
                previous=None,
                current=TrainStatus.UNKNOWN,
                delay=None,
                service_id=None,
                error="DependencyHTTPError: [rtt] HTTP 503",
            )
        )
        assert line == (
            "[2026-03-01 08:05] (start) -> Unknown service=- "
            "error: DependencyHTTPError: [rtt] HTTP 503"
        )
