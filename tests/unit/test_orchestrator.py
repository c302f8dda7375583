"""Tests for the status pass, the polling orchestrator and its counters.

The timetable fetcher is a ``MagicMock`` whose ``search`` is an
``AsyncMock``; the clock is pinned to a weekday morning.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from railstatus.core.exceptions import (
    CircuitOpenError,
    DependencyHTTPError,
    OrchestratorError,
)
from railstatus.core.models import SearchResponse, ServiceRecord, StatusChangeEvent, TrainStatus
from railstatus.notifiers.dispatcher import StatusEventDispatcher
from railstatus.orchestrator.metrics import PollStats
from railstatus.orchestrator.poller import RouteConfig, StatusPoller
from railstatus.orchestrator.service import get_train_status

_NOW = datetime(2024, 3, 12, 8, 0)
_ROUTE = RouteConfig("CAMBDGE", "KNGX")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record(
    uid: str = "W1", *, lateness: int | None = 0, dep: str = "0830", **extra: Any
) -> ServiceRecord:
    detail: dict[str, Any] = {
        "gbttBookedDeparture": dep,
        "origin": [{"tiploc": "CAMBDGE", "publicTime": dep}],
        "destination": [{"tiploc": "KNGX", "publicTime": "0920"}],
        **extra,
    }
    if lateness is not None:
        detail["realtimeGbttDepartureLateness"] = lateness
    return ServiceRecord.model_validate({"serviceUid": uid, "locationDetail": detail})


def _response(*records: ServiceRecord, malformed: int = 0) -> SearchResponse:
    return SearchResponse(services=list(records), malformed_count=malformed)


def _fetcher(*outcomes: SearchResponse | Exception) -> MagicMock:
    fetcher = MagicMock()
    fetcher.search = AsyncMock(side_effect=list(outcomes))
    return fetcher


def _poller(fetcher: MagicMock, **kwargs: Any) -> tuple[StatusPoller, list[StatusChangeEvent]]:
    dispatcher = StatusEventDispatcher()
    received: list[StatusChangeEvent] = []
    dispatcher.subscribe(received.append)
    poller = StatusPoller(fetcher, _ROUTE, dispatcher=dispatcher, clock=lambda: _NOW, **kwargs)
    return poller, received


# ---------------------------------------------------------------------------
# Single status pass
# ---------------------------------------------------------------------------


class TestGetTrainStatus:
    async def test_selects_and_classifies(self) -> None:
        fetcher = _fetcher(_response(_record("LATE", lateness=7)))

        result = await get_train_status(fetcher, "CAMBDGE", "KNGX", now=_NOW)

        assert result.status == TrainStatus.DELAYED
        assert result.delay_minutes == 7
        assert result.selected_service_id == "LATE"
        fetcher.search.assert_awaited_once_with("CAMBDGE", "KNGX", date(2024, 3, 12))

    async def test_no_candidate_is_unknown(self) -> None:
        fetcher = _fetcher(_response(_record(dep="1400")))

        result = await get_train_status(fetcher, "CAMBDGE", "KNGX", now=_NOW)

        assert result.status == TrainStatus.UNKNOWN
        assert result.delay_minutes is None
        assert result.selected is None

    @pytest.mark.parametrize(("origin", "dest"), [("", "KNGX"), ("CAMBDGE", "  ")])
    async def test_blank_route_skips_io(self, origin: str, dest: str) -> None:
        fetcher = _fetcher()

        result = await get_train_status(fetcher, origin, dest, now=_NOW)

        assert result.status == TrainStatus.UNKNOWN
        assert result.response is None
        fetcher.search.assert_not_awaited()

    async def test_missing_timing_reports_no_delay(self) -> None:
        fetcher = _fetcher(_response(_record(lateness=None)))

        result = await get_train_status(fetcher, "CAMBDGE", "KNGX", now=_NOW)

        assert result.status == TrainStatus.ON_TIME
        assert result.delay_minutes is None
        assert not result.assessment.data_sufficient

    async def test_fetch_errors_propagate(self) -> None:
        fetcher = _fetcher(DependencyHTTPError("rtt", 503))
        with pytest.raises(DependencyHTTPError):
            await get_train_status(fetcher, "CAMBDGE", "KNGX", now=_NOW)


# ---------------------------------------------------------------------------
# Change detection
# ---------------------------------------------------------------------------


class TestPollOnce:
    async def test_first_poll_always_emits(self) -> None:
        poller, received = _poller(_fetcher(_response(_record(lateness=0))))

        event = await poller.poll_once()

        assert event is not None
        assert received == [event]
        assert event.previous_status is None
        assert event.current_status == TrainStatus.ON_TIME
        assert event.mode == 0
        assert event.delay_minutes == 0
        assert event.selected_service_id == "W1"
        assert event.timestamp == _NOW
        assert poller.last_status == TrainStatus.ON_TIME

    async def test_unchanged_status_not_re_emitted(self) -> None:
        poller, received = _poller(
            _fetcher(_response(_record(lateness=1)), _response(_record(lateness=1)))
        )

        await poller.poll_once()
        assert await poller.poll_once() is None

        assert len(received) == 1
        assert poller.stats.events_emitted == 1
        assert poller.stats.successful == 2

    async def test_delay_change_emits_without_status_change(self) -> None:
        poller, received = _poller(
            _fetcher(_response(_record(lateness=0)), _response(_record(lateness=1)))
        )

        await poller.poll_once()
        event = await poller.poll_once()

        assert event is not None
        assert event.current_status == TrainStatus.ON_TIME
        assert event.delay_minutes == 1
        assert not event.status_changed
        assert len(received) == 2

    async def test_status_change_carries_previous(self) -> None:
        poller, _ = _poller(
            _fetcher(_response(_record(lateness=0)), _response(_record(lateness=12)))
        )

        await poller.poll_once()
        event = await poller.poll_once()

        assert event is not None
        assert event.previous_status == TrainStatus.ON_TIME
        assert event.current_status == TrainStatus.MAJOR_DELAY
        assert event.mode == 3

    async def test_cancelled_service_is_major_delay(self) -> None:
        poller, _ = _poller(_fetcher(_response(_record(lateness=0, cancelReasonCode="M8"))))
        event = await poller.poll_once()
        assert event is not None
        assert event.current_status == TrainStatus.MAJOR_DELAY

    async def test_malformed_count_recorded(self) -> None:
        poller, _ = _poller(_fetcher(_response(_record(), malformed=2)))
        await poller.poll_once()
        assert poller.stats.malformed_records == 2


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestPollFailures:
    async def test_failure_degrades_to_unknown_once(self) -> None:
        poller, received = _poller(
            _fetcher(
                _response(_record(lateness=0)),
                DependencyHTTPError("rtt", 503, "down"),
                DependencyHTTPError("rtt", 503, "down"),
            )
        )

        await poller.poll_once()
        event = await poller.poll_once()
        assert await poller.poll_once() is None

        assert event is not None
        assert event.current_status == TrainStatus.UNKNOWN
        assert event.previous_status == TrainStatus.ON_TIME
        assert event.mode == 4
        assert event.delay_minutes is None
        assert event.error is not None
        assert event.error.startswith("DependencyHTTPError: [rtt] HTTP 503")
        assert len(received) == 2
        assert poller.stats.failed == 2
        assert poller.stats.last_error is not None

    async def test_first_poll_failure_emits_unknown(self) -> None:
        poller, received = _poller(_fetcher(DependencyHTTPError("rtt", 500)))

        event = await poller.poll_once()

        assert event is not None
        assert event.previous_status is None
        assert event.current_status == TrainStatus.UNKNOWN
        assert len(received) == 1

    async def test_circuit_open_counted(self) -> None:
        poller, _ = _poller(_fetcher(CircuitOpenError("rtt", 42.0)))

        event = await poller.poll_once()

        assert event is not None
        assert event.error is not None
        assert event.error.startswith("CircuitOpenError")
        assert poller.stats.circuit_open == 1

    async def test_recovers_after_failure(self) -> None:
        poller, received = _poller(
            _fetcher(DependencyHTTPError("rtt", 503), _response(_record(lateness=4)))
        )

        await poller.poll_once()
        event = await poller.poll_once()

        assert event is not None
        assert event.previous_status == TrainStatus.UNKNOWN
        assert event.current_status == TrainStatus.MINOR_DELAY
        assert event.error is None
        assert len(received) == 2

    async def test_no_candidate_then_failure_not_duplicated(self) -> None:
        poller, received = _poller(
            _fetcher(_response(), DependencyHTTPError("rtt", 503))
        )

        first = await poller.poll_once()
        second = await poller.poll_once()

        assert first is not None
        assert first.current_status == TrainStatus.UNKNOWN
        assert first.error is None
        assert second is None
        assert len(received) == 1

    async def test_unexpected_exception_contained(self) -> None:
        poller, _ = _poller(_fetcher(KeyError("locationDetail")))

        event = await poller.poll_once()

        assert event is not None
        assert event.current_status == TrainStatus.UNKNOWN
        assert event.error is not None
        assert event.error.startswith("KeyError")

    async def test_subscriber_failure_does_not_break_poll(self) -> None:
        dispatcher = StatusEventDispatcher()
        dispatcher.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        poller = StatusPoller(
            _fetcher(_response(_record())), _ROUTE, dispatcher=dispatcher, clock=lambda: _NOW
        )

        event = await poller.poll_once()

        assert event is not None
        assert poller.last_status == TrainStatus.ON_TIME


# ---------------------------------------------------------------------------
# Concurrency and lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_overlapping_poll_skipped(self) -> None:
        release = asyncio.Event()

        async def _slow_search(*_: Any) -> SearchResponse:
            await release.wait()
            return _response(_record())

        fetcher = MagicMock()
        fetcher.search = AsyncMock(side_effect=_slow_search)
        poller, received = _poller(fetcher)

        first = asyncio.create_task(poller.poll_once())
        await asyncio.sleep(0)

        assert await poller.poll_once() is None
        assert poller.stats.skipped == 1

        release.set()
        assert await first is not None
        assert fetcher.search.await_count == 1
        assert len(received) == 1

    async def test_start_polls_until_stopped(self) -> None:
        fetcher = MagicMock()
        fetcher.search = AsyncMock(return_value=_response(_record()))
        poller, received = _poller(fetcher, interval_s=0.01)

        poller.start()
        assert poller.is_running
        await asyncio.sleep(0.05)
        poller.stop()
        await asyncio.wait_for(poller.wait_stopped(), timeout=1.0)

        assert not poller.is_running
        assert fetcher.search.await_count >= 2
        assert len(received) == 1

    async def test_stop_cancels_in_flight_poll(self) -> None:
        async def _hang(*_: Any) -> SearchResponse:
            await asyncio.sleep(3600)
            raise AssertionError("unreachable")

        fetcher = MagicMock()
        fetcher.search = AsyncMock(side_effect=_hang)
        poller, received = _poller(fetcher, interval_s=60.0)

        poller.start()
        for _ in range(5):
            await asyncio.sleep(0)
        poller.stop()
        await asyncio.wait_for(poller.wait_stopped(), timeout=1.0)

        assert not poller.is_running
        assert received == []

    async def test_cannot_start_twice_or_after_stop(self) -> None:
        fetcher = MagicMock()
        fetcher.search = AsyncMock(return_value=_response())
        poller, _ = _poller(fetcher, interval_s=60.0)

        poller.start()
        with pytest.raises(OrchestratorError):
            poller.start()
        poller.stop()
        await poller.wait_stopped()

        with pytest.raises(OrchestratorError):
            poller.start()

    async def test_wait_stopped_returns_after_task_cancelled(self) -> None:
        fetcher = MagicMock()
        fetcher.search = AsyncMock(return_value=_response())
        poller, _ = _poller(fetcher, interval_s=60.0)

        task = poller.start()
        await asyncio.sleep(0)
        task.cancel()
        await asyncio.wait_for(poller.wait_stopped(), timeout=1.0)

        assert task.cancelled()

    async def test_cancelled_waiter_propagates_cancellation(self) -> None:
        async def _hang(*_: Any) -> SearchResponse:
            await asyncio.sleep(3600)
            raise AssertionError("unreachable")

        fetcher = MagicMock()
        fetcher.search = AsyncMock(side_effect=_hang)
        poller, _ = _poller(fetcher, interval_s=60.0)

        poller.start()
        waiter = asyncio.create_task(poller.wait_stopped())
        for _ in range(5):
            await asyncio.sleep(0)
        waiter.cancel()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert waiter.cancelled()

        poller.stop()
        await asyncio.wait_for(poller.wait_stopped(), timeout=1.0)

    def test_invalid_interval_rejected(self) -> None:
        with pytest.raises(ValueError):
            StatusPoller(_fetcher(), _ROUTE, interval_s=0)

    def test_route_str(self) -> None:
        assert str(_ROUTE) == "CAMBDGE -> KNGX"


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------


class TestPollStats:
    def test_counters_and_summary(self) -> None:
        stats = PollStats()
        stats.record_success(malformed=1)
        stats.record_failure(CircuitOpenError("rtt", 5.0), circuit_open=True)
        stats.record_skipped()
        stats.record_emitted()

        assert (stats.polls_run, stats.successful, stats.failed) == (2, 1, 1)
        assert stats.circuit_open == 1
        summary = stats.format_summary()
        assert "polls=2" in summary
        assert "circuit_open=1" in summary
        assert "malformed=1" in summary

    def test_as_dict_is_serialisable(self) -> None:
        import json  # noqa: PLC0415

        stats = PollStats()
        stats.record_failure(ValueError(""))
        data = stats.as_dict()

        assert data["last_error"] == "ValueError"
        assert data["last_success_at"] is None
        json.dumps(data)
