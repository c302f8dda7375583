"""Smoke tests: verify the test harness itself is wired up correctly.

These tests assert nothing about business logic.  They confirm:

1. pytest discovers and runs tests in this suite.
2. pytest-asyncio's ``asyncio_mode = "auto"`` setting works (async tests
   run without any decorator).
3. Core railstatus modules import without errors.
4. ``configure_logging()`` executes without raising.
5. The exception taxonomy is importable and the hierarchy is intact.
"""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from railstatus.core import (
    CircuitOpenError,
    ConfigError,
    DependencyError,
    DependencyHTTPError,
    DependencyNetworkError,
    DependencyRateLimitError,
    DependencyResponseError,
    JsonFormatter,
    MalformedRecordError,
    OrchestratorError,
    RailStatusError,
    configure_logging,
)
from railstatus.core.logging_config import POLL_ID_CTX, PollContextFilter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Import & startup smoke
# ---------------------------------------------------------------------------


def test_core_imports_succeed() -> None:
    assert configure_logging is not None
    assert JsonFormatter is not None
    assert RailStatusError is not None


def test_subpackages_import() -> None:
    """Every subpackage imports cleanly on its own."""
    import railstatus.api  # noqa: F401, PLC0415
    import railstatus.notifiers  # noqa: F401, PLC0415
    import railstatus.orchestrator  # noqa: F401, PLC0415
    import railstatus.resilience  # noqa: F401, PLC0415
    import railstatus.selection  # noqa: F401, PLC0415
    import railstatus.status  # noqa: F401, PLC0415


def test_configure_logging_text() -> None:
    configure_logging(level="INFO", fmt="text", force=True)


def test_configure_logging_json() -> None:
    configure_logging(level="DEBUG", fmt="json", force=True)
    # Restore text mode so subsequent test output remains readable.
    configure_logging(level="DEBUG", fmt="text", force=True)


def test_configure_logging_invalid_level() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_LEVEL"):
        configure_logging(level="VERBOSE", force=True)


def test_configure_logging_invalid_format() -> None:
    with pytest.raises(ValueError, match="Unknown LOG_FORMAT"):
        configure_logging(fmt="xml", force=True)


def _record(msg: str = "hello %s", *args: object, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="railstatus.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args or ("world",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_poll_context_promoted_to_top_level(self) -> None:
        record = _record(
            event="STATUS_CHANGED", poll_id="abc123", dependency="rtt", service_uid="W12345"
        )

        payload = json.loads(JsonFormatter().format(record))

        assert payload["message"] == "hello world"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "railstatus.test"
        assert payload["poll_id"] == "abc123"
        assert payload["event"] == "STATUS_CHANGED"
        assert payload["dependency"] == "rtt"
        assert payload["service_uid"] == "W12345"
        assert "extra" not in payload

    def test_missing_context_is_null(self) -> None:
        payload = json.loads(JsonFormatter().format(_record()))

        assert payload["poll_id"] is None
        assert payload["event"] is None
        assert payload["dependency"] is None

    def test_poll_id_read_from_context_var(self) -> None:
        token = POLL_ID_CTX.set("feed0001")
        try:
            payload = json.loads(JsonFormatter().format(_record()))
        finally:
            POLL_ID_CTX.reset(token)
        assert payload["poll_id"] == "feed0001"

    def test_other_extras_grouped(self) -> None:
        payload = json.loads(JsonFormatter().format(_record(attempt=2, event="REQUEST_RETRY")))

        assert payload["event"] == "REQUEST_RETRY"
        assert payload["extra"] == {"attempt": 2}


def test_text_context_suffix() -> None:
    record = _record(event="CIRCUIT_TRANSITION", dependency="rtt")
    PollContextFilter().filter(record)

    assert record.poll_id == "-"
    assert record.context == " [event=CIRCUIT_TRANSITION dependency=rtt]"

    plain = _record()
    PollContextFilter().filter(plain)
    assert plain.context == ""


def test_poll_id_context_defaults_to_dash() -> None:
    assert POLL_ID_CTX.get() == "-"


# ---------------------------------------------------------------------------
# Exception taxonomy
# ---------------------------------------------------------------------------


def test_exception_hierarchy_base() -> None:
    for exc_class in (
        ConfigError,
        DependencyError,
        DependencyHTTPError,
        DependencyRateLimitError,
        DependencyNetworkError,
        DependencyResponseError,
        CircuitOpenError,
        MalformedRecordError,
        OrchestratorError,
    ):
        assert issubclass(exc_class, RailStatusError), (
            f"{exc_class.__name__} is not a subclass of RailStatusError"
        )


def test_exception_hierarchy_layers() -> None:
    assert issubclass(DependencyHTTPError, DependencyError)
    assert issubclass(DependencyRateLimitError, DependencyHTTPError)
    assert issubclass(DependencyNetworkError, DependencyError)
    assert issubclass(DependencyResponseError, DependencyError)
    assert not issubclass(CircuitOpenError, DependencyError)


@pytest.mark.parametrize(
    ("status", "retryable"),
    [(400, False), (401, False), (403, False), (404, False), (429, True), (500, True),
     (502, True), (503, True), (504, True), (507, True), (418, False)],
)
def test_http_error_retryability(status: int, retryable: bool) -> None:
    assert DependencyHTTPError("rtt", status).retryable is retryable


def test_http_error_formats_message() -> None:
    exc = DependencyHTTPError("rtt", 503, "Service Unavailable")
    assert exc.status_code == 503
    assert "[rtt]" in str(exc)
    assert "HTTP 503" in str(exc)
    assert "Service Unavailable" in str(exc)


def test_auth_errors_flagged() -> None:
    assert DependencyHTTPError("rtt", 401).is_auth_error
    assert DependencyHTTPError("rtt", 403).is_auth_error
    assert not DependencyHTTPError("rtt", 404).is_auth_error


def test_rate_limit_carries_retry_after() -> None:
    exc = DependencyRateLimitError("rtt", retry_after=45.0)
    assert exc.retry_after == 45.0
    assert exc.status_code == 429
    assert exc.retryable

    assert DependencyRateLimitError("rtt").retry_after is None


def test_network_error_always_retryable() -> None:
    assert DependencyNetworkError("rtt", "connection refused").retryable


def test_response_error_not_retryable() -> None:
    assert not DependencyResponseError("rtt", "bad json").retryable


def test_circuit_open_error_message() -> None:
    exc = CircuitOpenError("rtt", retry_in=12.34)
    assert exc.dependency == "rtt"
    assert exc.retry_in == 12.34
    assert "next attempt in 12.3s" in str(exc)
    assert "probe in flight" in str(CircuitOpenError("rtt"))


# ---------------------------------------------------------------------------
# Async harness
# ---------------------------------------------------------------------------


async def test_async_test_runs() -> None:
    await asyncio.sleep(0)


async def test_async_exception_is_catchable() -> None:
    async def _failing_coro() -> None:
        raise DependencyNetworkError("rtt", "simulated failure")

    with pytest.raises(DependencyNetworkError, match="simulated failure"):
        await _failing_coro()
