"""Structured log event name constants.

Key transitions emit a log record with an ``event`` field passed via
``extra={"event": events.X}``.  In ``LOG_FORMAT=json`` mode the value surfaces
as ``extra.event``; in text mode the message is self-describing.

Usage example::

    from railstatus.core import events

    logger.info("Poll started", extra={"event": events.POLL_START})
"""

from __future__ import annotations

__all__ = [
    # Poll lifecycle
    "POLL_START",
    "POLL_COMPLETE",
    "POLL_FAILED",
    "POLL_SKIPPED",
    "STATUS_CHANGED",
    # Dependency
    "REQUEST_RETRY",
    "REQUEST_FAILED",
    "CIRCUIT_TRANSITION",
    "CIRCUIT_REJECTED",
    # Selection
    "RECORD_MALFORMED",
    "SERVICE_EXCLUDED_TIMING",
    "SERVICE_EXCLUDED_NO_DESTINATION",
    "SERVICE_SELECTED",
    "NO_CANDIDATE",
    # Notification
    "SUBSCRIBER_ERROR",
]

# ---------------------------------------------------------------------------
# Poll lifecycle
# ---------------------------------------------------------------------------

POLL_START: str = "POLL_START"
POLL_COMPLETE: str = "POLL_COMPLETE"

#: The fetch raised; status degraded to UNKNOWN for this poll.
POLL_FAILED: str = "POLL_FAILED"

#: A poll was requested while another was still in flight.
POLL_SKIPPED: str = "POLL_SKIPPED"

#: A StatusChangeEvent was emitted to subscribers.
STATUS_CHANGED: str = "STATUS_CHANGED"

# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------

REQUEST_RETRY: str = "REQUEST_RETRY"

#: A logical request failed after retries (or fast-failed).
REQUEST_FAILED: str = "REQUEST_FAILED"

CIRCUIT_TRANSITION: str = "CIRCUIT_TRANSITION"

#: A call was refused without invoking the dependency.
CIRCUIT_REJECTED: str = "CIRCUIT_REJECTED"

# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

RECORD_MALFORMED: str = "RECORD_MALFORMED"
SERVICE_EXCLUDED_TIMING: str = "SERVICE_EXCLUDED_TIMING"

#: Service departs in the window but never calls at the destination.  Often a
#: sign of upstream data problems, hence a distinct event.
SERVICE_EXCLUDED_NO_DESTINATION: str = "SERVICE_EXCLUDED_NO_DESTINATION"

SERVICE_SELECTED: str = "SERVICE_SELECTED"
NO_CANDIDATE: str = "NO_CANDIDATE"

# ---------------------------------------------------------------------------
# Notification
# ---------------------------------------------------------------------------

SUBSCRIBER_ERROR: str = "SUBSCRIBER_ERROR"
