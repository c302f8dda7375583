"""Status-change event fan-out and formatting."""

from railstatus.notifiers.dispatcher import (
    StatusEventDispatcher,
    log_subscriber,
    queue_subscriber,
)
from railstatus.notifiers.formatter import format_status_event

__all__ = [
    "StatusEventDispatcher",
    "format_status_event",
    "log_subscriber",
    "queue_subscriber",
]
