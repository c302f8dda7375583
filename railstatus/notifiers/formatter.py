"""Plain-text rendering of status-change events.

Produces a single line suited to logs and terminal output::

    [2026-03-01 08:05] On Time -> Delayed (+7 min) service=W12345
    [2026-03-01 08:06] Delayed -> Unknown service=- error: [rtt] HTTP 503
"""

from __future__ import annotations

from railstatus.core.models import StatusChangeEvent, TrainStatus
from railstatus.status.mapping import STATUS_LABELS

__all__ = ["format_delay", "format_status_event"]

_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"


def format_delay(delay_minutes: int | None) -> str:
    """``"+7 min"``, ``"-2 min"``, ``"0 min"``, or ``""`` when unknown."""
    if delay_minutes is None:
        return ""
    sign = "+" if delay_minutes > 0 else ""
    return f"{sign}{delay_minutes} min"


def _label(status: TrainStatus | None) -> str:
    if status is None:
        return "(start)"
    return STATUS_LABELS.get(status, str(status))


def format_status_event(event: StatusChangeEvent) -> str:
    """Render *event* as one human-readable line."""
    parts = [
        f"[{event.timestamp.strftime(_TIMESTAMP_FORMAT)}]",
        f"{_label(event.previous_status)} -> {_label(event.current_status)}",
    ]
    delay = format_delay(event.delay_minutes)
    if delay:
        parts.append(f"({delay})")
    parts.append(f"service={event.selected_service_id or '-'}")
    if event.error:
        parts.append(f"error: {event.error}")
    return " ".join(parts)
