"""Synchronous fan-out of :class:`~railstatus.core.models.StatusChangeEvent`.

:class:`StatusEventDispatcher` holds an explicit list of subscriber callbacks
and calls each one, in subscription order, for every emitted event.  A
subscriber that raises is logged and counted; the remaining subscribers
still receive the event and the poller never sees the exception.

Consumers that want to process events asynchronously subscribe through
:func:`queue_subscriber`, which forwards events into an
:class:`asyncio.Queue`.  A bounded queue gives back-pressure by dropping
(and logging) events while it is full.

Typical usage::

    dispatcher = StatusEventDispatcher()
    unsubscribe = dispatcher.subscribe(log_subscriber())

    queue: asyncio.Queue[StatusChangeEvent] = asyncio.Queue(maxsize=16)
    dispatcher.subscribe(queue_subscriber(queue))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from railstatus.core import events
from railstatus.core.models import StatusChangeEvent
from railstatus.notifiers.formatter import format_status_event

__all__ = [
    "Subscriber",
    "StatusEventDispatcher",
    "log_subscriber",
    "queue_subscriber",
]

logger = logging.getLogger(__name__)

Subscriber = Callable[[StatusChangeEvent], None]


class StatusEventDispatcher:
    """Explicit subscriber list for status-change events.

    Args:
        logger: Logger to use instead of the module logger.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._log = logger or logging.getLogger(__name__)
        self._subscribers: list[Subscriber] = []

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Add *subscriber*; returns a callable that removes it again."""
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def emit(self, event: StatusChangeEvent) -> tuple[int, int]:
        """Deliver *event* to every subscriber.

        Returns:
            A ``(delivered, failed)`` tuple.
        """
        delivered = 0
        failed = 0
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:  # noqa: BLE001
                failed += 1
                self._log.exception(
                    "Subscriber %r raised while handling %s; continuing.",
                    subscriber,
                    event.current_status,
                    extra={"event": events.SUBSCRIBER_ERROR},
                )
                continue
            delivered += 1

        if failed:
            self._log.warning(
                "Status event delivered to %d subscriber(s), %d failed.", delivered, failed
            )
        return delivered, failed


def queue_subscriber(queue: asyncio.Queue[StatusChangeEvent]) -> Subscriber:
    """Adapt *queue* into a subscriber; events are dropped while it is full."""

    def _put(event: StatusChangeEvent) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Event queue full (maxsize=%d); dropping %s event.",
                queue.maxsize,
                event.current_status,
                extra={"event": events.SUBSCRIBER_ERROR},
            )

    return _put


def log_subscriber(
    target: logging.Logger | None = None, level: int = logging.INFO
) -> Subscriber:
    """Subscriber that logs a one-line summary of every event."""
    log = target or logger

    def _log_event(event: StatusChangeEvent) -> None:
        log.log(level, "%s", format_status_event(event))

    return _log_event
