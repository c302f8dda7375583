"""railstatus logging configuration.

Call ``configure_logging()`` once at process startup (e.g. in ``__main__``).
Every other module defines its own logger at module scope:

    import logging
    logger = logging.getLogger(__name__)

Components that log also accept an optional ``logger`` argument so tests and
embedding applications can inject their own.

Poll context
~~~~~~~~~~~~
Components tag records through ``extra`` with a small, fixed vocabulary:

* ``event``: a constant from :mod:`railstatus.core.events`,
* ``dependency``: the guarded upstream (``"rtt"``),
* ``service_uid``: the timetable service a record is about,

and :class:`PollContextFilter` adds ``poll_id`` from :data:`POLL_ID_CTX`.  In
text mode these are appended as ``key=value`` pairs; in JSON mode they are
top-level keys, so a log pipeline can filter one poll or one dependency
without parsing messages.

Supported environment variables (read at call time):
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR   (default: INFO)
    LOG_FORMAT  text | json                      (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = [
    "CONTEXT_FIELDS",
    "POLL_ID_CTX",
    "JsonFormatter",
    "PollContextFilter",
    "configure_logging",
]

#: Poll identifier for the running task.  Set to a short hex string by
#: :meth:`~railstatus.orchestrator.poller.StatusPoller.poll_once`; ``"-"``
#: outside of any poll (startup, teardown, tests).
POLL_ID_CTX: ContextVar[str] = ContextVar("poll_id", default="-")

#: ``extra`` keys promoted out of the message, in output order.
CONTEXT_FIELDS: Final[tuple[str, ...]] = ("poll_id", "event", "dependency", "service_uid")

logger = logging.getLogger(__name__)

_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS: Final[tuple[str, ...]] = ("text", "json")

#: Third-party loggers that are only interesting while debugging.
_CHATTY_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(poll_id)s] %(name)s: %(message)s%(context)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

#: Attributes every LogRecord carries; anything else came in via ``extra``.
_STANDARD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "context", "taskName"}


class PollContextFilter(logging.Filter):
    """Stamp every record with ``poll_id`` and a text ``context`` suffix.

    Installed on the handler by :func:`configure_logging`, so it runs after
    propagation and sees records from every logger.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if not hasattr(record, "poll_id"):
            record.poll_id = POLL_ID_CTX.get()
        pairs = [
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS[1:]
            if getattr(record, name, None) is not None
        ]
        record.context = f" [{' '.join(pairs)}]" if pairs else ""
        return True


def _resolve(value: str | None, env_var: str, default: str, allowed: tuple[str, ...]) -> str:
    resolved = value or os.environ.get(env_var, default)
    resolved = resolved.lower() if env_var == "LOG_FORMAT" else resolved.upper()
    if resolved not in allowed:
        raise ValueError(f"Unknown {env_var} {resolved!r}. Must be one of: {', '.join(allowed)}")
    return resolved


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure the root logger for the entire process.

    Args:
        level: Logging level name.  Falls back to ``$LOG_LEVEL``, then INFO.
        fmt: ``"text"`` or ``"json"``.  Falls back to ``$LOG_FORMAT``, then
            text.
        force: Replace existing root handlers.  Without it, an already
            configured root logger only has its level adjusted.

    Raises:
        ValueError: If *level* or *fmt* is not recognised.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _LEVELS)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.addFilter(PollContextFilter())
    if resolved_fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)

    chatty_level = logging.NOTSET if resolved_level == "DEBUG" else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with the poll context as top-level keys.

    Output shape::

        {
            "ts": "2026-02-28T12:34:56.789+00:00",
            "level": "INFO",
            "logger": "railstatus.orchestrator.poller",
            "message": "Train status changed: on_time -> delayed ...",
            "poll_id": "a3f2b1c0",
            "event": "STATUS_CHANGED",
            "dependency": null,
            "service_uid": null
        }

    ``poll_id`` is ``null`` outside a poll.  Any other ``extra`` keys are
    grouped under ``"extra"``; ``exc_info`` is added when present.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        poll_id = getattr(record, "poll_id", POLL_ID_CTX.get())
        payload["poll_id"] = None if poll_id == "-" else poll_id
        for name in CONTEXT_FIELDS[1:]:
            payload[name] = getattr(record, name, None)

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and key not in CONTEXT_FIELDS
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)
