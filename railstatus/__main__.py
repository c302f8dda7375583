"""railstatus process entry-point.

Usage:
    python -m railstatus [--once] [--log-level LEVEL] [--log-format FORMAT]

This module is intentionally thin: it calls ``configure_logging()`` first,
loads :class:`~railstatus.core.settings.Settings`, wires the components
together and hands off to the
:class:`~railstatus.orchestrator.poller.StatusPoller`.

Default behaviour (no ``--once``) is continuous: the poller ticks every
``POLL_INTERVAL_S`` seconds until ``SIGTERM`` or Ctrl+C.  Pass ``--once`` to
run a single poll, log the resulting status and exit.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from pydantic import ValidationError

from railstatus.core import configure_logging
from railstatus.core.exceptions import ConfigError
from railstatus.core.settings import Settings


async def _run(settings: Settings, *, once: bool) -> None:
    # Imported lazily so configure_logging() runs before any component logs.
    from railstatus.api.rtt import RTT_DEPENDENCY, RttClient  # noqa: PLC0415
    from railstatus.notifiers.dispatcher import (  # noqa: PLC0415
        StatusEventDispatcher,
        log_subscriber,
    )
    from railstatus.orchestrator.poller import RouteConfig, StatusPoller  # noqa: PLC0415
    from railstatus.resilience.client import ResilientClientRegistry  # noqa: PLC0415

    logger = logging.getLogger("railstatus")

    if not settings.rtt_configured:
        logger.warning("RTT_USER / RTT_PASS not set; every poll will report UNKNOWN.")

    registry = ResilientClientRegistry(
        policy=settings.to_backoff_policy(),
        timeout=settings.http_timeout_s,
        **settings.breaker_kwargs(),
    )
    rtt = RttClient(
        settings.rtt_user,
        settings.rtt_pass,
        resilient=registry.get_or_create(RTT_DEPENDENCY),
        base_url=settings.rtt_base_url,
    )
    dispatcher = StatusEventDispatcher()
    dispatcher.subscribe(log_subscriber())

    poller = StatusPoller(
        rtt,
        RouteConfig(settings.origin_tiploc, settings.dest_tiploc),
        dispatcher=dispatcher,
        options=settings.to_selection_options(),
        thresholds=settings.to_thresholds(),
        interval_s=settings.poll_interval_s,
    )

    try:
        if once:
            await poller.poll_once()
            logger.info("Final status: %s", poller.last_status)
            return

        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGTERM, poller.stop)
        try:
            poller.start()
            await poller.wait_stopped()
        finally:
            with contextlib.suppress(Exception):
                loop.remove_signal_handler(signal.SIGTERM)
            poller.stop()
    finally:
        for name, snapshot in registry.health().items():
            logger.debug("Circuit %s: %s", name, snapshot.state)
        await registry.aclose()


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    parser = argparse.ArgumentParser(
        prog="railstatus",
        description="Monitor the punctuality of the next train on a route.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll and exit instead of polling continuously.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )

    args = parser.parse_args()

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"railstatus: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)
    logger.info("railstatus starting up")

    try:
        settings = Settings()
        logger.info(
            "Route %s -> %s (min_after=%d, window=%d, interval=%.0f s).",
            settings.origin_tiploc,
            settings.dest_tiploc,
            settings.min_after_minutes,
            settings.window_minutes,
            settings.poll_interval_s,
        )
        asyncio.run(_run(settings, once=args.once))
    except (ConfigError, ValidationError) as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
