"""Shared pytest fixtures and configuration for the railstatus test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across the unit tests.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime

import pytest
from pydantic_settings import SettingsConfigDict

from railstatus.core import configure_logging
from railstatus.core.settings import Settings


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` applies the configuration even when pytest's own
    ``log_cli`` handler is already present.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove all railstatus env vars for the duration of a test.

    Also disables pydantic-settings ``.env`` file loading so that values in a
    local ``.env`` file do not leak into Settings isolation tests.
    """
    prefixes = (
        "RTT_",
        "ORIGIN_",
        "DEST_",
        "MIN_AFTER",
        "WINDOW_",
        "POLL_",
        "HTTP_",
        "RETRY_",
        "BREAKER_",
        "THRESHOLD_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    # pydantic-settings reads the .env file directly, not via os.environ.
    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` attributed to test code."""
    return logging.getLogger("tests")


@pytest.fixture()
def morning() -> datetime:
    """A fixed weekday morning used as "now" by selection tests."""
    return datetime(2024, 3, 12, 8, 0)
