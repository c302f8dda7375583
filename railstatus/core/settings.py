"""railstatus application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``ORIGIN_TIPLOC`` →
``origin_tiploc``).

Typical usage::

    from railstatus.core.settings import Settings

    settings = Settings()                      # loads from env + .env
    options = settings.to_selection_options()  # build SelectionOptions
    print(settings.rtt_configured)             # True / False
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from railstatus.resilience.backoff import BackoffPolicy
    from railstatus.selection.selector import SelectionOptions
    from railstatus.status.classifier import LatenessThresholds

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).

    The RTT credentials may be left empty during development;
    :attr:`rtt_configured` is then ``False`` and every poll reports UNKNOWN.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # RTT API
    # ------------------------------------------------------------------
    rtt_user: str = Field(default="", description="Realtime Trains API username.")
    rtt_pass: str = Field(default="", description="Realtime Trains API password.")
    rtt_base_url: str = Field(
        default="https://api.rtt.io/api/v1/json",
        description="RTT API root, without trailing slash.",
    )

    # ------------------------------------------------------------------
    # Route and selection window
    # ------------------------------------------------------------------
    origin_tiploc: str = Field(default="CAMBDGE", description="Origin station TIPLOC.")
    dest_tiploc: str = Field(default="KNGX", description="Destination station TIPLOC.")
    min_after_minutes: int = Field(
        default=20,
        ge=0,
        le=1440,
        description="Ignore departures sooner than this many minutes from now.",
    )
    window_minutes: int = Field(
        default=60,
        ge=1,
        le=1440,
        description="Width of the departure window, in minutes.",
    )

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    poll_interval_s: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds between the starts of consecutive polls.",
    )
    http_timeout_s: float = Field(
        default=10.0,
        gt=0.0,
        description="Whole-request HTTP timeout in seconds.",
    )

    # ------------------------------------------------------------------
    # Retry / backoff
    # ------------------------------------------------------------------
    retry_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first attempt for a retryable failure.",
    )
    retry_base_delay_s: float = Field(
        default=1.0,
        ge=0.0,
        description="Delay before the first retry, pre-jitter.",
    )
    retry_max_delay_s: float = Field(
        default=10.0,
        ge=0.0,
        description="Cap on any single retry delay.",
    )

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------
    breaker_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failed requests that open the circuit.",
    )
    breaker_success_threshold: int = Field(
        default=2,
        ge=1,
        description="Consecutive half-open successes that close the circuit.",
    )
    breaker_open_timeout_s: float = Field(
        default=60.0,
        ge=0.0,
        description="Seconds the circuit stays open before a probe is allowed.",
    )

    # ------------------------------------------------------------------
    # Punctuality thresholds (minutes, inclusive)
    # ------------------------------------------------------------------
    threshold_on_time: int = Field(default=2, ge=0, description="Max lateness for ON_TIME.")
    threshold_minor: int = Field(default=5, ge=0, description="Max lateness for MINOR_DELAY.")
    threshold_delayed: int = Field(default=10, ge=0, description="Max lateness for DELAYED.")

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("origin_tiploc", "dest_tiploc")
    @classmethod
    def _normalise_tiploc(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("rtt_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Model validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _validate_thresholds(self) -> Settings:
        """Ensure the lateness cutoffs are strictly ascending."""
        if not self.threshold_on_time < self.threshold_minor < self.threshold_delayed:
            raise ValueError(
                "Lateness thresholds must be strictly ascending: "
                f"threshold_on_time ({self.threshold_on_time}) < "
                f"threshold_minor ({self.threshold_minor}) < "
                f"threshold_delayed ({self.threshold_delayed})"
            )
        return self

    @model_validator(mode="after")
    def _validate_retry_delays(self) -> Settings:
        """Ensure base ≤ max for retry delays."""
        if self.retry_base_delay_s > self.retry_max_delay_s:
            raise ValueError(
                f"retry_base_delay_s ({self.retry_base_delay_s}) "
                f"> retry_max_delay_s ({self.retry_max_delay_s})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def rtt_configured(self) -> bool:
        """``True`` if both RTT credentials are set."""
        return bool(self.rtt_user and self.rtt_pass)

    def to_selection_options(self) -> SelectionOptions:
        from railstatus.selection.selector import SelectionOptions  # noqa: PLC0415

        return SelectionOptions(
            min_after_minutes=self.min_after_minutes,
            window_minutes=self.window_minutes,
        )

    def to_thresholds(self) -> LatenessThresholds:
        from railstatus.status.classifier import LatenessThresholds  # noqa: PLC0415

        return LatenessThresholds(
            on_time=self.threshold_on_time,
            minor=self.threshold_minor,
            delayed=self.threshold_delayed,
        )

    def to_backoff_policy(self) -> BackoffPolicy:
        from railstatus.resilience.backoff import BackoffPolicy  # noqa: PLC0415

        return BackoffPolicy(
            max_retries=self.retry_max_retries,
            base_delay=self.retry_base_delay_s,
            max_delay=self.retry_max_delay_s,
        )

    def breaker_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for a circuit breaker or client registry."""
        return {
            "failure_threshold": self.breaker_failure_threshold,
            "success_threshold": self.breaker_success_threshold,
            "open_timeout": self.breaker_open_timeout_s,
        }
