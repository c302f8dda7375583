"""Core domain models, settings, logging configuration, and shared utilities."""

from railstatus.core.exceptions import (
    CircuitOpenError,
    ConfigError,
    DependencyError,
    DependencyHTTPError,
    DependencyNetworkError,
    DependencyRateLimitError,
    DependencyResponseError,
    MalformedRecordError,
    OrchestratorError,
    RailStatusError,
)
from railstatus.core.logging_config import JsonFormatter, configure_logging
from railstatus.core.models import (
    CallPoint,
    LocationDetail,
    SearchResponse,
    ServiceRecord,
    StatusChangeEvent,
    TrainStatus,
)
from railstatus.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "TrainStatus",
    "CallPoint",
    "LocationDetail",
    "ServiceRecord",
    "SearchResponse",
    "StatusChangeEvent",
    # Settings
    "Settings",
    # Exceptions: base
    "RailStatusError",
    # Exceptions: config
    "ConfigError",
    # Exceptions: dependency
    "DependencyError",
    "DependencyHTTPError",
    "DependencyRateLimitError",
    "DependencyNetworkError",
    "DependencyResponseError",
    "CircuitOpenError",
    # Exceptions: data
    "MalformedRecordError",
    # Exceptions: orchestrator
    "OrchestratorError",
]
