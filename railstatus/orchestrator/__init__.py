"""Polling, status passes and lifetime statistics.

Public API
----------
* :class:`~railstatus.orchestrator.poller.StatusPoller`: fixed-cadence
  polling loop emitting status-change events.
* :func:`~railstatus.orchestrator.service.get_train_status`: single
  fetch → select → classify pass; used by the poller and ``--once``.
* :class:`~railstatus.orchestrator.metrics.PollStats`: lifetime counters.
"""

from railstatus.orchestrator.metrics import PollStats
from railstatus.orchestrator.poller import RouteConfig, StatusPoller
from railstatus.orchestrator.service import TrainStatusResult, get_train_status

__all__ = [
    "PollStats",
    "RouteConfig",
    "StatusPoller",
    "TrainStatusResult",
    "get_train_status",
]
