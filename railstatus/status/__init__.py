"""Punctuality classification and status/mode mapping."""

from railstatus.status.classifier import (
    LatenessThresholds,
    PunctualityAssessment,
    assess_punctuality,
    classify_punctuality,
    compute_lateness,
)
from railstatus.status.mapping import (
    MODE_TO_STATUS,
    STATUS_TO_MODE,
    derive_mode_from_delay,
    status_to_mode,
    supported_modes,
)

__all__ = [
    "LatenessThresholds",
    "PunctualityAssessment",
    "assess_punctuality",
    "classify_punctuality",
    "compute_lateness",
    "MODE_TO_STATUS",
    "STATUS_TO_MODE",
    "derive_mode_from_delay",
    "status_to_mode",
    "supported_modes",
]
