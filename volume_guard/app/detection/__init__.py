"""Abuse detection rules."""
from .classifier import (
    DEFAULT_QUOTA_HEADROOM_FACTOR,
    AbuseReason,
    Classification,
    DetectionThresholds,
    classify_volume,
)

__all__ = [
    "AbuseReason",
    "Classification",
    "DEFAULT_QUOTA_HEADROOM_FACTOR",
    "DetectionThresholds",
    "classify_volume",
]
