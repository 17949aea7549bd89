"""Abuse classification rules for measured volumes."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..tenants.models import TenantRecord

DEFAULT_QUOTA_HEADROOM_FACTOR = 1.10


class AbuseReason(str, Enum):
    NOT_ABUSIVE = "not_abusive"
    SUDDEN_GROWTH = "sudden_growth"
    CUMULATIVE_GROWTH = "cumulative_growth"
    QUOTA_EXCEEDED = "quota_exceeded"

    @property
    def label(self) -> str:
        return _REASON_LABELS[self]


_REASON_LABELS = {
    AbuseReason.NOT_ABUSIVE: "Below abuse threshold",
    AbuseReason.SUDDEN_GROWTH: "Sudden Size Increase",
    AbuseReason.CUMULATIVE_GROWTH: "Cumulative Size Increase",
    AbuseReason.QUOTA_EXCEEDED: "Storage Limit Exceeded",
}


@dataclass(frozen=True)
class DetectionThresholds:
    """Rule configuration handed to :func:`classify_volume`.

    A growth threshold of zero or less disables its rule. The quota rule
    fires above ``quota_gb * quota_headroom_factor``.
    """

    sudden_growth_gb: float
    cumulative_growth_gb: float
    quota_headroom_factor: float = DEFAULT_QUOTA_HEADROOM_FACTOR
    enforce_quota: bool = True

    @property
    def sudden_growth_enabled(self) -> bool:
        return self.sudden_growth_gb > 0

    @property
    def cumulative_growth_enabled(self) -> bool:
        return self.cumulative_growth_gb > 0


@dataclass(frozen=True)
class Classification:
    """Represents the outcome of evaluating one measurement."""

    reason: AbuseReason
    detail: str
    current_size_gb: float
    previous_size_gb: float
    delta_gb: float
    cumulative_drift_gb: float
    quota_gb: float
    quota_limit_gb: float

    @property
    def is_abusive(self) -> bool:
        return self.reason is not AbuseReason.NOT_ABUSIVE

    def to_dict(self) -> dict[str, float | str | bool]:
        """Serialize the classification for logging or notifications."""

        return {
            "reason": self.reason.value,
            "detail": self.detail,
            "current_size_gb": round(self.current_size_gb, 2),
            "previous_size_gb": round(self.previous_size_gb, 2),
            "delta_gb": round(self.delta_gb, 2),
            "cumulative_drift_gb": round(self.cumulative_drift_gb, 2),
            "quota_gb": round(self.quota_gb, 2),
            "quota_limit_gb": round(self.quota_limit_gb, 2),
            "is_abusive": self.is_abusive,
        }


def classify_volume(
    *,
    current_size_gb: float,
    previous: TenantRecord,
    thresholds: DetectionThresholds,
) -> Classification:
    """Decide whether a volume is abusive and which rule fired.

    Rules are evaluated in a fixed order and the first match wins: sudden
    growth, cumulative growth, then quota. Growth rules need a prior
    measurement, so the first observation of a volume only sets its baseline.
    """

    current = max(current_size_gb, 0.0)
    if previous.has_baseline:
        delta = current - previous.last_measured_gb
        drift = previous.cumulative_drift_gb + max(delta, 0.0)
    else:
        delta = 0.0
        drift = previous.cumulative_drift_gb

    quota = max(previous.quota_gb, 0.0)
    quota_limit = quota * thresholds.quota_headroom_factor

    def _result(reason: AbuseReason, detail: str) -> Classification:
        return Classification(
            reason=reason,
            detail=detail,
            current_size_gb=current,
            previous_size_gb=previous.last_measured_gb,
            delta_gb=delta,
            cumulative_drift_gb=drift,
            quota_gb=quota,
            quota_limit_gb=quota_limit,
        )

    if previous.has_baseline and thresholds.sudden_growth_enabled and delta >= thresholds.sudden_growth_gb:
        return _result(
            AbuseReason.SUDDEN_GROWTH,
            f"Volume size increased by {delta:.2f}GB\nCumulative change: {drift:.2f}GB",
        )

    if previous.has_baseline and thresholds.cumulative_growth_enabled and drift >= thresholds.cumulative_growth_gb:
        return _result(
            AbuseReason.CUMULATIVE_GROWTH,
            f"Total accumulated changes: {drift:.2f}GB",
        )

    if thresholds.enforce_quota and quota > 0 and current > quota_limit:
        return _result(
            AbuseReason.QUOTA_EXCEEDED,
            f"Current size: {current:.2f}GB\nMax allowed: {quota:.2f}GB",
        )

    return _result(
        AbuseReason.NOT_ABUSIVE,
        f"Changed by {delta:.2f}GB (cumulative: {drift:.2f}GB)",
    )


__all__ = [
    "AbuseReason",
    "Classification",
    "DEFAULT_QUOTA_HEADROOM_FACTOR",
    "DetectionThresholds",
    "classify_volume",
]
