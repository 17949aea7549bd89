from __future__ import annotations

from datetime import datetime, timezone

import pytest

from volume_guard.app.detection import AbuseReason, DetectionThresholds, classify_volume
from volume_guard.app.detection.classifier import DEFAULT_QUOTA_HEADROOM_FACTOR
from volume_guard.app.tenants import TenantRecord

MEASURED_AT = datetime(2024, 5, 1, tzinfo=timezone.utc)


@pytest.fixture
def thresholds() -> DetectionThresholds:
    return DetectionThresholds(sudden_growth_gb=5.0, cumulative_growth_gb=20.0, quota_headroom_factor=1.10)


def _record(**overrides) -> TenantRecord:
    values = {
        "volume_id": "vol-a",
        "internal_id": 7,
        "identifier": "abcd1234",
        "display_name": "Alpha",
        "quota_gb": 0.0,
        "last_measured_gb": 0.0,
        "cumulative_drift_gb": 0.0,
        "measured_at": MEASURED_AT,
    }
    values.update(overrides)
    return TenantRecord(**values)


def test_sudden_growth_detected(thresholds):
    result = classify_volume(current_size_gb=11.0, previous=_record(last_measured_gb=1.0), thresholds=thresholds)

    assert result.reason is AbuseReason.SUDDEN_GROWTH
    assert result.is_abusive
    assert result.delta_gb == pytest.approx(10.0)
    assert result.detail == "Volume size increased by 10.00GB\nCumulative change: 10.00GB"


def test_sudden_growth_wins_over_cumulative_and_quota(thresholds):
    previous = _record(last_measured_gb=1.0, cumulative_drift_gb=15.0, quota_gb=5.0)

    result = classify_volume(current_size_gb=11.0, previous=previous, thresholds=thresholds)

    assert result.reason is AbuseReason.SUDDEN_GROWTH
    assert result.cumulative_drift_gb == pytest.approx(25.0)


def test_cumulative_growth_detected_below_sudden_threshold(thresholds):
    previous = _record(last_measured_gb=10.0, cumulative_drift_gb=18.0)

    result = classify_volume(current_size_gb=13.0, previous=previous, thresholds=thresholds)

    assert result.reason is AbuseReason.CUMULATIVE_GROWTH
    assert result.detail == "Total accumulated changes: 21.00GB"


def test_cumulative_growth_wins_over_quota(thresholds):
    previous = _record(last_measured_gb=10.0, cumulative_drift_gb=18.0, quota_gb=1.0)

    result = classify_volume(current_size_gb=13.0, previous=previous, thresholds=thresholds)

    assert result.reason is AbuseReason.CUMULATIVE_GROWTH


def test_quota_exceeded_respects_headroom(thresholds):
    previous = _record(last_measured_gb=11.5, quota_gb=10.0)

    within = classify_volume(current_size_gb=10.9, previous=_record(last_measured_gb=10.9, quota_gb=10.0), thresholds=thresholds)
    over = classify_volume(current_size_gb=11.5, previous=previous, thresholds=thresholds)

    assert within.reason is AbuseReason.NOT_ABUSIVE
    assert over.reason is AbuseReason.QUOTA_EXCEEDED
    assert over.quota_limit_gb == pytest.approx(11.0)
    assert over.detail == "Current size: 11.50GB\nMax allowed: 10.00GB"


def test_zero_quota_means_unlimited(thresholds):
    result = classify_volume(current_size_gb=500.0, previous=_record(last_measured_gb=499.0), thresholds=thresholds)

    assert result.reason is AbuseReason.NOT_ABUSIVE


def test_quota_rule_can_be_disabled():
    thresholds = DetectionThresholds(sudden_growth_gb=5.0, cumulative_growth_gb=20.0, enforce_quota=False)

    result = classify_volume(current_size_gb=50.0, previous=_record(last_measured_gb=50.0, quota_gb=1.0), thresholds=thresholds)

    assert result.reason is AbuseReason.NOT_ABUSIVE


def test_first_observation_only_sets_baseline(thresholds):
    unmeasured = _record(measured_at=None)

    result = classify_volume(current_size_gb=40.0, previous=unmeasured, thresholds=thresholds)

    assert result.reason is AbuseReason.NOT_ABUSIVE
    assert result.delta_gb == 0.0


def test_first_observation_still_checks_quota(thresholds):
    unmeasured = _record(measured_at=None, quota_gb=2.0)

    result = classify_volume(current_size_gb=40.0, previous=unmeasured, thresholds=thresholds)

    assert result.reason is AbuseReason.QUOTA_EXCEEDED


def test_non_positive_threshold_disables_growth_rule():
    thresholds = DetectionThresholds(sudden_growth_gb=0.0, cumulative_growth_gb=20.0)

    result = classify_volume(current_size_gb=11.0, previous=_record(last_measured_gb=1.0), thresholds=thresholds)

    assert result.reason is AbuseReason.NOT_ABUSIVE


def test_shrinking_volume_adds_no_drift(thresholds):
    previous = _record(last_measured_gb=8.0, cumulative_drift_gb=3.0)

    result = classify_volume(current_size_gb=2.0, previous=previous, thresholds=thresholds)

    assert result.reason is AbuseReason.NOT_ABUSIVE
    assert result.delta_gb == pytest.approx(-6.0)
    assert result.cumulative_drift_gb == pytest.approx(3.0)


def test_reason_labels():
    assert AbuseReason.SUDDEN_GROWTH.label == "Sudden Size Increase"
    assert AbuseReason.CUMULATIVE_GROWTH.label == "Cumulative Size Increase"
    assert AbuseReason.QUOTA_EXCEEDED.label == "Storage Limit Exceeded"


def test_to_dict_rounds_values(thresholds):
    result = classify_volume(current_size_gb=11.004, previous=_record(last_measured_gb=1.0), thresholds=thresholds)

    data = result.to_dict()

    assert data["reason"] == "sudden_growth"
    assert data["current_size_gb"] == 11.0
    assert data["is_abusive"] is True


@pytest.mark.parametrize(
    "sudden_threshold, expected",
    [
        (5.0, AbuseReason.QUOTA_EXCEEDED),
        (2.0, AbuseReason.SUDDEN_GROWTH),
    ],
)
def test_quota_breach_with_moderate_growth(sudden_threshold, expected):
    thresholds = DetectionThresholds(
        sudden_growth_gb=sudden_threshold,
        cumulative_growth_gb=20.0,
        quota_headroom_factor=1.10,
    )
    previous = _record(last_measured_gb=9.0, quota_gb=10.0)

    result = classify_volume(current_size_gb=12.0, previous=previous, thresholds=thresholds)

    assert result.reason is expected


def test_decreasing_sizes_never_raise_drift(thresholds):
    record = _record(last_measured_gb=30.0, cumulative_drift_gb=4.0)

    for size in (25.0, 18.5, 7.0, 0.0):
        result = classify_volume(current_size_gb=size, previous=record, thresholds=thresholds)
        assert result.cumulative_drift_gb == pytest.approx(4.0)
        record = record.with_measurement(size, MEASURED_AT)

    assert record.cumulative_drift_gb == pytest.approx(4.0)


def test_default_headroom_matches_configured_default():
    thresholds = DetectionThresholds(sudden_growth_gb=5.0, cumulative_growth_gb=20.0)

    assert thresholds.quota_headroom_factor == DEFAULT_QUOTA_HEADROOM_FACTOR
    assert DEFAULT_QUOTA_HEADROOM_FACTOR == pytest.approx(1.10)
