from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

import pytest

from volume_guard.app.detection import AbuseReason, DetectionThresholds, classify_volume
from volume_guard.app.enforcement import EnforcementOptions, EnforcementState, EnforcementWorkflow
from volume_guard.app.errors import ControlPlaneError, NotificationError, WipeError
from volume_guard.app.schemas.notifications import EnforcementReport
from volume_guard.app.tenants import TenantRecord
from volume_guard.app.volumes import WipeResult

MEASURED_AT = datetime(2024, 5, 1, tzinfo=timezone.utc)


class FakeControlPlane:
    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.kill_error: Optional[ControlPlaneError] = None
        self.suspend_error: Optional[ControlPlaneError] = None

    def kill_server(self, identifier: str) -> int:
        self.calls.append(("kill", identifier))
        if self.kill_error:
            raise self.kill_error
        return 204

    def suspend_server(self, internal_id: int) -> int:
        self.calls.append(("suspend", internal_id))
        if self.suspend_error:
            raise self.suspend_error
        return 204


class FakeNotifier:
    def __init__(self) -> None:
        self.reports: List[EnforcementReport] = []
        self.error: Optional[NotificationError] = None

    def notify(self, report: EnforcementReport) -> bool:
        self.reports.append(report)
        if self.error:
            raise self.error
        return True


class FakeLedger:
    def __init__(self) -> None:
        self.resets: List[str] = []

    def reset_drift(self, volume_id: str) -> None:
        self.resets.append(volume_id)


class FakeWiper:
    def __init__(self, control_plane: FakeControlPlane) -> None:
        self._control_plane = control_plane
        self.error: Optional[WipeError] = None

    def __call__(self, path: str, *, timeout_seconds: float) -> WipeResult:
        self._control_plane.calls.append(("wipe", path))
        if self.error:
            raise self.error
        return WipeResult(path=path, removed=4)


@pytest.fixture
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def wiper(control_plane) -> FakeWiper:
    return FakeWiper(control_plane)


@pytest.fixture
def sleeps() -> List[float]:
    return []


def _workflow(control_plane, notifier, ledger, wiper, sleeps, **options) -> EnforcementWorkflow:
    return EnforcementWorkflow(
        control_plane,
        notifier,
        ledger,
        volumes_root="/srv/volumes",
        options=EnforcementOptions(**options),
        wiper=wiper,
        sleep=sleeps.append,
        clock=lambda: MEASURED_AT,
    )


def _resolved_record() -> TenantRecord:
    return TenantRecord(
        volume_id="aaaaaaaa-1111",
        internal_id=7,
        identifier="aaaaaaaa",
        display_name="Alpha",
        quota_gb=10.0,
        last_measured_gb=1.0,
        measured_at=MEASURED_AT,
    )


def _sudden(record: TenantRecord):
    return classify_volume(
        current_size_gb=11.0,
        previous=record,
        thresholds=DetectionThresholds(sudden_growth_gb=5.0, cumulative_growth_gb=20.0),
    )


def test_full_sequence_kills_wipes_suspends_and_notifies(control_plane, notifier, ledger, wiper, sleeps):
    record = _resolved_record()
    workflow = _workflow(control_plane, notifier, ledger, wiper, sleeps)

    outcome = workflow.enforce("aaaaaaaa-1111", record, _sudden(record))

    assert control_plane.calls == [
        ("kill", "aaaaaaaa"),
        ("wipe", "/srv/volumes/aaaaaaaa-1111"),
        ("suspend", 7),
        ("wipe", "/srv/volumes/aaaaaaaa-1111"),
    ]
    assert sleeps == [1.0]
    assert ledger.resets == ["aaaaaaaa-1111"]
    assert outcome.state is EnforcementState.NOTIFIED
    assert outcome.killed and outcome.wiped and outcome.suspended and outcome.notified
    assert outcome.drift_reset is True

    report = notifier.reports[0]
    assert report.reason is AbuseReason.SUDDEN_GROWTH
    assert report.tenant_name == "Alpha"
    assert report.suspended is True
    assert report.errors == []


def test_unresolved_volume_is_never_touched(control_plane, notifier, ledger, wiper, sleeps):
    record = TenantRecord(volume_id="orphan", last_measured_gb=1.0, measured_at=MEASURED_AT)
    workflow = _workflow(control_plane, notifier, ledger, wiper, sleeps)

    outcome = workflow.enforce("orphan", record, _sudden(record))

    assert outcome.aborted
    assert outcome.errors == ["Internal ID not found for volume."]
    assert control_plane.calls == []
    assert notifier.reports == []
    assert ledger.resets == []


def test_suspend_failure_still_notifies_without_resetting_drift(control_plane, notifier, ledger, wiper, sleeps):
    control_plane.suspend_error = ControlPlaneError(message="POST suspend returned HTTP 500", status_code=500)
    record = _resolved_record()
    workflow = _workflow(control_plane, notifier, ledger, wiper, sleeps)

    outcome = workflow.enforce("aaaaaaaa-1111", record, _sudden(record))

    assert outcome.suspended is False
    assert outcome.drift_reset is False
    assert ledger.resets == []
    assert notifier.reports[0].suspended is False
    assert "POST suspend returned HTTP 500" in notifier.reports[0].errors


def test_wipe_failure_does_not_prevent_suspension(control_plane, notifier, ledger, wiper, sleeps):
    wiper.error = WipeError(message="Emptying /srv/volumes/aaaaaaaa-1111 timed out; 2 entries left")
    record = _resolved_record()
    workflow = _workflow(control_plane, notifier, ledger, wiper, sleeps)

    outcome = workflow.enforce("aaaaaaaa-1111", record, _sudden(record))

    assert outcome.suspended is True
    assert outcome.wiped is False
    assert ("suspend", 7) in control_plane.calls
    assert notifier.reports[0].wiped is False


def test_kill_failure_is_best_effort(control_plane, notifier, ledger, wiper, sleeps):
    control_plane.kill_error = ControlPlaneError(message="No API key configured for POST power")
    record = _resolved_record()
    workflow = _workflow(control_plane, notifier, ledger, wiper, sleeps)

    outcome = workflow.enforce("aaaaaaaa-1111", record, _sudden(record))

    assert outcome.killed is False
    assert outcome.suspended is True
    assert outcome.errors == []


def test_dry_run_only_notifies(control_plane, notifier, ledger, wiper, sleeps):
    record = _resolved_record()
    workflow = _workflow(control_plane, notifier, ledger, wiper, sleeps, dry_run=True)

    outcome = workflow.enforce("aaaaaaaa-1111", record, _sudden(record))

    assert control_plane.calls == []
    assert ledger.resets == []
    assert outcome.drift_reset is False
    assert notifier.reports[0].dry_run is True


def test_optional_steps_can_be_disabled(control_plane, notifier, ledger, wiper, sleeps):
    record = _resolved_record()
    workflow = _workflow(
        control_plane,
        notifier,
        ledger,
        wiper,
        sleeps,
        kill_before_wipe=False,
        wipe_volume=False,
        suspend_delay_seconds=0,
    )

    workflow.enforce("aaaaaaaa-1111", record, _sudden(record))

    assert control_plane.calls == [("suspend", 7)]
    assert sleeps == []


def test_notification_failure_is_recorded(control_plane, notifier, ledger, wiper, sleeps):
    notifier.error = NotificationError(message="Webhook returned HTTP 429")
    record = _resolved_record()
    workflow = _workflow(control_plane, notifier, ledger, wiper, sleeps)

    outcome = workflow.enforce("aaaaaaaa-1111", record, _sudden(record))

    assert outcome.notified is False
    assert outcome.suspended is True
    assert outcome.errors == ["Webhook returned HTTP 429"]
