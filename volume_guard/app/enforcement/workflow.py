"""Kill, wipe, suspend and notify sequence for a flagged volume."""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Protocol

from ..detection.classifier import Classification
from ..errors import ControlPlaneError, NotificationError, UnresolvedTenantError, WipeError
from ..schemas.notifications import EnforcementReport
from ..tenants.models import TenantRecord
from ..volumes.wiper import WipeResult, wipe_volume

logger = logging.getLogger(__name__)


class EnforcementState(str, Enum):
    """Furthest step reached for a flagged volume."""

    FLAGGED = "flagged"
    TERMINATED = "terminated"
    WIPED = "wiped"
    SUSPENDED = "suspended"
    NOTIFIED = "notified"
    ABORTED = "aborted"


class PowerController(Protocol):
    """Control-plane operations the workflow depends on."""

    def kill_server(self, identifier: str) -> int:
        ...

    def suspend_server(self, internal_id: int) -> int:
        ...


class ReportNotifier(Protocol):
    def notify(self, report: EnforcementReport) -> bool:
        ...


class DriftLedger(Protocol):
    def reset_drift(self, volume_id: str) -> None:
        ...


@dataclass(frozen=True)
class EnforcementOptions:
    kill_before_wipe: bool = True
    wipe_volume: bool = True
    rewipe_after_suspend: bool = True
    suspend_delay_seconds: float = 1.0
    wipe_timeout_seconds: float = 10.0
    dry_run: bool = False

    @classmethod
    def from_config(cls, config) -> "EnforcementOptions":
        return cls(
            kill_before_wipe=config.kill_before_wipe,
            wipe_volume=config.wipe_on_enforcement,
            rewipe_after_suspend=config.rewipe_after_suspend,
            suspend_delay_seconds=config.suspend_delay_seconds,
            wipe_timeout_seconds=config.wipe_timeout_seconds,
            dry_run=config.dry_run,
        )


@dataclass
class EnforcementOutcome:
    volume_id: str
    state: EnforcementState = EnforcementState.FLAGGED
    killed: bool = False
    wiped: bool = False
    suspended: bool = False
    notified: bool = False
    drift_reset: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.state is EnforcementState.ABORTED


class EnforcementWorkflow:
    """Drives the enforcement sequence for one volume at a time.

    Every step after the tenant check is attempted even if an earlier one
    failed, and the notification reports what actually happened.
    """

    def __init__(
        self,
        control_plane: PowerController,
        notifier: ReportNotifier,
        ledger: DriftLedger,
        *,
        volumes_root: str,
        options: Optional[EnforcementOptions] = None,
        wiper: Callable[..., WipeResult] = wipe_volume,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._control_plane = control_plane
        self._notifier = notifier
        self._ledger = ledger
        self.volumes_root = volumes_root
        self.options = options or EnforcementOptions()
        self._wiper = wiper
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def volume_path(self, volume_id: str) -> str:
        return os.path.join(self.volumes_root, volume_id)

    def enforce(
        self,
        volume_id: str,
        record: TenantRecord,
        classification: Classification,
    ) -> EnforcementOutcome:
        outcome = EnforcementOutcome(volume_id=volume_id)

        try:
            self._require_resolved(volume_id, record)
        except UnresolvedTenantError as exc:
            logger.error(
                "Error suspending volume %s: %s",
                volume_id,
                exc.message,
                extra=exc.log_context,
            )
            outcome.state = EnforcementState.ABORTED
            outcome.errors.append(exc.message)
            return outcome

        logger.warning(
            "Volume %s flagged (%s): %s. Suspending volume...",
            volume_id,
            classification.reason.label,
            classification.detail.replace("\n", "; "),
            extra={"volume_id": volume_id, **classification.to_dict()},
        )

        if self.options.dry_run:
            logger.info("Dry run: skipping kill, wipe and suspend for volume %s", volume_id)
        else:
            self._terminate(volume_id, record, outcome)
            self._wipe(volume_id, outcome)
            self._suspend(volume_id, record, outcome)
            if outcome.suspended:
                self._ledger.reset_drift(volume_id)
                outcome.drift_reset = True
            if self.options.wipe_volume and self.options.rewipe_after_suspend:
                # Catches anything written between the kill and the suspension.
                self._wipe(volume_id, outcome)

        self._notify(volume_id, record, classification, outcome)
        return outcome

    def _require_resolved(self, volume_id: str, record: TenantRecord) -> None:
        if not record.is_resolved:
            raise UnresolvedTenantError(volume_id=volume_id)

    def _terminate(self, volume_id: str, record: TenantRecord, outcome: EnforcementOutcome) -> None:
        if not self.options.kill_before_wipe:
            return
        try:
            status = self._control_plane.kill_server(record.kill_identifier)
        except ControlPlaneError as exc:
            logger.warning("Error killing volume %s: %s", volume_id, exc.message, extra=exc.log_context)
        else:
            outcome.killed = True
            logger.info("Kill signal sent for volume %s (HTTP %s)", volume_id, status)
        outcome.state = EnforcementState.TERMINATED

    def _wipe(self, volume_id: str, outcome: EnforcementOutcome) -> None:
        if not self.options.wipe_volume:
            return
        path = self.volume_path(volume_id)
        logger.info("Emptying volume %s...", volume_id)
        try:
            result = self._wiper(path, timeout_seconds=self.options.wipe_timeout_seconds)
        except WipeError as exc:
            logger.error("Error emptying volume %s: %s", volume_id, exc.message, extra=exc.log_context)
            outcome.errors.append(exc.message)
            outcome.wiped = False
        else:
            outcome.wiped = True
            logger.info("Volume %s emptied (%d entries removed)", volume_id, result.removed)
        if outcome.state is not EnforcementState.SUSPENDED:
            outcome.state = EnforcementState.WIPED

    def _suspend(self, volume_id: str, record: TenantRecord, outcome: EnforcementOutcome) -> None:
        if self.options.suspend_delay_seconds > 0:
            self._sleep(self.options.suspend_delay_seconds)
        try:
            status = self._control_plane.suspend_server(record.internal_id)
        except ControlPlaneError as exc:
            logger.error("Error suspending volume %s: %s", volume_id, exc.message, extra=exc.log_context)
            outcome.errors.append(exc.message)
        else:
            outcome.suspended = True
            logger.info(
                "Volume %s suspended (server %s, HTTP %s)",
                volume_id,
                record.internal_id,
                status,
                extra={"volume_id": volume_id, "status_code": status},
            )
        outcome.state = EnforcementState.SUSPENDED

    def _notify(
        self,
        volume_id: str,
        record: TenantRecord,
        classification: Classification,
        outcome: EnforcementOutcome,
    ) -> None:
        report = EnforcementReport(
            volume_id=volume_id,
            tenant_name=record.display_name,
            reason=classification.reason,
            details=classification.detail,
            killed=outcome.killed,
            wiped=outcome.wiped,
            suspended=outcome.suspended,
            dry_run=self.options.dry_run,
            errors=list(outcome.errors),
            occurred_at=self._clock(),
        )
        try:
            outcome.notified = self._notifier.notify(report)
        except NotificationError as exc:
            logger.error("Error sending notification for volume %s: %s", volume_id, exc.message, extra=exc.log_context)
            outcome.errors.append(exc.message)
        outcome.state = EnforcementState.NOTIFIED


__all__ = [
    "DriftLedger",
    "EnforcementOptions",
    "EnforcementOutcome",
    "EnforcementState",
    "EnforcementWorkflow",
    "PowerController",
    "ReportNotifier",
]
