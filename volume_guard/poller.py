"""Fixed-interval poll loop driving measurement, classification and enforcement."""
from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Event, Lock, Thread
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .app.detection import Classification, DetectionThresholds, classify_volume
from .app.enforcement import EnforcementOutcome, EnforcementWorkflow
from .app.errors import ControlPlaneError, EnumerationError
from .app.tenants import TenantDirectory, TenantRecord
from .app.volumes import DEFAULT_RESERVED_PREFIXES, SizeEstimate, estimate_volume_size, list_volumes
from .config import DaemonConfig

logger = logging.getLogger(__name__)

_scheduler_lock = Lock()
_scheduler: Optional["PollScheduler"] = None
_cycle_lock = Lock()

_POLL_METRICS: Dict[str, object] = {
    "cycles": 0,
    "skipped": 0,
    "failures": 0,
    "volumes_seen": 0,
    "flagged": 0,
    "suspended": 0,
    "last_run_at": None,
    "last_success_at": None,
    "last_error": None,
}
_metrics_lock = Lock()


@dataclass
class PollContext:
    """Everything one cycle needs, passed explicitly instead of global state."""

    directory: TenantDirectory
    workflow: EnforcementWorkflow
    thresholds: DetectionThresholds
    volumes_root: str
    reserved_prefixes: Tuple[str, ...] = DEFAULT_RESERVED_PREFIXES
    measurement_timeout_seconds: float = 10.0
    max_workers: int = 4
    lister: Callable[..., Set[str]] = list_volumes
    estimator: Callable[..., SizeEstimate] = estimate_volume_size

    @classmethod
    def from_config(
        cls,
        config: DaemonConfig,
        *,
        directory: TenantDirectory,
        workflow: EnforcementWorkflow,
    ) -> "PollContext":
        return cls(
            directory=directory,
            workflow=workflow,
            thresholds=DetectionThresholds(
                sudden_growth_gb=config.sudden_growth_threshold_gb,
                cumulative_growth_gb=config.cumulative_growth_threshold_gb,
                quota_headroom_factor=config.quota_headroom_factor,
                enforce_quota=config.enforce_quota,
            ),
            volumes_root=config.volumes_directory,
            reserved_prefixes=config.reserved_prefixes,
            measurement_timeout_seconds=config.measurement_timeout_seconds,
            max_workers=config.max_measurement_workers,
        )


@dataclass
class CycleSummary:
    """Aggregated results for one poll cycle."""

    volumes_seen: int = 0
    measured: int = 0
    measurement_failures: int = 0
    flagged: int = 0
    enforced: int = 0
    suspended: int = 0
    aborted: int = 0
    already_suspended: int = 0
    errors: int = 0
    outcomes: List[EnforcementOutcome] = field(default_factory=list)


def _measure_all(context: PollContext, volumes: Iterable[str]) -> Dict[str, SizeEstimate]:
    volume_ids = sorted(volumes)
    estimates: Dict[str, SizeEstimate] = {}
    if not volume_ids:
        return estimates

    workers = max(1, min(context.max_workers, len(volume_ids)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="volume-measure") as pool:
        futures = {
            pool.submit(
                context.estimator,
                os.path.join(context.volumes_root, volume_id),
                timeout_seconds=context.measurement_timeout_seconds,
            ): volume_id
            for volume_id in volume_ids
        }
        for future in as_completed(futures):
            estimates[futures[future]] = future.result()
    return estimates


def _enforce_volume(
    context: PollContext,
    volume_id: str,
    record: TenantRecord,
    classification: Classification,
) -> Tuple[EnforcementOutcome, Optional[SizeEstimate]]:
    outcome = context.workflow.enforce(volume_id, record, classification)
    if not outcome.suspended:
        return outcome, None
    # The new baseline is whatever the wipe left behind.
    remeasured = context.estimator(
        os.path.join(context.volumes_root, volume_id),
        timeout_seconds=context.measurement_timeout_seconds,
    )
    return outcome, remeasured


def _enforce_all(
    context: PollContext,
    flagged: List[Tuple[str, TenantRecord, Classification]],
    summary: CycleSummary,
) -> None:
    if not flagged:
        return

    workers = max(1, min(context.max_workers, len(flagged)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="volume-enforce") as pool:
        futures = {
            pool.submit(_enforce_volume, context, volume_id, record, classification): (volume_id, classification)
            for volume_id, record, classification in flagged
        }
        for future in as_completed(futures):
            volume_id, classification = futures[future]
            try:
                outcome, remeasured = future.result()
            except Exception:
                logger.exception("Enforcement crashed for volume %s", volume_id, extra={"volume_id": volume_id})
                summary.errors += 1
                context.directory.record_measurement(volume_id, classification.current_size_gb)
                continue

            summary.outcomes.append(outcome)
            if outcome.aborted:
                summary.aborted += 1
            else:
                summary.enforced += 1
            if outcome.suspended:
                summary.suspended += 1
                baseline = classification.current_size_gb
                if remeasured is not None and remeasured.known:
                    baseline = remeasured.size_gb
                context.directory.record_enforcement(volume_id, baseline)
            else:
                context.directory.record_measurement(volume_id, classification.current_size_gb)


def run_poll_cycle(context: PollContext) -> CycleSummary:
    """Run one full pass over every volume under the volumes root."""

    summary = CycleSummary()

    try:
        volumes = context.lister(context.volumes_root, reserved_prefixes=context.reserved_prefixes)
    except EnumerationError as exc:
        logger.error("Error reading directory: %s", exc.message, extra=exc.log_context)
        summary.errors += 1
        volumes = set()

    summary.volumes_seen = len(volumes)
    if not volumes:
        logger.info("No volumes found")
        return summary

    logger.info("Buffering up cache with internal IDs...")
    refreshed = False
    try:
        refreshed = context.directory.refresh_snapshot_if_stale()
    except ControlPlaneError as exc:
        logger.error("Error assigning internal IDs: %s", exc.message, extra=exc.log_context)
        summary.errors += 1
    resolved = context.directory.reconcile(volumes, force=refreshed)
    logger.info("Cache populated with internal IDs (%d record(s) updated).", resolved)

    estimates = _measure_all(context, volumes)

    flagged: List[Tuple[str, TenantRecord, Classification]] = []
    for volume_id in sorted(volumes):
        estimate = estimates[volume_id]
        if not estimate.known:
            summary.measurement_failures += 1
            logger.warning(
                "Size of volume %s unknown (%s); skipping",
                volume_id,
                estimate.error,
                extra={"volume_id": volume_id, **estimate.to_dict()},
            )
            continue

        summary.measured += 1
        record = context.directory.get(volume_id)
        classification = classify_volume(
            current_size_gb=estimate.size_gb,
            previous=record,
            thresholds=context.thresholds,
        )
        if classification.is_abusive and record.suspended:
            summary.already_suspended += 1
            context.directory.record_measurement(volume_id, estimate.size_gb)
            logger.info(
                "Volume %s flagged (%s) but its server is already suspended. Skipping...",
                volume_id,
                classification.reason.label,
                extra={"volume_id": volume_id, "reason": classification.reason.value},
            )
            continue
        if classification.is_abusive:
            flagged.append((volume_id, record, classification))
            continue

        context.directory.record_measurement(volume_id, estimate.size_gb)
        logger.info(
            "Volume %s %.2fGB changed by %.2fGB (cumulative: %.2fGB). Below abuse threshold. Skipping...",
            volume_id,
            classification.current_size_gb,
            classification.delta_gb,
            classification.cumulative_drift_gb,
            extra={"volume_id": volume_id},
        )

    summary.flagged = len(flagged)
    _enforce_all(context, flagged, summary)
    return summary


def _record_run_start(started_at: datetime) -> None:
    with _metrics_lock:
        _POLL_METRICS["last_run_at"] = started_at


def _record_run_success(completed_at: datetime, summary: CycleSummary) -> None:
    with _metrics_lock:
        _POLL_METRICS["cycles"] = int(_POLL_METRICS.get("cycles", 0)) + 1
        _POLL_METRICS["volumes_seen"] = summary.volumes_seen
        _POLL_METRICS["flagged"] = int(_POLL_METRICS.get("flagged", 0)) + summary.flagged
        _POLL_METRICS["suspended"] = int(_POLL_METRICS.get("suspended", 0)) + summary.suspended
        _POLL_METRICS["last_success_at"] = completed_at
        _POLL_METRICS["last_error"] = None


def _record_run_failure(error: Exception) -> None:
    with _metrics_lock:
        _POLL_METRICS["failures"] = int(_POLL_METRICS.get("failures", 0)) + 1
        _POLL_METRICS["last_error"] = f"{type(error).__name__}: {error}"


def _record_skip(count: int = 1) -> None:
    with _metrics_lock:
        _POLL_METRICS["skipped"] = int(_POLL_METRICS.get("skipped", 0)) + count


def run_poll_job(context: PollContext, *, now: Optional[datetime] = None) -> Optional[CycleSummary]:
    """Run one cycle unless another one is still in flight.

    Returns ``None`` when the cycle was skipped.
    """

    if not _cycle_lock.acquire(blocking=False):
        _record_skip()
        logger.warning("Previous poll cycle still running; skipping this one")
        return None

    try:
        current_time = now or datetime.now(timezone.utc)
        _record_run_start(current_time)
        try:
            summary = run_poll_cycle(context)
        except Exception as exc:
            _record_run_failure(exc)
            logger.exception("Poll cycle failed")
            raise
        _record_run_success(datetime.now(timezone.utc) if now is None else now, summary)
        logger.info(
            "Poll cycle completed",
            extra={
                "volumes_seen": summary.volumes_seen,
                "flagged": summary.flagged,
                "suspended": summary.suspended,
                "already_suspended": summary.already_suspended,
                "errors": summary.errors,
            },
        )
        return summary
    finally:
        _cycle_lock.release()


class PollScheduler(Thread):
    """Runs :func:`run_poll_job` on a fixed interval until stopped.

    Ticks that fall while a cycle is still running are skipped rather than
    queued, so cycles never overlap.
    """

    def __init__(
        self,
        context: PollContext,
        *,
        interval: float,
        initial_delay: float = 0.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(daemon=True, name="volume-guard-poller")
        self.context = context
        self._interval = max(1.0, interval)
        self._initial_delay = max(0.0, initial_delay)
        self._monotonic = monotonic
        self._stop_event = Event()

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def _next_tick(self, scheduled: float) -> float:
        next_run = scheduled + self._interval
        now = self._monotonic()
        if now > next_run:
            missed = int((now - next_run) // self._interval) + 1
            _record_skip(missed)
            logger.warning("Poll cycle overran its interval; skipped %d tick(s)", missed)
            next_run += missed * self._interval
        return next_run

    def run(self) -> None:  # pragma: no cover - thread execution
        next_run = self._monotonic() + self._initial_delay
        while not self._stop_event.is_set():
            if self._stop_event.wait(max(0.0, next_run - self._monotonic())):
                break
            try:
                run_poll_job(self.context)
            except Exception:
                # Errors are logged inside run_poll_job; keep the schedule.
                pass
            next_run = self._next_tick(next_run)


def start_poller(context: PollContext, *, interval: float, initial_delay: float = 0.0) -> PollScheduler:
    global _scheduler
    with _scheduler_lock:
        if _scheduler is not None and _scheduler.is_alive():
            return _scheduler
        _scheduler = PollScheduler(context, interval=interval, initial_delay=initial_delay)
        _scheduler.start()
        logger.info(
            "Volume poller started",
            extra={"interval_seconds": interval, "volumes_root": context.volumes_root},
        )
        return _scheduler


def shutdown_poller(timeout: Optional[float] = None) -> None:
    """Stop the scheduler; an in-flight cycle finishes before the thread exits."""

    global _scheduler
    with _scheduler_lock:
        scheduler = _scheduler
        _scheduler = None
    if scheduler is None:
        return
    scheduler.stop()
    scheduler.join(timeout=timeout)
    logger.info("Volume poller stopped")


def get_poll_metrics() -> Dict[str, object]:
    with _metrics_lock:
        snapshot = dict(_POLL_METRICS)
    for key in ("last_run_at", "last_success_at"):
        value = snapshot.get(key)
        snapshot[key] = value.isoformat() if isinstance(value, datetime) else None
    return snapshot


def _reset_metrics_for_testing() -> None:  # pragma: no cover - used in tests only
    with _metrics_lock:
        _POLL_METRICS.update(
            {
                "cycles": 0,
                "skipped": 0,
                "failures": 0,
                "volumes_seen": 0,
                "flagged": 0,
                "suspended": 0,
                "last_run_at": None,
                "last_success_at": None,
                "last_error": None,
            }
        )


__all__ = [
    "CycleSummary",
    "PollContext",
    "PollScheduler",
    "get_poll_metrics",
    "run_poll_cycle",
    "run_poll_job",
    "shutdown_poller",
    "start_poller",
]
