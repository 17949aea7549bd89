"""Tenant directory: control-plane lookups plus per-volume measurement history."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Iterable, List, Optional, Protocol

from ..errors import ControlPlaneError
from ..schemas.control_plane import ServerAttributes
from .cache import TTLCache
from .models import ServerListSnapshot, TenantRecord

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "servers_list"
DEFAULT_RECORD_TTL_SECONDS = 60 * 60 * 24
DEFAULT_SNAPSHOT_TTL_SECONDS = 300


class ServerListSource(Protocol):
    """Anything able to return the full list of workloads."""

    def list_servers(self) -> List[ServerAttributes]:
        ...


class TenantDirectory:
    """Owns the server-list snapshot and the per-volume record cache.

    The snapshot is refetched at most once per snapshot TTL. Records live in
    their own cache with a longer TTL; refreshing the snapshot overwrites the
    control-plane metadata of a record but keeps its measurement history and
    expiry, so drift still lapses on schedule.
    """

    def __init__(
        self,
        source: ServerListSource,
        *,
        record_ttl_seconds: float = DEFAULT_RECORD_TTL_SECONDS,
        snapshot_ttl_seconds: float = DEFAULT_SNAPSHOT_TTL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._source = source
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._records: TTLCache[TenantRecord] = TTLCache(record_ttl_seconds, clock=self._clock)
        self._snapshots: TTLCache[ServerListSnapshot] = TTLCache(snapshot_ttl_seconds, clock=self._clock)
        self._lock = Lock()

    def snapshot(self) -> Optional[ServerListSnapshot]:
        with self._lock:
            return self._snapshots.get(SNAPSHOT_KEY)

    def refresh_snapshot_if_stale(self) -> bool:
        """Fetch a new server list when the cached one is missing or expired.

        Returns ``True`` when a fresh snapshot was stored. A failed fetch
        leaves the previous snapshot (or its absence) untouched and re-raises
        the :class:`ControlPlaneError`.
        """

        if self.snapshot() is not None:
            return False

        logger.info("Fetching fresh servers list from API...")
        try:
            servers = self._source.list_servers()
        except ControlPlaneError:
            logger.error("Error fetching servers list; keeping cached tenant data")
            raise

        snapshot = ServerListSnapshot(servers=tuple(servers), fetched_at=self._clock())
        with self._lock:
            self._snapshots.set(SNAPSHOT_KEY, snapshot)
        logger.info("Cached %d server(s) from the control plane", len(snapshot))
        return True

    def reconcile(self, volume_ids: Iterable[str], *, force: bool = False) -> int:
        """Resolve volumes against the cached snapshot.

        Only volumes without a resolved record are looked up unless ``force``
        is set (typically right after a refresh). Returns the number of
        records upserted.
        """

        snapshot = self.snapshot()
        if snapshot is None:
            return 0

        upserted = 0
        with self._lock:
            for volume_id in volume_ids:
                existing = self._records.get(volume_id)
                if existing is not None and existing.is_resolved and not force:
                    continue
                server = snapshot.find_by_uuid(volume_id)
                if server is None:
                    logger.info("No matching server found for volume %s", volume_id)
                    continue
                if existing is None:
                    self._records.set(volume_id, TenantRecord(volume_id=volume_id).with_metadata(server))
                else:
                    self._records.replace(volume_id, existing.with_metadata(server))
                upserted += 1
        return upserted

    def get(self, volume_id: str) -> TenantRecord:
        """Return the cached record or a zero-valued placeholder."""

        with self._lock:
            record = self._records.get(volume_id)
        return record if record is not None else TenantRecord.placeholder(volume_id)

    def record_measurement(self, volume_id: str, size_gb: float) -> TenantRecord:
        """Store ``size_gb`` as the latest measurement and accumulate growth."""

        now = self._clock()
        with self._lock:
            record = self._records.get(volume_id)
            if record is None:
                updated = TenantRecord.placeholder(volume_id).with_measurement(size_gb, now)
                self._records.set(volume_id, updated)
            else:
                updated = record.with_measurement(size_gb, now)
                self._records.replace(volume_id, updated)
        return updated

    def reset_drift(self, volume_id: str) -> None:
        with self._lock:
            record = self._records.get(volume_id)
            if record is not None:
                self._records.replace(volume_id, record.with_drift_reset())

    def record_enforcement(self, volume_id: str, size_gb: float) -> TenantRecord:
        """Start a fresh history after a successful suspension.

        ``size_gb`` becomes the new baseline with zero drift, and the record
        is marked suspended until a refreshed snapshot says otherwise.
        """

        now = self._clock()
        with self._lock:
            record = self._records.get(volume_id)
            base = record if record is not None else TenantRecord.placeholder(volume_id)
            updated = base.with_measurement(size_gb, now).with_drift_reset().with_suspension()
            if record is None:
                self._records.set(volume_id, updated)
            else:
                self._records.replace(volume_id, updated)
        return updated


__all__ = [
    "DEFAULT_RECORD_TTL_SECONDS",
    "DEFAULT_SNAPSHOT_TTL_SECONDS",
    "SNAPSHOT_KEY",
    "ServerListSource",
    "TenantDirectory",
]
