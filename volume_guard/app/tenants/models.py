"""Domain models for tenant lookups and measurement history."""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Optional, Sequence

from ..schemas.control_plane import ServerAttributes


@dataclass(frozen=True)
class TenantRecord:
    """Control-plane metadata and measurement history for one volume.

    ``internal_id == 0`` marks a volume with no matching workload; such a
    volume is never suspended. ``measured_at`` stays ``None`` until the first
    measurement has been recorded, which is what separates "never measured"
    from "measured empty".
    """

    volume_id: str = ""
    internal_id: int = 0
    identifier: Optional[str] = None
    display_name: str = ""
    quota_gb: float = 0.0
    last_measured_gb: float = 0.0
    cumulative_drift_gb: float = 0.0
    measured_at: Optional[datetime] = None
    suspended: bool = False

    @classmethod
    def placeholder(cls, volume_id: str = "") -> "TenantRecord":
        return cls(volume_id=volume_id)

    @property
    def is_resolved(self) -> bool:
        return self.internal_id > 0

    @property
    def has_baseline(self) -> bool:
        return self.measured_at is not None

    @property
    def kill_identifier(self) -> str:
        """Identifier accepted by the client power endpoint."""

        return self.identifier or self.volume_id

    def with_metadata(self, server: ServerAttributes) -> "TenantRecord":
        return replace(
            self,
            internal_id=server.id,
            identifier=server.client_identifier,
            display_name=server.name,
            quota_gb=server.quota_gb,
            suspended=server.suspended,
        )

    def with_measurement(self, size_gb: float, measured_at: datetime) -> "TenantRecord":
        drift = self.cumulative_drift_gb
        if self.has_baseline and size_gb > self.last_measured_gb:
            drift += size_gb - self.last_measured_gb
        return replace(
            self,
            last_measured_gb=size_gb,
            cumulative_drift_gb=drift,
            measured_at=measured_at,
        )

    def with_drift_reset(self) -> "TenantRecord":
        return replace(self, cumulative_drift_gb=0.0)

    def with_suspension(self) -> "TenantRecord":
        return replace(self, suspended=True)


@dataclass(frozen=True)
class ServerListSnapshot:
    """The full workload list as returned by the panel, cached as one unit."""

    servers: Sequence[ServerAttributes]
    fetched_at: datetime

    def __post_init__(self) -> None:
        index: Dict[str, ServerAttributes] = {server.uuid: server for server in self.servers}
        object.__setattr__(self, "_by_uuid", index)

    def find_by_uuid(self, uuid: str) -> Optional[ServerAttributes]:
        return self._by_uuid.get(uuid)

    def __len__(self) -> int:
        return len(self.servers)


__all__ = ["ServerListSnapshot", "TenantRecord"]
