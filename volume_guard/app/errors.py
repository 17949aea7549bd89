"""Exception taxonomy shared by the enforcement daemon."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


@dataclass
class VolumeGuardError(Exception):
    """Base error carrying enough context to be logged as one structured line."""

    code: str
    message: str
    volume_id: Optional[str] = None
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.volume_id:
            base_detail["volume_id"] = self.volume_id
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for ``logging`` extras."""

        return self._payload

    @property
    def log_context(self) -> Dict[str, Any]:
        """Payload without the keys reserved by ``logging.LogRecord``."""

        return {key: value for key, value in self._payload.items() if key != "message"}

    def __str__(self) -> str:
        if self.volume_id:
            return f"{self.message} (volume={self.volume_id})"
        return self.message


@dataclass
class ConfigError(VolumeGuardError):
    """Raised at startup when configuration is missing or malformed."""

    code: str = "config_invalid"
    message: str = "Invalid configuration."


@dataclass
class EnumerationError(VolumeGuardError):
    code: str = "enumeration_failed"
    message: str = "Unable to list volumes."


@dataclass
class MeasurementError(VolumeGuardError):
    code: str = "measurement_failed"
    message: str = "Unable to measure volume size."


@dataclass
class WipeError(VolumeGuardError):
    code: str = "wipe_failed"
    message: str = "Unable to empty volume."


@dataclass
class UnresolvedTenantError(VolumeGuardError):
    code: str = "tenant_unresolved"
    message: str = "Internal ID not found for volume."


@dataclass
class ControlPlaneError(VolumeGuardError):
    """Failure talking to the hosting panel API."""

    code: str = "control_plane_error"
    message: str = "Control plane request failed."
    status_code: Optional[int] = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.status_code is not None:
            self._payload["status_code"] = self.status_code


@dataclass
class NotificationError(VolumeGuardError):
    code: str = "notification_failed"
    message: str = "Notification could not be delivered."


__all__ = [
    "ConfigError",
    "ControlPlaneError",
    "EnumerationError",
    "MeasurementError",
    "NotificationError",
    "UnresolvedTenantError",
    "VolumeGuardError",
    "WipeError",
]
