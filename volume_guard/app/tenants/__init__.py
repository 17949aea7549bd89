"""Tenant metadata and measurement history."""

from .cache import TTLCache
from .directory import (
    DEFAULT_RECORD_TTL_SECONDS,
    DEFAULT_SNAPSHOT_TTL_SECONDS,
    SNAPSHOT_KEY,
    ServerListSource,
    TenantDirectory,
)
from .models import ServerListSnapshot, TenantRecord

__all__ = [
    "DEFAULT_RECORD_TTL_SECONDS",
    "DEFAULT_SNAPSHOT_TTL_SECONDS",
    "SNAPSHOT_KEY",
    "ServerListSnapshot",
    "ServerListSource",
    "TTLCache",
    "TenantDirectory",
    "TenantRecord",
]
