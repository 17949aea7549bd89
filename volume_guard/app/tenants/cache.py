"""Expiring in-memory caches backing the tenant directory."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generic, List, Optional, TypeVar

V = TypeVar("V")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _CacheEntry(Generic[V]):
    value: V
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class TTLCache(Generic[V]):
    """Key/value store whose entries expire ``ttl_seconds`` after being set.

    Expired entries are dropped lazily on access. The clock is injectable so
    tests can move time forward without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock or _utcnow
        self._entries: Dict[str, _CacheEntry[V]] = {}

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if not entry:
            return None
        if entry.is_expired(self._clock()):
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(self, key: str, value: V, *, expires_at: Optional[datetime] = None) -> None:
        now = self._clock()
        if expires_at is None:
            expires_at = now + timedelta(seconds=self.ttl_seconds)
        if expires_at <= now:
            self._entries.pop(key, None)
            return
        self._entries[key] = _CacheEntry(value=value, expires_at=expires_at)

    def replace(self, key: str, value: V) -> bool:
        """Swap the value stored under ``key`` without touching its expiry."""

        entry = self._entries.get(key)
        if not entry or entry.is_expired(self._clock()):
            self._entries.pop(key, None)
            return False
        entry.value = value
        return True

    def expires_at(self, key: str) -> Optional[datetime]:
        entry = self._entries.get(key)
        if not entry or entry.is_expired(self._clock()):
            return None
        return entry.expires_at

    def keys(self) -> List[str]:
        now = self._clock()
        return [key for key, entry in self._entries.items() if not entry.is_expired(now)]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __len__(self) -> int:
        return len(self.keys())
