"""On-disk footprint estimation for a single volume directory."""
from __future__ import annotations

import logging
import os
import stat
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..errors import MeasurementError

logger = logging.getLogger(__name__)

BYTES_PER_GB = 1024 ** 3
# st_blocks is always expressed in 512-byte units, independent of the
# filesystem block size.
_STAT_BLOCK_SIZE = 512

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_ENTRIES = 5_000_000


def bytes_to_gb(size_bytes: int) -> float:
    return size_bytes / BYTES_PER_GB


@dataclass(frozen=True)
class SizeEstimate:
    """Result of measuring one volume.

    ``size_gb`` is ``0.0`` when the measurement failed; check :attr:`known`
    before treating it as an observation.
    """

    path: str
    size_gb: float
    apparent_bytes: int = 0
    allocated_bytes: int = 0
    files: int = 0
    error: Optional[str] = None

    @property
    def known(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "size_gb": round(self.size_gb, 4),
            "apparent_bytes": self.apparent_bytes,
            "allocated_bytes": self.allocated_bytes,
            "files": self.files,
            "error": self.error,
        }


def measure_volume_bytes(
    path: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_entries: int = DEFAULT_MAX_ENTRIES,
    monotonic: Callable[[], float] = time.monotonic,
) -> Tuple[int, int, int]:
    """Walk ``path`` and return ``(apparent_bytes, allocated_bytes, files)``.

    Only regular files are counted. Entries that disappear mid-walk are
    skipped since volumes are written to while we measure. Raises
    :class:`MeasurementError` when the root cannot be read, the deadline
    passes or more than ``max_entries`` entries are visited.
    """

    deadline = monotonic() + max(timeout_seconds, 0.0)
    apparent = 0
    allocated = 0
    files = 0
    visited = 0
    pending: List[str] = [path]

    try:
        root_stat = os.lstat(path)
    except OSError as exc:
        raise MeasurementError(
            message=f"Cannot stat {path}: {exc.strerror or exc}",
            detail={"path": path},
        ) from exc
    if not stat.S_ISDIR(root_stat.st_mode):
        raise MeasurementError(message=f"{path} is not a directory", detail={"path": path})

    while pending:
        current = pending.pop()
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    visited += 1
                    if visited > max_entries:
                        raise MeasurementError(
                            message=f"Gave up measuring {path} after {max_entries} entries",
                            detail={"path": path, "max_entries": max_entries},
                        )
                    if visited % 1024 == 0 and monotonic() > deadline:
                        raise MeasurementError(
                            message=f"Timeout while fetching volume size for {path}",
                            detail={"path": path, "timeout_seconds": timeout_seconds},
                        )
                    try:
                        entry_stat = entry.stat(follow_symlinks=False)
                    except FileNotFoundError:
                        continue
                    if stat.S_ISDIR(entry_stat.st_mode):
                        pending.append(entry.path)
                    elif stat.S_ISREG(entry_stat.st_mode):
                        files += 1
                        apparent += entry_stat.st_size
                        allocated += getattr(entry_stat, "st_blocks", 0) * _STAT_BLOCK_SIZE
        except OSError as exc:
            if current == path:
                raise MeasurementError(
                    message=f"Cannot read {path}: {exc.strerror or exc}",
                    detail={"path": path},
                ) from exc
            # Subdirectories removed or locked down mid-walk are skipped.
            logger.debug("Skipping unreadable directory %s: %s", current, exc)
            continue

        if monotonic() > deadline:
            raise MeasurementError(
                message=f"Timeout while fetching volume size for {path}",
                detail={"path": path, "timeout_seconds": timeout_seconds},
            )

    return apparent, allocated, files


def estimate_volume_size(
    path: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> SizeEstimate:
    """Estimate the size of a volume in GiB.

    Takes the larger of the summed apparent file sizes and the summed block
    allocation, so sparse files and filesystem overhead cannot hide usage in
    either direction. Never raises: failures produce an unknown estimate with
    ``size_gb == 0.0``.
    """

    try:
        apparent, allocated, files = measure_volume_bytes(
            path,
            timeout_seconds=timeout_seconds,
            max_entries=max_entries,
        )
    except MeasurementError as exc:
        logger.error("Error fetching volume size: %s", exc, extra=exc.log_context)
        return SizeEstimate(path=path, size_gb=0.0, error=exc.message)
    except OSError as exc:
        logger.error("Error fetching volume size for %s: %s", path, exc)
        return SizeEstimate(path=path, size_gb=0.0, error=str(exc))

    return SizeEstimate(
        path=path,
        size_gb=bytes_to_gb(max(apparent, allocated)),
        apparent_bytes=apparent,
        allocated_bytes=allocated,
        files=files,
    )


__all__ = [
    "BYTES_PER_GB",
    "SizeEstimate",
    "bytes_to_gb",
    "estimate_volume_size",
    "measure_volume_bytes",
]
