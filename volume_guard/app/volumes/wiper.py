"""Purging the contents of a volume while keeping the directory itself."""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Callable, List

from ..errors import WipeError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class WipeResult:
    path: str
    removed: int = 0
    failures: List[str] = field(default_factory=list)


def _unlink(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def _remove_tree(path: str, expired: Callable[[], bool]) -> bool:
    """Delete ``path`` bottom-up, checking the deadline before every entry.

    Returns ``False`` when the deadline passed first; whatever was not yet
    deleted stays on disk.
    """

    for current, dirnames, filenames in os.walk(path, topdown=False):
        for name in filenames:
            if expired():
                return False
            _unlink(os.path.join(current, name))
        for name in dirnames:
            if expired():
                return False
            target = os.path.join(current, name)
            if os.path.islink(target):
                _unlink(target)
            else:
                os.rmdir(target)
    os.rmdir(path)
    return True


def _remove_entry(entry: os.DirEntry, expired: Callable[[], bool]) -> bool:
    if entry.is_dir(follow_symlinks=False):
        return _remove_tree(entry.path, expired)
    os.unlink(entry.path)
    return True


def wipe_volume(
    path: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    monotonic: Callable[[], float] = time.monotonic,
) -> WipeResult:
    """Delete everything below ``path``, dotfiles included.

    The directory itself is kept so mount points, ownership and permissions
    survive. A missing or already-empty directory is a no-op. Every entry is
    attempted before :class:`WipeError` is raised for the ones that failed or
    were left behind when the deadline passed.
    """

    result = WipeResult(path=path)
    if not os.path.isdir(path) or os.path.islink(path):
        logger.debug("Nothing to wipe at %s", path)
        return result

    deadline = monotonic() + max(timeout_seconds, 0.0)

    def expired() -> bool:
        return monotonic() > deadline

    timed_out = False
    try:
        with os.scandir(path) as entries:
            for entry in entries:
                if expired():
                    timed_out = True
                    result.failures.append(entry.name)
                    continue
                try:
                    completed = _remove_entry(entry, expired)
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    logger.warning("Could not remove %s: %s", entry.path, exc)
                    result.failures.append(entry.name)
                    continue
                if not completed:
                    timed_out = True
                    result.failures.append(entry.name)
                    continue
                result.removed += 1
    except FileNotFoundError:
        return result
    except OSError as exc:
        raise WipeError(
            message=f"Cannot read {path}: {exc.strerror or exc}",
            detail={"path": path},
        ) from exc

    if result.failures:
        reason = "timed out" if timed_out else "failed"
        raise WipeError(
            message=f"Emptying {path} {reason}; {len(result.failures)} entries left",
            detail={"path": path, "removed": result.removed, "remaining": len(result.failures)},
        )
    return result


__all__ = ["WipeResult", "wipe_volume"]
