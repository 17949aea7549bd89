"""Discovery of tenant volume directories under the volumes root."""
from __future__ import annotations

import logging
import os
from typing import Iterable, Set

from ..errors import EnumerationError

logger = logging.getLogger(__name__)

DEFAULT_RESERVED_PREFIXES = (".sftp",)


def _is_reserved(name: str, reserved_prefixes: Iterable[str]) -> bool:
    return any(name.startswith(prefix) for prefix in reserved_prefixes if prefix)


def list_volumes(
    root: str,
    *,
    reserved_prefixes: Iterable[str] = DEFAULT_RESERVED_PREFIXES,
) -> Set[str]:
    """Return the names of the immediate subdirectories of ``root``.

    Entries whose name starts with one of ``reserved_prefixes`` are skipped
    (the panel keeps its SFTP control data next to the volumes). Symlinks are
    not followed.
    """

    prefixes = tuple(reserved_prefixes)
    volumes: Set[str] = set()
    try:
        with os.scandir(root) as entries:
            for entry in entries:
                try:
                    if not entry.is_dir(follow_symlinks=False):
                        continue
                except OSError:
                    continue
                if _is_reserved(entry.name, prefixes):
                    continue
                volumes.add(entry.name)
    except OSError as exc:
        raise EnumerationError(
            message=f"Error reading volumes directory {root}: {exc.strerror or exc}",
            detail={"root": root},
        ) from exc

    logger.debug("Found %d volume(s) under %s", len(volumes), root)
    return volumes


__all__ = ["DEFAULT_RESERVED_PREFIXES", "list_volumes"]
