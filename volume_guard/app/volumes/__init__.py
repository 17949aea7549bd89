"""Filesystem operations on tenant volumes."""

from .enumerator import DEFAULT_RESERVED_PREFIXES, list_volumes
from .sizing import BYTES_PER_GB, SizeEstimate, bytes_to_gb, estimate_volume_size, measure_volume_bytes
from .wiper import WipeResult, wipe_volume

__all__ = [
    "BYTES_PER_GB",
    "DEFAULT_RESERVED_PREFIXES",
    "SizeEstimate",
    "WipeResult",
    "bytes_to_gb",
    "estimate_volume_size",
    "list_volumes",
    "measure_volume_bytes",
    "wipe_volume",
]
