"""Classes used across the ``fat`` package."""

from __future__ import annotations

from enum import Enum

__all__ = ['FatType', 'fat_type_for']


MAX_CLUSTERS_FAT_12 = 4084
MAX_CLUSTERS_FAT_16 = 65524


class FatType(Enum):
    """FAT file system type; the value is the width of a FAT entry in bits."""

    FAT_12 = 12
    FAT_16 = 16
    FAT_32 = 32


def fat_type_for(total_clusters: int) -> FatType:
    """Return the ``FatType`` determined by the count of data clusters."""
    if total_clusters <= MAX_CLUSTERS_FAT_12:
        return FatType.FAT_12
    if total_clusters <= MAX_CLUSTERS_FAT_16:
        return FatType.FAT_16
    return FatType.FAT_32
