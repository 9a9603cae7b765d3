"""File allocation table reader."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator

from ..base import ValidationError
from .base import FatType

if TYPE_CHECKING:
    from ..disk import Disk
    from .reserved import BootSector

__all__ = ['Fat']


ENTRY_MASK = {
    FatType.FAT_12: 0x0FFF,
    FatType.FAT_16: 0xFFFF,
    FatType.FAT_32: 0x0FFFFFFF,  # upper 4 bits are reserved
}
BAD_CLUSTER = {
    FatType.FAT_12: 0x0FF7,
    FatType.FAT_16: 0xFFF7,
    FatType.FAT_32: 0x0FFFFFF7,
}
CACHED_SECTORS = 16


class Fat:
    """One copy of the file allocation table of a volume.

    Sectors of the table are read from the disk when an entry in them is first
    looked up. ``copy`` selects the FAT to read, the first one by default.
    """

    def __init__(self, disk: Disk, boot_sector: BootSector, copy: int = 0):
        if not 0 <= copy < boot_sector.fats:
            raise ValueError(
                f'FAT copy {copy} does not exist, volume has {boot_sector.fats}'
            )

        fat_type = boot_sector.fat_type
        entries = boot_sector.total_clusters + 2
        if entries - 1 >= BAD_CLUSTER[fat_type]:
            raise ValidationError(
                f'{boot_sector.total_clusters} clusters are too many '
                f'for {fat_type.name}'
            )
        needed = -(-entries * fat_type.value // 8)
        available = boot_sector.sectors_per_fat * boot_sector.sector_size
        if available < needed:
            raise ValidationError(
                f'FAT of {available} bytes cannot map {entries} clusters '
                f'({needed} bytes needed)'
            )

        self._disk = disk
        self._type = fat_type
        self._entries = entries
        self._copy = copy
        self._sector_size = boot_sector.sector_size
        self._start = (
            boot_sector.fat_start + copy * boot_sector.sectors_per_fat
        ) * boot_sector.sector_size
        self._cache: dict[int, bytes] = {}

        if self[0] & 0xFF != boot_sector.media:
            raise ValidationError(
                f'Media descriptor in FAT ({self[0] & 0xFF:#04x}) differs from BPB '
                f'({boot_sector.media:#04x})'
            )

    def _sector(self, index: int) -> bytes:
        data = self._cache.get(index)
        if data is None:
            if len(self._cache) >= CACHED_SECTORS:
                self._cache.clear()
            pos = self._start + index * self._sector_size
            data = self._cache[index] = self._disk.read_at(pos, self._sector_size)
        return data

    def _read(self, offset: int, count: int) -> bytes:
        """Read ``count`` bytes at byte ``offset`` of the table.

        FAT12 entries may span two sectors.
        """
        index, start = divmod(offset, self._sector_size)
        data = self._sector(index)[start : start + count]
        if len(data) < count:
            data += self._sector(index + 1)[: count - len(data)]
        return data

    def __getitem__(self, cluster: int) -> int:
        """Value of the FAT entry of ``cluster``."""
        if not 0 <= cluster < self._entries:
            raise IndexError(
                f'Cluster {cluster} outside of FAT (0, {self._entries - 1})'
            )

        if self._type is FatType.FAT_12:
            value = int.from_bytes(self._read(cluster + cluster // 2, 2), 'little')
            return value >> 4 if cluster & 1 else value & 0x0FFF

        width = self._type.value // 8
        value = int.from_bytes(self._read(cluster * width, width), 'little')
        return value & ENTRY_MASK[self._type]

    def __len__(self) -> int:
        """Number of FAT entries, including the two reserved ones."""
        return self._entries

    def get_chain(self, start: int) -> Iterator[int]:
        """Yield the clusters of the chain beginning at ``start``.

        A ``start`` of 0 is the empty chain. Raises ``ValidationError`` if the chain
        leaves the data region or loops.
        """
        visited: set[int] = set()
        cluster = start
        while 1 < cluster <= BAD_CLUSTER[self._type]:
            if cluster >= self._entries:
                raise ValidationError(
                    f'Cluster {cluster} out of data region (2, {self._entries - 1})'
                )
            if cluster in visited:
                raise ValidationError(f'Cluster chain loops back to cluster {cluster}')
            visited.add(cluster)
            yield cluster
            cluster = self[cluster]

    @property
    def fat_type(self) -> FatType:
        return self._type

    @property
    def copy(self) -> int:
        """Index of the FAT copy being read."""
        return self._copy
