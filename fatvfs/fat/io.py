"""Read-only streams over the regions of a FAT volume."""

from __future__ import annotations

from io import SEEK_CUR, SEEK_END, SEEK_SET, RawIOBase
from typing import TYPE_CHECKING

from ..base import ValidationError

if TYPE_CHECKING:
    from ..disk import Disk
    from .directory import Entry
    from .filesystem import FileSystem

__all__ = ['DataIO', 'RootdirIO']


class _VolumeIO(RawIOBase):
    """Seekable read-only stream of ``size`` bytes, stored on disk in units of
    ``unit_size`` bytes which need not be contiguous.
    """

    def __init__(self, disk: Disk, size: int, unit_size: int):
        super().__init__()
        self._disk = disk
        self._size = size
        self._unit_size = unit_size
        self._pos = 0

    def _unit_offset(self, unit: int) -> int:
        """Byte offset on the disk where unit number ``unit`` of the stream starts."""
        raise NotImplementedError

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError('I/O operation on closed file')

    def readinto(self, b: bytearray | memoryview) -> int:  # type: ignore[override]
        self._check_open()
        view = memoryview(b).cast('B')
        count = max(0, min(len(view), self._size - self._pos))

        done = 0
        while done < count:
            unit, skip = divmod(self._pos + done, self._unit_size)
            n = min(self._unit_size - skip, count - done)
            offset = self._unit_offset(unit) + skip
            view[done : done + n] = self._disk.read_at(offset, n)
            done += n

        self._pos += count
        return count

    def seek(self, offset: int, whence: int = SEEK_SET) -> int:
        self._check_open()
        if whence == SEEK_SET:
            if offset < 0:
                raise ValueError(f'Negative seek position {offset}')
            self._pos = offset
        elif whence == SEEK_CUR:
            self._pos = max(0, self._pos + offset)
        elif whence == SEEK_END:
            self._pos = max(0, self._size + offset)
        else:
            raise ValueError(f'Invalid whence ({whence})')
        return self._pos

    def tell(self) -> int:
        self._check_open()
        return self._pos

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    @property
    def size(self) -> int:
        """Length of the stream in bytes."""
        return self._size

    @property
    def unit_size(self) -> int:
        return self._unit_size


class DataIO(_VolumeIO):
    """Content of a file or directory, read along its cluster chain.

    The FAT32 root directory is read if ``entry`` is ``None``. Files are as long as
    their directory entry says, directories as long as their cluster chain.
    """

    def __init__(self, fs: FileSystem, entry: Entry = None):
        boot_sector = fs.boot_sector
        if entry is not None:
            start = entry.cluster
        elif boot_sector.root_cluster is not None:
            start = boot_sector.root_cluster
        else:
            raise ValueError('Root directory of FAT12/16 is not in data region')

        self._chain = list(fs.fat.get_chain(start))
        self._data_start = boot_sector.data_start * boot_sector.sector_size
        cluster_bytes = boot_sector.cluster_bytes
        chain_bytes = len(self._chain) * cluster_bytes

        if entry is None or entry.is_directory:
            size = chain_bytes
        else:
            size = entry.size
            if size > chain_bytes:
                raise ValidationError(
                    f'Cluster chain of {entry.filename!r} holds {chain_bytes} bytes, '
                    f'but its size is {size} bytes'
                )
        super().__init__(fs.disk, size, cluster_bytes)

    def _unit_offset(self, unit: int) -> int:
        return self._data_start + (self._chain[unit] - 2) * self._unit_size

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(chain={self._chain}, size={self._size})'


class RootdirIO(_VolumeIO):
    """Fixed root directory region of FAT12 and FAT16 volumes."""

    def __init__(self, fs: FileSystem):
        boot_sector = fs.boot_sector
        sector_size = boot_sector.sector_size
        self._start = boot_sector.root_dir_start * sector_size
        super().__init__(
            fs.disk, boot_sector.root_dir_sectors * sector_size, sector_size
        )

    def _unit_offset(self, unit: int) -> int:
        return self._start + unit * self._unit_size

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(size={self._size})'
