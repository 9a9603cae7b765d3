"""Read-only FAT volume handle."""

from __future__ import annotations

import logging
import os
from errno import EISDIR, ENOTDIR
from io import BufferedReader
from types import TracebackType
from typing import TYPE_CHECKING, Iterator

from ..disk import Disk
from .base import FatType
from .directory import RECORD_SIZE, DosDateTime, Entry, iter_entries
from .fat import Fat
from .io import DataIO, RootdirIO
from .reserved import BootSector

if TYPE_CHECKING:
    from ..typing import StrPath

__all__ = ["FileSystem", "Dir", "DirEntry"]


log = logging.getLogger(__name__)


MIN_VOLUME_SECTORS = 4  # boot sector, FAT, root directory and one cluster


class FileSystem:
    """Read-only FAT file system residing on a disk.

    Do not use ``__init__`` directly, use ``FileSystem.open()`` or
    ``FileSystem.from_disk()`` instead. Closing the file system closes the disk.
    """

    def __init__(
        self, disk: Disk, boot_sector: BootSector, fat: Fat, *, vfat: bool = True
    ):
        self._disk = disk
        self._boot_sector = boot_sector
        self._fat = fat
        self._vfat = vfat
        self._fat_32 = boot_sector.fat_type is FatType.FAT_32

    @classmethod
    def open(cls, path: StrPath, *, vfat: bool = True) -> FileSystem:
        """Open the FAT file system stored in the image file or block device at
        ``path``.
        """
        disk = Disk.open(path)
        try:
            return cls.from_disk(disk, vfat=vfat)
        except BaseException:
            disk.close()
            raise

    @classmethod
    def from_disk(cls, disk: Disk, *, vfat: bool = True) -> FileSystem:
        """Parse the FAT file system starting at byte 0 of ``disk``."""
        boot_sector = BootSector.from_bytes(disk.read_at(0, BootSector.SIZE))
        boot_sector.check_fits(disk.size)
        if boot_sector.total_sectors < MIN_VOLUME_SECTORS:
            raise ValueError(f"Volume must span at least {MIN_VOLUME_SECTORS} sectors")

        fat = Fat(disk, boot_sector)
        bs = boot_sector
        log.debug(
            f"{disk} - {bs.fat_type.name} volume {bs.volume.label!r}, "
            f"{bs.total_clusters} clusters of {bs.cluster_bytes} bytes"
        )
        return cls(disk, boot_sector, fat, vfat=vfat)

    @property
    def disk(self) -> Disk:
        return self._disk

    @property
    def boot_sector(self) -> BootSector:
        return self._boot_sector

    @property
    def fat(self) -> Fat:
        return self._fat

    @property
    def type(self) -> FatType:
        """File system type."""
        return self._boot_sector.fat_type

    @property
    def vfat(self) -> bool:
        return self._vfat

    @property
    def fat_32(self) -> bool:
        return self._fat_32

    def root_dir(self) -> Dir:
        """Root directory of the file system."""
        return Dir(self)

    def _internal_io(self, entry: Entry = None) -> DataIO | RootdirIO:
        """Get a low-level file-like object for a file or a directory.

        If ``entry`` is ``None``, the root directory is used.
        """
        if not self._fat_32 and entry is None:
            return RootdirIO(self)
        return DataIO(self, entry)

    def close(self) -> None:
        self._disk.close()

    @property
    def closed(self) -> bool:
        return self._disk.closed

    def __enter__(self) -> FileSystem:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._disk}, type={self.type.name})"


class Dir:
    """Directory of a FAT file system; the root directory if ``entry`` is
    ``None``.
    """

    def __init__(self, fs: FileSystem, entry: Entry = None):
        self._fs = fs
        self._entry = entry

    def iter(self) -> Iterator[DirEntry]:
        """Yield the entries of the directory in on-disk order.

        Dot entries, deleted entries and the volume label are skipped.
        Raises ``ValidationError`` or ``ValueError`` if the directory table cannot
        be read.
        """
        if self._entry is not None and self._entry.cluster == 0:
            return  # empty directory

        with self._fs._internal_io(self._entry) as stream:
            with BufferedReader(stream, stream.unit_size) as reader:

                def bytes_gen() -> Iterator[bytes]:
                    while True:
                        b = reader.read(RECORD_SIZE)
                        if len(b) < RECORD_SIZE:
                            return
                        yield b

                for entry in iter_entries(
                    bytes_gen(), vfat=self._fs.vfat, fat_32=self._fs.fat_32
                ):
                    yield DirEntry(self._fs, entry)

    def __iter__(self) -> Iterator[DirEntry]:
        return self.iter()

    @property
    def is_root(self) -> bool:
        return self._entry is None


class DirEntry:
    """Directory entry found while iterating over a ``Dir``."""

    def __init__(self, fs: FileSystem, entry: Entry):
        self._fs = fs
        self._entry = entry

    @property
    def name(self) -> str:
        """Long filename if available, 8.3 filename otherwise."""
        return self._entry.filename

    @property
    def short_name(self) -> str:
        return self._entry.dos_filename

    @property
    def entry(self) -> Entry:
        return self._entry

    def is_dir(self) -> bool:
        return self._entry.is_directory

    def is_file(self) -> bool:
        return not self._entry.is_directory

    def len(self) -> int:
        """Size in bytes as stored in the directory entry."""
        return self._entry.size

    def modified(self) -> DosDateTime:
        """Unvalidated date and time of last modification."""
        return self._entry.last_modified

    def to_dir(self) -> Dir:
        if not self.is_dir():
            raise OSError(ENOTDIR, os.strerror(ENOTDIR), self.name)
        return Dir(self._fs, self._entry)

    def to_file(self) -> DataIO:
        """Open the file for reading; the caller closes the returned stream."""
        if self.is_dir():
            raise OSError(EISDIR, os.strerror(EISDIR), self.name)
        return DataIO(self._fs, self._entry)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"
