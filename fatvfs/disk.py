"""Read-only access to the image file or block device holding a FAT volume."""

from __future__ import annotations

import logging
import os
import stat
from types import TracebackType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .typing import StrPath

__all__ = ["Disk"]


log = logging.getLogger(__name__)


def _pread(fd: int, size: int, pos: int) -> bytes:
    if hasattr(os, "pread"):
        return os.pread(fd, size, pos)
    os.lseek(fd, pos, os.SEEK_SET)  # Windows
    return os.read(fd, size)


def _measure(fd: int) -> tuple[int, bool]:
    """Return the size in bytes of the file behind ``fd`` and whether it is a
    block device.
    """
    info = os.fstat(fd)
    if stat.S_ISREG(info.st_mode):
        return info.st_size, False
    if stat.S_ISBLK(info.st_mode):
        # st_size is 0 for block devices
        return os.lseek(fd, 0, os.SEEK_END), True
    raise ValueError("Disk must be a regular file or a block device")


class Disk:
    """Image file or block device opened for reading.

    Create instances with ``Disk.open()``. Reads are positional, so several
    streams may read from one disk without interfering.
    """

    def __init__(self, fd: int, path: str, size: int, *, block_device: bool = False):
        self._fd: int | None = fd
        self._path = path
        self._size = size
        self._block_device = block_device
        log.info(f"Opened disk {self} ({size} bytes)")

    @classmethod
    def open(cls, path: StrPath) -> Disk:
        fd = os.open(path, os.O_RDONLY | getattr(os, "O_BINARY", 0))
        try:
            size, block_device = _measure(fd)
        except BaseException:
            os.close(fd)
            raise
        return cls(fd, os.fspath(path), size, block_device=block_device)

    def read_at(self, pos: int, size: int) -> bytes:
        """Read exactly ``size`` bytes beginning at byte ``pos``."""
        if self._fd is None:
            raise ValueError("Disk is closed")
        if pos < 0 or size < 0:
            raise ValueError(f"Negative position or size ({pos}, {size})")
        end = pos + size
        if end > self._size:
            raise ValueError(
                f"Bytes {pos} to {end} are out of disk bounds ({self._size} bytes)"
            )

        data = b""
        while len(data) < size:
            chunk = _pread(self._fd, size - len(data), pos + len(data))
            if not chunk:
                raise OSError(f"Unexpected end of disk at byte {pos + len(data)}")
            data += chunk
        return data

    def close(self) -> None:
        """Close the disk; closing it again does nothing."""
        if self._fd is not None:
            fd, self._fd = self._fd, None
            os.close(fd)
            log.debug(f"Closed disk {self}")

    @property
    def closed(self) -> bool:
        return self._fd is None

    @property
    def path(self) -> str:
        return self._path

    @property
    def size(self) -> int:
        return self._size

    @property
    def block_device(self) -> bool:
        return self._block_device

    def __enter__(self) -> Disk:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._path!r})"
