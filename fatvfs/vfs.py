"""Read-only ``StorageBackend`` serving the contents of a FAT image."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import wraps
from io import BytesIO
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, Iterator, NoReturn, TypeVar

from typing_extensions import Concatenate, ParamSpec

from .backend import Fileinfo
from .base import ErrorKind, StorageError
from .fat.directory import DosDateTime
from .fat.filesystem import FileSystem
from .path import is_root
from .resolver import resolve
from .timestamp import fat_datetime

if TYPE_CHECKING:
    from .fat.filesystem import Dir, DirEntry
    from .typing import StrPath

__all__ = ['Vfs', 'Meta']


log = logging.getLogger(__name__)


ROOT_MODIFIED = DosDateTime(1980, 1, 1, 0, 0, 0)
"""Modification time reported for the root directory, which has no entry."""

# Typing
P = ParamSpec('P')
R = TypeVar('R')


@dataclass(frozen=True)
class Meta:
    """Metadata of a file or directory found on a FAT file system.

    The modification time is kept as stored on disk and only converted when
    ``modified()`` is called, so an invalid timestamp only affects this record.
    """

    directory: bool
    size: int
    last_modified: DosDateTime

    @classmethod
    def from_dir_entry(cls, entry: DirEntry) -> Meta:
        return cls(entry.is_dir(), entry.len(), entry.modified())

    def len(self) -> int:
        return self.size

    def is_dir(self) -> bool:
        return self.directory

    def is_file(self) -> bool:
        return not self.directory

    # noinspection PyMethodMayBeStatic
    def is_symlink(self) -> bool:
        return False

    def modified(self) -> datetime:
        """Time of last modification in UTC.

        Raises ``InvalidTimestamp`` if the date stored on disk lies before
        1980-01-01 or has a month or day out of range.
        """
        return fat_datetime(self.last_modified)

    # noinspection PyMethodMayBeStatic
    def uid(self) -> int:
        return 0

    # noinspection PyMethodMayBeStatic
    def gid(self) -> int:
        return 0


def _permission_denied(
    method: Callable[Concatenate[Vfs, P], R],
) -> Callable[Concatenate[Vfs, P], NoReturn]:
    """Replace ``method`` with one refusing to modify the storage, without looking
    at its arguments.
    """

    @wraps(method)
    def denied_wrapper(self: Vfs, *args: P.args, **kwargs: P.kwargs) -> NoReturn:
        log.debug(f'Refused {method.__name__}() on read-only image {self}')
        raise StorageError(
            ErrorKind.PERMISSION_DENIED, 'FAT image is served read-only'
        )

    return denied_wrapper


class Vfs:
    """Read-only access to the FAT file system stored in an image file or block
    device, implementing the ``StorageBackend`` protocol.

    No parsed state is kept between calls: every operation opens the image, does
    its work and closes the image again. A ``Vfs`` can therefore be shared between
    threads.

    The ``user`` argument of the operations is ignored.
    """

    def __init__(self, image_path: StrPath, *, vfat: bool = True):
        self._image_path = os.fspath(image_path)
        self._vfat = vfat

    @property
    def image_path(self) -> str:
        return self._image_path

    @contextmanager
    def _open_fs(self) -> Iterator[FileSystem]:
        try:
            fs = FileSystem.open(self._image_path, vfat=self._vfat)
        except (OSError, ValueError) as e:
            raise StorageError(
                ErrorKind.LOCAL_ERROR, f'Cannot open FAT image: {e}', self._image_path
            ) from e
        with fs:
            yield fs

    def metadata(self, user: Any, path: StrPath) -> Meta:
        """Return the metadata of the file or directory at ``path``.

        The root directory has no directory entry; it is reported as an empty
        directory last modified at 1980-01-01T00:00:00Z.
        """
        with self._open_fs() as fs:
            if is_root(path):
                return Meta(True, 0, ROOT_MODIFIED)
            return Meta.from_dir_entry(resolve(fs, path))

    def list(self, user: Any, path: StrPath) -> list[Fileinfo[Meta]]:
        """Return name and metadata of every entry of the directory at ``path`` in
        on-disk order.
        """
        with self._open_fs() as fs:
            directory = self._find_dir(fs, path)
            try:
                return [
                    Fileinfo(child.name, Meta.from_dir_entry(child))
                    for child in directory.iter()
                ]
            except (ValueError, OSError) as e:
                log.warning(f'Failed to list {path!r}: {e}')
                raise StorageError(
                    ErrorKind.PERMANENT_FILE_NOT_AVAILABLE, 'Malformed directory', path
                ) from e

    def get(self, user: Any, path: StrPath, start_pos: int = 0) -> BinaryIO:
        """Return a stream of the content of the file at ``path``, starting at byte
        ``start_pos``.

        The content is read completely before this method returns, so the memory
        used is proportional to the size of the file.
        """
        with self._open_fs() as fs:
            entry = resolve(fs, path)
            if entry.is_dir():
                raise StorageError(
                    ErrorKind.FILE_NAME_NOT_ALLOWED, 'Is a directory', path
                )

            try:
                file = entry.to_file()
            except ValueError as e:
                raise StorageError(
                    ErrorKind.PERMANENT_FILE_NOT_AVAILABLE, f'Read error: {e}', path
                ) from e

            with file:
                if not 0 <= start_pos <= file.size:
                    raise StorageError(
                        ErrorKind.PERMANENT_FILE_NOT_AVAILABLE,
                        f'Cannot seek to {start_pos}, file size is {file.size}',
                        path,
                    )
                try:
                    file.seek(start_pos)
                    data = file.read()
                except (ValueError, OSError) as e:
                    raise StorageError(
                        ErrorKind.PERMANENT_FILE_NOT_AVAILABLE, f'Read error: {e}', path
                    ) from e

        log.debug(f'Read {len(data)} bytes from {path!r} at offset {start_pos}')
        return BytesIO(data)

    def cwd(self, user: Any, path: StrPath) -> None:
        """Check that ``path`` is a directory one can change into.

        Nothing is remembered; the root directory is accepted without opening the
        image.
        """
        if is_root(path):
            return
        with self._open_fs() as fs:
            self._find_dir(fs, path)

    @_permission_denied
    def put(
        self, user: Any, input_: BinaryIO, path: StrPath, start_pos: int = 0
    ) -> int:
        ...

    @_permission_denied
    def delete(self, user: Any, path: StrPath) -> None:
        ...

    @_permission_denied
    def mkd(self, user: Any, path: StrPath) -> None:
        ...

    @_permission_denied
    def rename(self, user: Any, from_: StrPath, to: StrPath) -> None:
        ...

    @_permission_denied
    def rmd(self, user: Any, path: StrPath) -> None:
        ...

    # noinspection PyMethodMayBeStatic
    def _find_dir(self, fs: FileSystem, path: StrPath) -> Dir:
        if is_root(path):
            return fs.root_dir()
        entry = resolve(fs, path)
        if not entry.is_dir():
            raise StorageError(ErrorKind.FILE_NAME_NOT_ALLOWED, 'Not a directory', path)
        return entry.to_dir()

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self._image_path!r})'
