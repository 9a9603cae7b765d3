"""Resolution of logical paths to directory entries."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import ErrorKind, StorageError
from .fat.directory import entry_match
from .path import join_components, normalize_path

if TYPE_CHECKING:
    from .fat.filesystem import Dir, DirEntry, FileSystem
    from .typing import StrPath

__all__ = ['resolve', 'find_child']


log = logging.getLogger(__name__)


def find_child(fs: FileSystem, directory: Dir, name: str) -> DirEntry | None:
    """Return the first entry of ``directory`` matching ``name`` ignoring case, or
    ``None`` if there is none.

    Read errors caused by a malformed volume are raised as ``StorageError`` of kind
    ``PERMANENT_FILE_NOT_AVAILABLE``.
    """
    try:
        for child in directory.iter():
            if entry_match(name, child.entry, vfat=fs.vfat):
                return child
    except (ValueError, OSError) as e:
        log.warning(f'Failed to read directory while looking up {name!r}: {e}')
        raise StorageError(
            ErrorKind.PERMANENT_FILE_NOT_AVAILABLE, 'Malformed directory', name
        ) from e
    return None


def resolve(fs: FileSystem, path: StrPath) -> DirEntry:
    """Find the directory entry at the logical path ``path``.

    The root directory has no directory entry, so passing a path which normalizes
    to the root raises ``StorageError`` of kind ``FILE_NAME_NOT_ALLOWED``. So does
    a path using a file as an intermediate component. A path which does not exist
    raises ``StorageError`` of kind ``PERMANENT_FILE_NOT_AVAILABLE``.
    """
    components = normalize_path(path)
    if not components:
        raise StorageError(
            ErrorKind.FILE_NAME_NOT_ALLOWED, 'Root directory has no entry', path
        )

    directory = fs.root_dir()
    *parents, last = components

    for depth, part in enumerate(parents, 1):
        child = find_child(fs, directory, part)
        if child is None:
            raise StorageError(ErrorKind.PERMANENT_FILE_NOT_AVAILABLE, path=path)
        if not child.is_dir():
            walked = join_components(components[:depth])
            raise StorageError(
                ErrorKind.FILE_NAME_NOT_ALLOWED, f'{walked} is not a directory', path
            )
        directory = child.to_dir()

    entry = find_child(fs, directory, last)
    if entry is None:
        raise StorageError(ErrorKind.PERMANENT_FILE_NOT_AVAILABLE, path=path)

    log.debug(f'Resolved {path!r} to {entry.entry!r}')
    return entry
