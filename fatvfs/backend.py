"""``StorageBackend`` protocol and related generalized classes.

A file-serving front end (for example an FTP server) talks to its storage through
this contract. Every operation receives the identity of the calling user, which a
backend is free to ignore, and a logical slash-separated path.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import (
    TYPE_CHECKING,
    Any,
    BinaryIO,
    Generic,
    Protocol,
    TypeVar,
    runtime_checkable,
)

if TYPE_CHECKING:
    from .typing import StrPath

__all__ = ['Metadata', 'Fileinfo', 'StorageBackend']


M = TypeVar('M', bound='Metadata')


@runtime_checkable
class Metadata(Protocol):
    """Metadata of a file or directory as presented to a client."""

    def len(self) -> int:
        ...

    def is_dir(self) -> bool:
        ...

    def is_file(self) -> bool:
        ...

    def is_symlink(self) -> bool:
        ...

    def modified(self) -> datetime:
        """Time of last modification.

        Raises ``StorageError`` if the stored time cannot be represented.
        """
        ...

    def uid(self) -> int:
        ...

    def gid(self) -> int:
        ...


@dataclass(frozen=True)
class Fileinfo(Generic[M]):
    """Name and metadata of a directory entry returned by
    ``StorageBackend.list()``.
    """

    path: str
    metadata: M


@runtime_checkable
class StorageBackend(Protocol[M]):
    """Storage accessed by a file-serving front end.

    Failures are reported by raising ``fatvfs.base.StorageError``.
    """

    def metadata(self, user: Any, path: StrPath) -> M:
        ...

    def list(self, user: Any, path: StrPath) -> list[Fileinfo[M]]:
        ...

    def get(self, user: Any, path: StrPath, start_pos: int = 0) -> BinaryIO:
        ...

    def put(
        self, user: Any, input_: BinaryIO, path: StrPath, start_pos: int = 0
    ) -> int:
        ...

    def delete(self, user: Any, path: StrPath) -> None:
        ...

    def mkd(self, user: Any, path: StrPath) -> None:
        ...

    def rename(self, user: Any, from_: StrPath, to: StrPath) -> None:
        ...

    def rmd(self, user: Any, path: StrPath) -> None:
        ...

    def cwd(self, user: Any, path: StrPath) -> None:
        ...
