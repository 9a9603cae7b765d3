"""Read-only storage backend serving the contents of FAT file system images.

Many concepts based on ``libunftp``'s storage back ends (see
https://github.com/bolcom/libunftp).
"""

from .base import ErrorKind, InvalidTimestamp, StorageError
from .vfs import Meta, Vfs

__all__ = ["Vfs", "Meta", "ErrorKind", "StorageError", "InvalidTimestamp"]
