"""Exception classes and helper functions used across ``fatvfs``."""

from __future__ import annotations

import os
from enum import Enum
from errno import EACCES, EINVAL, EIO, ENOENT

__all__ = [
    'ValidationError',
    'ValidationWarning',
    'ErrorKind',
    'StorageError',
    'InvalidTimestamp',
    'is_power_of_two',
]


class ValidationError(ValueError):
    """Exception raised if an object representing a specific structure -- for example
    a boot sector or a directory entry -- cannot be created because the data to be
    parsed as the structure does not conform to the standard of the structure.
    """


class ValidationWarning(UserWarning):
    """Warning emitted if a value found in a structure does not conform to the
    standard of the structure but might still be usable.
    """


class ErrorKind(Enum):
    """Kind of failure reported by a storage backend."""

    PERMANENT_FILE_NOT_AVAILABLE = ENOENT
    FILE_NAME_NOT_ALLOWED = EINVAL
    PERMISSION_DENIED = EACCES
    LOCAL_ERROR = EIO

    @property
    def errno(self) -> int:
        return self.value


class StorageError(OSError):
    """Error raised by the operations of a storage backend.

    The ``errno`` of the ``OSError`` is derived from ``kind``, so callers only
    interested in ``OSError`` still see a meaningful error code.
    """

    def __init__(self, kind: ErrorKind, message: str = None, path: object = None):
        if message is None:
            message = os.strerror(kind.errno)
        if path is None:
            super().__init__(kind.errno, message)
        else:
            super().__init__(kind.errno, message, str(path))
        self.kind = kind


class InvalidTimestamp(StorageError):
    """Raised if a FAT timestamp cannot be represented as a point in time."""

    def __init__(self, message: str = 'Invalid FAT timestamp', path: object = None):
        super().__init__(ErrorKind.PERMANENT_FILE_NOT_AVAILABLE, message, path)


def is_power_of_two(value: int) -> bool:
    """Check if ``value`` is a power of two.

    ``value`` must be an ``int`` greater than zero.
    """
    if value <= 0:
        raise ValueError('Value must be greater than 0')
    return value & (value - 1) == 0
