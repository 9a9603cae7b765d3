"""Read-only FAT file system.

See https://en.wikipedia.org/wiki/Design_of_the_FAT_file_system.
See https://www.cs.fsu.edu/~cop4610t/assignments/project3/spec/fatspec.pdf.
"""

from .base import FatType
from .directory import DosDateTime
from .filesystem import Dir, DirEntry, FileSystem

__all__ = ["FatType", "DosDateTime", "FileSystem", "Dir", "DirEntry"]
