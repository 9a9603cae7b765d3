"""Directory tables of FAT volumes.

A directory table is a sequence of 32-byte records. Every file and subdirectory
is described by one short (8.3) record, which may be preceded by long name
records holding its VFAT name.
"""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass
from enum import Enum, Flag, auto
from typing import Any, Iterable, Iterator, NamedTuple, Sequence

from typing_extensions import Annotated

from ..base import ValidationError
from ..bytestruct import ByteStruct

__all__ = [
    'RECORD_SIZE',
    'Attributes',
    'RecordKind',
    'DosDateTime',
    'ShortRecord',
    'LongNameRecord',
    'Entry',
    'short_name_checksum',
    'decode_long_name',
    'entry_match',
    'iter_entries',
]


log = logging.getLogger(__name__)


RECORD_SIZE = 32
DOS_EPOCH_YEAR = 1980

DOS_FILENAME_OEM_ENCODING = 'cp850'
"""Code page short names are decoded with.

Bytes >= 0x80 in short names depend on the code page of the system which wrote
them and that is not recorded on the volume. Only single-byte code pages make
sense here.
"""

ESCAPED_E5 = 0x05  # first byte of a short name that really starts with 0xE5
NT_NAME_LOWER = 0x08
NT_EXT_LOWER = 0x10

LONG_NAME_LAST = 0x40
LONG_NAME_INDEX_MASK = 0x1F
MAX_LONG_NAME_RECORDS = 20
LONG_NAME_ATTR_MASK = 0x3F  # device and reserved bits are ignored

_ASCII_UPPER = str.maketrans(string.ascii_lowercase, string.ascii_uppercase)


class Attributes(Flag):
    """Attribute byte of a short record."""

    READ_ONLY = 0x01
    HIDDEN = 0x02
    SYSTEM = 0x04
    VOLUME_LABEL = 0x08
    SUBDIRECTORY = 0x10
    ARCHIVE = 0x20
    DEVICE = 0x40
    RESERVED = 0x80

    LONG_NAME = READ_ONLY | HIDDEN | SYSTEM | VOLUME_LABEL


class RecordKind(Enum):
    """What a record of a directory table describes."""

    END = auto()  # no records in use follow
    DELETED = auto()
    DOT = auto()  # '.' and '..'
    LONG_NAME = auto()
    VOLUME_LABEL = auto()
    FILE = auto()  # file or subdirectory


class DosDateTime(NamedTuple):
    """Date and time as stored in a directory record, unpacked into its fields.

    The fields are not validated: a corrupt record may well carry a month of 0 or
    a day of 31 in February.
    """

    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int

    @classmethod
    def unpack(cls, date: int, time: int = 0) -> DosDateTime:
        """Unpack the packed DOS ``date`` and ``time`` values.

        Seconds are stored with a resolution of two seconds.
        """
        return cls(
            DOS_EPOCH_YEAR + (date >> 9),
            (date >> 5) & 0x0F,
            date & 0x1F,
            time >> 11,
            (time >> 5) & 0x3F,
            (time & 0x1F) * 2,
        )

    def pack(self) -> tuple[int, int]:
        """Return the packed DOS ``(date, time)`` values."""
        date = (self.year - DOS_EPOCH_YEAR) << 9 | self.month << 5 | self.day
        time = self.hour << 11 | self.minute << 5 | self.second // 2
        return date, time


def _decode_oem(raw: bytes) -> str:
    return raw.rstrip(b' ').decode(DOS_FILENAME_OEM_ENCODING, errors='replace')


def _join_name(base: str, ext: str) -> str:
    return f'{base}.{ext}' if ext else base


def _is_long_name(attr: int) -> bool:
    return attr & LONG_NAME_ATTR_MASK == Attributes.LONG_NAME.value


def short_name_checksum(raw: bytes) -> int:
    """Checksum of the 11-byte packed short name ``raw``.

    Every long name record repeats the checksum of the short name it belongs to.
    """
    total = 0
    for byte in raw:
        total = (((total & 1) << 7) + (total >> 1) + byte) & 0xFF
    return total


@dataclass(frozen=True)
class ShortRecord(ByteStruct):
    """Short (8.3) directory record."""

    name: Annotated[bytes, 8]
    ext: Annotated[bytes, 3]
    attr: Annotated[int, 1]
    nt_case: Annotated[int, 1]
    ctime_tenth: Annotated[int, 1]
    ctime: Annotated[int, 2]
    cdate: Annotated[int, 2]
    adate: Annotated[int, 2]
    cluster_high: Annotated[int, 2]
    mtime: Annotated[int, 2]
    mdate: Annotated[int, 2]
    cluster_low: Annotated[int, 2]
    size: Annotated[int, 4]

    @property
    def attributes(self) -> Attributes:
        return Attributes(self.attr)

    @property
    def kind(self) -> RecordKind:
        first = self.name[0]
        if first == 0x00:
            return RecordKind.END
        if first == 0xE5:
            return RecordKind.DELETED
        if first == 0x2E:
            return RecordKind.DOT
        if _is_long_name(self.attr):
            return RecordKind.LONG_NAME
        if Attributes.VOLUME_LABEL in self.attributes:
            return RecordKind.VOLUME_LABEL
        return RecordKind.FILE

    @property
    def short_name(self) -> str:
        """Name as stored, ``NAME.EXT`` or ``NAME`` without extension."""
        name = self.name
        if name[0] == ESCAPED_E5:
            name = b'\xE5' + name[1:]
        return _join_name(_decode_oem(name), _decode_oem(self.ext))

    def display_name(self, *, vfat: bool) -> str:
        """Short name with the lower case flags set by Windows NT applied if
        ``vfat`` is ``True``.
        """
        if not vfat:
            return self.short_name
        base, _, ext = self.short_name.partition('.')
        if self.nt_case & NT_NAME_LOWER:
            base = base.lower()
        if self.nt_case & NT_EXT_LOWER:
            ext = ext.lower()
        return _join_name(base, ext)

    def cluster(self, *, fat_32: bool) -> int:
        """First cluster; the high word only counts on FAT32."""
        if fat_32:
            return self.cluster_high << 16 | self.cluster_low
        return self.cluster_low

    @property
    def modified(self) -> DosDateTime:
        return DosDateTime.unpack(self.mdate, self.mtime)

    @property
    def checksum(self) -> int:
        return short_name_checksum(self.name + self.ext)


@dataclass(frozen=True)
class LongNameRecord(ByteStruct):
    """VFAT long name record holding 13 UTF-16 code units of a long name."""

    order: Annotated[int, 1]
    chars_1: Annotated[bytes, 10]
    attr: Annotated[int, 1]
    lfn_type: Annotated[int, 1]
    checksum: Annotated[int, 1]
    chars_2: Annotated[bytes, 12]
    first_cluster: Annotated[int, 2]
    chars_3: Annotated[bytes, 4]

    def validate(self) -> None:
        if not _is_long_name(self.attr):
            raise ValidationError(f'Attributes {self.attr:#04x} mark no long name')
        if not 1 <= self.index <= MAX_LONG_NAME_RECORDS:
            raise ValidationError(f'Long name record index {self.index} out of range')
        if self.lfn_type != 0:
            raise ValidationError(f'Unknown long name record type {self.lfn_type}')
        if self.first_cluster != 0:
            raise ValidationError('Cluster field of long name record must be 0')

    @property
    def last(self) -> bool:
        """Whether this record holds the end of the name; stored first on disk."""
        return bool(self.order & LONG_NAME_LAST)

    @property
    def index(self) -> int:
        """Position of the record within the name, starting at 1."""
        return self.order & LONG_NAME_INDEX_MASK

    @property
    def chars(self) -> bytes:
        return self.chars_1 + self.chars_2 + self.chars_3


def decode_long_name(records: Sequence[LongNameRecord], short: ShortRecord) -> str:
    """Assemble the long name from ``records`` in disk order.

    Raises ``ValidationError`` if the records do not form a complete name
    belonging to ``short``.
    """
    if len(records) > MAX_LONG_NAME_RECORDS:
        raise ValidationError(f'{len(records)} long name records for one name')
    if not records[0].last:
        raise ValidationError('Long name does not start with its last record')
    indices = [record.index for record in records]
    if indices != list(range(len(records), 0, -1)):
        raise ValidationError(f'Long name records out of order: {indices}')
    if any(record.checksum != short.checksum for record in records):
        # the short record was renamed by a system without VFAT support
        raise ValidationError(f'Checksum of long name does not match {short.name!r}')

    raw = b''.join(record.chars for record in reversed(records))
    return raw.decode('utf-16le', errors='replace').split('\x00', 1)[0]


class _LongNameCollector:
    """Long name records seen since the last record which was no long name."""

    def __init__(self) -> None:
        self._records: list[LongNameRecord] = []

    def add(self, record: LongNameRecord) -> None:
        if record.last:
            self._records.clear()
        self._records.append(record)

    def reset(self) -> None:
        self._records.clear()

    def take(self, short: ShortRecord) -> str | None:
        """Return the long name of ``short``, or ``None`` if it has no usable one."""
        records, self._records = self._records, []
        if not records:
            return None
        try:
            return decode_long_name(records, short)
        except ValidationError as e:
            log.warning(f'Discarded long name of {short.short_name!r}: {e}')
            return None


class Entry:
    """File or subdirectory: its short record and, with VFAT support, its long
    name.
    """

    def __init__(
        self,
        record: ShortRecord,
        long_name: str = None,
        *,
        vfat: bool,
        fat_32: bool,
    ):
        if record.kind is not RecordKind.FILE:
            raise ValueError(f'{record.kind.name} record is not a file or directory')
        if long_name is not None and not vfat:
            raise ValueError('Long name passed but VFAT support is disabled')
        self._record = record
        self._long_name = long_name
        self._vfat = vfat
        self._fat_32 = fat_32

    @property
    def record(self) -> ShortRecord:
        return self._record

    @property
    def long_name(self) -> str | None:
        return self._long_name

    @property
    def filename(self) -> str:
        """Long name if there is one, short name otherwise."""
        if self._long_name is not None:
            return self._long_name
        return self._record.display_name(vfat=self._vfat)

    @property
    def dos_filename(self) -> str:
        return self._record.short_name

    @property
    def cluster(self) -> int:
        return self._record.cluster(fat_32=self._fat_32)

    @property
    def attributes(self) -> Attributes:
        return self._record.attributes

    @property
    def is_directory(self) -> bool:
        return Attributes.SUBDIRECTORY in self.attributes

    @property
    def last_modified(self) -> DosDateTime:
        """Unvalidated date and time of last modification."""
        return self._record.modified

    @property
    def size(self) -> int:
        """Size in bytes; 0 for directories."""
        return self._record.size

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Entry):
            return NotImplemented
        return (self._record, self._long_name, self._vfat, self._fat_32) == (
            other._record,
            other._long_name,
            other._vfat,
            other._fat_32,
        )

    def __repr__(self) -> str:
        return (
            f'{self.__class__.__name__}({self.filename!r}, '
            f'short={self.dos_filename!r}, cluster={self.cluster}, size={self.size})'
        )


def entry_match(name: str, entry: Entry, *, vfat: bool) -> bool:
    """Check whether ``name`` refers to ``entry``, ignoring the case of ASCII
    letters only.

    With VFAT support the short name of an entry with a long name is accepted as
    well.
    """
    key = name.translate(_ASCII_UPPER)
    if key == entry.filename.translate(_ASCII_UPPER):
        return True
    return vfat and key == entry.dos_filename.translate(_ASCII_UPPER)


def iter_entries(
    records: Iterable[bytes], *, vfat: bool, fat_32: bool
) -> Iterator[Entry]:
    """Yield the files and subdirectories of a directory table in on-disk order.

    ``records`` yields the 32-byte records of the table. Iteration stops at the
    end marker. Deleted records, dot entries and volume labels are skipped, as are
    long name records if ``vfat`` is ``False``.

    A long name that does not belong to the short record following it is
    discarded, presumably left behind by a system without VFAT support renaming
    the file. The entry is yielded with its short name.
    """
    long_names = _LongNameCollector()

    for raw in records:
        record = ShortRecord.from_bytes(raw)
        kind = record.kind

        if kind is RecordKind.END:
            break
        if kind is RecordKind.LONG_NAME:
            if not vfat:
                continue
            try:
                long_names.add(LongNameRecord.from_bytes(raw))
            except ValidationError as e:
                log.warning(f'Skipped malformed long name record: {e}')
                long_names.reset()
        elif kind is RecordKind.FILE:
            long_name = long_names.take(record) if vfat else None
            yield Entry(record, long_name, vfat=vfat, fat_32=fat_32)
        else:
            long_names.reset()
