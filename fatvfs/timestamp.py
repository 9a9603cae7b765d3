"""Conversion of FAT timestamps to points in time.

FAT stores the date and time of a directory entry as separate calendar fields
relative to 1980-01-01. The conversion below is plain integer arithmetic and does
not depend on the platform's calendar support.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from .base import InvalidTimestamp

if TYPE_CHECKING:
    from .fat.directory import DosDateTime

__all__ = [
    'FAT_EPOCH',
    'UNIX_EPOCH',
    'is_leap_year',
    'days_since_1980',
    'fat_timestamp',
    'fat_datetime',
]


FAT_EPOCH = 315_532_800
"""Seconds from 1970-01-01T00:00:00Z to 1980-01-01T00:00:00Z."""

FAT_EPOCH_YEAR = 1980
UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DAYS_IN_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def is_leap_year(year: int) -> bool:
    """Gregorian leap year rule."""
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


def days_since_1980(year: int, month: int, day: int) -> int:
    """Return the number of days elapsed from 1980-01-01 to the given date.

    Raises ``InvalidTimestamp`` if the year lies before 1980, the month is not in
    range (1, 12) or the day is not in range (1, 31). Days are not checked against
    the length of the month.
    """
    if year < FAT_EPOCH_YEAR or not 1 <= month <= 12 or not 1 <= day <= 31:
        raise InvalidTimestamp(f'Invalid FAT date {year:04}-{month:02}-{day:02}')

    days = sum(366 if is_leap_year(y) else 365 for y in range(FAT_EPOCH_YEAR, year))
    days += sum(DAYS_IN_MONTH[: month - 1])
    if month > 2 and is_leap_year(year):
        days += 1
    return days + day - 1


def fat_timestamp(dt: DosDateTime) -> int:
    """Return the FAT datetime ``dt`` as seconds since the Unix epoch.

    The time of day is not validated; FAT timestamps carry no time zone and are
    treated as UTC.
    """
    days = days_since_1980(dt.year, dt.month, dt.day)
    seconds = days * 86400 + dt.hour * 3600 + dt.minute * 60 + dt.second
    return FAT_EPOCH + seconds


def fat_datetime(dt: DosDateTime) -> datetime:
    """Return the FAT datetime ``dt`` as an aware ``datetime`` in UTC."""
    return UNIX_EPOCH + timedelta(seconds=fat_timestamp(dt))
