"""Boot sector of a FAT volume.

Only the fields needed to locate the FAT, the root directory and the data region
are interpreted. Boot code and volume identification are carried along as found.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import ClassVar

from typing_extensions import Annotated

from ..base import ValidationError, ValidationWarning, is_power_of_two
from ..bytestruct import ByteStruct
from .base import FatType, fat_type_for

__all__ = ['Bpb', 'VolumeId', 'Fat32Header', 'BootSector', 'SIGNATURE']


SIGNATURE = b'\x55\xAA'

MIN_SECTOR_SIZE = 128
MIN_SECTOR_SIZE_FAT32 = 512
MAX_SECTOR_SIZE = 4096
ROOT_ENTRY_SIZE = 32

KNOWN_JUMPS = (b'\xEB', b'\xE9', b'\x90\xEB')
BOOT_SIGNATURE_SHORT = 0x28  # only the volume ID follows
BOOT_SIGNATURE_FULL = 0x29  # volume ID, label and file system type follow
KNOWN_FS_TYPES = (b'FAT12   ', b'FAT16   ', b'FAT     ', b'FAT32   ')


@dataclass(frozen=True)
class Bpb(ByteStruct):
    """Jump instruction, OEM name and the BIOS parameter block shared by all FAT
    types, in its DOS 3.31 form.
    """

    jump: Annotated[bytes, 3]
    oem_name: Annotated[bytes, 8]
    sector_size: Annotated[int, 2]
    sectors_per_cluster: Annotated[int, 1]
    reserved_sectors: Annotated[int, 2]
    fats: Annotated[int, 1]
    root_entries: Annotated[int, 2]
    total_sectors_16: Annotated[int, 2]
    media: Annotated[int, 1]
    sectors_per_fat_16: Annotated[int, 2]
    sectors_per_track: Annotated[int, 2]
    heads: Annotated[int, 2]
    hidden_sectors: Annotated[int, 4]
    total_sectors_32: Annotated[int, 4]

    def validate(self) -> None:
        if not self.jump.startswith(KNOWN_JUMPS):
            warnings.warn(f'Unknown jump instruction {self.jump!r}', ValidationWarning)

        size = self.sector_size
        if not MIN_SECTOR_SIZE <= size <= MAX_SECTOR_SIZE or not is_power_of_two(size):
            raise ValidationError(f'Invalid sector size {size}')
        spc = self.sectors_per_cluster
        if spc == 0 or not is_power_of_two(spc):
            raise ValidationError(f'Invalid sectors per cluster {spc}')
        if self.reserved_sectors == 0:
            raise ValidationError('Reserved sector count must not be 0')
        if self.fats == 0:
            raise ValidationError('Volume must have at least one FAT')
        if not (self.media == 0xF0 or self.media >= 0xF8):
            raise ValidationError(f'Unsupported media descriptor {self.media:#04x}')

        if self.total_sectors_16 and self.total_sectors_32:
            if self.total_sectors_16 != self.total_sectors_32:
                raise ValidationError('16-bit and 32-bit total sector counts differ')
        if self.total_sectors == 0:
            raise ValidationError('Total sector count must not be 0')

    @property
    def total_sectors(self) -> int:
        return self.total_sectors_16 or self.total_sectors_32

    @property
    def fat32_layout(self) -> bool:
        """Whether a FAT32 header follows, announced by a 16-bit FAT size of 0."""
        return self.sectors_per_fat_16 == 0


@dataclass(frozen=True)
class VolumeId(ByteStruct):
    """Drive number and volume identification.

    Follows the BPB directly on FAT12 and FAT16 volumes and ends the FAT32 header.
    """

    drive_number: Annotated[int, 1]
    _reserved: Annotated[None, 1]
    boot_signature: Annotated[int, 1]
    volume_id: Annotated[int, 4]
    volume_label: Annotated[bytes, 11]
    fs_type: Annotated[bytes, 8]

    def validate(self) -> None:
        if self.boot_signature not in (BOOT_SIGNATURE_SHORT, BOOT_SIGNATURE_FULL):
            warnings.warn(
                f'Unknown extended boot signature {self.boot_signature:#04x}',
                ValidationWarning,
            )
        elif self.full and self.fs_type not in KNOWN_FS_TYPES:
            warnings.warn(
                f'Unknown file system type {self.fs_type!r}', ValidationWarning
            )

    @property
    def full(self) -> bool:
        return self.boot_signature == BOOT_SIGNATURE_FULL

    @property
    def label(self) -> str | None:
        """Volume label, ``None`` if the boot sector does not carry one."""
        if not self.full:
            return None
        return self.volume_label.decode('ascii', 'replace').rstrip()


@dataclass(frozen=True)
class Fat32Header(ByteStruct):
    """Fields following the BPB on FAT32 volumes."""

    sectors_per_fat_32: Annotated[int, 4]
    flags: Annotated[int, 2]
    version: Annotated[int, 2]
    root_cluster: Annotated[int, 4]
    fsinfo_sector: Annotated[int, 2]
    backup_boot_sector: Annotated[int, 2]
    _reserved: Annotated[None, 12]
    volume: VolumeId

    def validate(self) -> None:
        if self.sectors_per_fat_32 == 0:
            raise ValidationError('FAT32 sectors per FAT must not be 0')
        if self.version != 0:
            raise ValidationError(f'Unsupported FAT32 version {self.version:#06x}')
        if self.root_cluster < 2:
            raise ValidationError(f'Invalid root directory cluster {self.root_cluster}')


@dataclass(frozen=True)
class BootSector:
    """FAT boot sector and the volume layout it describes.

    Sector numbers returned by the properties are relative to the start of the
    volume and in units of ``sector_size`` bytes.
    """

    bpb: Bpb
    header: VolumeId | Fat32Header
    boot_code: bytes

    SIZE: ClassVar[int] = 512

    @classmethod
    def from_bytes(cls, b: bytes) -> BootSector:
        """Parse the first ``SIZE`` bytes of a volume.

        Raises ``ValidationError`` if they do not hold a FAT boot sector.
        """
        if len(b) != cls.SIZE:
            raise ValueError(
                f'Boot sector must be {cls.SIZE} bytes long, got {len(b)} bytes'
            )
        if b[-2:] != SIGNATURE:
            raise ValidationError(f'Invalid boot sector signature {b[-2:]!r}')

        bpb_end = len(Bpb)
        bpb = Bpb.from_bytes(b[:bpb_end])
        header_type = Fat32Header if bpb.fat32_layout else VolumeId
        header_end = bpb_end + len(header_type)
        header = header_type.from_bytes(b[bpb_end:header_end])
        return cls(bpb, header, b[header_end:-2])

    def __bytes__(self) -> bytes:
        return bytes(self.bpb) + bytes(self.header) + self.boot_code + SIGNATURE

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        size = len(self.bpb) + len(self.header) + len(self.boot_code) + len(SIGNATURE)
        if size != self.SIZE:
            raise ValidationError(f'Boot sector is {size} bytes, not {self.SIZE}')

        bpb = self.bpb
        if self.fat32 != isinstance(self.header, Fat32Header):
            raise ValidationError('Header does not match the BPB layout')
        if self.fat32:
            if bpb.sector_size < MIN_SECTOR_SIZE_FAT32:
                raise ValidationError(
                    f'FAT32 needs sectors of at least {MIN_SECTOR_SIZE_FAT32} bytes'
                )
            if bpb.root_entries != 0:
                raise ValidationError('FAT32 volume must not define root entries')
            if bpb.total_sectors_16 != 0:
                raise ValidationError('FAT32 volume must not use 16-bit sector count')
        elif bpb.root_entries == 0:
            raise ValidationError('Root directory of FAT12/16 volume has no entries')

        if self.data_start >= self.total_sectors:
            raise ValidationError('Data region starts beyond the end of the volume')
        if self.total_clusters == 0:
            raise ValidationError('Volume has no data clusters')
        if self.fat32 != (self.fat_type is FatType.FAT_32):
            raise ValidationError(
                f'Cluster count {self.total_clusters} does not fit the BPB layout'
            )

    def check_fits(self, size: int) -> None:
        """Raise ``ValidationError`` if the volume is larger than ``size`` bytes."""
        needed = self.total_sectors * self.sector_size
        if needed > size:
            raise ValidationError(
                f'Volume needs {needed} bytes, but only {size} bytes are available'
            )

    @property
    def fat32(self) -> bool:
        return self.bpb.fat32_layout

    @property
    def volume(self) -> VolumeId:
        if isinstance(self.header, Fat32Header):
            return self.header.volume
        return self.header

    @property
    def sector_size(self) -> int:
        return self.bpb.sector_size

    @property
    def sectors_per_cluster(self) -> int:
        return self.bpb.sectors_per_cluster

    @property
    def cluster_bytes(self) -> int:
        return self.sectors_per_cluster * self.sector_size

    @property
    def total_sectors(self) -> int:
        return self.bpb.total_sectors

    @property
    def media(self) -> int:
        return self.bpb.media

    @property
    def fats(self) -> int:
        return self.bpb.fats

    @property
    def sectors_per_fat(self) -> int:
        if isinstance(self.header, Fat32Header):
            return self.header.sectors_per_fat_32
        return self.bpb.sectors_per_fat_16

    @property
    def fat_start(self) -> int:
        """First sector of the first FAT."""
        return self.bpb.reserved_sectors

    @property
    def root_dir_start(self) -> int:
        """First sector of the fixed root directory region."""
        return self.fat_start + self.fats * self.sectors_per_fat

    @property
    def root_dir_sectors(self) -> int:
        """Size of the fixed root directory region; 0 on FAT32."""
        return -(-self.bpb.root_entries * ROOT_ENTRY_SIZE // self.sector_size)

    @property
    def root_cluster(self) -> int | None:
        """First cluster of the FAT32 root directory."""
        if isinstance(self.header, Fat32Header):
            return self.header.root_cluster
        return None

    @property
    def data_start(self) -> int:
        """Sector of cluster 2, the first data cluster."""
        return self.root_dir_start + self.root_dir_sectors

    @property
    def total_clusters(self) -> int:
        return (self.total_sectors - self.data_start) // self.sectors_per_cluster

    @property
    def fat_type(self) -> FatType:
        return fat_type_for(self.total_clusters)
