"""Fixtures used across the test suite.

FAT images are assembled in place with the structures of ``fatvfs.fat`` so that no
external tooling (``mkfs.fat``, ``mtools``, loop devices) is needed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from fatvfs.fat.base import FatType
from fatvfs.fat.directory import (
    NT_EXT_LOWER,
    NT_NAME_LOWER,
    RECORD_SIZE,
    Attributes,
    DosDateTime,
    LongNameRecord,
    ShortRecord,
    short_name_checksum,
)
from fatvfs.fat.reserved import BootSector, Bpb, Fat32Header, VolumeId

LSS = 512
MEDIA_TYPE = 0xF8
VFAT_CHARS_PER_ENTRY = 13

# total sectors, reserved sectors, root directory entries
GEOMETRY = {
    FatType.FAT_12: (2048, 1, 64),
    FatType.FAT_16: (8192, 1, 64),
    FatType.FAT_32: (70000, 32, 0),
}
END_OF_CHAIN = {
    FatType.FAT_12: 0xFFF,
    FatType.FAT_16: 0xFFFF,
    FatType.FAT_32: 0x0FFFFFFF,
}

README_MODIFIED = DosDateTime(2021, 3, 15, 10, 30, 0)
README_CONTENT = b'The quick brown fox jumps over the lazy.\r\n'  # 42 bytes
HELLO_CONTENT = bytes(range(256)) * 5 + b'x' * 220  # 1500 bytes


def pack_short_name(filename: str) -> tuple[bytes, bytes]:
    """Pack ``filename`` into a space-padded 8.3 name and extension."""
    name, _, ext = filename.upper().partition('.')
    return name.encode('ascii').ljust(8), ext.encode('ascii').ljust(3)


def short_entry(
    name: bytes,
    ext: bytes,
    *,
    attributes: Attributes = Attributes.ARCHIVE,
    cluster: int = 0,
    size: int = 0,
    modified: DosDateTime = README_MODIFIED,
    case_info: int = 0,
) -> ShortRecord:
    """Return an 8.3 entry with all dates set to ``modified``."""
    date, time = modified.pack()
    return ShortRecord(
        name=name,
        ext=ext,
        attr=attributes.value,
        nt_case=case_info,
        ctime_tenth=0,
        ctime=time,
        cdate=date,
        adate=date,
        cluster_high=cluster >> 16,
        mtime=time,
        mdate=date,
        cluster_low=cluster & 0xFFFF,
        size=size,
    )


def long_name_records(
    long_name: str, name: bytes, ext: bytes
) -> list[LongNameRecord]:
    """Return the long name records holding ``long_name`` in disk order."""
    chars = long_name.encode('utf-16le')
    if len(long_name) % VFAT_CHARS_PER_ENTRY:
        chars += b'\x00\x00'
    count = -(-len(chars) // (VFAT_CHARS_PER_ENTRY * 2))
    chars = chars.ljust(count * VFAT_CHARS_PER_ENTRY * 2, b'\xff')
    checksum = short_name_checksum(name + ext)

    records = []
    for index in range(count, 0, -1):
        part = chars[(index - 1) * 26 : index * 26]
        records.append(
            LongNameRecord(
                order=index | (0x40 if index == count else 0),
                chars_1=part[:10],
                attr=Attributes.LONG_NAME.value,
                lfn_type=0,
                checksum=checksum,
                chars_2=part[10:22],
                first_cluster=0,
                chars_3=part[22:],
            )
        )
    return records


@dataclass
class DirNode:
    """Directory under construction; the root directory if ``cluster`` is ``None``
    on a FAT12 or FAT16 image.
    """

    cluster: int | None
    records: list[bytes] = field(default_factory=list)


class FatImage:
    """Builder of small FAT images.

    Clusters are one sector each and allocated in ascending order. Every directory
    other than the FAT12/16 root gets ``dir_clusters`` clusters when created.
    """

    def __init__(self, fat_type: FatType = FatType.FAT_16):
        self.fat_type = fat_type
        self.total_size, reserved_size, rootdir_entries = GEOMETRY[fat_type]
        fat_32 = fat_type is FatType.FAT_32

        rootdir_sectors = rootdir_entries * RECORD_SIZE // LSS
        fat_size = 1
        while True:
            clusters = self.total_size - reserved_size - 2 * fat_size - rootdir_sectors
            needed = -(-((clusters + 2) * fat_type.value) // (8 * LSS))
            if needed <= fat_size:
                break
            fat_size = needed

        bpb = Bpb(
            jump=b'\xEB\x3C\x90',
            oem_name=b'MSWIN4.1',
            sector_size=LSS,
            sectors_per_cluster=1,
            reserved_sectors=reserved_size,
            fats=2,
            root_entries=rootdir_entries,
            total_sectors_16=0 if fat_32 else self.total_size,
            media=MEDIA_TYPE,
            sectors_per_fat_16=0 if fat_32 else fat_size,
            sectors_per_track=32,
            heads=64,
            hidden_sectors=0,
            total_sectors_32=self.total_size if fat_32 else 0,
        )
        volume = VolumeId(
            drive_number=0x80,
            _reserved=None,
            boot_signature=0x29,
            volume_id=0x1234ABCD,
            volume_label=b'NO NAME    ',
            fs_type=f'FAT{fat_type.value}'.encode('ascii').ljust(8),
        )
        header: VolumeId | Fat32Header = volume
        if fat_32:
            header = Fat32Header(
                sectors_per_fat_32=fat_size,
                flags=0,
                version=0,
                root_cluster=2,
                fsinfo_sector=1,
                backup_boot_sector=6,
                _reserved=None,
                volume=volume,
            )

        boot_code = b'\x00' * (BootSector.SIZE - len(bpb) - len(header) - 2)
        self.boot_sector = BootSector(bpb, header, boot_code)
        assert self.boot_sector.fat_type is fat_type

        self.fat: dict[int, int] = {
            0: (END_OF_CHAIN[fat_type] & ~0xFF) | MEDIA_TYPE,
            1: END_OF_CHAIN[fat_type],
        }
        self.clusters: dict[int, bytes] = {}
        self._next_cluster = 2
        self.root = DirNode(self.allocate(1)[0] if fat_32 else None)

    def allocate(self, count: int) -> list[int]:
        """Allocate a chain of ``count`` clusters."""
        chain = list(range(self._next_cluster, self._next_cluster + count))
        self._next_cluster += count
        for cluster, next_cluster in zip(chain, chain[1:]):
            self.fat[cluster] = next_cluster
        if chain:
            self.fat[chain[-1]] = END_OF_CHAIN[self.fat_type]
        return chain

    def chain(self, start: int) -> list[int]:
        chain = []
        cluster = start
        end = END_OF_CHAIN[self.fat_type] & ~0xF
        while 2 <= cluster < end and cluster not in chain:
            chain.append(cluster)
            cluster = self.fat[cluster]
        return chain

    def add_entry(
        self,
        parent: DirNode,
        filename: str,
        *,
        attributes: Attributes = Attributes.ARCHIVE,
        cluster: int = 0,
        size: int = 0,
        modified: DosDateTime = README_MODIFIED,
        long_name: str = None,
        case_info: int = 0,
    ) -> ShortRecord:
        """Append a short record, preceded by long name records if ``long_name``
        is given.
        """
        name, ext = pack_short_name(filename)
        entry = short_entry(
            name,
            ext,
            attributes=attributes,
            cluster=cluster,
            size=size,
            modified=modified,
            case_info=case_info,
        )
        if long_name is not None:
            parent.records.extend(map(bytes, long_name_records(long_name, name, ext)))
        parent.records.append(bytes(entry))
        return entry

    def add_file(
        self, parent: DirNode, filename: str, content: bytes = b'', **kwargs
    ) -> ShortRecord:
        cluster_count = -(-len(content) // LSS)
        chain = self.allocate(cluster_count)
        for i, cluster in enumerate(chain):
            self.clusters[cluster] = content[i * LSS : (i + 1) * LSS]
        return self.add_entry(
            parent,
            filename,
            cluster=chain[0] if chain else 0,
            size=len(content),
            **kwargs,
        )

    def mkdir(
        self, parent: DirNode, filename: str, *, dir_clusters: int = 1, **kwargs
    ) -> DirNode:
        chain = self.allocate(dir_clusters)
        self.add_entry(
            parent,
            filename,
            attributes=Attributes.SUBDIRECTORY,
            cluster=chain[0] if chain else 0,
            **kwargs,
        )
        node = DirNode(chain[0] if chain else None)
        parent_cluster = 0 if parent is self.root else parent.cluster or 0
        if chain:
            # Dot entries as written by every FAT driver
            for dot_name, dot_cluster in ((b'.', chain[0]), (b'..', parent_cluster)):
                dot = short_entry(
                    dot_name.ljust(8),
                    b'   ',
                    attributes=Attributes.SUBDIRECTORY,
                    cluster=dot_cluster,
                )
                node.records.append(bytes(dot))
        return node

    def _fat_bytes(self) -> bytes:
        fat = bytearray(self.boot_sector.sectors_per_fat * LSS)
        for cluster, value in self.fat.items():
            if self.fat_type is FatType.FAT_12:
                offset = cluster + cluster // 2
                if cluster & 1:
                    fat[offset] = (fat[offset] & 0x0F) | ((value & 0x0F) << 4)
                    fat[offset + 1] = (value >> 4) & 0xFF
                else:
                    fat[offset] = value & 0xFF
                    fat[offset + 1] = (fat[offset + 1] & 0xF0) | ((value >> 8) & 0x0F)
            else:
                width = self.fat_type.value // 8
                fat[cluster * width : (cluster + 1) * width] = value.to_bytes(
                    width, 'little'
                )
        return bytes(fat)

    def _write_dir(self, node: DirNode) -> bytes | None:
        """Store the records of ``node`` in its clusters; return them instead if
        ``node`` is the fixed root directory region.
        """
        table = b''.join(node.records)
        if node.cluster is None:
            return table
        chain = self.chain(node.cluster)
        if len(table) > len(chain) * LSS:
            raise ValueError('Too many records for directory clusters')
        for i, cluster in enumerate(chain):
            self.clusters[cluster] = table[i * LSS : (i + 1) * LSS]
        return None

    def write(self, path: Path, *nodes: DirNode) -> Path:
        """Write the image to ``path``.

        ``nodes`` are all directories created via ``mkdir()`` whose records must be
        written; the root directory is always written.
        """
        boot_sector = self.boot_sector
        data_start = boot_sector.data_start * LSS

        root_table = self._write_dir(self.root)
        for node in nodes:
            self._write_dir(node)

        with path.open('wb') as f:
            f.truncate(self.total_size * LSS)
            f.write(bytes(boot_sector))

            fat = self._fat_bytes()
            for i in range(boot_sector.fats):
                f.seek((boot_sector.fat_start + i * boot_sector.sectors_per_fat) * LSS)
                f.write(fat)

            if root_table is not None:
                if len(root_table) > boot_sector.root_dir_sectors * LSS:
                    raise ValueError('Too many records for root directory region')
                f.seek(boot_sector.root_dir_start * LSS)
                f.write(root_table)

            for cluster, data in self.clusters.items():
                f.seek(data_start + (cluster - 2) * LSS)
                f.write(data)

        return path


@pytest.fixture
def image_builder():
    """Fixture providing a factory of ``FatImage`` builders."""
    return FatImage


def build_sample(image: FatImage) -> tuple[DirNode, ...]:
    """Populate ``image`` with the sample tree used by most tests::

        /DOCS/                  directory
        /DOCS/README.TXT        42 bytes, modified 2021-03-15 10:30:00
        /DOCS/Long File Name.markdown
        /DOCS/EMPTY/            directory without clusters
        /HELLO.TXT              1500 bytes, spans three clusters
        /notes.txt              8.3 entry with lower case flags
        /ZERO.BIN               empty file
        /A/B/C.TXT
    """
    root = image.root
    docs = image.mkdir(root, 'DOCS')
    image.add_file(docs, 'README.TXT', README_CONTENT, modified=README_MODIFIED)
    image.add_file(
        docs,
        'LONGFI~1.MAR',
        b'# Long\n',
        long_name='Long File Name.markdown',
        modified=DosDateTime(2022, 12, 31, 23, 59, 58),
    )
    image.mkdir(docs, 'EMPTY', dir_clusters=0)

    image.add_file(
        root, 'HELLO.TXT', HELLO_CONTENT, modified=DosDateTime(1980, 1, 1, 0, 0, 0)
    )
    image.add_file(
        root,
        'NOTES.TXT',
        b'lower case\n',
        case_info=NT_NAME_LOWER | NT_EXT_LOWER,
        modified=DosDateTime(2000, 2, 29, 12, 0, 0),
    )
    image.add_file(root, 'ZERO.BIN', b'', modified=DosDateTime(2010, 6, 1, 8, 0, 0))

    a = image.mkdir(root, 'A')
    b = image.mkdir(a, 'B')
    image.add_file(b, 'C.TXT', b'c\n')
    return docs, a, b


@pytest.fixture(params=[FatType.FAT_12, FatType.FAT_16, FatType.FAT_32])
def sample_image(request, tmp_path):
    """Fixture providing the path of an image holding the sample tree of
    ``build_sample()``; parametrized over the FAT types.
    """
    image = FatImage(request.param)
    nodes = build_sample(image)
    return image.write(tmp_path / f'{request.param.name.lower()}.img', *nodes)


@pytest.fixture
def fat16_image(tmp_path):
    """Fixture providing the path of a FAT16 image holding the sample tree."""
    image = FatImage(FatType.FAT_16)
    nodes = build_sample(image)
    return image.write(tmp_path / 'fat_16.img', *nodes)
