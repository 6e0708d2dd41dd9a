"""MPQ header and table structures."""

from dataclasses import dataclass
from enum import IntFlag
from typing import Optional

from ..utils.binary import BinaryReader

# MPQ magic bytes
MPQ_MAGIC = b"MPQ\x1a"
MPQ_USER_DATA_MAGIC = b"MPQ\x1b"

HEADER_SIZE = 32
HEADER_EXT_SIZE = 12
USER_DATA_HEADER_SIZE = 16
TABLE_ENTRY_SIZE = 16

# Hash table slots that never held a file
HASH_ENTRY_EMPTY = 0xFFFFFFFF
HASH_ENTRY_DELETED = 0xFFFFFFFE


class MPQFileFlags(IntFlag):
    """Block table entry flags."""

    IMPLODE = 0x00000100
    COMPRESS = 0x00000200
    ENCRYPTED = 0x00010000
    FIX_KEY = 0x00020000
    SINGLE_UNIT = 0x01000000
    DELETE_MARKER = 0x02000000
    SECTOR_CRC = 0x04000000
    EXISTS = 0x80000000


class CompressionType:
    """Leading byte of a compressed single-unit file."""

    STORED = 0
    ZLIB = 2
    BZIP2 = 16


@dataclass(frozen=True)
class MPQUserDataHeader:
    """Wrapper header placed in front of the archive by SC2 replays."""

    magic: bytes  # 4 bytes: "MPQ\x1b"
    user_data_size: int  # 4 bytes
    mpq_header_offset: int  # 4 bytes: Where the real MPQ header starts
    user_data_header_size: int  # 4 bytes: Length of content
    content: bytes  # Opaque, holds the serialized replay header

    @classmethod
    def read(cls, reader: BinaryReader) -> "MPQUserDataHeader":
        magic = reader.read_bytes(4)
        user_data_size, mpq_header_offset, user_data_header_size = reader.unpack("3I")
        content = reader.read_bytes(user_data_header_size)
        return cls(
            magic=magic,
            user_data_size=user_data_size,
            mpq_header_offset=mpq_header_offset,
            user_data_header_size=user_data_header_size,
            content=content,
        )


@dataclass(frozen=True)
class MPQHeader:
    """MPQ archive header (32 bytes, 44 with the v1 extension)."""

    magic: bytes  # 4 bytes: "MPQ\x1a"
    header_size: int  # 4 bytes
    archive_size: int  # 4 bytes
    format_version: int  # 2 bytes
    sector_size_shift: int  # 2 bytes: Sector size is 512 << shift
    hash_table_offset: int  # 4 bytes: Relative to the header
    block_table_offset: int  # 4 bytes: Relative to the header
    hash_table_entries: int  # 4 bytes
    block_table_entries: int  # 4 bytes

    # Only present when format_version == 1
    extended_block_table_offset: Optional[int] = None  # 8 bytes
    hash_table_offset_high: Optional[int] = None  # 2 bytes
    block_table_offset_high: Optional[int] = None  # 2 bytes

    # Absolute position of this header in the file
    offset: int = 0
    user_data_header: Optional[MPQUserDataHeader] = None

    @property
    def is_valid(self) -> bool:
        return self.magic == MPQ_MAGIC

    @property
    def has_extension(self) -> bool:
        return self.extended_block_table_offset is not None

    @property
    def sector_size(self) -> int:
        return 512 << self.sector_size_shift

    @classmethod
    def read(
        cls,
        reader: BinaryReader,
        offset: int = 0,
        user_data_header: Optional[MPQUserDataHeader] = None,
    ) -> "MPQHeader":
        reader.seek(offset)
        magic = reader.read_bytes(4)
        (
            header_size,
            archive_size,
            format_version,
            sector_size_shift,
            hash_table_offset,
            block_table_offset,
            hash_table_entries,
            block_table_entries,
        ) = reader.unpack("2I2H4I")

        extension = (None, None, None)
        if format_version == 1:
            extension = reader.unpack("q2h")

        return cls(
            magic=magic,
            header_size=header_size,
            archive_size=archive_size,
            format_version=format_version,
            sector_size_shift=sector_size_shift,
            hash_table_offset=hash_table_offset,
            block_table_offset=block_table_offset,
            hash_table_entries=hash_table_entries,
            block_table_entries=block_table_entries,
            extended_block_table_offset=extension[0],
            hash_table_offset_high=extension[1],
            block_table_offset_high=extension[2],
            offset=offset,
            user_data_header=user_data_header,
        )


@dataclass(frozen=True)
class MPQHashTableEntry:
    """Hash table entry (16 bytes)."""

    hash_a: int  # 4 bytes
    hash_b: int  # 4 bytes
    locale: int  # 2 bytes
    platform: int  # 2 bytes
    block_table_index: int  # 4 bytes

    STRUCT_FORMAT = "<2I2HI"

    @property
    def is_empty(self) -> bool:
        return self.block_table_index in (HASH_ENTRY_EMPTY, HASH_ENTRY_DELETED)


@dataclass(frozen=True)
class MPQBlockTableEntry:
    """Block table entry (16 bytes)."""

    offset: int  # 4 bytes: Relative to the header
    archived_size: int  # 4 bytes: Size on disk
    size: int  # 4 bytes: Uncompressed size
    flags: int  # 4 bytes: MPQFileFlags

    STRUCT_FORMAT = "<4I"

    def has_flag(self, flag: MPQFileFlags) -> bool:
        return bool(self.flags & flag)

    @property
    def exists(self) -> bool:
        return self.has_flag(MPQFileFlags.EXISTS)

    @property
    def is_compressed(self) -> bool:
        return self.has_flag(MPQFileFlags.COMPRESS)

    @property
    def is_encrypted(self) -> bool:
        return self.has_flag(MPQFileFlags.ENCRYPTED)

    @property
    def is_single_unit(self) -> bool:
        return self.has_flag(MPQFileFlags.SINGLE_UNIT)
