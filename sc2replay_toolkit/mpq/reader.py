"""MPQ archive reader and extractor."""

import bz2
import logging
import struct
import zlib
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Tuple, Union

from ..errors import (
    CorruptedError,
    UnsupportedCompressionError,
    UnsupportedLayoutError,
)
from ..utils.binary import BinaryReader
from .crypto import BLOCK_TABLE_KEY_NAME, HASH_TABLE_KEY_NAME, HashType, decrypt, hash_string
from .header import (
    MPQ_MAGIC,
    MPQ_USER_DATA_MAGIC,
    TABLE_ENTRY_SIZE,
    CompressionType,
    MPQBlockTableEntry,
    MPQHashTableEntry,
    MPQHeader,
    MPQUserDataHeader,
)

logger = logging.getLogger(__name__)

LISTFILE_NAME = "(listfile)"


def decompress(data: bytes, expected_size: int) -> bytes:
    """Decompress a single-unit file according to its leading method byte."""
    if not data:
        raise CorruptedError("Compressed file has no compression type byte")

    compression_type = data[0]
    payload = data[1:]
    if compression_type == CompressionType.STORED:
        return payload

    try:
        if compression_type == CompressionType.ZLIB:
            result = zlib.decompress(payload, 15)
        elif compression_type == CompressionType.BZIP2:
            result = bz2.decompress(payload)
        else:
            raise UnsupportedCompressionError(f"Unsupported compression type: 0x{compression_type:02X}")
    except (zlib.error, OSError, ValueError, EOFError) as e:
        raise CorruptedError(f"Failed to decompress file data: {e}") from e

    if len(result) != expected_size:
        raise CorruptedError(f"Decompressed to {len(result)} bytes, expected {expected_size}")
    return result


def output_path_for(output_dir: Path, filename: str) -> Path:
    """Map an archive filename to a path inside ``output_dir``.

    Archive names use backslash separators and come from the archive itself,
    so a name that would land outside ``output_dir`` is rejected.
    """
    root = Path(output_dir).resolve()
    output_path = (root / filename.replace("\\", "/").lstrip("/")).resolve()
    try:
        output_path.relative_to(root)
    except ValueError:
        raise CorruptedError(f"Archive filename {filename!r} escapes the output directory") from None
    if output_path == root:
        raise CorruptedError(f"Archive filename {filename!r} names no file")
    return output_path


class MPQArchive:
    """Reader for MPQ (MoPaQ) archives such as .SC2Replay files."""

    def __init__(self, source: Union[str, Path, BinaryIO], listfile: bool = True):
        if hasattr(source, "read"):
            self.path: Optional[Path] = None
            self._file: Optional[BinaryIO] = source
            self._owns_file = False
        else:
            self.path = Path(source)
            self._file = None
            self._owns_file = True
        self._read_listfile = listfile
        self._header: Optional[MPQHeader] = None
        self._hash_table: List[MPQHashTableEntry] = []
        self._block_table: List[MPQBlockTableEntry] = []
        self.files: Optional[List[str]] = None

    def __enter__(self) -> "MPQArchive":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> None:
        """Open the archive, parse the header and load both tables."""
        if self._file is None:
            self._file = open(self.path, "rb")
        try:
            self._load()
        except BaseException:
            self.close()
            raise

    def _load(self) -> None:
        self._read_header()
        self._hash_table = self._read_table(
            MPQHashTableEntry,
            self._header.hash_table_offset,
            self._header.hash_table_entries,
            HASH_TABLE_KEY_NAME,
        )
        self._block_table = self._read_table(
            MPQBlockTableEntry,
            self._header.block_table_offset,
            self._header.block_table_entries,
            BLOCK_TABLE_KEY_NAME,
        )
        logger.debug(
            "Opened %s: %d hash entries, %d block entries",
            self.path or "<stream>",
            len(self._hash_table),
            len(self._block_table),
        )

        if self._read_listfile:
            data = self.read_file(LISTFILE_NAME)
            self.files = data.decode("utf-8", errors="replace").splitlines() if data else []

    def close(self) -> None:
        """Close the archive file if this reader opened it."""
        if self._file and self._owns_file:
            self._file.close()
        self._file = None

    @property
    def header(self) -> MPQHeader:
        if not self._header:
            raise RuntimeError("Archive not opened")
        return self._header

    @property
    def user_data_header(self) -> Optional[MPQUserDataHeader]:
        return self.header.user_data_header

    @property
    def hash_table(self) -> List[MPQHashTableEntry]:
        return self._hash_table

    @property
    def block_table(self) -> List[MPQBlockTableEntry]:
        return self._block_table

    def _read_header(self) -> None:
        """Read the MPQ header, following the user data header if present."""
        reader = BinaryReader(self._file)
        reader.seek(0)
        magic = reader.peek(4)

        if magic == MPQ_MAGIC:
            self._header = MPQHeader.read(reader)
        elif magic == MPQ_USER_DATA_MAGIC:
            user_data_header = MPQUserDataHeader.read(reader)
            self._header = MPQHeader.read(
                reader,
                offset=user_data_header.mpq_header_offset,
                user_data_header=user_data_header,
            )
            if not self._header.is_valid:
                raise CorruptedError(
                    f"Invalid MPQ magic at offset {user_data_header.mpq_header_offset}: "
                    f"{self._header.magic!r}"
                )
        else:
            raise CorruptedError(f"Invalid MPQ magic: {magic!r}, expected {MPQ_MAGIC!r}")

    def _read_table(self, entry_class, table_offset: int, entry_count: int, key_name: str) -> list:
        """Read and decrypt the hash or block table."""
        reader = BinaryReader(self._file)
        reader.seek(table_offset + self._header.offset)
        data = reader.read_bytes(entry_count * TABLE_ENTRY_SIZE)
        data = decrypt(data, hash_string(key_name, HashType.TABLE))

        return [
            entry_class(*struct.unpack_from(entry_class.STRUCT_FORMAT, data, i * TABLE_ENTRY_SIZE))
            for i in range(entry_count)
        ]

    def get_hash_table_entry(self, filename: str) -> Optional[MPQHashTableEntry]:
        """Find the hash table entry for a filename (first match wins)."""
        hash_a = hash_string(filename, HashType.HASH_A)
        hash_b = hash_string(filename, HashType.HASH_B)
        for entry in self._hash_table:
            if entry.hash_a == hash_a and entry.hash_b == hash_b:
                return entry
        return None

    def resolve(self, filename: str) -> Optional[MPQBlockTableEntry]:
        """Return the block table entry for a filename, or None if absent."""
        hash_entry = self.get_hash_table_entry(filename)
        if hash_entry is None:
            return None
        if hash_entry.block_table_index >= len(self._block_table):
            raise CorruptedError(
                f"Hash entry for {filename!r} points at block {hash_entry.block_table_index}, "
                f"table has {len(self._block_table)} entries"
            )
        return self._block_table[hash_entry.block_table_index]

    def read_file(self, filename: str, force_decompress: bool = False) -> Optional[bytes]:
        """Read a file from the archive.

        Returns None when the name is not in the hash table and an empty
        result when the file is marked deleted or has no stored bytes.
        """
        block_entry = self.resolve(filename)
        if block_entry is None:
            return None

        if not block_entry.exists or block_entry.archived_size == 0:
            return b""

        if block_entry.is_encrypted:
            raise UnsupportedLayoutError(f"{filename!r} is encrypted")
        if not block_entry.is_single_unit:
            raise UnsupportedLayoutError(f"{filename!r} is stored in sectors")

        reader = BinaryReader(self._file)
        reader.seek(block_entry.offset + self.header.offset)
        file_data = reader.read_bytes(block_entry.archived_size)

        # Compression only happens when at least one byte is gained
        if block_entry.is_compressed and (
            force_decompress or block_entry.size > block_entry.archived_size
        ):
            file_data = decompress(file_data, block_entry.size)

        return file_data

    def list_files(self) -> List[str]:
        """List filenames from the archive's listfile."""
        if self.files is None:
            raise RuntimeError("Listfile was not read; open with listfile=True")
        return list(self.files)

    def extract_all(
        self, output_dir: Path, progress_callback: Optional[callable] = None
    ) -> Iterator[Tuple[str, Path]]:
        """Extract every listed file to the output directory.

        Yields (filename, output_path) for each extracted file.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        filenames = self.list_files()

        for i, filename in enumerate(filenames):
            data = self.read_file(filename)
            if data is None:
                continue

            output_path = output_path_for(output_dir, filename)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(data)

            if progress_callback:
                progress_callback(i, len(filenames), filename)

            yield filename, output_path
