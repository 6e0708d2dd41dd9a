"""MPQ archive reading."""

from .crypto import HashType, decrypt, encryption_table, hash_string
from .header import (
    MPQ_MAGIC,
    MPQ_USER_DATA_MAGIC,
    MPQBlockTableEntry,
    MPQFileFlags,
    MPQHashTableEntry,
    MPQHeader,
    MPQUserDataHeader,
)
from .reader import MPQArchive

__all__ = [
    "MPQ_MAGIC",
    "MPQ_USER_DATA_MAGIC",
    "HashType",
    "MPQArchive",
    "MPQBlockTableEntry",
    "MPQFileFlags",
    "MPQHashTableEntry",
    "MPQHeader",
    "MPQUserDataHeader",
    "decrypt",
    "encryption_table",
    "hash_string",
]
