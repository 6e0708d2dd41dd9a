"""MPQ hashing and table decryption.

Both the filename hashes and the stream cipher are driven by one 1280-entry
table (256 byte values x 5 hash types) generated from a fixed seed.
"""

import struct
from enum import IntEnum
from functools import lru_cache
from typing import Tuple

from ..errors import CorruptedError

HASH_SEED1 = 0x7FED7FED
HASH_SEED2 = 0xEEEEEEEE

# Key derivation for the two archive tables
HASH_TABLE_KEY_NAME = "(hash table)"
BLOCK_TABLE_KEY_NAME = "(block table)"


class HashType(IntEnum):
    """Row of the encryption table used by a hash."""

    TABLE_OFFSET = 0
    HASH_A = 1
    HASH_B = 2
    TABLE = 3


@lru_cache(maxsize=None)
def encryption_table() -> Tuple[int, ...]:
    """Return the shared encryption table, building it on first use."""
    seed = 0x00100001
    table = [0] * 0x500

    for i in range(256):
        index = i
        for _ in range(5):
            seed = (seed * 125 + 3) % 0x2AAAAB
            temp1 = (seed & 0xFFFF) << 0x10

            seed = (seed * 125 + 3) % 0x2AAAAB
            temp2 = seed & 0xFFFF

            table[index] = temp1 | temp2
            index += 0x100

    return tuple(table)


def hash_string(string: str, hash_type: HashType) -> int:
    """Hash a filename (case-insensitively) with the given hash type."""
    table = encryption_table()
    seed1 = HASH_SEED1
    seed2 = HASH_SEED2

    for ch in string.encode("utf-8").upper():
        value = table[(int(hash_type) << 8) + ch]
        seed1 = (value ^ (seed1 + seed2)) & 0xFFFFFFFF
        seed2 = (ch + seed1 + seed2 + (seed2 << 5) + 3) & 0xFFFFFFFF

    return seed1


def decrypt(data: bytes, key: int) -> bytes:
    """Decrypt hash/block table data encrypted with ``key``.

    The cipher works on little-endian 32-bit words, so ``data`` must be a
    whole number of words.
    """
    if len(data) % 4:
        raise CorruptedError(f"Encrypted data length {len(data)} is not a multiple of 4")

    table = encryption_table()
    seed1 = key
    seed2 = HASH_SEED2
    count = len(data) // 4
    words = struct.unpack(f"<{count}I", data)
    result = []

    for word in words:
        seed2 = (seed2 + table[0x400 + (seed1 & 0xFF)]) & 0xFFFFFFFF
        value = (word ^ (seed1 + seed2)) & 0xFFFFFFFF

        seed1 = (((~seed1 << 0x15) + 0x11111111) | (seed1 >> 0x0B)) & 0xFFFFFFFF
        seed2 = (value + seed2 + (seed2 << 5) + 3) & 0xFFFFFFFF

        result.append(value)

    return struct.pack(f"<{count}I", *result)
