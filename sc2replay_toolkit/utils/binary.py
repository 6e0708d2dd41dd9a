"""Binary reading utilities for little-endian archive data and bit-packed streams."""

import struct
from io import BytesIO
from typing import BinaryIO, Union

from ..errors import TruncatedError


class BinaryReader:
    """Helper for reading fixed-width binary fields (MPQ data is little-endian)."""

    def __init__(self, data: Union[bytes, BinaryIO], endian: str = "<"):
        if isinstance(data, (bytes, bytearray)):
            self._stream = BytesIO(data)
        else:
            self._stream = data
        self._endian = endian

    @property
    def stream(self) -> BinaryIO:
        return self._stream

    def tell(self) -> int:
        return self._stream.tell()

    def seek(self, offset: int, whence: int = 0) -> int:
        return self._stream.seek(offset, whence)

    def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)

    def read_bytes(self, size: int) -> bytes:
        data = self._stream.read(size)
        if len(data) < size:
            raise TruncatedError(f"Expected {size} bytes, got {len(data)}")
        return data

    def unpack(self, fmt: str) -> tuple:
        """Read and unpack a struct format using the reader's byte order."""
        fmt = self._endian + fmt
        return struct.unpack(fmt, self.read_bytes(struct.calcsize(fmt)))

    def read_u8(self) -> int:
        return self.unpack("B")[0]

    def read_u16(self) -> int:
        return self.unpack("H")[0]

    def read_u32(self) -> int:
        return self.unpack("I")[0]

    def read_u64(self) -> int:
        return self.unpack("Q")[0]

    def read_i16(self) -> int:
        return self.unpack("h")[0]

    def read_i32(self) -> int:
        return self.unpack("i")[0]

    def read_i64(self) -> int:
        return self.unpack("q")[0]

    def skip(self, count: int) -> None:
        """Skip forward by count bytes."""
        self._stream.seek(count, 1)

    def remaining(self) -> int:
        """Return number of bytes remaining in stream."""
        current = self.tell()
        self._stream.seek(0, 2)  # Seek to end
        end = self.tell()
        self._stream.seek(current)
        return end - current

    def peek(self, size: int) -> bytes:
        """Read bytes without advancing position."""
        data = self._stream.read(size)
        self._stream.seek(-len(data), 1)
        return data


class BitReader:
    """Sequential reader of bit fields packed into a byte buffer.

    Bits are taken from the least significant end of each byte. In
    big-endian mode the bits of a multi-byte field fill the result from
    its most significant end; in little-endian mode (used by the
    attributes stream) they fill it from the least significant end.

    The cursor only moves forward. ``position`` counts whole bytes pulled
    from the buffer and ``pending_bits`` the unread bits left over from
    the last of them.
    """

    def __init__(self, data: bytes, endian: str = "big"):
        self._data = bytes(data or b"")
        self._used = 0
        self._next = 0
        self._nextbits = 0
        self._bigendian = endian == "big"

    def __repr__(self) -> str:
        current = "%02x" % self._data[self._used] if self._used < len(self._data) else "--"
        return "BitReader(%02x/%d,[%d]=%s)" % (
            self._next if self._nextbits else 0,
            self._nextbits,
            self._used,
            current,
        )

    @property
    def position(self) -> int:
        return self._used

    @property
    def pending_bits(self) -> int:
        return self._nextbits

    def at_end(self) -> bool:
        return self._used >= len(self._data)

    def used_bits(self) -> int:
        return self._used * 8 - self._nextbits

    def byte_align(self) -> None:
        """Drop any bits left over from a partially read byte."""
        self._nextbits = 0

    def read_aligned_bytes(self, count: int) -> bytes:
        self.byte_align()
        data = self._data[self._used:self._used + count]
        if len(data) != count:
            raise TruncatedError(f"Expected {count} bytes at {self!r}, got {len(data)}")
        self._used += count
        return data

    def read_bits(self, bits: int) -> int:
        result = 0
        resultbits = 0
        while resultbits != bits:
            if self._nextbits == 0:
                if self.at_end():
                    raise TruncatedError(f"Expected {bits - resultbits} more bits at {self!r}")
                self._next = self._data[self._used]
                self._used += 1
                self._nextbits = 8
            copybits = min(bits - resultbits, self._nextbits)
            copy = self._next & ((1 << copybits) - 1)
            if self._bigendian:
                result |= copy << (bits - resultbits - copybits)
            else:
                result |= copy << resultbits
            self._next >>= copybits
            self._nextbits -= copybits
            resultbits += copybits
        return result

    def read_unaligned_bytes(self, count: int) -> bytes:
        return bytes(self.read_bits(8) for _ in range(count))
