"""Schema-driven decoders for bit-packed and versioned protocol data.

Both decoders share one recursive walk over the schema (``Decoder.instance``)
and differ only in how primitive values are laid out on the wire:

* ``BitPackedDecoder`` reads each field as raw bits sized by the schema; the
  stream carries no self-description.
* ``VersionedDecoder`` prefixes every value with a kind byte, encodes
  integers as variable-length ints and tags struct fields, so fields missing
  from the wire are left out and unknown ones are skipped.

Passing ``materialize=False`` walks the same bytes but returns ``EMPTY``
for structs and choices instead of building their contents.
"""

from enum import IntEnum
from typing import Iterator, Tuple

from ..errors import CorruptedError
from ..utils.binary import BitReader
from .schema import (
    ArrayType,
    BitArrayType,
    BlobType,
    BoolType,
    ChoiceType,
    FourCCType,
    IntBounds,
    IntType,
    NullType,
    OptionalType,
    ProtocolSchema,
    StructField,
    StructType,
    TypeInfo,
)
from .values import EMPTY, NULL, Array, Blob, Bool, DecodedValue, Pair, Struct, Value

BOOL_BOUNDS = IntBounds(0, 1)


class WireKind(IntEnum):
    """Kind byte written before every value by the versioned encoding."""

    ARRAY = 0
    BITBLOB = 1
    BLOB = 2
    CHOICE = 3
    OPTIONAL = 4
    STRUCT = 5
    U8 = 6
    U32 = 7
    U64 = 8
    VINT = 9


def _to_text(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return ""


class Decoder:
    """Shared recursive walk over a protocol schema.

    Subclasses provide the primitive reads; the structure of arrays,
    optionals, choices and structs is handled here once.
    """

    _DISPATCH = {
        IntType: "_decode_int",
        BlobType: "_decode_blob",
        BoolType: "_decode_bool",
        ArrayType: "_decode_array",
        BitArrayType: "_decode_bitarray",
        OptionalType: "_decode_optional",
        FourCCType: "_decode_fourcc",
        NullType: "_decode_null",
        ChoiceType: "_decode_choice",
        StructType: "_decode_struct",
    }

    def __init__(self, contents: bytes, schema: ProtocolSchema):
        self._buffer = BitReader(contents)
        self._schema = schema

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._buffer!r})"

    @property
    def buffer(self) -> BitReader:
        return self._buffer

    def byte_align(self) -> None:
        self._buffer.byte_align()

    def done(self) -> bool:
        return self._buffer.at_end()

    def used_bits(self) -> int:
        return self._buffer.used_bits()

    def instance(self, typeid: int, materialize: bool = True) -> DecodedValue:
        """Decode one value of schema type ``typeid``."""
        if not 0 <= typeid < len(self._schema):
            raise CorruptedError(f"Unknown type id {typeid} at {self!r}")
        typeinfo = self._schema[typeid]
        return getattr(self, self._DISPATCH[type(typeinfo)])(typeinfo, materialize)

    def _decode_int(self, typeinfo: IntType, materialize: bool) -> DecodedValue:
        return Value(self._int(typeinfo.bounds))

    def _decode_blob(self, typeinfo: BlobType, materialize: bool) -> DecodedValue:
        return Blob(_to_text(self._blob(typeinfo.bounds)))

    def _decode_bool(self, typeinfo: BoolType, materialize: bool) -> DecodedValue:
        return Bool(self._bool())

    def _decode_array(self, typeinfo: ArrayType, materialize: bool) -> DecodedValue:
        length = self._array_length(typeinfo.bounds)
        return Array([self.instance(typeinfo.typeid, materialize) for _ in range(length)])

    def _decode_bitarray(self, typeinfo: BitArrayType, materialize: bool) -> DecodedValue:
        length, total = self._bitarray(typeinfo.bounds)
        return Pair(length, total)

    def _decode_optional(self, typeinfo: OptionalType, materialize: bool) -> DecodedValue:
        if self._optional_exists():
            return self.instance(typeinfo.typeid, materialize)
        return NULL

    def _decode_fourcc(self, typeinfo: FourCCType, materialize: bool) -> DecodedValue:
        return Blob(_to_text(self._fourcc()))

    def _decode_null(self, typeinfo: NullType, materialize: bool) -> DecodedValue:
        return NULL

    def _decode_choice(self, typeinfo: ChoiceType, materialize: bool) -> DecodedValue:
        tag = self._choice_tag(typeinfo.bounds)
        field = typeinfo.fields.get(tag)
        if field is None:
            return self._unknown_choice(tag)
        name, typeid = field
        value = self.instance(typeid, materialize)
        return Struct([(name, value)]) if materialize else EMPTY

    def _decode_struct(self, typeinfo: StructType, materialize: bool) -> DecodedValue:
        fields = []
        for field in self._struct_fields(typeinfo):
            value = self.instance(field.typeid, materialize)
            if materialize:
                fields.append((field.name, value))
        return Struct(fields) if materialize else EMPTY

    # Primitive reads

    def _int(self, bounds: IntBounds) -> int:
        raise NotImplementedError

    def _blob(self, bounds: IntBounds) -> bytes:
        raise NotImplementedError

    def _bool(self) -> bool:
        raise NotImplementedError

    def _array_length(self, bounds: IntBounds) -> int:
        raise NotImplementedError

    def _bitarray(self, bounds: IntBounds) -> Tuple[int, int]:
        raise NotImplementedError

    def _optional_exists(self) -> bool:
        raise NotImplementedError

    def _fourcc(self) -> bytes:
        raise NotImplementedError

    def _choice_tag(self, bounds: IntBounds) -> int:
        raise NotImplementedError

    def _unknown_choice(self, tag: int) -> DecodedValue:
        raise NotImplementedError

    def _struct_fields(self, typeinfo: StructType) -> Iterator[StructField]:
        raise NotImplementedError


class BitPackedDecoder(Decoder):
    """Decoder for streams whose layout is fixed entirely by the schema."""

    def _int(self, bounds: IntBounds) -> int:
        return bounds.offset + self._buffer.read_bits(bounds.bits)

    def _blob(self, bounds: IntBounds) -> bytes:
        length = self._int(bounds)
        return self._buffer.read_aligned_bytes(length)

    def _bool(self) -> bool:
        return self._int(BOOL_BOUNDS) != 0

    def _array_length(self, bounds: IntBounds) -> int:
        return self._int(bounds)

    def _bitarray(self, bounds: IntBounds) -> Tuple[int, int]:
        length = self._int(bounds)
        total = 0
        remaining = length
        while remaining > 0:
            chunk = min(8, remaining)
            total += self._buffer.read_bits(chunk)
            remaining -= chunk
        return length, total

    def _optional_exists(self) -> bool:
        return self._bool()

    def _fourcc(self) -> bytes:
        return self._buffer.read_unaligned_bytes(4)

    def _choice_tag(self, bounds: IntBounds) -> int:
        return self._int(bounds)

    def _unknown_choice(self, tag: int) -> DecodedValue:
        raise CorruptedError(f"Unknown choice tag {tag} at {self!r}")

    def _struct_fields(self, typeinfo: StructType) -> Iterator[StructField]:
        return iter(typeinfo.fields)


class VersionedDecoder(Decoder):
    """Decoder for the self-describing, tag-versioned encoding."""

    def _expect_skip(self, expected: WireKind) -> None:
        kind = self._buffer.read_bits(8)
        if kind != expected:
            raise CorruptedError(f"Expected {expected.name} (kind {int(expected)}), got kind {kind} at {self!r}")

    def _vint(self) -> int:
        b = self._buffer.read_bits(8)
        negative = b & 1
        result = (b >> 1) & 0x3F
        bits = 6
        while (b & 0x80) != 0:
            b = self._buffer.read_bits(8)
            result |= (b & 0x7F) << bits
            bits += 7
        return -result if negative else result

    def _vlength(self) -> int:
        length = self._vint()
        if length < 0:
            raise CorruptedError(f"Negative length {length} at {self!r}")
        return length

    def _int(self, bounds: IntBounds) -> int:
        self._expect_skip(WireKind.VINT)
        return self._vint()

    def _blob(self, bounds: IntBounds) -> bytes:
        self._expect_skip(WireKind.BLOB)
        return self._buffer.read_aligned_bytes(self._vlength())

    def _bool(self) -> bool:
        self._expect_skip(WireKind.U8)
        return self._buffer.read_bits(8) != 0

    def _array_length(self, bounds: IntBounds) -> int:
        self._expect_skip(WireKind.ARRAY)
        return self._vlength()

    def _bitarray(self, bounds: IntBounds) -> Tuple[int, int]:
        self._expect_skip(WireKind.BITBLOB)
        length = self._vlength()
        data = self._buffer.read_aligned_bytes((length + 7) // 8)
        return length, sum(data)

    def _optional_exists(self) -> bool:
        self._expect_skip(WireKind.OPTIONAL)
        return self._buffer.read_bits(8) != 0

    def _fourcc(self) -> bytes:
        self._expect_skip(WireKind.U32)
        return self._buffer.read_aligned_bytes(4)

    def _choice_tag(self, bounds: IntBounds) -> int:
        self._expect_skip(WireKind.CHOICE)
        return self._vint()

    def _unknown_choice(self, tag: int) -> DecodedValue:
        self._skip_instance()
        return EMPTY

    def _struct_fields(self, typeinfo: StructType) -> Iterator[StructField]:
        self._expect_skip(WireKind.STRUCT)
        length = self._vlength()
        for _ in range(length):
            tag = self._vint()
            field = typeinfo.field_by_tag(tag)
            if field is None:
                self._skip_instance()
            else:
                yield field

    def _skip_instance(self) -> None:
        """Consume one value of any kind without interpreting it."""
        skip = self._buffer.read_bits(8)
        if skip == WireKind.ARRAY:
            length = self._vlength()
            for _ in range(length):
                self._skip_instance()
        elif skip == WireKind.BITBLOB:
            length = self._vlength()
            self._buffer.read_aligned_bytes((length + 7) // 8)
        elif skip == WireKind.BLOB:
            length = self._vlength()
            self._buffer.read_aligned_bytes(length)
        elif skip == WireKind.CHOICE:
            self._vint()  # tag
            self._skip_instance()
        elif skip == WireKind.OPTIONAL:
            exists = self._buffer.read_bits(8) != 0
            if exists:
                self._skip_instance()
        elif skip == WireKind.STRUCT:
            length = self._vlength()
            for _ in range(length):
                self._vint()  # tag
                self._skip_instance()
        elif skip == WireKind.U8:
            self._buffer.read_aligned_bytes(1)
        elif skip == WireKind.U32:
            self._buffer.read_aligned_bytes(4)
        elif skip == WireKind.U64:
            self._buffer.read_aligned_bytes(8)
        elif skip == WireKind.VINT:
            self._vint()
        else:
            raise CorruptedError(f"Unknown wire kind {skip} at {self!r}")
