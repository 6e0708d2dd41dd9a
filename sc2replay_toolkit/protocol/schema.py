"""Protocol type tables.

A schema is a flat list of type descriptions addressed by integer id.
Types refer to each other only by id, so recursive shapes (structs holding
arrays of structs) need no object graph: decoders resolve every id against
the same table as they walk it.

Schemas are data, loaded from ``protocol<build>.json`` assets. Each
``typeinfos`` entry is ``[kind, args]``::

    ["_int", [[offset, bits]]]
    ["_blob", [[offset, bits]]]
    ["_bool", []]
    ["_array", [[offset, bits], element_typeid]]
    ["_bitarray", [[offset, bits]]]
    ["_optional", [typeid]]
    ["_fourcc", []]
    ["_choice", [[offset, bits], {"tag": [name, typeid], ...}]]
    ["_struct", [[[name, typeid, tag], ...]]]
    ["_null", []]
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import SchemaError


@dataclass(frozen=True)
class IntBounds:
    """Value range of an integer field: ``offset`` plus ``bits`` raw bits."""

    offset: int
    bits: int


@dataclass(frozen=True)
class IntType:
    bounds: IntBounds


@dataclass(frozen=True)
class BlobType:
    bounds: IntBounds


@dataclass(frozen=True)
class BoolType:
    pass


@dataclass(frozen=True)
class ArrayType:
    bounds: IntBounds
    typeid: int


@dataclass(frozen=True)
class BitArrayType:
    bounds: IntBounds


@dataclass(frozen=True)
class OptionalType:
    typeid: int


@dataclass(frozen=True)
class FourCCType:
    pass


@dataclass(frozen=True)
class NullType:
    pass


@dataclass(frozen=True)
class ChoiceType:
    bounds: IntBounds
    fields: Dict[int, Tuple[str, int]]


@dataclass(frozen=True)
class StructField:
    name: str
    typeid: int
    tag: int


@dataclass(frozen=True)
class StructType:
    fields: Tuple[StructField, ...]

    def field_by_tag(self, tag: int) -> Optional[StructField]:
        for struct_field in self.fields:
            if struct_field.tag == tag:
                return struct_field
        return None


TypeInfo = Union[
    IntType,
    BlobType,
    BoolType,
    ArrayType,
    BitArrayType,
    OptionalType,
    FourCCType,
    NullType,
    ChoiceType,
    StructType,
]


def _bounds(value: Any) -> IntBounds:
    offset, bits = value
    return IntBounds(int(offset), int(bits))


def parse_typeinfo(entry: Any) -> TypeInfo:
    """Build a TypeInfo from one ``[kind, args]`` schema entry."""
    try:
        kind, args = entry
        if kind == "_int":
            return IntType(_bounds(args[0]))
        if kind == "_blob":
            return BlobType(_bounds(args[0]))
        if kind == "_bool":
            return BoolType()
        if kind == "_array":
            return ArrayType(_bounds(args[0]), int(args[1]))
        if kind == "_bitarray":
            return BitArrayType(_bounds(args[0]))
        if kind == "_optional":
            return OptionalType(int(args[0]))
        if kind == "_fourcc":
            return FourCCType()
        if kind == "_null":
            return NullType()
        if kind == "_choice":
            fields = {int(tag): (str(name), int(typeid)) for tag, (name, typeid) in args[1].items()}
            return ChoiceType(_bounds(args[0]), fields)
        if kind == "_struct":
            return StructType(
                tuple(StructField(str(name), int(typeid), int(tag)) for name, typeid, tag in args[0])
            )
    except (TypeError, ValueError, IndexError, KeyError, AttributeError) as e:
        raise SchemaError(f"Malformed type entry {entry!r}: {e}") from e
    raise SchemaError(f"Unknown type kind in entry {entry!r}")


def _referenced_typeids(typeinfo: TypeInfo) -> List[int]:
    if isinstance(typeinfo, (ArrayType, OptionalType)):
        return [typeinfo.typeid]
    if isinstance(typeinfo, ChoiceType):
        return [typeid for _, typeid in typeinfo.fields.values()]
    if isinstance(typeinfo, StructType):
        return [f.typeid for f in typeinfo.fields]
    return []


# Type ids the decoders look up by name
NAMED_TYPEIDS = (
    "game_eventid_typeid",
    "message_eventid_typeid",
    "tracker_eventid_typeid",
    "svaruint32_typeid",
    "replay_userid_typeid",
    "replay_header_typeid",
    "game_details_typeid",
    "replay_initdata_typeid",
)


def _event_types(raw: Optional[Dict[str, Any]]) -> Dict[int, Tuple[int, str]]:
    if not raw:
        return {}
    try:
        return {int(eventid): (int(typeid), str(name)) for eventid, (typeid, name) in raw.items()}
    except (TypeError, ValueError, AttributeError) as e:
        raise SchemaError(f"Malformed event type map: {e}") from e


@dataclass(frozen=True)
class ProtocolSchema:
    """Type table and event maps for one protocol build."""

    build: int
    typeinfos: Tuple[TypeInfo, ...]
    game_event_types: Dict[int, Tuple[int, str]] = field(default_factory=dict)
    message_event_types: Dict[int, Tuple[int, str]] = field(default_factory=dict)
    tracker_event_types: Dict[int, Tuple[int, str]] = field(default_factory=dict)
    game_eventid_typeid: Optional[int] = None
    message_eventid_typeid: Optional[int] = None
    tracker_eventid_typeid: Optional[int] = None
    svaruint32_typeid: Optional[int] = None
    replay_userid_typeid: Optional[int] = None
    replay_header_typeid: Optional[int] = None
    game_details_typeid: Optional[int] = None
    replay_initdata_typeid: Optional[int] = None

    def __len__(self) -> int:
        return len(self.typeinfos)

    def __getitem__(self, typeid: int) -> TypeInfo:
        return self.typeinfos[typeid]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolSchema":
        """Build and validate a schema from its decoded JSON form."""
        if not isinstance(data, dict):
            raise SchemaError(f"Schema must be a JSON object, got {type(data).__name__}")
        if "typeinfos" not in data:
            raise SchemaError("Schema has no typeinfos table")
        if not isinstance(data["typeinfos"], list):
            raise SchemaError("Schema typeinfos must be a list")

        typeinfos = tuple(parse_typeinfo(entry) for entry in data["typeinfos"])
        try:
            build = int(data.get("build", 0))
            typeids = {
                name: None if data.get(name) is None else int(data[name])
                for name in NAMED_TYPEIDS
            }
        except (TypeError, ValueError) as e:
            raise SchemaError(f"Malformed schema header: {e}") from e

        schema = cls(
            build=build,
            typeinfos=typeinfos,
            game_event_types=_event_types(data.get("game_event_types")),
            message_event_types=_event_types(data.get("message_event_types")),
            tracker_event_types=_event_types(data.get("tracker_event_types")),
            **typeids,
        )
        schema.validate()
        return schema

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "ProtocolSchema":
        """Load a schema asset from disk."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise SchemaError(f"{path.name} is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def validate(self) -> None:
        """Check that every type id referenced by the schema exists."""
        count = len(self.typeinfos)

        for typeid, typeinfo in enumerate(self.typeinfos):
            for ref in _referenced_typeids(typeinfo):
                if not 0 <= ref < count:
                    raise SchemaError(f"Type {typeid} references unknown type {ref}")

        for name in NAMED_TYPEIDS:
            ref = getattr(self, name)
            if ref is not None and not 0 <= ref < count:
                raise SchemaError(f"{name} references unknown type {ref}")

        for event_types in (self.game_event_types, self.message_event_types, self.tracker_event_types):
            for eventid, (ref, name) in event_types.items():
                if not 0 <= ref < count:
                    raise SchemaError(f"Event {eventid} ({name}) references unknown type {ref}")
