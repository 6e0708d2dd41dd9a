"""Values produced by the protocol decoders."""

from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Name:
    """An event type name attached by the event stream walker."""

    value: str

    def to_python(self) -> str:
        return self.value


@dataclass(frozen=True)
class Value:
    value: int

    def to_python(self) -> int:
        return self.value


@dataclass(frozen=True)
class Blob:
    """Text decoded from a blob or fourcc (empty when not valid UTF-8)."""

    value: str

    def to_python(self) -> str:
        return self.value


@dataclass(frozen=True)
class Bool:
    value: bool

    def to_python(self) -> bool:
        return self.value


@dataclass(frozen=True)
class Pair:
    """Bit array summary: its length in bits and the sum of its bytes."""

    length: int
    total: int

    def to_python(self) -> Tuple[int, int]:
        return (self.length, self.total)


@dataclass(frozen=True)
class Array:
    items: List["DecodedValue"] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator["DecodedValue"]:
        return iter(self.items)

    def __getitem__(self, index: int) -> "DecodedValue":
        return self.items[index]

    def to_python(self) -> list:
        return [item.to_python() for item in self.items]


@dataclass(frozen=True)
class Struct:
    """Ordered (name, value) pairs; names may repeat."""

    fields: List[Tuple[str, "DecodedValue"]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> Iterator[Tuple[str, "DecodedValue"]]:
        return iter(self.fields)

    def __contains__(self, name: str) -> bool:
        return any(key == name for key, _ in self.fields)

    def names(self) -> List[str]:
        return [key for key, _ in self.fields]

    def get(self, name: str, default: Optional["DecodedValue"] = None) -> Optional["DecodedValue"]:
        """Return the first value stored under ``name``."""
        for key, value in self.fields:
            if key == name:
                return value
        return default

    def to_python(self) -> dict:
        # Later duplicates overwrite earlier ones in the dict form
        return {key: value.to_python() for key, value in self.fields}


class _Marker:
    """Singleton result that carries no data."""

    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __bool__(self) -> bool:
        return False

    def to_python(self) -> Any:
        return None


# An absent optional or a null-typed field
NULL = _Marker("NULL")
# A struct or choice that was decoded but not materialized, or a skipped choice
EMPTY = _Marker("EMPTY")


DecodedValue = Union[Name, Value, Blob, Bool, Pair, Array, Struct, _Marker]


@dataclass
class Event:
    """One decoded record from an event stream."""

    entries: List[Tuple[str, DecodedValue]] = field(default_factory=list)

    def get(self, name: str, default: Optional[DecodedValue] = None) -> Optional[DecodedValue]:
        for key, value in self.entries:
            if key == name:
                return value
        return default

    def __getitem__(self, name: str) -> DecodedValue:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __contains__(self, name: str) -> bool:
        return any(key == name for key, _ in self.entries)

    @property
    def name(self) -> Optional[str]:
        value = self.get("_event")
        return value.value if isinstance(value, Name) else None

    @property
    def gameloop(self) -> Optional[int]:
        value = self.get("_gameloop")
        return value.value if isinstance(value, Value) else None

    def to_dict(self) -> dict:
        return {key: value.to_python() for key, value in self.entries}
