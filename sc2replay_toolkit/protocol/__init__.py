"""Schema-driven decoding of replay protocol data."""

from .decoders import BitPackedDecoder, Decoder, VersionedDecoder, WireKind
from .protocol import (
    Protocol,
    decode_replay_attributes_events,
    unit_tag,
    unit_tag_index,
    unit_tag_recycle,
)
from .registry import ProtocolRegistry
from .schema import ProtocolSchema
from .values import EMPTY, NULL, Event

__all__ = [
    "EMPTY",
    "NULL",
    "BitPackedDecoder",
    "Decoder",
    "Event",
    "Protocol",
    "ProtocolRegistry",
    "ProtocolSchema",
    "VersionedDecoder",
    "WireKind",
    "decode_replay_attributes_events",
    "unit_tag",
    "unit_tag_index",
    "unit_tag_recycle",
]
