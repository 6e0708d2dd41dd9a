"""Decoding of the named replay sub-files for one protocol build."""

import logging
from typing import Any, Collection, Dict, Iterator, List, Optional, Tuple

from ..errors import CorruptedError, SchemaError
from ..utils.binary import BitReader
from .decoders import BitPackedDecoder, Decoder, VersionedDecoder
from .schema import ProtocolSchema
from .values import Event, Name, Struct, Value

logger = logging.getLogger(__name__)


def _varuint32_value(value: Any) -> int:
    # A SVarUint32 is a choice of differently sized ints; take whichever is set
    if isinstance(value, Struct):
        for _, inner in value:
            if isinstance(inner, Value):
                return inner.value
    return 0


class Protocol:
    """Decoders for the sub-files of replays written by one game build."""

    def __init__(self, schema: ProtocolSchema):
        self.schema = schema

    def __repr__(self) -> str:
        return f"Protocol(build={self.schema.build})"

    @property
    def build(self) -> int:
        return self.schema.build

    def _typeid(self, name: str) -> int:
        typeid = getattr(self.schema, name)
        if typeid is None:
            raise SchemaError(f"Protocol {self.build} does not define {name}")
        return typeid

    def decode_event_stream(
        self,
        decoder: Decoder,
        eventid_typeid: int,
        event_types: Dict[int, Tuple[int, str]],
        decode_user_id: bool,
        event_filter: Optional[Collection[str]] = None,
    ) -> Iterator[Event]:
        """Decode events until the stream is exhausted.

        Each event is prefixed with a gameloop delta and, for game and
        message streams, the id of the user who issued it. Events whose
        name is not in ``event_filter`` are walked without building their
        fields and are not yielded.
        """
        svaruint32_typeid = self._typeid("svaruint32_typeid")
        userid_typeid = self._typeid("replay_userid_typeid") if decode_user_id else None
        gameloop = 0
        count = 0

        while not decoder.done():
            start_bits = decoder.used_bits()

            # decode the gameloop delta before each event
            delta = _varuint32_value(decoder.instance(svaruint32_typeid))
            gameloop += delta

            if userid_typeid is not None:
                userid = decoder.instance(userid_typeid)

            eventid_value = decoder.instance(eventid_typeid)
            eventid = eventid_value.value if isinstance(eventid_value, Value) else None
            typeid, typename = event_types.get(eventid, (None, None))
            if typeid is None:
                raise CorruptedError(f"eventid({eventid}) at {decoder!r}")

            materialize = event_filter is None or typename in event_filter
            value = decoder.instance(typeid, materialize)

            # the next event is byte aligned
            decoder.byte_align()

            if not materialize:
                continue

            entries = list(value) if isinstance(value, Struct) else []
            entries.append(("_event", Name(typename)))
            entries.append(("_eventid", Value(eventid)))
            entries.append(("_gameloop", Value(gameloop)))
            if userid_typeid is not None:
                entries.append(("_userid", userid))
            entries.append(("_bits", Value(decoder.used_bits() - start_bits)))

            count += 1
            yield Event(entries)

        logger.debug("Decoded %d events up to gameloop %d", count, gameloop)

    def decode_replay_game_events(
        self, contents: bytes, event_filter: Optional[Collection[str]] = None
    ) -> Iterator[Event]:
        """Decode and yield each game event from the contents byte string."""
        decoder = BitPackedDecoder(contents, self.schema)
        return self.decode_event_stream(
            decoder,
            self._typeid("game_eventid_typeid"),
            self.schema.game_event_types,
            decode_user_id=True,
            event_filter=event_filter,
        )

    def decode_replay_message_events(
        self, contents: bytes, event_filter: Optional[Collection[str]] = None
    ) -> Iterator[Event]:
        """Decode and yield each message event from the contents byte string."""
        decoder = BitPackedDecoder(contents, self.schema)
        return self.decode_event_stream(
            decoder,
            self._typeid("message_eventid_typeid"),
            self.schema.message_event_types,
            decode_user_id=True,
            event_filter=event_filter,
        )

    def decode_replay_tracker_events(
        self, contents: bytes, event_filter: Optional[Collection[str]] = None
    ) -> Iterator[Event]:
        """Decode and yield each tracker event from the contents byte string."""
        decoder = VersionedDecoder(contents, self.schema)
        return self.decode_event_stream(
            decoder,
            self._typeid("tracker_eventid_typeid"),
            self.schema.tracker_event_types,
            decode_user_id=False,
            event_filter=event_filter,
        )

    def decode_replay_header(self, contents: bytes) -> Struct:
        """Decode the replay header stored in the archive's user data."""
        decoder = VersionedDecoder(contents, self.schema)
        return decoder.instance(self._typeid("replay_header_typeid"))

    def decode_replay_details(self, contents: bytes) -> Struct:
        """Decode the game details (players, map, time)."""
        decoder = VersionedDecoder(contents, self.schema)
        return decoder.instance(self._typeid("game_details_typeid"))

    def decode_replay_initdata(self, contents: bytes) -> Struct:
        """Decode the initial lobby state."""
        decoder = BitPackedDecoder(contents, self.schema)
        return decoder.instance(self._typeid("replay_initdata_typeid"))


def decode_replay_attributes_events(contents: bytes) -> Dict[str, Any]:
    """Decode the lobby attributes stream.

    The layout is the same for every build, so no schema is involved.
    Attribute values are four bytes stored reversed and null padded;
    they are returned as text.
    """
    buffer = BitReader(contents, "little")
    attributes: Dict[str, Any] = {}
    if buffer.at_end():
        return attributes

    attributes["source"] = buffer.read_bits(8)
    attributes["mapNamespace"] = buffer.read_bits(32)
    buffer.read_bits(32)  # count
    scopes: Dict[int, Dict[int, List[Dict[str, Any]]]] = {}
    attributes["scopes"] = scopes

    while not buffer.at_end():
        value: Dict[str, Any] = {}
        value["namespace"] = buffer.read_bits(32)
        value["attrid"] = attrid = buffer.read_bits(32)
        scope = buffer.read_bits(8)
        raw = buffer.read_aligned_bytes(4)[::-1].strip(b"\x00")
        value["value"] = raw.decode("utf-8", errors="replace")
        scopes.setdefault(scope, {}).setdefault(attrid, []).append(value)

    return attributes


def unit_tag(unit_tag_index: int, unit_tag_recycle: int) -> int:
    return (unit_tag_index << 18) + unit_tag_recycle


def unit_tag_index(tag: int) -> int:
    return (tag >> 18) & 0x00003FFF


def unit_tag_recycle(tag: int) -> int:
    return tag & 0x0003FFFF
