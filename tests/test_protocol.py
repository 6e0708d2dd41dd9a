"""Tests for event stream walking and the schema-free replay helpers."""

import struct

import pytest

from builders import TEST_SCHEMA, BitWriter, v_blob, v_choice, v_int, v_struct

from sc2replay_toolkit.errors import CorruptedError, SchemaError
from sc2replay_toolkit.protocol import (
    Protocol,
    ProtocolSchema,
    decode_replay_attributes_events,
    unit_tag,
    unit_tag_index,
    unit_tag_recycle,
)
from sc2replay_toolkit.protocol.values import Name, Struct, Value

COUNT_EVENT = v_choice(0, v_int(5)) + v_int(0) + v_struct(
    [(0, v_int(1)), (1, v_int(10)), (2, v_blob(b"Marine"))]
)
UNIT_EVENT = v_choice(1, v_int(16)) + v_int(1) + v_struct([(0, v_int(77))])


class TestTrackerEvents:
    """Tests for versioned event streams."""

    def test_decode(self, test_protocol):
        events = list(test_protocol.decode_replay_tracker_events(COUNT_EVENT + UNIT_EVENT))

        assert [event.name for event in events] == ["Test.SCountEvent", "Test.SUnitEvent"]
        assert [event.gameloop for event in events] == [5, 21]
        assert events[0].to_dict() == {
            "m_playerId": 1,
            "m_count": 10,
            "m_name": "Marine",
            "_event": "Test.SCountEvent",
            "_eventid": 0,
            "_gameloop": 5,
            "_bits": len(COUNT_EVENT) * 8,
        }
        assert events[1]["_bits"] == Value(len(UNIT_EVENT) * 8)
        assert "_userid" not in events[1]

    def test_empty_stream(self, test_protocol):
        assert list(test_protocol.decode_replay_tracker_events(b"")) == []

    def test_event_filter(self, test_protocol):
        events = list(
            test_protocol.decode_replay_tracker_events(
                COUNT_EVENT + UNIT_EVENT, event_filter={"Test.SUnitEvent"}
            )
        )
        assert len(events) == 1
        assert events[0].name == "Test.SUnitEvent"
        # Gameloop deltas of filtered events still count
        assert events[0].gameloop == 21

    def test_unknown_eventid(self, test_protocol):
        data = v_choice(0, v_int(1)) + v_int(9) + v_struct([])
        with pytest.raises(CorruptedError):
            list(test_protocol.decode_replay_tracker_events(data))

    def test_truncated_event(self, test_protocol):
        with pytest.raises(EOFError):
            list(test_protocol.decode_replay_tracker_events(COUNT_EVENT[:-3]))


class TestGameEvents:
    """Tests for bit-packed event streams."""

    def test_decode(self, test_protocol):
        writer = BitWriter()
        writer.write_bits(0, 2).write_bits(3, 6)  # gameloop delta
        writer.write_bits(2, 7)  # user id
        writer.write_bits(1, 7)  # event id
        writer.write_bits(0xDEADBEEF, 32)

        (event,) = test_protocol.decode_replay_game_events(writer.getvalue())

        assert event.name == "Test.SGameEvent"
        assert event.gameloop == 3
        assert event["_userid"] == Struct([("m_userId", Value(2))])
        assert event["m_unitTagIndex"] == Value(0xDEADBEEF)
        assert event["_bits"] == Value(56)
        assert event.to_dict()["_userid"] == {"m_userId": 2}

    def test_events_are_byte_aligned(self, test_protocol):
        writer = BitWriter()
        for delta in (1, 2):
            writer.write_bits(0, 2).write_bits(delta, 6)
            writer.write_bits(0, 7).write_bits(1, 7).write_bits(delta, 32)
            writer.byte_align()

        events = list(test_protocol.decode_replay_game_events(writer.getvalue()))
        assert [event.gameloop for event in events] == [1, 3]
        assert [event["m_unitTagIndex"].value for event in events] == [1, 2]

    def test_message_events_undefined(self, test_protocol):
        with pytest.raises(SchemaError):
            list(test_protocol.decode_replay_message_events(b"\x00"))

    def test_event_entries_order(self, test_protocol):
        data = BitWriter().write_bits(0, 8).write_bits(0, 7).write_bits(1, 7).write_bits(0, 32)
        (event,) = test_protocol.decode_replay_game_events(data.getvalue())
        assert [key for key, _ in event.entries] == [
            "m_unitTagIndex",
            "_event",
            "_eventid",
            "_gameloop",
            "_userid",
            "_bits",
        ]
        assert event["_event"] == Name("Test.SGameEvent")


class TestAttributesEvents:
    """Tests for decode_replay_attributes_events."""

    def test_decode(self):
        data = struct.pack("<BII", 0, 999, 2)
        data += struct.pack("<IIB", 1000, 500, 16) + b"\x00maH"
        data += struct.pack("<IIB", 1000, 3001, 1) + b"\x00rrT"

        attributes = decode_replay_attributes_events(data)

        assert attributes["source"] == 0
        assert attributes["mapNamespace"] == 999
        assert attributes["scopes"][16][500] == [{"namespace": 1000, "attrid": 500, "value": "Ham"}]
        assert attributes["scopes"][1][3001][0]["value"] == "Trr"

    def test_empty(self):
        assert decode_replay_attributes_events(b"") == {}

    def test_header_only(self):
        attributes = decode_replay_attributes_events(struct.pack("<BII", 0, 999, 0))
        assert attributes["scopes"] == {}


class TestUnitTags:
    """Tests for unit tag helpers."""

    def test_roundtrip(self):
        tag = unit_tag(123, 4)
        assert tag == (123 << 18) + 4
        assert unit_tag_index(tag) == 123
        assert unit_tag_recycle(tag) == 4


class TestSingleValues:
    """Tests for sub-files holding one decoded value."""

    @pytest.fixture
    def protocol(self):
        data = dict(TEST_SCHEMA, game_details_typeid=7, replay_initdata_typeid=7)
        return Protocol(ProtocolSchema.from_dict(data))

    def test_details(self, protocol):
        data = v_struct([(0, v_int(2)), (2, v_blob(b"Kerrigan"))])
        assert protocol.decode_replay_details(data).to_python() == {"m_playerId": 2, "m_name": "Kerrigan"}

    def test_initdata(self, protocol):
        writer = BitWriter().write_bits(3, 6).write_bits(9, 32).write_bits(2, 8)
        writer.write_aligned_bytes(b"ok")
        value = protocol.decode_replay_initdata(writer.getvalue())
        assert value.to_python() == {"m_playerId": 3, "m_count": 9, "m_name": "ok"}

    def test_undefined_type(self, test_protocol):
        with pytest.raises(SchemaError):
            test_protocol.decode_replay_header(b"")
