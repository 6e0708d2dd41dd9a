"""Tests for protocol schemas and the schema registry."""

import json

import pytest

from builders import TEST_SCHEMA

from sc2replay_toolkit.errors import SchemaError, UnknownProtocolError
from sc2replay_toolkit.protocol import ProtocolRegistry, ProtocolSchema
from sc2replay_toolkit.protocol.registry import BUNDLED_SCHEMA_DIR, SCHEMA_PATH_ENV
from sc2replay_toolkit.protocol.schema import (
    ChoiceType,
    IntBounds,
    IntType,
    StructField,
    StructType,
    parse_typeinfo,
)


class TestParseTypeinfo:
    """Tests for parse_typeinfo."""

    def test_int(self):
        assert parse_typeinfo(["_int", [[-4, 8]]]) == IntType(IntBounds(-4, 8))

    def test_choice(self):
        typeinfo = parse_typeinfo(["_choice", [[0, 2], {"0": ["m_a", 1], "3": ["m_b", 2]}]])
        assert typeinfo == ChoiceType(IntBounds(0, 2), {0: ("m_a", 1), 3: ("m_b", 2)})

    def test_struct(self):
        typeinfo = parse_typeinfo(["_struct", [[["m_userId", 2, -1]]]])
        assert typeinfo == StructType((StructField("m_userId", 2, -1),))
        assert typeinfo.field_by_tag(-1).name == "m_userId"
        assert typeinfo.field_by_tag(0) is None

    def test_unknown_kind(self):
        with pytest.raises(SchemaError):
            parse_typeinfo(["_float", []])

    @pytest.mark.parametrize(
        "entry",
        [
            ["_int"],
            ["_int", []],
            ["_array", [[0, 4]]],
            ["_choice", [[0, 2], ["m_a", 1]]],
            ["_struct", [[["m_a", "x", 0]]]],
        ],
    )
    def test_malformed(self, entry):
        with pytest.raises(SchemaError):
            parse_typeinfo(entry)


class TestProtocolSchema:
    """Tests for ProtocolSchema class."""

    def test_from_dict(self, test_schema):
        assert test_schema.build == 100
        assert len(test_schema) == 10
        assert test_schema.svaruint32_typeid == 5
        assert test_schema.tracker_event_types[1] == (9, "Test.SUnitEvent")
        assert test_schema.message_eventid_typeid is None

    def test_missing_typeinfos(self):
        with pytest.raises(SchemaError):
            ProtocolSchema.from_dict({"build": 1})

    def test_dangling_type_reference(self):
        with pytest.raises(SchemaError):
            ProtocolSchema.from_dict({"typeinfos": [["_array", [[0, 4], 5]]]})

    def test_dangling_event_type(self):
        data = dict(TEST_SCHEMA, tracker_event_types={"0": [42, "Test.SMissing"]})
        with pytest.raises(SchemaError):
            ProtocolSchema.from_dict(data)

    def test_dangling_named_typeid(self):
        data = dict(TEST_SCHEMA, replay_header_typeid=42)
        with pytest.raises(SchemaError):
            ProtocolSchema.from_dict(data)

    def test_named_typeid_cast_to_int(self):
        schema = ProtocolSchema.from_dict(dict(TEST_SCHEMA, svaruint32_typeid="5"))
        assert schema.svaruint32_typeid == 5

    @pytest.mark.parametrize("value", ["five", [5], {"id": 5}])
    def test_malformed_named_typeid(self, value):
        with pytest.raises(SchemaError):
            ProtocolSchema.from_dict(dict(TEST_SCHEMA, svaruint32_typeid=value))

    def test_malformed_build(self):
        with pytest.raises(SchemaError):
            ProtocolSchema.from_dict(dict(TEST_SCHEMA, build="latest"))

    @pytest.mark.parametrize("typeinfos", [5, "_int", {"0": ["_int", [[0, 7]]]}])
    def test_typeinfos_not_a_list(self, typeinfos):
        with pytest.raises(SchemaError):
            ProtocolSchema.from_dict(dict(TEST_SCHEMA, typeinfos=typeinfos))

    @pytest.mark.parametrize("data", [[], "schema", 5])
    def test_not_an_object(self, data):
        with pytest.raises(SchemaError):
            ProtocolSchema.from_dict(data)

    def test_event_map_not_an_object(self):
        with pytest.raises(SchemaError):
            ProtocolSchema.from_dict(dict(TEST_SCHEMA, tracker_event_types=[[7, "Test.SCountEvent"]]))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "protocol1.json"
        path.write_text("{not json")
        with pytest.raises(SchemaError):
            ProtocolSchema.from_json(path)

    def test_bundled_schema(self):
        schema = ProtocolSchema.from_json(BUNDLED_SCHEMA_DIR / "protocol24944.json")
        assert schema.build == 24944
        assert len(schema) == 175
        assert schema.replay_header_typeid == 13
        assert schema.tracker_event_types[5] == (171, "NNet.Replay.Tracker.SUpgradeEvent")


@pytest.fixture
def schema_dir(tmp_path, monkeypatch):
    monkeypatch.delenv(SCHEMA_PATH_ENV, raising=False)
    directory = tmp_path / "schemas"
    directory.mkdir()
    for build in (100, 200):
        (directory / f"protocol{build}.json").write_text(json.dumps(dict(TEST_SCHEMA, build=build)))
    (directory / "notes.txt").write_text("ignored")
    return directory


class TestProtocolRegistry:
    """Tests for ProtocolRegistry class."""

    def test_builds(self, schema_dir):
        registry = ProtocolRegistry([schema_dir], include_bundled=False)
        assert registry.builds() == [100, 200]
        assert 100 in registry
        assert 150 not in registry

    def test_get(self, schema_dir):
        registry = ProtocolRegistry([schema_dir], include_bundled=False)
        assert registry.get(200).build == 200

    def test_get_is_cached(self, schema_dir):
        registry = ProtocolRegistry([schema_dir], include_bundled=False)
        assert registry.get(100) is registry.get(100)

    def test_unknown_build(self, schema_dir):
        registry = ProtocolRegistry([schema_dir], include_bundled=False)
        with pytest.raises(UnknownProtocolError):
            registry.get(150)

    def test_fallback_to_older_build(self, schema_dir, caplog):
        registry = ProtocolRegistry([schema_dir], include_bundled=False)
        assert registry.get(150, fallback=True).build == 100
        assert "using 100" in caplog.text

    def test_fallback_needs_older_build(self, schema_dir):
        registry = ProtocolRegistry([schema_dir], include_bundled=False)
        with pytest.raises(UnknownProtocolError):
            registry.get(50, fallback=True)

    def test_latest(self, schema_dir):
        registry = ProtocolRegistry([schema_dir], include_bundled=False)
        assert registry.latest().build == 200

    def test_latest_without_schemas(self, tmp_path, monkeypatch):
        monkeypatch.delenv(SCHEMA_PATH_ENV, raising=False)
        registry = ProtocolRegistry([tmp_path / "missing"], include_bundled=False)
        with pytest.raises(UnknownProtocolError):
            registry.latest()

    def test_environment_variable(self, schema_dir, monkeypatch):
        monkeypatch.setenv(SCHEMA_PATH_ENV, str(schema_dir))
        registry = ProtocolRegistry(include_bundled=False)
        assert registry.builds() == [100, 200]

    def test_explicit_paths_take_precedence(self, schema_dir, tmp_path):
        override = tmp_path / "override"
        override.mkdir()
        data = dict(TEST_SCHEMA, build=100, replay_header_typeid=7)
        (override / "protocol100.json").write_text(json.dumps(data))

        registry = ProtocolRegistry([override, schema_dir], include_bundled=False)
        assert registry.get(100).schema.replay_header_typeid == 7

    def test_bundled(self, monkeypatch):
        monkeypatch.delenv(SCHEMA_PATH_ENV, raising=False)
        registry = ProtocolRegistry()
        assert 24944 in registry
        assert registry.get(24944).build == 24944
