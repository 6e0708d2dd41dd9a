"""Shared fixtures."""

import json
from pathlib import Path

import pytest

from builders import METADATA, TEST_SCHEMA, TRACKER_EVENTS, ArchiveFile, build_archive, replay_header_bytes

from sc2replay_toolkit.protocol import Protocol, ProtocolSchema


@pytest.fixture
def test_schema() -> ProtocolSchema:
    return ProtocolSchema.from_dict(TEST_SCHEMA)


@pytest.fixture
def test_protocol(test_schema) -> Protocol:
    return Protocol(test_schema)


@pytest.fixture
def make_archive(tmp_path):
    """Write a synthetic archive to disk and return its path."""

    def _make(files, name: str = "test.SC2Replay", **kwargs) -> Path:
        path = tmp_path / name
        path.write_bytes(build_archive(files, **kwargs))
        return path

    return _make


@pytest.fixture
def replay_files():
    return [
        ArchiveFile("(listfile)", b"replay.tracker.events\r\nreplay.gamemetadata.json\r\n"),
        ArchiveFile("replay.tracker.events", TRACKER_EVENTS),
        ArchiveFile("replay.gamemetadata.json", json.dumps(METADATA).encode()),
    ]


@pytest.fixture
def replay_path(make_archive, replay_files) -> Path:
    """A minimal replay written by build 24944."""
    return make_archive(replay_files, user_data=replay_header_bytes(24944, elapsed=1234))
