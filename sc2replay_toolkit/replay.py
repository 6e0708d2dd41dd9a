"""High level access to a .SC2Replay file."""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Collection, Dict, List, Optional, Union

from .errors import CorruptedError
from .mpq import MPQArchive
from .protocol import Event, Protocol, ProtocolRegistry
from .protocol.values import Struct, Value

logger = logging.getLogger(__name__)

# Sub-files inside a replay archive
REPLAY_DETAILS = "replay.details"
REPLAY_TRACKER_EVENTS = "replay.tracker.events"
REPLAY_GAME_EVENTS = "replay.game.events"
REPLAY_MESSAGE_EVENTS = "replay.message.events"
REPLAY_INITDATA = "replay.initData"
REPLAY_ATTRIBUTES_EVENTS = "replay.attributes.events"
REPLAY_METADATA = "replay.gamemetadata.json"


def base_build(header: Struct) -> int:
    """Return the base build recorded in a decoded replay header."""
    version = header.get("m_version") if isinstance(header, Struct) else None
    build = version.get("m_baseBuild") if isinstance(version, Struct) else None
    if not isinstance(build, Value):
        raise CorruptedError("Replay header has no m_version.m_baseBuild")
    return build.value


@dataclass
class ParsedReplay:
    """Decoded contents of a replay."""

    header: Struct
    base_build: int
    protocol_build: int
    details: Optional[Struct] = None
    tracker_events: List[Event] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None


class Replay:
    """A replay file on disk, decoded on demand.

    The replay header inside the archive's user data names the game build;
    the matching protocol then decodes the other sub-files.
    """

    def __init__(
        self,
        path: Union[str, Path],
        registry: Optional[ProtocolRegistry] = None,
        event_filter: Optional[Collection[str]] = None,
    ):
        self.path = Path(path)
        self.registry = registry or ProtocolRegistry()
        self.event_filter = event_filter

    def read_header(self, archive: MPQArchive) -> Struct:
        """Decode the replay header from the archive's user data."""
        user_data = archive.user_data_header
        if user_data is None:
            raise CorruptedError(f"{self.path.name} has no user data header")
        # Every protocol can read the header, so the newest one is used
        return self.registry.latest().decode_replay_header(user_data.content)

    def protocol_for(self, header: Struct) -> Protocol:
        return self.registry.get(base_build(header), fallback=True)

    def peek(self) -> Struct:
        """Decode only the replay header."""
        with MPQArchive(self.path, listfile=False) as archive:
            return self.read_header(archive)

    def parse(self) -> ParsedReplay:
        """Decode the header, details, tracker events and metadata."""
        start = time.perf_counter()

        with MPQArchive(self.path, listfile=False) as archive:
            header = self.read_header(archive)
            protocol = self.protocol_for(header)
            parsed = ParsedReplay(
                header=header,
                base_build=base_build(header),
                protocol_build=protocol.build,
            )

            details = archive.read_file(REPLAY_DETAILS)
            if details:
                parsed.details = protocol.decode_replay_details(details)

            tracker_events = archive.read_file(REPLAY_TRACKER_EVENTS)
            if tracker_events:
                parsed.tracker_events = list(
                    protocol.decode_replay_tracker_events(tracker_events, self.event_filter)
                )

            metadata = archive.read_file(REPLAY_METADATA)
            if metadata:
                try:
                    parsed.metadata = json.loads(metadata.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    raise CorruptedError(f"{REPLAY_METADATA} is not valid JSON: {e}") from e

        logger.debug(
            "Parsed %s (build %d) in %.2fs",
            self.path.name,
            parsed.base_build,
            time.perf_counter() - start,
        )
        return parsed
