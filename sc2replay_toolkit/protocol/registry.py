"""Discovery of protocol schema assets by game build."""

import logging
import os
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..errors import UnknownProtocolError
from .protocol import Protocol
from .schema import ProtocolSchema

logger = logging.getLogger(__name__)

BUNDLED_SCHEMA_DIR = Path(__file__).parent / "schemas"

# Extra schema directories, separated by os.pathsep
SCHEMA_PATH_ENV = "SC2REPLAY_SCHEMA_PATH"

_SCHEMA_NAME = re.compile(r"^protocol(\d+)\.json$")


def _env_search_paths() -> List[Path]:
    value = os.environ.get(SCHEMA_PATH_ENV, "")
    return [Path(p) for p in value.split(os.pathsep) if p]


class ProtocolRegistry:
    """Finds and caches protocols stored as ``protocol<build>.json`` files.

    Directories are searched in order: explicit ``search_paths``, then the
    ``SC2REPLAY_SCHEMA_PATH`` environment variable, then the schemas bundled
    with the package. The first file found for a build wins.
    """

    def __init__(
        self,
        search_paths: Optional[Iterable[Union[str, Path]]] = None,
        include_bundled: bool = True,
    ):
        paths = [Path(p) for p in (search_paths or [])]
        paths.extend(_env_search_paths())
        if include_bundled:
            paths.append(BUNDLED_SCHEMA_DIR)
        self.search_paths = paths
        self._files: Optional[Dict[int, Path]] = None
        self._cache: Dict[int, Protocol] = {}

    def _scan(self) -> Dict[int, Path]:
        if self._files is None:
            files: Dict[int, Path] = {}
            for directory in self.search_paths:
                if not directory.is_dir():
                    continue
                for path in sorted(directory.iterdir()):
                    match = _SCHEMA_NAME.match(path.name)
                    if match:
                        files.setdefault(int(match.group(1)), path)
            logger.debug("Found %d protocol schemas", len(files))
            self._files = files
        return self._files

    def builds(self) -> List[int]:
        """Return the known builds in ascending order."""
        return sorted(self._scan())

    def __contains__(self, build: int) -> bool:
        return build in self._scan()

    def get(self, build: int, fallback: bool = False) -> Protocol:
        """Return the protocol for ``build``.

        With ``fallback`` the newest known build not newer than ``build``
        is used when there is no exact match.
        """
        files = self._scan()
        if build not in files:
            older = [b for b in files if b <= build]
            if not fallback or not older:
                raise UnknownProtocolError(f"No protocol schema for build {build}")
            chosen = max(older)
            logger.warning("No protocol schema for build %d, using %d", build, chosen)
            build = chosen

        if build not in self._cache:
            self._cache[build] = Protocol(ProtocolSchema.from_json(files[build]))
        return self._cache[build]

    def latest(self) -> Protocol:
        """Return the protocol of the newest known build."""
        builds = self.builds()
        if not builds:
            raise UnknownProtocolError("No protocol schemas found")
        return self.get(builds[-1])
