"""Local mirror of the vehicle state map.

The mirror is a convenience for restarts: it lets a dashboard show the
last known position of every vehicle before the first live event arrives.
It is never authoritative and path history is not mirrored.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from fleetlive.models.vehicle import VehicleState

_logger = logging.getLogger(__name__)

_STATE_LIST = TypeAdapter(list[VehicleState])


class SnapshotMirror:
    """Write/read the vehicle state map as a JSON list."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, states: Mapping[str, VehicleState]) -> None:
        """Replace the mirror file atomically; failures are logged, not raised."""
        data = _STATE_LIST.dump_json(list(states.values()))
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            tmp_path.replace(self._path)
        except OSError:
            _logger.warning("Could not write vehicle snapshot to %s", self._path, exc_info=True)

    def load(self) -> list[VehicleState]:
        """Read the mirror; a missing or corrupt file yields an empty list."""
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError:
            _logger.warning("Could not read vehicle snapshot %s", self._path, exc_info=True)
            return []
        try:
            return _STATE_LIST.validate_json(raw)
        except ValidationError:
            _logger.warning("Ignoring corrupt vehicle snapshot %s", self._path)
            return []
