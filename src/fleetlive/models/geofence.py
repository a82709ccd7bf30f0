"""Static geofence table used by the arrival rule."""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pydantic import Field, TypeAdapter, ValidationError, field_validator

from fleetlive.exceptions import FleetConfigError
from fleetlive.ingestion.normalize import safe_float
from fleetlive.models._base import FleetBaseModel


class Coordinate(FleetBaseModel):
    """A single candidate point of a geofence."""

    lat: float
    lng: float

    @field_validator("lat", "lng", mode="before")
    @classmethod
    def _coerce_float(cls, value: Any) -> float | None:
        return safe_float(value)


class GeofenceLocation(FleetBaseModel):
    """A named terminal location with one or more candidate coordinates.

    Parameters
    ----------
    name : str
        Display name of the terminal.
    coordinates : tuple of Coordinate
        Candidate points; a vehicle arriving at any of them counts as
        arriving at the location.
    """

    name: str
    coordinates: tuple[Coordinate, ...] = Field(default_factory=tuple)


_GEOFENCE_TABLE = TypeAdapter(list[GeofenceLocation])


def parse_geofences(data: Sequence[dict[str, Any]] | None) -> tuple[GeofenceLocation, ...]:
    """Validate a geofence table, preserving its order."""
    if not data:
        return ()
    try:
        return tuple(_GEOFENCE_TABLE.validate_python(list(data)))
    except ValidationError as exc:
        raise FleetConfigError(f"Invalid geofence table: {exc}") from exc


def load_geofences(path: str | Path | None) -> tuple[GeofenceLocation, ...]:
    """Load the geofence table from a JSON file.

    The file holds a list of ``{"name": ..., "coordinates": [{"lat", "lng"}]}``
    objects. A missing path yields an empty table.
    """
    if path is None:
        return ()
    file_path = Path(path)
    try:
        raw = json.loads(file_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise FleetConfigError(f"Cannot read geofence table {file_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise FleetConfigError(f"Geofence table {file_path} is not JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise FleetConfigError(f"Geofence table {file_path} must be a JSON list")
    return parse_geofences(raw)
