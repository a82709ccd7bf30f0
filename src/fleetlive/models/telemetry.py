"""Telemetry events published on the live channel.

One message is produced per tracker report. The backend enriches the raw
tracker position with the vehicle's active dispatch log (if any) before
broadcasting it, so a single event carries both location and dispatch
status.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from fleetlive._constants import CONDUCTOR_POSITION, DRIVER_POSITION, DispatchStatus
from fleetlive.ingestion.normalize import normalize_timestamp_seconds, safe_float, safe_str
from fleetlive.models._base import FleetBaseModel


class UserProfileRef(FleetBaseModel):
    """Crew member attached to a vehicle assignment."""

    position: str | None = None
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    @property
    def display_name(self) -> str | None:
        if self.name:
            return self.name
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) if parts else None


class VehicleAssignmentRef(FleetBaseModel):
    user_profiles: tuple[UserProfileRef, ...] = Field(default_factory=tuple)

    @field_validator("user_profiles", mode="before")
    @classmethod
    def _only_objects(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return ()
        return tuple(item for item in value if isinstance(item, dict))

    def crew_member(self, position: str) -> str | None:
        """Name of the first profile holding *position*, if any."""
        for profile in self.user_profiles:
            if profile.position == position:
                return profile.display_name
        return None


class DispatchLogRef(FleetBaseModel):
    """The active dispatch/alley record embedded in a telemetry event."""

    dispatch_logs_id: str | None = None
    status: str | None = None
    route: str | None = None
    vehicle_assignment: VehicleAssignmentRef | None = None

    @field_validator("dispatch_logs_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("status", "route", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("vehicle_assignment", mode="before")
    @classmethod
    def _drop_non_object(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


class Location(FleetBaseModel):
    """Tracker position. Coordinates are mandatory, speed defaults to 0 km/h."""

    latitude: float
    longitude: float
    speed: float = 0.0

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("speed", mode="before")
    @classmethod
    def _coerce_speed(cls, value: Any) -> float:
        parsed = safe_float(value)
        return 0.0 if parsed is None else parsed


class TelemetryEvent(FleetBaseModel):
    """A validated channel message.

    Parameters
    ----------
    vehicle_id : str
        Vehicle identifier (numbers are coerced to strings).
    plate_number : str or None
        Plate number, when the tracker knows it.
    location : Location
        Reported position and speed.
    timestamp : float or None
        Report time in epoch seconds.
    dispatch_log : DispatchLogRef or None
        Active dispatch/alley record; ``None`` when the vehicle is idle.
    raw : dict
        Original payload.
    """

    vehicle_id: str
    plate_number: str | None = None
    location: Location
    timestamp: float | None = None
    dispatch_log: DispatchLogRef | None = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)

    @field_validator("vehicle_id", "plate_number", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> float | None:
        return normalize_timestamp_seconds(value)

    @field_validator("dispatch_log", mode="before")
    @classmethod
    def _drop_non_object(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TelemetryEvent:
        """Validate a raw channel payload, keeping it in ``raw``."""
        return cls.model_validate({**payload, "raw": payload})

    @property
    def status(self) -> str:
        """Dispatch status; a vehicle without a dispatch log is idle."""
        if self.dispatch_log is not None and self.dispatch_log.status:
            return self.dispatch_log.status
        return DispatchStatus.IDLE.value

    @property
    def dispatch_logs_id(self) -> str | None:
        return self.dispatch_log.dispatch_logs_id if self.dispatch_log is not None else None

    @property
    def route(self) -> str:
        if self.dispatch_log is not None and self.dispatch_log.route:
            return self.dispatch_log.route
        return ""

    def _crew_member(self, position: str) -> str | None:
        if self.dispatch_log is None or self.dispatch_log.vehicle_assignment is None:
            return None
        return self.dispatch_log.vehicle_assignment.crew_member(position)

    @property
    def driver(self) -> str | None:
        """Driver name, or ``None`` when unknown (not necessarily unassigned)."""
        return self._crew_member(DRIVER_POSITION)

    @property
    def conductor(self) -> str | None:
        """Passenger assistant officer name, or ``None`` when unknown."""
        return self._crew_member(CONDUCTOR_POSITION)
