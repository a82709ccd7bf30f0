"""Per-vehicle live display state."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from fleetlive._constants import DispatchStatus


class PathPoint(BaseModel):
    """One point of a vehicle's path history, in map-friendly keys."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class VehicleState(BaseModel):
    """Current display state of one vehicle.

    Instances are immutable; the store replaces the whole record on every
    event, so a reference obtained by a reader never changes under it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    number: str
    name: str
    plate_number: str = "Unknown Plate"
    status: str = DispatchStatus.IDLE.value
    latitude: float | None = None
    longitude: float | None = None
    speed: float = 0.0
    time: str = ""
    timestamp: float | None = None
    dispatch_log_id: str | None = None
    route: str = ""
    driver: str | None = None
    conductor: str | None = None

    @classmethod
    def placeholder(cls, number: str) -> VehicleState:
        """State for a vehicle seen for the first time."""
        return cls(number=number, name=f"Bus {number}")
