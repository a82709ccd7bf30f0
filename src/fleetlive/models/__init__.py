"""Data models for fleetlive."""

from fleetlive.models.dispatch import AssignmentRow, DispatchLog, VehicleAssignment, build_assignment_rows
from fleetlive.models.geofence import Coordinate, GeofenceLocation, load_geofences, parse_geofences
from fleetlive.models.telemetry import (
    DispatchLogRef,
    Location,
    TelemetryEvent,
    UserProfileRef,
    VehicleAssignmentRef,
)
from fleetlive.models.vehicle import PathPoint, VehicleState

__all__ = [
    "AssignmentRow",
    "Coordinate",
    "DispatchLog",
    "DispatchLogRef",
    "GeofenceLocation",
    "Location",
    "PathPoint",
    "TelemetryEvent",
    "UserProfileRef",
    "VehicleAssignment",
    "VehicleAssignmentRef",
    "VehicleState",
    "build_assignment_rows",
    "load_geofences",
    "parse_geofences",
]
