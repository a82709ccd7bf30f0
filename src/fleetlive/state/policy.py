"""Arrival rule.

A dispatch is closed automatically when an on-road vehicle reports a
position matching one of the known terminal locations. Matching is a
per-axis absolute comparison, not a geodesic distance: both the latitude
and the longitude difference must be strictly below the tolerance.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from fleetlive._constants import ARRIVAL_TOLERANCE_DEGREES, DispatchStatus
from fleetlive.models.geofence import GeofenceLocation
from fleetlive.models.telemetry import TelemetryEvent


@dataclass(frozen=True)
class ArrivalMatch:
    """A dispatch to close, and the geofence that triggered it."""

    vehicle_id: str
    dispatch_logs_id: str
    geofence: GeofenceLocation


def within_tolerance(
    latitude: float,
    longitude: float,
    lat: float,
    lng: float,
    tolerance: float = ARRIVAL_TOLERANCE_DEGREES,
) -> bool:
    return abs(lat - latitude) < tolerance and abs(lng - longitude) < tolerance


def match_geofence(
    latitude: float,
    longitude: float,
    geofences: Iterable[GeofenceLocation] | None,
    *,
    tolerance: float = ARRIVAL_TOLERANCE_DEGREES,
) -> GeofenceLocation | None:
    """Return the first geofence (in table order) with a matching coordinate."""
    if not geofences:
        return None
    for location in geofences:
        for coord in location.coordinates:
            if within_tolerance(latitude, longitude, coord.lat, coord.lng, tolerance):
                return location
    return None


def evaluate_arrival(
    event: TelemetryEvent,
    geofences: Iterable[GeofenceLocation] | None,
    *,
    tolerance: float = ARRIVAL_TOLERANCE_DEGREES,
) -> ArrivalMatch | None:
    """Decide whether *event* should close its dispatch.

    Requires a geofence match, a dispatch log id, and the dispatch log
    reporting ``on road``.
    """
    dispatch_log = event.dispatch_log
    if dispatch_log is None or not dispatch_log.dispatch_logs_id:
        return None
    if dispatch_log.status != DispatchStatus.ON_ROAD:
        return None
    matched = match_geofence(
        event.location.latitude,
        event.location.longitude,
        geofences,
        tolerance=tolerance,
    )
    if matched is None:
        return None
    return ArrivalMatch(
        vehicle_id=event.vehicle_id,
        dispatch_logs_id=dispatch_log.dispatch_logs_id,
        geofence=matched,
    )
