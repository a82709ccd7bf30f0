"""Vehicle assignment endpoints."""

from __future__ import annotations

from fleetlive._api._common import unwrap_list, validate_items
from fleetlive._constants import VEHICLE_ASSIGNMENTS_ENDPOINT
from fleetlive._transport import Transport
from fleetlive.models.dispatch import VehicleAssignment


async def fetch_vehicle_assignments(transport: Transport) -> list[VehicleAssignment]:
    """Fetch every vehicle together with its assigned crew."""
    endpoint = VEHICLE_ASSIGNMENTS_ENDPOINT
    decoded = await transport.request("GET", endpoint)
    return validate_items(VehicleAssignment, unwrap_list(decoded, endpoint=endpoint), endpoint=endpoint)
