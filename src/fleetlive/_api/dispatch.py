"""Dispatch lifecycle endpoints.

A vehicle moves ``idle -> on alley -> on road -> idle``. Each edge is a
separate backend call: start alley creates an alley record, dispatching
ends that record and opens an on-road one, and ending the dispatch closes
it again.
"""

from __future__ import annotations

import logging
from typing import Any

from fleetlive._api._common import require_id, unwrap_list, validate_items
from fleetlive._constants import (
    DELETE_RECORD_ENDPOINT,
    END_ALLEY_ENDPOINT,
    END_DISPATCH_ENDPOINT,
    ON_ALLEY_ENDPOINT,
    ON_ROAD_ENDPOINT,
    START_ALLEY_ENDPOINT,
    START_DISPATCH_ENDPOINT,
)
from fleetlive._transport import Transport
from fleetlive.models.dispatch import DispatchLog

_logger = logging.getLogger(__name__)


def _route_payload(route: str, vehicle_assignment_id: int | None) -> dict[str, Any]:
    if not route or not route.strip():
        raise ValueError("No route selected.")
    if vehicle_assignment_id is None:
        raise ValueError("Vehicle assignment ID is missing.")
    return {"route": route.strip(), "vehicle_assignment_id": vehicle_assignment_id}


async def fetch_on_alley(transport: Transport) -> list[DispatchLog]:
    """Open alley records."""
    decoded = await transport.request("GET", ON_ALLEY_ENDPOINT)
    return validate_items(DispatchLog, unwrap_list(decoded, endpoint=ON_ALLEY_ENDPOINT), endpoint=ON_ALLEY_ENDPOINT)


async def fetch_on_road(transport: Transport) -> list[DispatchLog]:
    """Open on-road (dispatched) records."""
    decoded = await transport.request("GET", ON_ROAD_ENDPOINT)
    return validate_items(DispatchLog, unwrap_list(decoded, endpoint=ON_ROAD_ENDPOINT), endpoint=ON_ROAD_ENDPOINT)


async def start_alley(transport: Transport, *, route: str, vehicle_assignment_id: int | None) -> Any:
    payload = _route_payload(route, vehicle_assignment_id)
    _logger.debug("Starting alley vehicle_assignment_id=%s route=%s", vehicle_assignment_id, payload["route"])
    return await transport.request("POST", START_ALLEY_ENDPOINT, payload)


async def start_dispatch(transport: Transport, *, route: str, vehicle_assignment_id: int | None) -> Any:
    payload = _route_payload(route, vehicle_assignment_id)
    _logger.debug("Starting dispatch vehicle_assignment_id=%s route=%s", vehicle_assignment_id, payload["route"])
    return await transport.request("POST", START_DISPATCH_ENDPOINT, payload)


async def end_alley(transport: Transport, dispatch_logs_id: str | int | None) -> Any:
    log_id = require_id(dispatch_logs_id, name="dispatch_logs_id")
    return await transport.request("PATCH", END_ALLEY_ENDPOINT.format(dispatch_logs_id=log_id))


async def end_dispatch(transport: Transport, dispatch_logs_id: str | int | None) -> Any:
    log_id = require_id(dispatch_logs_id, name="dispatch_logs_id")
    return await transport.request("PATCH", END_DISPATCH_ENDPOINT.format(dispatch_logs_id=log_id))


async def delete_record(transport: Transport, dispatch_logs_id: str | int | None) -> Any:
    log_id = require_id(dispatch_logs_id, name="dispatch_logs_id")
    return await transport.request("DELETE", DELETE_RECORD_ENDPOINT.format(dispatch_logs_id=log_id))
