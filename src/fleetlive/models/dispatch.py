"""Dispatch logs, vehicle assignments and the assignment board rows."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fleetlive._constants import DispatchStatus
from fleetlive.ingestion.normalize import safe_str
from fleetlive.models._base import FleetBaseModel


def _nested(values: dict[str, Any], *path: str) -> Any:
    current: Any = values
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


class DispatchLog(FleetBaseModel):
    """An open alley or on-road record as listed by the backend.

    The backend nests the vehicle under
    ``vehicle_assignments.vehicle.vehicle_id``; it is flattened into
    ``vehicle_id`` here.
    """

    dispatch_logs_id: str
    vehicle_id: str | None = None
    status: str | None = None
    route: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _flatten_vehicle(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        if merged.get("vehicle_id") is None:
            merged["vehicle_id"] = _nested(values, "vehicle_assignments", "vehicle", "vehicle_id") or _nested(
                values, "vehicle_assignment", "vehicle", "vehicle_id"
            )
        merged.setdefault("raw", values)
        return merged

    @field_validator("dispatch_logs_id", "vehicle_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str | None:
        return safe_str(value)


class VehicleAssignment(FleetBaseModel):
    """A vehicle together with its assigned crew."""

    vehicle_assignment_id: int | None = None
    vehicle_id: str
    name: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        if isinstance(values, dict) and "raw" not in values:
            return {**values, "raw": values}
        return values

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str | None:
        return safe_str(value)


class AssignmentRow(BaseModel):
    """One row of the operator's assignment board."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    number: str
    name: str = "Unnamed"
    status: str = DispatchStatus.IDLE.value
    route: str = ""
    dispatch_logs_id: str | None = None
    vehicle_assignment_id: int | None = None


def build_assignment_rows(
    assignments: list[VehicleAssignment],
    on_alley: list[DispatchLog],
    on_road: list[DispatchLog],
) -> list[AssignmentRow]:
    """Combine assignments with the open dispatch logs into board rows.

    An open alley record takes precedence over an on-road record for the
    same vehicle.
    """
    alley_logs = {log.vehicle_id: log for log in on_alley if log.vehicle_id}
    road_logs = {log.vehicle_id: log for log in on_road if log.vehicle_id}

    rows: list[AssignmentRow] = []
    for assignment in assignments:
        status = DispatchStatus.IDLE
        log = alley_logs.get(assignment.vehicle_id)
        if log is not None:
            status = DispatchStatus.ON_ALLEY
        else:
            log = road_logs.get(assignment.vehicle_id)
            if log is not None:
                status = DispatchStatus.ON_ROAD
        rows.append(
            AssignmentRow(
                number=assignment.vehicle_id,
                name=assignment.name or "Unnamed",
                status=status.value,
                route=(log.route or "") if log is not None else "",
                dispatch_logs_id=log.dispatch_logs_id if log is not None else None,
                vehicle_assignment_id=assignment.vehicle_assignment_id,
            )
        )
    return rows
