"""Notifications emitted by the state layer.

Readers never touch the store's maps directly; they receive these
immutable records instead.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from fleetlive.models.vehicle import PathPoint, VehicleState


class ChangeKind(StrEnum):
    STATE = "state"
    PATH_CLEARED = "path_cleared"


class StateChange(BaseModel):
    """A vehicle's state or path changed."""

    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    kind: ChangeKind
    state: VehicleState | None = None
    path: tuple[PathPoint, ...] = ()
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class NoticeLevel(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class Notice(BaseModel):
    """Operator-facing message (the dashboard shows these as toasts)."""

    model_config = ConfigDict(frozen=True)

    level: NoticeLevel
    message: str
    vehicle_id: str | None = None
    dispatch_logs_id: str | None = None


class ChannelStatus(StrEnum):
    """Connectivity of the telemetry channel; ``disconnected`` means stale data."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
