"""fleetlive - Live vehicle state reconciliation for fleet dispatch monitoring."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetlive")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetlive._constants import STATUS_FILTER_ALL, DispatchStatus
from fleetlive.client import FleetClient
from fleetlive.config import ChannelConfig, FleetConfig
from fleetlive.exceptions import (
    FleetApiError,
    FleetAuthenticationError,
    FleetConfigError,
    FleetError,
    FleetNotFoundError,
    FleetTransportError,
    FleetValidationError,
)
from fleetlive.models import (
    AssignmentRow,
    Coordinate,
    DispatchLog,
    GeofenceLocation,
    PathPoint,
    TelemetryEvent,
    VehicleAssignment,
    VehicleState,
    load_geofences,
)
from fleetlive.reconciler import VehicleStateReconciler
from fleetlive.state.events import ChangeKind, ChannelStatus, Notice, NoticeLevel, StateChange
from fleetlive.state.projection import project_vehicle_list
from fleetlive.state.store import VehicleStateStore

__all__ = [
    "__version__",
    "AssignmentRow",
    "ChangeKind",
    "ChannelConfig",
    "ChannelStatus",
    "Coordinate",
    "DispatchLog",
    "DispatchStatus",
    "FleetApiError",
    "FleetAuthenticationError",
    "FleetClient",
    "FleetConfig",
    "FleetConfigError",
    "FleetError",
    "FleetNotFoundError",
    "FleetTransportError",
    "FleetValidationError",
    "GeofenceLocation",
    "Notice",
    "NoticeLevel",
    "PathPoint",
    "STATUS_FILTER_ALL",
    "StateChange",
    "TelemetryEvent",
    "VehicleAssignment",
    "VehicleState",
    "VehicleStateReconciler",
    "VehicleStateStore",
    "load_geofences",
    "project_vehicle_list",
]
