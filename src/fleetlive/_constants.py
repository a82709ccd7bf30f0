"""Internal constants shared across the library."""

from enum import StrEnum

USER_AGENT = "fleetlive/1 (+aiohttp)"

# ------------------------------------------------------------------
# Dispatch lifecycle
# ------------------------------------------------------------------


class DispatchStatus(StrEnum):
    """Status strings carried by dispatch logs and vehicle list rows."""

    IDLE = "idle"
    ON_ALLEY = "on alley"
    ON_ROAD = "on road"


#: Filter value that lets every vehicle list row through.
STATUS_FILTER_ALL = "all"

#: Profile positions used to resolve the crew of a vehicle assignment.
DRIVER_POSITION = "driver"
CONDUCTOR_POSITION = "passenger_assistant_officer"

# ------------------------------------------------------------------
# Arrival rule
# ------------------------------------------------------------------

#: Per-axis absolute tolerance in degrees (roughly 11 m at the equator).
ARRIVAL_TOLERANCE_DEGREES = 0.0001

# ------------------------------------------------------------------
# Pub/sub channel
# ------------------------------------------------------------------

DEFAULT_CHANNEL_TOPIC = "flespi-data"
TELEMETRY_EVENT_NAME = "FlespiDataReceived"

# ------------------------------------------------------------------
# REST endpoints
# ------------------------------------------------------------------

VEHICLE_ASSIGNMENTS_ENDPOINT = "/user/admin/vehicle-assignments/all"
ON_ALLEY_ENDPOINT = "/user/admin/dispatch-logs/on-alley"
ON_ROAD_ENDPOINT = "/user/admin/dispatch-logs/on-road"
START_ALLEY_ENDPOINT = "/user/admin/dispatch-logs/start-alley"
END_ALLEY_ENDPOINT = "/user/admin/dispatch-logs/end-alley/{dispatch_logs_id}"
START_DISPATCH_ENDPOINT = "/user/admin/dispatch-logs/start-dispatch"
END_DISPATCH_ENDPOINT = "/user/admin/dispatch-logs/end-dispatch/{dispatch_logs_id}"
DELETE_RECORD_ENDPOINT = "/user/admin/dispatch-logs/delete/{dispatch_logs_id}"
