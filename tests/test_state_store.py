from __future__ import annotations

from typing import Any
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from fleetlive.models.telemetry import TelemetryEvent
from fleetlive.models.vehicle import PathPoint, VehicleState
from fleetlive.state.events import ChangeKind, StateChange
from fleetlive.state.store import VehicleStateStore

# 2026-01-01T00:00:00Z, 08:00 in Manila.
_TS = 1767225600


def _event(
    vehicle_id: Any = "7",
    lat: float = 14.5995,
    lng: float = 120.9842,
    **extra: Any,
) -> TelemetryEvent:
    payload: dict[str, Any] = {
        "vehicle_id": vehicle_id,
        "location": {"latitude": lat, "longitude": lng, "speed": 32.5},
        "timestamp": _TS,
    }
    payload.update(extra)
    return TelemetryEvent.from_payload(payload)


def test_first_event_creates_vehicle_with_placeholder_name_and_event_plate() -> None:
    store = VehicleStateStore()

    state = store.apply(_event(plate_number="NBC 1234"))

    assert state.number == "7"
    assert state.name == "Bus 7"
    assert state.plate_number == "NBC 1234"
    assert state.status == "idle"
    assert state.dispatch_log_id is None
    assert state.route == ""
    assert state.latitude == pytest.approx(14.5995)
    assert state.speed == pytest.approx(32.5)
    assert "7" in store
    assert len(store) == 1


def test_plate_defaults_when_first_event_has_none() -> None:
    store = VehicleStateStore()
    assert store.apply(_event()).plate_number == "Unknown Plate"


def test_name_and_plate_survive_later_events() -> None:
    store = VehicleStateStore()
    store.apply(_event(plate_number="NBC 1234"))

    state = store.apply(_event(lat=14.6, plate_number="OTHER 9"))

    assert state.name == "Bus 7"
    assert state.plate_number == "NBC 1234"
    assert state.latitude == pytest.approx(14.6)


def test_dispatch_fields_always_come_from_latest_event() -> None:
    store = VehicleStateStore()
    store.apply(
        _event(dispatch_log={"dispatch_logs_id": 42, "status": "on road", "route": "Cubao - Baclaran"}),
    )

    state = store.apply(_event())

    assert state.status == "idle"
    assert state.dispatch_log_id is None
    assert state.route == ""


def test_path_appends_in_arrival_order() -> None:
    store = VehicleStateStore()
    for lat in (14.1, 14.2, 14.3):
        store.apply(_event(lat=lat, lng=121.0))

    assert store.get_path("7") == (
        PathPoint(lat=14.1, lng=121.0),
        PathPoint(lat=14.2, lng=121.0),
        PathPoint(lat=14.3, lng=121.0),
    )
    assert store.get_path("unknown") == ()


def test_display_time_uses_configured_zone_and_twelve_hour_clock() -> None:
    store = VehicleStateStore(tz=ZoneInfo("Asia/Manila"))

    seconds = store.apply(_event())
    millis = store.apply(_event(timestamp=_TS * 1000 + 13 * 3600 * 1000))

    assert seconds.time == "08:00 AM"
    assert millis.time == "09:00 PM"


def test_missing_timestamp_gives_empty_time() -> None:
    store = VehicleStateStore()
    assert store.apply(_event(timestamp=None)).time == ""


def test_crew_resolved_from_profile_positions() -> None:
    store = VehicleStateStore()
    state = store.apply(
        _event(
            dispatch_log={
                "dispatch_logs_id": "42",
                "status": "on road",
                "route": "Cubao - Baclaran",
                "vehicle_assignment": {
                    "user_profiles": [
                        {"position": "driver", "first_name": "Juan", "last_name": "Dela Cruz"},
                        {"position": "passenger_assistant_officer", "name": "Maria Santos"},
                    ]
                },
            }
        )
    )

    assert state.driver == "Juan Dela Cruz"
    assert state.conductor == "Maria Santos"
    assert state.route == "Cubao - Baclaran"
    assert state.dispatch_log_id == "42"


def test_crew_is_none_when_position_missing() -> None:
    store = VehicleStateStore()
    state = store.apply(
        _event(
            dispatch_log={
                "dispatch_logs_id": "42",
                "status": "on alley",
                "vehicle_assignment": {"user_profiles": [{"position": "dispatcher", "name": "Ana"}]},
            }
        )
    )

    assert state.driver is None
    assert state.conductor is None


def test_snapshot_is_detached_and_records_are_frozen() -> None:
    store = VehicleStateStore()
    store.apply(_event())

    snapshot = store.snapshot()
    snapshot.pop("7")
    assert store.get_state("7") is not None

    state = store.get_state("7")
    assert state is not None
    with pytest.raises(ValidationError):
        state.speed = 99.0  # type: ignore[misc]

    store.apply(_event(lat=15.0))
    assert state.latitude == pytest.approx(14.5995)


def test_clear_path_keeps_state_and_notifies() -> None:
    store = VehicleStateStore()
    changes: list[StateChange] = []
    store.subscribe(changes.append)
    store.apply(_event())

    store.clear_path("7")

    assert store.get_path("7") == ()
    assert store.get_state("7") is not None
    assert [change.kind for change in changes] == [ChangeKind.STATE, ChangeKind.PATH_CLEARED]
    assert changes[0].path == (PathPoint(lat=14.5995, lng=120.9842),)


def test_seed_only_adds_unseen_vehicles() -> None:
    store = VehicleStateStore()
    store.apply(_event(vehicle_id="7", plate_number="LIVE 7"))

    added = store.seed(
        [
            VehicleState(number="7", name="Bus 7", plate_number="SEEDED 7"),
            VehicleState(number="8", name="Bus 8", latitude=14.0, longitude=121.0),
        ]
    )

    assert added == 1
    assert store.get_state("7").plate_number == "LIVE 7"  # type: ignore[union-attr]
    assert store.get_state("8") is not None
    assert store.get_path("8") == ()


def test_listener_failure_does_not_break_store_and_unsubscribe_works() -> None:
    store = VehicleStateStore()
    seen: list[str] = []

    def broken(_change: StateChange) -> None:
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    unsubscribe = store.subscribe(lambda change: seen.append(change.vehicle_id))

    store.apply(_event())
    unsubscribe()
    store.apply(_event())

    assert seen == ["7"]
    assert len(store.get_path("7")) == 2
