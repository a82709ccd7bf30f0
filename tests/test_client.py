from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from fleetlive._cache import SnapshotMirror
from fleetlive._channel import ChannelMessage
from fleetlive.client import FleetClient
from fleetlive.config import FleetConfig
from fleetlive.exceptions import FleetApiError, FleetError, FleetNotFoundError
from fleetlive.models.geofence import parse_geofences
from fleetlive.state.events import ChannelStatus, Notice, NoticeLevel, StateChange

_TERMINAL = {"lat": 14.6190, "lng": 121.0537}
_GEOFENCES = parse_geofences([{"name": "Cubao Terminal", "coordinates": [_TERMINAL]}])


@dataclass
class FakeFleetBackend:
    assignments: list[dict[str, Any]] = field(
        default_factory=lambda: [
            {"vehicle_assignment_id": 1, "vehicle_id": 10, "name": "Ten"},
            {"vehicle_assignment_id": 2, "vehicle_id": 9, "name": "Nine"},
            {"vehicle_assignment_id": 3, "vehicle_id": "11"},
        ]
    )
    # dispatch_logs_id -> (vehicle_id, status, route)
    logs: dict[int, tuple[str, str, str]] = field(
        default_factory=lambda: {
            100: ("9", "on alley", "Cubao - Baclaran"),
            200: ("10", "on road", "Cubao - Baclaran"),
        }
    )
    calls: list[str] = field(default_factory=list)
    fail_end_dispatch: bool = False
    _next_id: int = 300

    def _vehicle_for_assignment(self, vehicle_assignment_id: int) -> str:
        for item in self.assignments:
            if item["vehicle_assignment_id"] == vehicle_assignment_id:
                return str(item["vehicle_id"])
        raise FleetNotFoundError("assignment not found", status_code=404)

    def _listing(self, status: str) -> list[dict[str, Any]]:
        return [
            {
                "dispatch_logs_id": log_id,
                "status": log_status,
                "route": route,
                "vehicle_assignments": {"vehicle": {"vehicle_id": vehicle_id}},
            }
            for log_id, (vehicle_id, log_status, route) in self.logs.items()
            if log_status == status
        ]

    def _open(self, status: str, payload: dict[str, Any]) -> dict[str, Any]:
        vehicle_id = self._vehicle_for_assignment(payload["vehicle_assignment_id"])
        log_id = self._next_id
        self._next_id += 1
        self.logs[log_id] = (vehicle_id, status, payload["route"])
        return {"dispatch_logs_id": log_id}

    def _close(self, endpoint: str, expected_status: str) -> dict[str, Any]:
        log_id = int(endpoint.rsplit("/", 1)[1])
        entry = self.logs.get(log_id)
        if entry is None or entry[1] != expected_status:
            raise FleetNotFoundError(f"HTTP 404 from {endpoint}", status_code=404, endpoint=endpoint)
        del self.logs[log_id]
        return {"message": "ok"}

    async def request(self, method: str, endpoint: str, payload: dict[str, Any] | None = None) -> Any:
        self.calls.append(f"{method} {endpoint}")

        if endpoint == "/user/admin/vehicle-assignments/all":
            return {"data": self.assignments}
        if endpoint == "/user/admin/dispatch-logs/on-alley":
            return {"data": self._listing("on alley")}
        if endpoint == "/user/admin/dispatch-logs/on-road":
            return self._listing("on road")
        if endpoint == "/user/admin/dispatch-logs/start-alley":
            assert payload is not None
            return self._open("on alley", payload)
        if endpoint == "/user/admin/dispatch-logs/start-dispatch":
            assert payload is not None
            return self._open("on road", payload)
        if endpoint.startswith("/user/admin/dispatch-logs/end-alley/"):
            return self._close(endpoint, "on alley")
        if endpoint.startswith("/user/admin/dispatch-logs/end-dispatch/"):
            if self.fail_end_dispatch:
                raise FleetApiError(f"HTTP 500 from {endpoint}", status_code=500, endpoint=endpoint)
            return self._close(endpoint, "on road")
        if endpoint.startswith("/user/admin/dispatch-logs/delete/"):
            log_id = int(endpoint.rsplit("/", 1)[1])
            self.logs.pop(log_id, None)
            return None

        raise AssertionError(f"Unexpected endpoint in fake backend: {method} {endpoint}")


def _telemetry(vehicle_id: str, lat: float, lng: float, log_id: int | None = None, status: str = "on road") -> dict[str, Any]:
    payload: dict[str, Any] = {
        "vehicle_id": vehicle_id,
        "plate_number": f"PLT {vehicle_id}",
        "location": {"latitude": lat, "longitude": lng, "speed": 18},
        "timestamp": 1767225600,
    }
    if log_id is not None:
        payload["dispatch_log"] = {"dispatch_logs_id": log_id, "status": status, "route": "Cubao - Baclaran"}
    return payload


def _message(payload: dict[str, Any]) -> ChannelMessage:
    return ChannelMessage(topic="flespi-data", event="FlespiDataReceived", payload=payload)


@pytest.fixture
def config() -> FleetConfig:
    return FleetConfig(api_base_url="http://fleet.test/api", api_token="tok-123")


@pytest.fixture
def backend(monkeypatch: pytest.MonkeyPatch) -> FakeFleetBackend:
    fake_backend = FakeFleetBackend()

    async def fake_request(_self: Any, method: str, endpoint: str, payload: dict[str, Any] | None = None) -> Any:
        return await fake_backend.request(method, endpoint, payload)

    def fake_channel_start(self: Any, _channel: Any) -> None:
        self._running = True

    def fake_channel_stop(self: Any) -> None:
        self._running = False

    monkeypatch.setattr("fleetlive._transport.RestTransport.request", fake_request)
    monkeypatch.setattr("fleetlive._channel.ChannelRuntime.start", fake_channel_start)
    monkeypatch.setattr("fleetlive._channel.ChannelRuntime.stop", fake_channel_stop)
    return fake_backend


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_assignment_board_merges_open_dispatch_logs(config: FleetConfig, backend: FakeFleetBackend) -> None:
    async with FleetClient(config, geofences=_GEOFENCES) as client:
        rows = await client.refresh_assignments()
        assert len(rows) == 3

        board = client.assignment_list()
        assert [row.number for row in board] == ["9", "10", "11"]
        assert [row.status for row in board] == ["on alley", "on road", "idle"]
        assert [row.dispatch_logs_id for row in board] == ["100", "200", None]
        assert board[2].name == "Unnamed"

        on_road = client.assignment_list("on road")
        assert [row.number for row in on_road] == ["10"]


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_dispatch_lifecycle_calls_backend_in_order(config: FleetConfig, backend: FakeFleetBackend) -> None:
    async with FleetClient(config, geofences=_GEOFENCES) as client:
        await client.start_alley(route="Cubao - Baclaran", vehicle_assignment_id=3)
        assert client.assignment_list("on alley")[-1].number == "11"

        backend.calls.clear()
        await client.dispatch_vehicle(dispatch_logs_id=100, route="Cubao - Baclaran", vehicle_assignment_id=2)

        assert backend.calls[:2] == [
            "PATCH /user/admin/dispatch-logs/end-alley/100",
            "POST /user/admin/dispatch-logs/start-dispatch",
        ]
        assert [row.number for row in client.assignment_list("on road")] == ["9", "10"]

        nine = client.assignment_list("on road")[0]
        await client.delete_record(nine.dispatch_logs_id)
        assert [row.number for row in client.assignment_list("on road")] == ["10"]

        await client.end_dispatch(200)
        assert [row.number for row in client.assignment_list("idle")] == ["9", "10"]


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_input_errors_raise_before_any_backend_call(config: FleetConfig, backend: FakeFleetBackend) -> None:
    async with FleetClient(config, geofences=_GEOFENCES) as client:
        with pytest.raises(ValueError, match="No route selected"):
            await client.start_alley(route="  ", vehicle_assignment_id=1)
        with pytest.raises(ValueError, match="Vehicle assignment ID is missing"):
            await client.start_dispatch(route="Cubao - Baclaran", vehicle_assignment_id=None)
        with pytest.raises(ValueError):
            await client.end_dispatch(None)

    assert backend.calls == []


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_backend_errors_propagate_to_operator_calls(config: FleetConfig, backend: FakeFleetBackend) -> None:
    async with FleetClient(config, geofences=_GEOFENCES) as client:
        with pytest.raises(FleetNotFoundError):
            await client.end_alley(999)


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_live_arrival_closes_dispatch_and_refreshes_board(
    config: FleetConfig,
    backend: FakeFleetBackend,
) -> None:
    notices: list[Notice] = []
    changes: list[StateChange] = []

    async with FleetClient(config, geofences=_GEOFENCES, on_notice=notices.append, on_change=changes.append) as client:
        await client.refresh_assignments()
        assert await client.start_live() is True

        client._on_channel_message(_message(_telemetry("10", 14.70, 121.10, log_id=200)))
        client._on_channel_message(_message(_telemetry("9", 14.50, 121.00, log_id=100, status="on alley")))
        await client.reconciler.drain()

        live = client.vehicle_list("on road")
        assert [state.number for state in live] == ["10"]
        assert live[0].name == "Bus 10"
        assert live[0].plate_number == "PLT 10"
        assert live[0].time == "08:00 AM"
        assert len(client.vehicle_path("10")) == 1

        backend.calls.clear()
        client._on_channel_message(_message(_telemetry("10", _TERMINAL["lat"], _TERMINAL["lng"], log_id=200)))
        await client.reconciler.drain()

        assert backend.calls[0] == "PATCH /user/admin/dispatch-logs/end-dispatch/200"
        assert backend.calls.count("PATCH /user/admin/dispatch-logs/end-dispatch/200") == 1
        assert client.vehicle_path("10") == ()
        assert [notice.level for notice in notices] == [NoticeLevel.SUCCESS]
        assert [row.number for row in client.assignment_list("idle")] == ["10", "11"]
        assert [state.number for state in client.vehicle_list()] == ["9", "10"]

    assert len(changes) >= 3


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_failed_arrival_keeps_path_and_reports(config: FleetConfig, backend: FakeFleetBackend) -> None:
    notices: list[Notice] = []
    backend.fail_end_dispatch = True

    async with FleetClient(config, geofences=_GEOFENCES, on_notice=notices.append) as client:
        await client.reconciler.apply_event(_telemetry("10", 14.70, 121.10, log_id=200))
        await client.reconciler.apply_event(_telemetry("10", _TERMINAL["lat"], _TERMINAL["lng"], log_id=200))

        assert len(client.vehicle_path("10")) == 2
        assert [notice.level for notice in notices] == [NoticeLevel.ERROR]
        assert "GET /user/admin/vehicle-assignments/all" not in backend.calls


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_channel_status_and_disabled_channel(config: FleetConfig, backend: FakeFleetBackend) -> None:
    statuses: list[ChannelStatus] = []

    async with FleetClient(config, geofences=_GEOFENCES, on_channel_status=statuses.append) as client:
        assert client.channel_connected is False
        await client.start_live()
        client._on_channel_status(ChannelStatus.CONNECTED)
        assert client.channel_connected is True

        await client.stop_live()
        assert client.channel_connected is False

    assert statuses == [ChannelStatus.CONNECTED, ChannelStatus.DISCONNECTED]

    disabled = FleetConfig(api_base_url="http://fleet.test/api", channel_enabled=False)
    async with FleetClient(disabled, geofences=_GEOFENCES) as client:
        assert await client.start_live() is False


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_snapshot_mirror_restores_last_known_state(tmp_path: Path, backend: FakeFleetBackend) -> None:
    snapshot_path = tmp_path / "state" / "vehicles.json"
    config = FleetConfig(api_base_url="http://fleet.test/api", snapshot_path=str(snapshot_path))

    async with FleetClient(config, geofences=_GEOFENCES) as client:
        await client.reconciler.apply_event(_telemetry("4", 14.55, 121.02))

    assert snapshot_path.exists()

    async with FleetClient(config, geofences=_GEOFENCES) as client:
        restored = client.vehicle_list()
        assert [state.number for state in restored] == ["4"]
        assert restored[0].latitude == pytest.approx(14.55)
        assert client.vehicle_path("4") == ()


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_snapshot_mirror_coalesces_writes_off_the_loop(
    tmp_path: Path, backend: FakeFleetBackend, monkeypatch: pytest.MonkeyPatch
) -> None:
    snapshot_path = tmp_path / "vehicles.json"
    config = FleetConfig(api_base_url="http://fleet.test/api", snapshot_path=str(snapshot_path), snapshot_interval=60.0)
    writer_threads: list[int] = []
    original_write = SnapshotMirror.write

    def recording_write(self: SnapshotMirror, states: Any) -> None:
        writer_threads.append(threading.get_ident())
        original_write(self, states)

    monkeypatch.setattr("fleetlive._cache.SnapshotMirror.write", recording_write)

    async with FleetClient(config, geofences=_GEOFENCES) as client:
        for index in range(200):
            await client.reconciler.apply_event(_telemetry(str(index % 20), 14.55 + index * 0.001, 121.02))
        assert writer_threads == []

    assert len(writer_threads) == 1
    assert threading.get_ident() not in writer_threads
    assert len(json.loads(snapshot_path.read_text())) == 20


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_snapshot_mirror_flushes_after_interval(tmp_path: Path, backend: FakeFleetBackend) -> None:
    snapshot_path = tmp_path / "vehicles.json"
    config = FleetConfig(api_base_url="http://fleet.test/api", snapshot_path=str(snapshot_path), snapshot_interval=0.01)

    async with FleetClient(config, geofences=_GEOFENCES) as client:
        await client.reconciler.apply_event(_telemetry("4", 14.55, 121.02))
        for _ in range(200):
            if snapshot_path.exists():
                break
            await asyncio.sleep(0.01)
        assert [item["number"] for item in json.loads(snapshot_path.read_text())] == ["4"]


@pytest.mark.asyncio
async def test_client_requires_context_manager(config: FleetConfig) -> None:
    client = FleetClient(config)

    with pytest.raises(FleetError):
        await client.refresh_assignments()
    with pytest.raises(FleetError):
        client.vehicle_list()


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_geofences_load_from_configured_file(tmp_path: Path, backend: FakeFleetBackend) -> None:
    geofence_file = tmp_path / "geofences.json"
    geofence_file.write_text('[{"name": "Cubao Terminal", "coordinates": [{"lat": 14.619, "lng": 121.0537}]}]')
    config = FleetConfig(api_base_url="http://fleet.test/api", geofence_path=str(geofence_file))

    async with FleetClient(config) as client:
        assert [location.name for location in client.reconciler.geofences] == ["Cubao Terminal"]
