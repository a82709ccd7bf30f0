"""In-memory live vehicle store.

This is the only component allowed to mutate per-vehicle display state
and path history. Readers receive frozen snapshots.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, tzinfo

from fleetlive.ingestion.normalize import format_display_time
from fleetlive.models.telemetry import TelemetryEvent
from fleetlive.models.vehicle import PathPoint, VehicleState
from fleetlive.state.events import ChangeKind, StateChange

_logger = logging.getLogger(__name__)

StateListener = Callable[[StateChange], None]


class VehicleStateStore:
    """Per-vehicle display state and path history.

    Entries are created lazily on the first event for a vehicle id and
    live as long as the store. Each event replaces the vehicle's record:
    location, speed, time, status, dispatch log, route and crew always
    come from the event, while ``name`` and ``plate_number`` are carried
    over from the existing record.
    """

    def __init__(self, *, tz: tzinfo = UTC) -> None:
        self._tz = tz
        self._states: dict[str, VehicleState] = {}
        self._paths: dict[str, list[PathPoint]] = {}
        self._listeners: list[StateListener] = []

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, vehicle_id: object) -> bool:
        return vehicle_id in self._states

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply(self, event: TelemetryEvent) -> VehicleState:
        """Merge a validated telemetry event and append its position to the path."""
        vehicle_id = event.vehicle_id
        previous = self._states.get(vehicle_id)
        if previous is None:
            previous = VehicleState.placeholder(vehicle_id)
            if event.plate_number:
                previous = previous.model_copy(update={"plate_number": event.plate_number})

        location = event.location
        state = previous.model_copy(
            update={
                "latitude": location.latitude,
                "longitude": location.longitude,
                "speed": location.speed,
                "time": format_display_time(event.timestamp, self._tz),
                "timestamp": event.timestamp,
                "status": event.status,
                "dispatch_log_id": event.dispatch_logs_id,
                "route": event.route,
                "driver": event.driver,
                "conductor": event.conductor,
            }
        )
        self._states[vehicle_id] = state
        self._paths.setdefault(vehicle_id, []).append(PathPoint(lat=location.latitude, lng=location.longitude))

        self._emit(StateChange(vehicle_id=vehicle_id, kind=ChangeKind.STATE, state=state, path=self.get_path(vehicle_id)))
        return state

    def clear_path(self, vehicle_id: str) -> None:
        """Reset a vehicle's path history so a new trip starts with no trail."""
        self._paths[vehicle_id] = []
        self._emit(
            StateChange(
                vehicle_id=vehicle_id,
                kind=ChangeKind.PATH_CLEARED,
                state=self._states.get(vehicle_id),
            )
        )

    def seed(self, states: Iterable[VehicleState]) -> int:
        """Pre-populate display state for vehicles not seen yet.

        Used to restore a mirrored snapshot after a restart; live events
        always win over seeded records. Returns the number of records added.
        """
        added = 0
        for state in states:
            if state.number in self._states:
                continue
            self._states[state.number] = state
            added += 1
        return added

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def get_state(self, vehicle_id: str) -> VehicleState | None:
        return self._states.get(vehicle_id)

    def get_path(self, vehicle_id: str) -> tuple[PathPoint, ...]:
        return tuple(self._paths.get(vehicle_id, ()))

    def snapshot(self) -> dict[str, VehicleState]:
        """Copy of the state map (values are frozen models)."""
        return dict(self._states)

    def paths(self) -> dict[str, tuple[PathPoint, ...]]:
        return {vehicle_id: tuple(points) for vehicle_id, points in self._paths.items()}

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener* for state changes; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, change: StateChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                _logger.debug("State listener failed for vehicle=%s", change.vehicle_id, exc_info=True)
