"""Live vehicle state reconciliation.

The reconciler is the single consumer of the telemetry channel:

- validate the raw message (malformed messages are logged and dropped)
- merge it into the :class:`~fleetlive.state.store.VehicleStateStore`
- evaluate the arrival rule and, when it fires, close the dispatch through
  the injected ``end_dispatch`` callable

Events for the same vehicle are processed strictly one after the other,
including any arrival side effect, so a late path clear can never wipe a
point logged after the arrival. Different vehicles do not wait for each
other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, tzinfo
from typing import Any

from pydantic import ValidationError

from fleetlive._constants import ARRIVAL_TOLERANCE_DEGREES, DispatchStatus
from fleetlive._redact import redact_for_log
from fleetlive.exceptions import FleetNotFoundError
from fleetlive.models.geofence import GeofenceLocation
from fleetlive.models.telemetry import TelemetryEvent
from fleetlive.state.events import Notice, NoticeLevel
from fleetlive.state.policy import ArrivalMatch, evaluate_arrival
from fleetlive.state.store import VehicleStateStore

_logger = logging.getLogger(__name__)

EndDispatch = Callable[[str], Awaitable[Any]]
Refresh = Callable[[], Awaitable[Any]]
NoticeCallback = Callable[[Notice], None]


def parse_event(payload: Any) -> TelemetryEvent | None:
    """Validate a raw channel payload; ``None`` when it cannot be used."""
    if isinstance(payload, TelemetryEvent):
        return payload
    if not isinstance(payload, dict):
        _logger.warning("Dropping telemetry message that is not an object: %r", type(payload).__name__)
        return None
    try:
        return TelemetryEvent.from_payload(payload)
    except ValidationError as exc:
        _logger.warning(
            "Dropping malformed telemetry message (%d error(s)) vehicle_id=%r",
            exc.error_count(),
            payload.get("vehicle_id"),
        )
        _logger.debug("Malformed telemetry payload: %s", redact_for_log(payload), exc_info=True)
        return None


class VehicleStateReconciler:
    """Turns telemetry events into vehicle state and applies the arrival rule.

    Parameters
    ----------
    end_dispatch
        Coroutine function closing a dispatch log by id. Raising means the
        dispatch is still open server-side; local cleanup is then skipped.
        A :class:`~fleetlive.exceptions.FleetNotFoundError` means it was
        already closed elsewhere and is handled like a success.
    refresh
        Optional coroutine function reloading the assignment board after a
        dispatch was closed.
    geofences
        Ordered terminal locations; the first match wins.
    store
        Store to merge into; a fresh one is created when omitted.
    on_notice
        Optional callback receiving operator notices.
    """

    def __init__(
        self,
        *,
        end_dispatch: EndDispatch,
        refresh: Refresh | None = None,
        geofences: Iterable[GeofenceLocation] | None = None,
        store: VehicleStateStore | None = None,
        tz: tzinfo = UTC,
        tolerance: float = ARRIVAL_TOLERANCE_DEGREES,
        on_notice: NoticeCallback | None = None,
    ) -> None:
        self._end_dispatch = end_dispatch
        self._refresh = refresh
        self._geofences: tuple[GeofenceLocation, ...] = tuple(geofences or ())
        self._store = store if store is not None else VehicleStateStore(tz=tz)
        self._tolerance = tolerance
        self._on_notice = on_notice
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task[ArrivalMatch | None]] = set()
        # vehicle id -> last dispatch id this reconciler closed for it
        self._closed_dispatch_ids: dict[str, str] = {}
        self._closed = False

    @property
    def store(self) -> VehicleStateStore:
        return self._store

    @property
    def geofences(self) -> tuple[GeofenceLocation, ...]:
        return self._geofences

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def submit(self, payload: Any) -> asyncio.Task[ArrivalMatch | None] | None:
        """Schedule a raw channel payload for processing (must run on the loop).

        Validation happens immediately so the per-vehicle queue position is
        fixed in arrival order. Returns the processing task, or ``None``
        when the message was dropped.
        """
        if self._closed:
            return None
        event = parse_event(payload)
        if event is None:
            return None
        task = asyncio.get_running_loop().create_task(self._process(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def apply_event(self, payload: Any) -> ArrivalMatch | None:
        """Process one event to completion, including any arrival side effect.

        Never raises for a bad message. Returns the arrival match when the
        rule fired for this event.
        """
        if self._closed:
            return None
        event = parse_event(payload)
        if event is None:
            return None
        return await self._process(event)

    async def drain(self) -> None:
        """Wait until every submitted event has been processed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Dispose the reconciler.

        Pending handlers stop mutating state. In-flight ``end_dispatch``
        calls are not cancelled; their results are ignored.
        """
        self._closed = True
        await self.drain()

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _lock_for(self, vehicle_id: str) -> asyncio.Lock:
        lock = self._locks.get(vehicle_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[vehicle_id] = lock
        return lock

    async def _process(self, event: TelemetryEvent) -> ArrivalMatch | None:
        async with self._lock_for(event.vehicle_id):
            if self._closed:
                return None
            try:
                self._store.apply(event)
            except Exception:
                _logger.warning("Failed to merge telemetry for vehicle=%s", event.vehicle_id, exc_info=True)
                return None
            self._forget_closed_dispatch(event)

            match = evaluate_arrival(event, self._geofences, tolerance=self._tolerance)
            if match is None:
                return None
            if self._closed_dispatch_ids.get(match.vehicle_id) == match.dispatch_logs_id:
                _logger.debug(
                    "Dispatch %s already closed; ignoring repeated arrival of vehicle=%s",
                    match.dispatch_logs_id,
                    match.vehicle_id,
                )
                return None
            await self._close_dispatch(match)
            return match

    async def _close_dispatch(self, match: ArrivalMatch) -> None:
        _logger.info(
            "Vehicle %s arrived at %s; ending dispatch %s",
            match.vehicle_id,
            match.geofence.name,
            match.dispatch_logs_id,
        )
        level = NoticeLevel.SUCCESS
        message = f"Dispatch ended for vehicle {match.vehicle_id} at {match.geofence.name}"
        try:
            await self._end_dispatch(match.dispatch_logs_id)
        except FleetNotFoundError:
            _logger.info(
                "Dispatch %s for vehicle=%s was already ended elsewhere",
                match.dispatch_logs_id,
                match.vehicle_id,
            )
            level = NoticeLevel.INFO
            message = f"Dispatch for vehicle {match.vehicle_id} was already ended"
        except Exception as exc:
            _logger.warning(
                "Ending dispatch %s for vehicle=%s failed: %s",
                match.dispatch_logs_id,
                match.vehicle_id,
                exc,
            )
            self._notify(
                Notice(
                    level=NoticeLevel.ERROR,
                    message=f"Failed to end dispatch for vehicle {match.vehicle_id}: {exc}",
                    vehicle_id=match.vehicle_id,
                    dispatch_logs_id=match.dispatch_logs_id,
                )
            )
            return

        if self._closed:
            return

        self._closed_dispatch_ids[match.vehicle_id] = match.dispatch_logs_id
        self._store.clear_path(match.vehicle_id)
        self._notify(
            Notice(
                level=level,
                message=message,
                vehicle_id=match.vehicle_id,
                dispatch_logs_id=match.dispatch_logs_id,
            )
        )

        if self._refresh is not None:
            try:
                await self._refresh()
            except Exception:
                _logger.warning("Assignment refresh after ending dispatch %s failed", match.dispatch_logs_id, exc_info=True)

    def _forget_closed_dispatch(self, event: TelemetryEvent) -> None:
        closed_id = self._closed_dispatch_ids.get(event.vehicle_id)
        if closed_id is None:
            return
        if event.dispatch_logs_id != closed_id or event.status != DispatchStatus.ON_ROAD:
            del self._closed_dispatch_ids[event.vehicle_id]

    def _notify(self, notice: Notice) -> None:
        if self._on_notice is None:
            return
        try:
            self._on_notice(notice)
        except Exception:
            _logger.debug("on_notice callback failed", exc_info=True)
