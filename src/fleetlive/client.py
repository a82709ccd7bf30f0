"""High-level async client for the fleet dispatch backend and live channel."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import aiohttp

from fleetlive._api import assignments as _assignments_api
from fleetlive._api import dispatch as _dispatch_api
from fleetlive._cache import SnapshotMirror
from fleetlive._channel import ChannelMessage, ChannelRuntime
from fleetlive._constants import STATUS_FILTER_ALL
from fleetlive._redact import redact_for_log
from fleetlive._transport import RestTransport
from fleetlive.config import FleetConfig
from fleetlive.exceptions import FleetConfigError, FleetError
from fleetlive.models.dispatch import AssignmentRow, DispatchLog, VehicleAssignment, build_assignment_rows
from fleetlive.models.geofence import GeofenceLocation, load_geofences
from fleetlive.models.vehicle import PathPoint, VehicleState
from fleetlive.reconciler import NoticeCallback, VehicleStateReconciler
from fleetlive.state.events import ChangeKind, ChannelStatus, StateChange
from fleetlive.state.projection import project_vehicle_list
from fleetlive.state.store import StateListener, VehicleStateStore

_logger = logging.getLogger(__name__)


def _resolve_time_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise FleetConfigError(f"Unknown time zone {name!r}") from exc


class FleetClient:
    """Async client for dispatch monitoring.

    Usage::

        async with FleetClient(FleetConfig.from_env()) as client:
            await client.refresh_assignments()
            await client.start_live()
            rows = client.vehicle_list("on road")
    """

    def __init__(
        self,
        config: FleetConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        geofences: Iterable[GeofenceLocation] | None = None,
        on_change: StateListener | None = None,
        on_notice: NoticeCallback | None = None,
        on_channel_status: Callable[[ChannelStatus], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: RestTransport | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._geofences = tuple(geofences) if geofences is not None else None
        self._on_change = on_change
        self._on_notice = on_notice
        self._on_channel_status_cb = on_channel_status
        self._reconciler: VehicleStateReconciler | None = None
        self._runtime: ChannelRuntime | None = None
        self._channel_status = ChannelStatus.DISCONNECTED
        self._assignments: list[AssignmentRow] = []
        self._mirror = SnapshotMirror(config.snapshot_path) if config.snapshot_path else None
        self._mirror_dirty = False
        self._mirror_task: asyncio.Task[None] | None = None
        self._mirror_lock = asyncio.Lock()
        self._unsubscribers: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetClient:
        self._loop = asyncio.get_running_loop()
        tz = _resolve_time_zone(self._config.time_zone)
        geofences = self._geofences if self._geofences is not None else load_geofences(self._config.geofence_path)
        _logger.debug("Loaded %d geofence location(s)", len(geofences))

        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = RestTransport(self._config, self._http_session)

        store = VehicleStateStore(tz=tz)
        if self._mirror is not None:
            restored = store.seed(self._mirror.load())
            _logger.debug("Restored %d vehicle(s) from %s", restored, self._mirror.path)
            self._unsubscribers.append(store.subscribe(self._mirror_change))
        if self._on_change is not None:
            self._unsubscribers.append(store.subscribe(self._on_change))

        self._reconciler = VehicleStateReconciler(
            end_dispatch=self._end_dispatch_for_arrival,
            refresh=self.refresh_assignments,
            geofences=geofences,
            store=store,
            tolerance=self._config.arrival_tolerance,
            on_notice=self._on_notice,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop_live()
        if self._reconciler is not None:
            await self._reconciler.close()
        if self._mirror_task is not None:
            self._mirror_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._mirror_task
            self._mirror_task = None
        await self._flush_mirror()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None
        self._loop = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> RestTransport:
        if self._transport is None:
            raise FleetError("Client not initialized. Use 'async with FleetClient(...) as client:'")
        return self._transport

    def _require_reconciler(self) -> VehicleStateReconciler:
        if self._reconciler is None:
            raise FleetError("Client not initialized. Use 'async with FleetClient(...) as client:'")
        return self._reconciler

    def _mirror_change(self, change: StateChange) -> None:
        if self._mirror is None or change.kind != ChangeKind.STATE:
            return
        self._mirror_dirty = True
        if self._mirror_task is None and self._loop is not None:
            self._mirror_task = self._loop.create_task(self._flush_mirror_later())

    async def _flush_mirror_later(self) -> None:
        try:
            await asyncio.sleep(self._config.snapshot_interval)
        finally:
            self._mirror_task = None
        await self._flush_mirror()

    async def _flush_mirror(self) -> None:
        """Write pending state changes to the mirror file off the event loop."""
        async with self._mirror_lock:
            if self._mirror is None or not self._mirror_dirty or self._reconciler is None:
                return
            self._mirror_dirty = False
            states = self.store.snapshot()
            loop = self._loop or asyncio.get_running_loop()
            await loop.run_in_executor(None, self._mirror.write, states)

    # ------------------------------------------------------------------
    # Live channel
    # ------------------------------------------------------------------

    @property
    def reconciler(self) -> VehicleStateReconciler:
        return self._require_reconciler()

    @property
    def store(self) -> VehicleStateStore:
        return self._require_reconciler().store

    @property
    def channel_connected(self) -> bool:
        """``False`` means the live data may be stale."""
        return self._channel_status == ChannelStatus.CONNECTED

    async def start_live(self) -> bool:
        """Subscribe to the telemetry channel.

        Returns ``False`` when the channel is disabled or could not be
        started; REST operations keep working either way.
        """
        if not self._config.channel_enabled:
            return False
        if self._runtime is not None and self._runtime.is_running:
            return True
        self._require_reconciler()
        loop = self._loop or asyncio.get_running_loop()
        _logger.debug("Starting telemetry channel %s", redact_for_log(self._config.channel))
        runtime = ChannelRuntime(
            loop=loop,
            on_message=self._on_channel_message,
            on_status=self._on_channel_status,
            logger=_logger,
        )
        try:
            await loop.run_in_executor(None, runtime.start, self._config.channel)
        except Exception:
            _logger.warning("Telemetry channel startup failed", exc_info=True)
            return False
        self._runtime = runtime
        return True

    async def stop_live(self) -> None:
        """Unsubscribe from the telemetry channel."""
        runtime = self._runtime
        self._runtime = None
        if runtime is not None:
            loop = self._loop or asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, runtime.stop)
            except Exception:
                _logger.debug("Telemetry channel stop failed", exc_info=True)
        if self._channel_status != ChannelStatus.DISCONNECTED:
            self._on_channel_status(ChannelStatus.DISCONNECTED)

    def _on_channel_message(self, message: ChannelMessage) -> None:
        """Handle a decoded channel message (called on the loop via call_soon_threadsafe)."""
        reconciler = self._reconciler
        if reconciler is None:
            return
        reconciler.submit(message.payload)

    def _on_channel_status(self, status: ChannelStatus) -> None:
        self._channel_status = status
        if self._on_channel_status_cb is not None:
            try:
                self._on_channel_status_cb(status)
            except Exception:
                _logger.debug("on_channel_status callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def vehicle_list(self, status_filter: str = STATUS_FILTER_ALL) -> list[VehicleState]:
        """Live vehicles sorted by numeric id, filtered by status."""
        return project_vehicle_list(self.store.snapshot().values(), status_filter)

    def vehicle_path(self, vehicle_id: str) -> tuple[PathPoint, ...]:
        return self.store.get_path(vehicle_id)

    @property
    def assignments(self) -> list[AssignmentRow]:
        """Assignment board as of the last refresh."""
        return list(self._assignments)

    def assignment_list(self, status_filter: str = STATUS_FILTER_ALL) -> list[AssignmentRow]:
        """Assignment board sorted by numeric vehicle id, filtered by status."""
        return project_vehicle_list(self._assignments, status_filter)

    # ------------------------------------------------------------------
    # Read endpoints
    # ------------------------------------------------------------------

    async def get_vehicle_assignments(self) -> list[VehicleAssignment]:
        return await _assignments_api.fetch_vehicle_assignments(self._require_transport())

    async def get_on_alley(self) -> list[DispatchLog]:
        return await _dispatch_api.fetch_on_alley(self._require_transport())

    async def get_on_road(self) -> list[DispatchLog]:
        return await _dispatch_api.fetch_on_road(self._require_transport())

    async def refresh_assignments(self) -> list[AssignmentRow]:
        """Reload the assignment board (assignments plus open dispatch logs)."""
        transport = self._require_transport()
        assignments = await _assignments_api.fetch_vehicle_assignments(transport)
        on_alley = await _dispatch_api.fetch_on_alley(transport)
        on_road = await _dispatch_api.fetch_on_road(transport)
        self._assignments = build_assignment_rows(assignments, on_alley, on_road)
        _logger.debug(
            "Assignment board refreshed: %d vehicle(s), %d on alley, %d on road",
            len(self._assignments),
            len(on_alley),
            len(on_road),
        )
        return list(self._assignments)

    # ------------------------------------------------------------------
    # Dispatch lifecycle
    # ------------------------------------------------------------------

    async def start_alley(self, *, route: str, vehicle_assignment_id: int | None) -> Any:
        """Move an idle vehicle to the alley for *route*."""
        result = await _dispatch_api.start_alley(
            self._require_transport(),
            route=route,
            vehicle_assignment_id=vehicle_assignment_id,
        )
        await self.refresh_assignments()
        return result

    async def start_dispatch(self, *, route: str, vehicle_assignment_id: int | None) -> Any:
        result = await _dispatch_api.start_dispatch(
            self._require_transport(),
            route=route,
            vehicle_assignment_id=vehicle_assignment_id,
        )
        await self.refresh_assignments()
        return result

    async def dispatch_vehicle(
        self,
        *,
        dispatch_logs_id: str | int | None,
        route: str,
        vehicle_assignment_id: int | None,
    ) -> Any:
        """Send a vehicle on the road: end its alley record, then start the dispatch."""
        if not route or not route.strip():
            raise ValueError("No route selected.")
        if vehicle_assignment_id is None:
            raise ValueError("Vehicle assignment ID is missing.")
        transport = self._require_transport()
        await _dispatch_api.end_alley(transport, dispatch_logs_id)
        result = await _dispatch_api.start_dispatch(
            transport,
            route=route,
            vehicle_assignment_id=vehicle_assignment_id,
        )
        await self.refresh_assignments()
        return result

    async def end_alley(self, dispatch_logs_id: str | int | None) -> Any:
        result = await _dispatch_api.end_alley(self._require_transport(), dispatch_logs_id)
        await self.refresh_assignments()
        return result

    async def end_dispatch(self, dispatch_logs_id: str | int | None, *, refresh: bool = True) -> Any:
        """Close an on-road dispatch. The vehicle becomes idle."""
        result = await _dispatch_api.end_dispatch(self._require_transport(), dispatch_logs_id)
        if refresh:
            await self.refresh_assignments()
        return result

    async def delete_record(self, dispatch_logs_id: str | int | None) -> Any:
        """Delete a dispatch/alley record created by mistake."""
        result = await _dispatch_api.delete_record(self._require_transport(), dispatch_logs_id)
        await self.refresh_assignments()
        return result

    async def _end_dispatch_for_arrival(self, dispatch_logs_id: str) -> Any:
        # The reconciler refreshes the board itself once local cleanup is done.
        return await self.end_dispatch(dispatch_logs_id, refresh=False)
