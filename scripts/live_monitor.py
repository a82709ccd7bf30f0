#!/usr/bin/env python3
"""Live dispatch monitor.

Connects to the fleet backend and the telemetry channel, then:
1) loads the assignment board,
2) merges every telemetry message into the live vehicle list,
3) ends dispatches automatically when an on-road vehicle reaches a terminal,
4) prints the filtered vehicle list whenever it changes.

Configuration comes from ``FLEET_*`` environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fleetlive import (  # noqa: E402
    STATUS_FILTER_ALL,
    ChannelStatus,
    FleetClient,
    FleetConfig,
    FleetError,
    Notice,
    StateChange,
    VehicleState,
)

_LOG = logging.getLogger("live_monitor")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print the live vehicle list of the fleet dispatch board.",
    )
    parser.add_argument(
        "--status",
        default=STATUS_FILTER_ALL,
        help="Status filter: all, idle, 'on alley' or 'on road'.",
    )
    parser.add_argument(
        "--geofences",
        default=None,
        help="JSON file with terminal locations (overrides FLEET_GEOFENCE_PATH).",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--min-interval",
        type=float,
        default=1.0,
        help="Minimum seconds between two list prints.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _format_row(state: VehicleState) -> str:
    position = "-"
    if state.latitude is not None and state.longitude is not None:
        position = f"{state.latitude:.5f},{state.longitude:.5f}"
    crew = " / ".join(name for name in (state.driver, state.conductor) if name) or "-"
    return (
        f"{state.number:>6}  {state.name:<12} {state.plate_number:<14} {state.status:<9} "
        f"{state.route or '-':<16} {position:<22} {state.speed:>5.1f} km/h  {state.time or '--:--':<8} {crew}"
    )


def _print_list(states: list[VehicleState], status_filter: str, connected: bool) -> None:
    marker = "live" if connected else "STALE"
    print(f"[monitor] {len(states)} vehicle(s) filter={status_filter!r} channel={marker}")
    for state in states:
        print(f"[monitor]   {_format_row(state)}")


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, str] = {}
    if args.geofences:
        overrides["geofence_path"] = args.geofences
    config = FleetConfig.from_env(**overrides)

    stop_event = asyncio.Event()
    dirty = asyncio.Event()

    def on_change(_change: StateChange) -> None:
        dirty.set()

    def on_notice(notice: Notice) -> None:
        print(f"[monitor] {notice.level.value.upper()}: {notice.message}")

    def on_channel_status(status: ChannelStatus) -> None:
        print(f"[monitor] channel {status.value}")
        dirty.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with FleetClient(
        config,
        on_change=on_change,
        on_notice=on_notice,
        on_channel_status=on_channel_status,
    ) as client:
        try:
            rows = await client.refresh_assignments()
        except FleetError as exc:
            print(f"[monitor] Assignment board unavailable: {exc}", file=sys.stderr)
        else:
            print(f"[monitor] {len(rows)} assigned vehicle(s) on the board")

        if not await client.start_live():
            print("[monitor] Telemetry channel not started; the list will stay empty", file=sys.stderr)

        started_at = time.monotonic()
        while not stop_event.is_set():
            if args.duration and time.monotonic() - started_at >= args.duration:
                break
            try:
                await asyncio.wait_for(dirty.wait(), timeout=1.0)
            except TimeoutError:
                continue
            dirty.clear()
            _print_list(client.vehicle_list(args.status), args.status, client.channel_connected)
            await asyncio.sleep(args.min_interval)

    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except FleetError as exc:  # pragma: no cover - network/system interaction
        _LOG.error("Monitor failed: %s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(_main())
