"""Client configuration for fleetlive."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from fleetlive._constants import ARRIVAL_TOLERANCE_DEGREES, DEFAULT_CHANNEL_TOPIC
from fleetlive.exceptions import FleetConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env: Mapping[str, str], key: str, cast: type[Any]) -> Any:
    raw = env.get(key)
    if raw is None:
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise FleetConfigError(f"{key} must be a {cast.__name__}, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class ChannelConfig:
    """Broker connection details for the live telemetry channel.

    The channel is a single topic; every message carries the vehicle id
    it belongs to, so there is no per-vehicle subscription.
    """

    host: str = "mqtt.flespi.io"
    port: int = 8883
    topic: str = DEFAULT_CHANNEL_TOPIC
    username: str = ""
    password: str = ""
    tls: bool = True
    keepalive: int = 60
    client_id: str = ""


@dataclasses.dataclass(frozen=True)
class FleetConfig:
    """Client configuration.

    Parameters
    ----------
    api_base_url : str
        Base URL of the fleet REST backend (no trailing slash).
    api_token : str
        Bearer token sent with every REST request.
    request_timeout : float
        Total timeout per REST request in seconds.
    time_zone : str
        IANA time zone used to format the display ``time`` of a vehicle.
    channel : ChannelConfig
        Broker details for the telemetry channel.
    channel_enabled : bool
        Start the channel listener when live monitoring is requested.
    geofence_path : str or None
        JSON file holding the named terminal locations used by the
        arrival rule. ``None`` means an empty table.
    arrival_tolerance : float
        Per-axis tolerance in degrees for the arrival rule.
    snapshot_path : str or None
        Optional JSON file the vehicle state map is mirrored to.
    snapshot_interval : float
        Seconds to coalesce state changes before the mirror is rewritten.
    """

    api_base_url: str = "http://localhost:8000/api"
    api_token: str = ""
    request_timeout: float = 15.0
    time_zone: str = "Asia/Manila"
    channel: ChannelConfig = dataclasses.field(default_factory=ChannelConfig)
    channel_enabled: bool = True
    geofence_path: str | None = None
    arrival_tolerance: float = ARRIVAL_TOLERANCE_DEGREES
    snapshot_path: str | None = None
    snapshot_interval: float = 1.0

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from ``FLEET_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        channel_kwargs: dict[str, Any] = {}
        _ENV_CHANNEL_MAP = {
            "FLEET_MQTT_HOST": "host",
            "FLEET_MQTT_TOPIC": "topic",
            "FLEET_MQTT_USERNAME": "username",
            "FLEET_MQTT_PASSWORD": "password",
            "FLEET_MQTT_CLIENT_ID": "client_id",
        }
        for env_key, field_name in _ENV_CHANNEL_MAP.items():
            val = env.get(env_key)
            if val is not None:
                channel_kwargs[field_name] = val

        port = _env_number(env, "FLEET_MQTT_PORT", int)
        if port is not None:
            channel_kwargs["port"] = port
        keepalive = _env_number(env, "FLEET_MQTT_KEEPALIVE", int)
        if keepalive is not None:
            channel_kwargs["keepalive"] = keepalive
        if "FLEET_MQTT_TLS" in env:
            channel_kwargs["tls"] = _env_bool(env.get("FLEET_MQTT_TLS"), True)

        # Allow overriding channel fields via a nested dict
        channel_overrides = overrides.pop("channel", None)
        if isinstance(channel_overrides, dict):
            channel_kwargs.update(channel_overrides)
        elif isinstance(channel_overrides, ChannelConfig):
            channel_kwargs = dataclasses.asdict(channel_overrides)

        _ENV_CONFIG_MAP = {
            "FLEET_API_BASE_URL": "api_base_url",
            "FLEET_API_TOKEN": "api_token",
            "FLEET_TIME_ZONE": "time_zone",
            "FLEET_GEOFENCE_PATH": "geofence_path",
            "FLEET_SNAPSHOT_PATH": "snapshot_path",
        }
        config_kwargs: dict[str, Any] = {"channel": ChannelConfig(**channel_kwargs)}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        timeout = _env_number(env, "FLEET_REQUEST_TIMEOUT", float)
        if timeout is not None and "request_timeout" not in overrides:
            config_kwargs["request_timeout"] = timeout

        tolerance = _env_number(env, "FLEET_ARRIVAL_TOLERANCE", float)
        if tolerance is not None and "arrival_tolerance" not in overrides:
            config_kwargs["arrival_tolerance"] = tolerance

        interval = _env_number(env, "FLEET_SNAPSHOT_INTERVAL", float)
        if interval is not None and "snapshot_interval" not in overrides:
            config_kwargs["snapshot_interval"] = interval

        if "channel_enabled" not in overrides:
            config_kwargs["channel_enabled"] = _env_bool(env.get("FLEET_CHANNEL_ENABLED"), True)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
