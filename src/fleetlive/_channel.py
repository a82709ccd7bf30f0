"""Internal pub/sub channel runtime and payload decoding."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from fleetlive._constants import TELEMETRY_EVENT_NAME
from fleetlive.config import ChannelConfig
from fleetlive.exceptions import FleetError
from fleetlive.state.events import ChannelStatus


@dataclass(frozen=True)
class ChannelMessage:
    """Decoded channel message."""

    topic: str
    event: str
    payload: dict[str, Any]


def _unwrap_envelope(parsed: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """Strip the broadcast envelope, if any.

    Broadcast relays wrap the event as ``{"event": ..., "data": ...}`` where
    ``data`` may itself be a JSON string. Bare telemetry objects pass
    through unchanged.
    """
    event_name = parsed.get("event")
    data = parsed.get("data")
    if isinstance(event_name, str) and data is not None:
        if isinstance(data, str):
            data = json.loads(data)
        if not isinstance(data, dict):
            raise FleetError("Channel envelope data is not an object")
        return event_name, data
    return TELEMETRY_EVENT_NAME, parsed


def decode_channel_payload(payload: bytes) -> tuple[str, dict[str, Any]]:
    """Decode raw message bytes into ``(event name, payload object)``."""
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise FleetError("Channel payload is not a JSON object")
    return _unwrap_envelope(parsed)


class ChannelRuntime:
    """Threaded paho-mqtt runtime that emits decoded messages onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_message: Callable[[ChannelMessage], None],
        on_status: Callable[[ChannelStatus], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._on_message = on_message
        self._on_status = on_status
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._topic: str | None = None

    @property
    def is_running(self) -> bool:
        """Whether the channel runtime is actively running."""
        return self._running

    def _emit_status(self, status: ChannelStatus) -> None:
        if self._on_status is not None:
            self._loop.call_soon_threadsafe(self._on_status, status)

    def handle_payload(self, topic: str, payload: bytes) -> None:
        """Decode one message and hand it to the loop; bad payloads are dropped."""
        try:
            event_name, data = decode_channel_payload(payload)
        except (ValueError, FleetError):
            self._logger.warning("Dropping undecodable channel message on topic=%s", topic)
            self._logger.debug("Channel payload parse failure", exc_info=True)
            return
        if event_name != TELEMETRY_EVENT_NAME:
            self._logger.debug("Ignoring channel event=%s topic=%s", event_name, topic)
            return
        message = ChannelMessage(topic=topic, event=event_name, payload=data)
        self._loop.call_soon_threadsafe(self._on_message, message)

    def start(self, channel: ChannelConfig) -> None:
        """Connect and subscribe with provided broker details."""
        self.stop()
        client_id = channel.client_id or f"fleetlive-{uuid.uuid4().hex[:12]}"
        self._logger.debug(
            "Channel runtime start requested host=%s port=%s topic=%s client_id=%s",
            channel.host,
            channel.port,
            channel.topic,
            client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if channel.username or channel.password:
            client.username_pw_set(channel.username, channel.password)
        if channel.tls:
            client.tls_set()

        self._topic = channel.topic

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("Channel connect failed: %s", reason_code)
                return
            self._logger.info("Connected to telemetry channel topic=%s", self._topic)
            if self._topic:
                c.subscribe(self._topic, qos=0)
            self._emit_status(ChannelStatus.CONNECTED)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self.handle_payload(msg.topic, msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.warning("Telemetry channel disconnected: %s", reason_code)
                self._emit_status(ChannelStatus.DISCONNECTED)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(channel.host, channel.port, keepalive=channel.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("Channel network loop started")

    def stop(self) -> None:
        """Unsubscribe and disconnect the current client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        topic = self._topic
        self._topic = None

        if client is None:
            return
        try:
            if was_running:
                if topic:
                    client.unsubscribe(topic)
                self._logger.debug("Channel disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("Channel network loop stopped")
