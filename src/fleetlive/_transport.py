"""HTTP transport for the fleet REST backend (bearer token, JSON)."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from fleetlive._constants import USER_AGENT
from fleetlive._redact import redact_for_log
from fleetlive.config import FleetConfig
from fleetlive.exceptions import (
    FleetApiError,
    FleetAuthenticationError,
    FleetNotFoundError,
    FleetTransportError,
    FleetValidationError,
)

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`RestTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        endpoint: str,
        payload: Mapping[str, Any] | None = None,
    ) -> Any:
        ...


def _server_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return fallback


def _raise_for_status(status: int, endpoint: str, body: Any, text: str) -> None:
    message = _server_message(body, text[:200])
    error_cls: type[FleetApiError] = FleetApiError
    if status in (401, 403):
        error_cls = FleetAuthenticationError
    elif status == 404:
        error_cls = FleetNotFoundError
    elif status == 422:
        error_cls = FleetValidationError
    raise error_cls(
        f"HTTP {status} from {endpoint}: {message}",
        status_code=status,
        endpoint=endpoint,
        server_message=message,
    )


class RestTransport:
    """JSON transport that adds the bearer token and maps error statuses."""

    def __init__(self, config: FleetConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._base_url = config.api_base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }
        if self._config.api_token:
            headers["authorization"] = f"Bearer {self._config.api_token}"
        return headers

    async def request(
        self,
        method: str,
        endpoint: str,
        payload: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Non-2xx answers raise a :class:`FleetApiError` subclass; network
        failures and undecodable bodies raise :class:`FleetTransportError`.
        An empty body decodes to ``None``.
        """
        url = f"{self._base_url}{endpoint}"
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else None
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)

        _logger.debug("%s %s payload=%s", method, url, redact_for_log(payload))

        try:
            async with self._http.request(method, url, data=body, headers=self._headers(), timeout=timeout) as resp:
                status = resp.status
                text = await resp.text()
        except aiohttp.ClientError as exc:
            raise FleetTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc
        except TimeoutError as exc:
            raise FleetTransportError(
                f"Request to {endpoint} timed out after {self._config.request_timeout}s",
                endpoint=endpoint,
            ) from exc

        decoded: Any = None
        if text.strip():
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as exc:
                if 200 <= status < 300:
                    raise FleetTransportError(
                        f"Invalid JSON from {endpoint}: {text[:200]}",
                        status_code=status,
                        endpoint=endpoint,
                    ) from exc

        if not 200 <= status < 300:
            _raise_for_status(status, endpoint, decoded, text)

        return decoded
