"""Custom exception hierarchy for fleetlive."""

from __future__ import annotations


class FleetError(Exception):
    """Base exception for all fleetlive errors."""


class FleetConfigError(FleetError):
    """Invalid or missing configuration."""


class FleetTransportError(FleetError):
    """HTTP-level failure (network, timeout, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class FleetApiError(FleetError):
    """Backend answered with a non-2xx status (application-level error)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
        server_message: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.server_message = server_message
        super().__init__(message)


class FleetAuthenticationError(FleetApiError):
    """Bearer token missing, expired or lacking the admin role (401/403)."""


class FleetNotFoundError(FleetApiError):
    """Referenced record does not exist (404).

    Ending or deleting a dispatch log that was already closed elsewhere
    usually lands here.
    """


class FleetValidationError(FleetApiError):
    """Backend rejected the request payload (422)."""
