"""Ingestion layer.

This package contains the adapters that receive raw telemetry from the
pub/sub channel and turn it into validated :mod:`fleetlive.models`
objects, dropping anything that cannot be trusted.
"""

__all__: list[str] = []
