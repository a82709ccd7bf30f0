"""Base model for fleet backend and tracker payloads.

Every inbound model inherits from :class:`FleetBaseModel` which provides:

* frozen instances, so snapshots handed to readers cannot be mutated.
* ``extra="ignore"``: the backend adds fields freely.
* A ``model_validator(mode="before")`` that drops ``None`` and blank
  strings so the field default is used instead.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class FleetBaseModel(BaseModel):
    """Base for fleetlive payload models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            cleaned[key] = value
        return cleaned
