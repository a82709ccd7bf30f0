"""Shared helpers for fleet endpoint modules."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from fleetlive.exceptions import FleetApiError

_logger = logging.getLogger(__name__)

TModel = TypeVar("TModel", bound=BaseModel)


def unwrap_list(decoded: Any, *, endpoint: str) -> list[Any]:
    """Return the list carried by a response.

    The backend answers either with a bare list or with a
    ``{"data": [...]}`` resource wrapper.
    """
    if decoded is None:
        return []
    if isinstance(decoded, list):
        return decoded
    if isinstance(decoded, dict) and isinstance(decoded.get("data"), list):
        return list(decoded["data"])
    raise FleetApiError(f"{endpoint} returned {type(decoded).__name__}, expected a list", endpoint=endpoint)


def validate_items(model: type[TModel], items: list[Any], *, endpoint: str) -> list[TModel]:
    """Validate each item, skipping (and logging) the ones that do not fit."""
    results: list[TModel] = []
    for item in items:
        try:
            results.append(model.model_validate(item))
        except ValidationError:
            _logger.debug("Skipping invalid %s item from %s: %r", model.__name__, endpoint, item, exc_info=True)
    return results


def require_id(value: str | int | None, *, name: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValueError(f"{name} is required")
    return text
