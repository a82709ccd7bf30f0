"""Normalization helpers.

Centralizes defensive parsing of loosely typed backend and tracker values.
"""

from __future__ import annotations

import math
from datetime import datetime, tzinfo
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    """Coerce ids that arrive as either numbers or strings."""
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text if text else None


def normalize_timestamp_seconds(value: Any) -> float | None:
    """Normalize tracker timestamps to epoch seconds.

    - Empty/missing -> None
    - <= 0 -> None
    - Milliseconds (> 1e11) -> seconds
    """

    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    if ts > 1e11:
        ts /= 1000.0
    return ts


def format_display_time(timestamp: float | None, tz: tzinfo) -> str:
    """Render a unix timestamp as ``hh:mm AM`` on a 12-hour clock.

    Returns an empty string when there is no usable timestamp.
    """
    if timestamp is None:
        return ""
    try:
        moment = datetime.fromtimestamp(timestamp, tz=tz)
    except (OverflowError, OSError, ValueError):
        return ""
    return moment.strftime("%I:%M %p")


def numeric_sort_key(number: str) -> tuple[int, float, str]:
    """Sort key placing numeric ids first, in numeric order."""
    parsed = safe_float(number)
    if parsed is None:
        return (1, 0.0, number)
    return (0, parsed, number)
