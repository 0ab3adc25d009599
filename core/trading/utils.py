from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from core.utils.exceptions import LiquidationDataError


def to_datetime(value: Any, field: str = "timestamp") -> datetime:
    """Normalize a stored timestamp into a datetime.

    Accepts datetimes, ISO-8601 strings, epoch seconds, and the
    ``{"seconds": ..., "nanoseconds": ...}`` mapping some document stores
    emit. Epoch-based values are converted to the host's local time so
    their calendar date matches wall-clock expectations.

    Raises:
        LiquidationDataError: if the value cannot be interpreted
    """
    if isinstance(value, datetime):
        return value

    if isinstance(value, bool):
        raise LiquidationDataError(f"Invalid {field}: {value!r}", field=field, value=value)

    if isinstance(value, (int, float)):
        return _from_epoch(value, field)

    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        if not isinstance(seconds, (int, float)) or isinstance(seconds, bool):
            raise LiquidationDataError(f"Invalid {field}: {value!r}", field=field, value=value)
        return _from_epoch(seconds + nanos / 1e9, field)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            raise LiquidationDataError(f"Invalid {field}: {value!r}", field=field, value=value)

    raise LiquidationDataError(f"Invalid {field}: {value!r}", field=field, value=value)


def _from_epoch(seconds: float, field: str) -> datetime:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).astimezone()
    except (OverflowError, OSError, ValueError):
        raise LiquidationDataError(f"Invalid {field}: {seconds!r}", field=field, value=seconds)
