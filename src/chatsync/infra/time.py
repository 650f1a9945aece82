"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def from_epoch_seconds(value: Any) -> datetime | None:
    """Convert provider epoch seconds to an aware UTC datetime.

    Accepts ints, floats and numeric strings. Some provider versions wrap
    the value as ``{"low": int, "high": int}`` (protobuf Long).

    Returns:
        Datetime, or None when the value is absent or not numeric.
    """
    if isinstance(value, dict) and "low" in value:
        value = (int(value.get("high") or 0) << 32) + int(value["low"])
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds <= 0:
        return None
    # Milliseconds slip through from some snapshot endpoints
    if seconds > 1e11:
        seconds /= 1000
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
