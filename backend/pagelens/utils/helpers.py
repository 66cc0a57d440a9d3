"""Utility helpers."""

from datetime import datetime, timezone


def iso_timestamp() -> str:
    """Return the current UTC time as an ISO 8601 string.

    Returns:
        str: Timestamp with millisecond precision and a ``Z`` suffix.
    """
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
