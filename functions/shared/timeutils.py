"""Time helpers. All persisted instants are ISO-8601 strings in UTC."""

from datetime import datetime, timezone
from typing import Optional, Union

# Epoch values above this are milliseconds (year 2286 in seconds)
_MAX_EPOCH_SECONDS = 9_999_999_999


def utc_now() -> datetime:
    """Default clock for handlers and read paths."""
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored instant, tolerating a trailing 'Z' and naive values."""
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def from_provider_timestamp(value: Union[int, float, str, None]) -> Optional[datetime]:
    """
    Convert a provider timestamp to a UTC datetime.

    Providers send epoch seconds or epoch milliseconds (sometimes as strings);
    an ISO string is accepted as well.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return parse_iso(value)
    value = float(value)
    if value > _MAX_EPOCH_SECONDS:
        value = value / 1000
    return datetime.fromtimestamp(value, tz=timezone.utc)
