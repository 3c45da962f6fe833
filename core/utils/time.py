"""
Time Utilities

Coinbase Pro uses two time representations:
- Request signing: Unix timestamp in seconds (CB-ACCESS-TIMESTAMP header)
- Query/body parameters: ISO-8601 / RFC 3339 strings (candle ranges, reports)

The helpers in this module convert between Python datetimes, epoch numbers
and ISO strings, always in UTC.
"""

from datetime import datetime, timezone
from typing import Union

from dateutil import parser as dateparser


def to_utc_datetime(timestamp: Union[int, float]) -> datetime:
    """
    Convert a timestamp (seconds or milliseconds) to UTC datetime.

    Detection Logic:
        - If timestamp > 1e12: assumed to be milliseconds
        - Otherwise: assumed to be seconds

    Args:
        timestamp: Unix timestamp in seconds or milliseconds

    Returns:
        datetime: Timezone-aware datetime object in UTC

    Raises:
        ValueError: If timestamp is negative or invalid

    Examples:
        >>> to_utc_datetime(1704110400000)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)

        >>> to_utc_datetime(1704110400)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    """
    if timestamp < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    if timestamp > 1e12:
        timestamp = timestamp / 1000.0

    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}. Error: {e}")


def datetime_to_timestamp(dt: datetime, milliseconds: bool = False) -> int:
    """
    Convert a datetime object to Unix timestamp.

    Args:
        dt: Datetime object (naive datetimes are assumed to be UTC)
        milliseconds: If True, return milliseconds; if False, return seconds

    Returns:
        int: Unix timestamp in seconds or milliseconds

    Examples:
        >>> dt = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        >>> datetime_to_timestamp(dt)
        1704110400
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    timestamp = int(dt.timestamp())

    if milliseconds:
        timestamp *= 1000

    return timestamp


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    This is the value sent in CB-ACCESS-TIMESTAMP; the exchange rejects
    requests whose timestamp drifts more than 30 seconds from its clock.
    """
    return datetime_to_timestamp(datetime.now(timezone.utc), milliseconds)


def to_iso8601(value: Union[datetime, int, float, str]) -> str:
    """
    Normalize a point in time to an RFC 3339 UTC string.

    Args:
        value: datetime (naive means UTC), epoch seconds/milliseconds,
            or an ISO-8601 string

    Returns:
        str: e.g. "2024-01-01T12:00:00+00:00"

    Raises:
        ValueError: If a string cannot be parsed as ISO-8601

    Examples:
        >>> to_iso8601(datetime(2024, 1, 1, 12, 0))
        '2024-01-01T12:00:00+00:00'

        >>> to_iso8601("2024-01-01T13:00:00+01:00")
        '2024-01-01T12:00:00+00:00'
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = dateparser.isoparse(value)
    else:
        dt = to_utc_datetime(value)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc).isoformat()
