"""
Time Utilities

This module provides utilities for handling timestamps from different providers
and the clock used by the availability tracker and the cache.

Different providers return timestamps in different formats:
- CoinGecko: ISO-8601 strings and epoch seconds
- CoinMarketCap: ISO-8601 strings
- Rate-limit headers: seconds to wait, or an absolute epoch (seconds or ms)

The tracker and cache never read the wall clock directly; they take a
`Clock` (any zero-argument callable returning epoch seconds) so tests can
move time by hand.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from dateutil import parser as dateparser


Clock = Callable[[], float]
"""Zero-argument callable returning the current time in epoch seconds."""


def system_clock() -> float:
    """Default clock: wall-clock epoch seconds."""
    return time.time()


def to_utc_datetime(timestamp: Union[int, float]) -> datetime:
    """
    Convert a timestamp (seconds or milliseconds) to UTC datetime.

    Detection Logic:
        - If timestamp > 1e12 (1 trillion): Assumed to be milliseconds
        - Otherwise: Assumed to be seconds

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

    # Current time in seconds: ~1.7 billion, in milliseconds: ~1.7 trillion
    if timestamp > 1e12:
        timestamp = timestamp / 1000.0

    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}. Error: {e}")


def epoch_to_iso(timestamp: Optional[float]) -> Optional[str]:
    """
    Render an epoch timestamp as an ISO-8601 UTC string.

    Returns None for a missing timestamp so callers can pass tracker state
    straight through.

    Example:
        >>> epoch_to_iso(1704110400)
        '2024-01-01T12:00:00+00:00'
    """
    if timestamp is None:
        return None
    return to_utc_datetime(timestamp).isoformat(timespec="seconds")


def iso_to_epoch(value: Optional[str], default: int = 0) -> int:
    """
    Parse an ISO-8601 string to epoch seconds.

    Accepts "Z", "+00:00" and "+0000" offsets and any fraction length.
    Naive values are taken as UTC.

    Example:
        >>> iso_to_epoch("2024-01-01T12:00:00.000Z")
        1704110400
    """
    if not isinstance(value, str) or not value:
        return default
    try:
        parsed = dateparser.isoparse(value)
    except (ValueError, OverflowError):
        return default
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())
