"""Longitude-based local time approximation.

Real timezone borders are political, so the offset derived here is only an
approximation: one hour per 15 degrees of longitude, rounded to the nearest
hour and clamped to the range of offsets in use (UTC-12 to UTC+14). It is good
enough to decide which calendar day "tomorrow" is for a location.
"""

import math
from datetime import date, datetime, timedelta, timezone

from ..models.values import Coordinates

DEGREES_PER_HOUR = 15.0
MIN_OFFSET_HOURS = -12
MAX_OFFSET_HOURS = 14


def utc_offset_hours(longitude: float) -> int:
    """Approximate UTC offset in whole hours for a longitude.

    Halves round up (towards positive infinity).

    Example:
        >>> utc_offset_hours(0.0)
        0
        >>> utc_offset_hours(139.6917)
        9
        >>> utc_offset_hours(-74.006)
        -5
    """
    offset = math.floor(longitude / DEGREES_PER_HOUR + 0.5)
    return max(MIN_OFFSET_HOURS, min(MAX_OFFSET_HOURS, offset))


def utc_offset(coordinates: Coordinates) -> timedelta:
    return timedelta(hours=utc_offset_hours(coordinates.longitude))


def today(coordinates: Coordinates, now_utc: datetime) -> date:
    """Local calendar date at the coordinates for the given UTC instant.

    Naive datetimes are treated as UTC.

    Example:
        >>> from datetime import datetime, timezone
        >>> tokyo = Coordinates.of(35.6762, 139.6917)
        >>> today(tokyo, datetime(2026, 1, 10, 20, 0, tzinfo=timezone.utc)).isoformat()
        '2026-01-11'
    """
    if now_utc.tzinfo is None:
        now_utc = now_utc.replace(tzinfo=timezone.utc)
    local = now_utc.astimezone(timezone.utc) + utc_offset(coordinates)
    return local.date()


def tomorrow(coordinates: Coordinates, now_utc: datetime) -> date:
    return today(coordinates, now_utc) + timedelta(days=1)


def is_tomorrow(coordinates: Coordinates, day: date, now_utc: datetime) -> bool:
    return day == tomorrow(coordinates, now_utc)
