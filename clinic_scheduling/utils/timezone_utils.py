"""
Timezone Utilities

The slot engine works purely on local wall-clock time. The only conversion
happens at the edge, when a cancellation arrives as UTC plus the location's
timezone and has to be turned into the freed slot's local datetime.
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

logger = logging.getLogger(__name__)


def to_location_local(utc_dt: datetime, tz_name: Optional[str]) -> datetime:
    """
    Convert a UTC datetime to naive wall-clock time at the location.

    Falls back to UTC wall-clock time when the timezone is missing or unknown,
    so a bad location setting never drops a cancellation on the floor.
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)

    if not tz_name:
        return utc_dt.astimezone(timezone.utc).replace(tzinfo=None)

    try:
        return utc_dt.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"Failed to convert to local timezone {tz_name!r}, using UTC: {e}")
        return utc_dt.astimezone(timezone.utc).replace(tzinfo=None)
