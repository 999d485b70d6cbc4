"""
Tolerant date matching for the existing-appointments feed.

The feed mixes representations: a plain `date` field, a full `datetime`
timestamp, or both, in slightly different formats depending on which upstream
produced the record. An appointment belongs to a date if any one of the three
representations agrees. No timezone conversion happens here: the feed is
already in the location's local time, so aware timestamps keep their
wall-clock date.
"""

from datetime import date, datetime
from typing import Optional

from clinic_scheduling.models.scheduling import ExistingAppointment

_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%SZ",
)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
)


def parse_feed_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a feed timestamp, returning None when it is unusable."""
    if not value or not isinstance(value, str):
        return None

    value = value.strip()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass

    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def parse_feed_date(value: Optional[str]) -> Optional[date]:
    """Reparse a feed date string; tolerates trailing time components."""
    if not value or not isinstance(value, str):
        return None

    head = value.strip()[:10]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(head, fmt).date()
        except ValueError:
            continue
    return None


def appointment_on_date(appointment: ExistingAppointment, target_date: date) -> bool:
    """
    True if the appointment falls on target_date.

    Tried in order: exact `date` string equality, parsed `datetime` date
    equality, reparsed `date` string equality.
    """
    if appointment.date and appointment.date == target_date.isoformat():
        return True

    parsed_dt = parse_feed_datetime(appointment.datetime)
    if parsed_dt is not None and parsed_dt.date() == target_date:
        return True

    return parse_feed_date(appointment.date) == target_date
