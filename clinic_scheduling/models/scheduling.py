"""
Pydantic models for slot computation.

These are the plain records the scheduling core consumes and produces.
Nothing here is persisted: slots are regenerated on every date selection.
"""

import datetime as dt
from enum import Enum
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

WEEKDAYS = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
)


def weekday_name(value: dt.date) -> str:
    """Lowercase English weekday name, independent of locale."""
    return WEEKDAYS[value.weekday()]


class TimeOfDay(str, Enum):
    """Coarse time-of-day bucket used for grouping and waitlist matching."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"

    @classmethod
    def for_hour(cls, hour: int) -> "TimeOfDay":
        """Morning is [5, 12), afternoon is [12, 17), everything else is evening."""
        if 5 <= hour < 12:
            return cls.MORNING
        if 12 <= hour < 17:
            return cls.AFTERNOON
        return cls.EVENING


class ScheduleState(str, Enum):
    """Terminal state of a computed day, used to drive the waitlist affordance."""
    NO_AVAILABILITY = "no_availability"
    FULLY_BOOKED = "fully_booked"
    AVAILABLE = "available"


class AvailabilityPeriod(BaseModel):
    """One contiguous open window on a weekday, e.g. 09:00-12:00."""
    start_time: dt.time = Field(..., description="Window start (local)")
    end_time: dt.time = Field(..., description="Window end (local, exclusive)")


class Slot(BaseModel):
    """Computed bookable start time."""
    time: str = Field(..., description="Start time as HH:MM (24h, local)")
    available: bool = Field(..., description="Whether the slot can be booked")
    period: TimeOfDay = Field(..., description="Time-of-day bucket")


class ExistingAppointment(BaseModel):
    """
    Appointment record as delivered by the upstream feed.

    The feed is already converted to the location's local timezone, but the
    date may arrive in any of `date`, `datetime` or both, in mixed formats.
    `duration` is missing for appointments created before duration tracking.
    """
    model_config = ConfigDict(extra="ignore")

    date: Optional[str] = None
    time: Optional[str] = None
    datetime: Optional[str] = None
    duration: Optional[int] = Field(None, description="Stored duration in minutes")
    status: Optional[str] = None
    mode: Optional[str] = None
    location_id: Optional[Union[int, str]] = None
    appointment_id: Optional[Union[int, str]] = None


class BookingPolicy(BaseModel):
    """
    Booking constraints for one booking context.

    Accepts both snake_case and the camelCase keys used by the settings store.
    Numeric settings arrive as strings upstream; empty strings mean "not set".
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    allow_same_day_booking: Optional[bool] = Field(
        None,
        validation_alias=AliasChoices("allow_same_day_booking", "allowSameDayBooking"),
    )
    advance_booking_hours: Optional[int] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("advance_booking_hours", "advanceBookingHours"),
    )
    max_advance_booking_days: Optional[int] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("max_advance_booking_days", "maxAdvanceBookingDays"),
    )

    @field_validator("advance_booking_hours", "max_advance_booking_days", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v
