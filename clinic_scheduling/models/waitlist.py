"""
Pydantic models for the waiting-list backfill flow.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from clinic_scheduling.models.scheduling import TimeOfDay, weekday_name

PreferredDay = Literal[
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday", "any"
]
PreferredTime = Literal["morning", "afternoon", "evening", "any"]

# Waitlist datetimes are compared the way they are stored: as local wall-clock strings
LOCAL_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class WaitlistStatus(str, Enum):
    """Waitlist entry lifecycle."""
    WAITING = "waiting"
    OFFERED = "offered"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"


class WaitlistEntry(BaseModel):
    """A patient waiting for a slot to free up."""
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    id: str
    patient_id: str
    preferred_day: PreferredDay = "any"
    preferred_time: PreferredTime = "any"
    original_requested_date: Optional[datetime] = None
    status: WaitlistStatus = WaitlistStatus.WAITING
    offered_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    acceptance_token: Optional[str] = None
    offered_slot: Optional[datetime] = Field(
        None, description="Local wall-clock time of the freed slot being offered"
    )
    appointment_id: Optional[str] = Field(
        None,
        description="Triggering appointment while offered, new appointment once confirmed",
    )
    created_at: datetime

    # Booking context captured when the patient joined
    service_id: Optional[str] = None
    location_id: Optional[str] = None
    mode: Optional[str] = None
    practitioner_ids: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    def is_exact_match(self, slot_local: datetime) -> bool:
        if self.original_requested_date is None:
            return False
        return (
            self.original_requested_date.strftime(LOCAL_DATETIME_FORMAT)
            == slot_local.strftime(LOCAL_DATETIME_FORMAT)
        )

    def matches_preferences(self, weekday: str, period: TimeOfDay) -> bool:
        day_ok = self.preferred_day in (weekday, "any")
        time_ok = self.preferred_time in (period.value, "any")
        return day_ok and time_ok

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class WaitlistEntryCreate(BaseModel):
    """Fields supplied when a patient joins the waiting list."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    patient_id: str
    preferred_day: PreferredDay = "any"
    preferred_time: PreferredTime = "any"
    original_requested_date: Optional[datetime] = None
    service_id: Optional[str] = None
    location_id: Optional[str] = None
    mode: Optional[str] = None
    practitioner_ids: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class PatientContact(BaseModel):
    """Just enough of a patient record to send a notification."""
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or "there"


class AppointmentPractitioner(BaseModel):
    """Practitioner assignment with its own time range."""
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    practitioner_id: str
    start_time: datetime
    end_time: datetime


class Appointment(BaseModel):
    """Appointment as read from, or written to, the appointment history chain."""
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    id: Optional[str] = None
    patient_id: Optional[str] = None
    parent_appointment_id: Optional[str] = None
    root_appointment_id: Optional[str] = None
    appointment_datetime: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: str = "confirmed"
    booking_source: Optional[str] = None
    service_id: Optional[str] = None
    location_id: Optional[str] = None
    mode: Optional[str] = None
    stored_timezone: str = "UTC"
    notes: Optional[str] = None
    practitioners: List[AppointmentPractitioner] = Field(default_factory=list)


class CancellationEvent(BaseModel):
    """
    A freed slot.

    `local_datetime` is the cancelled appointment's wall-clock time at its
    location, already converted by the caller.
    """
    model_config = ConfigDict(coerce_numbers_to_str=True)

    appointment_id: str
    local_datetime: datetime
    location_id: Optional[str] = None

    @property
    def weekday(self) -> str:
        return weekday_name(self.local_datetime)

    @property
    def period(self) -> TimeOfDay:
        return TimeOfDay.for_hour(self.local_datetime.hour)


class OfferDetails(BaseModel):
    """What the acceptance page shows before the patient confirms."""
    entry: WaitlistEntry
    appointment_date: datetime
    expires_at: Optional[datetime] = None
    original_appointment: Optional[Appointment] = None


class OfferConfirmation(BaseModel):
    """Successful redemption of an offer token."""
    entry: WaitlistEntry
    appointment: Appointment
    expired_entries: List[WaitlistEntry] = Field(default_factory=list)
    message: str = "Appointment confirmed!"

    @property
    def expired_entry_ids(self) -> List[str]:
        return [e.id for e in self.expired_entries]
