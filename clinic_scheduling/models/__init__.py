"""Data models for the scheduling engine."""
from clinic_scheduling.models.calendar import (
    CalendarEvent,
    DayConflictResult,
    SlotConflictResult,
)
from clinic_scheduling.models.scheduling import (
    AvailabilityPeriod,
    BookingPolicy,
    ExistingAppointment,
    ScheduleState,
    Slot,
    TimeOfDay,
)
from clinic_scheduling.models.waitlist import (
    Appointment,
    AppointmentPractitioner,
    CancellationEvent,
    OfferConfirmation,
    OfferDetails,
    PatientContact,
    WaitlistEntry,
    WaitlistEntryCreate,
    WaitlistStatus,
)

__all__ = [
    "CalendarEvent",
    "DayConflictResult",
    "SlotConflictResult",
    "AvailabilityPeriod",
    "BookingPolicy",
    "ExistingAppointment",
    "ScheduleState",
    "Slot",
    "TimeOfDay",
    "Appointment",
    "AppointmentPractitioner",
    "CancellationEvent",
    "OfferConfirmation",
    "OfferDetails",
    "PatientContact",
    "WaitlistEntry",
    "WaitlistEntryCreate",
    "WaitlistStatus",
]
