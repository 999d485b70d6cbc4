"""
Test fixtures for the scheduling engine
"""

import uuid
from datetime import date, datetime, timedelta, timezone

from clinic_scheduling.models.scheduling import ExistingAppointment
from clinic_scheduling.models.waitlist import (
    Appointment,
    AppointmentPractitioner,
    PatientContact,
    WaitlistEntry,
    WaitlistStatus,
)

# 2026-03-02 is a Monday
MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)
NOW_UTC = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

MONDAY_MORNING = {"monday": [{"start_time": "09:00", "end_time": "12:00"}]}


class FrozenClock:
    """Callable clock that tests can move forward"""

    def __init__(self, now: datetime = NOW_UTC):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def create_test_entry(**kwargs) -> WaitlistEntry:
    """Create a waiting list entry"""
    return WaitlistEntry(
        id=kwargs.pop('id', str(uuid.uuid4())),
        patient_id=kwargs.pop('patient_id', str(uuid.uuid4())),
        created_at=kwargs.pop('created_at', NOW_UTC - timedelta(days=1)),
        **kwargs
    )


def create_offered_entry(token: str, batch_at: datetime = NOW_UTC, **kwargs) -> WaitlistEntry:
    """Create an entry already holding an offer"""
    return create_test_entry(
        status=WaitlistStatus.OFFERED,
        acceptance_token=token,
        offered_at=batch_at,
        expires_at=batch_at + timedelta(hours=24),
        appointment_id=kwargs.pop('appointment_id', 'apt-cancelled'),
        offered_slot=kwargs.pop('offered_slot', datetime(2026, 3, 2, 10, 0)),
        **kwargs
    )


def create_test_appointment(**kwargs) -> Appointment:
    """Create a cancelled appointment record"""
    start = kwargs.pop('appointment_datetime', datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))
    return Appointment(
        id=kwargs.pop('id', 'apt-cancelled'),
        patient_id=kwargs.pop('patient_id', 'patient-original'),
        appointment_datetime=start,
        start_time=kwargs.pop('start_time', start),
        end_time=kwargs.pop('end_time', start + timedelta(minutes=45)),
        status=kwargs.pop('status', 'cancelled'),
        service_id=kwargs.pop('service_id', 'service-1'),
        location_id=kwargs.pop('location_id', 'location-1'),
        mode=kwargs.pop('mode', 'in-person'),
        stored_timezone=kwargs.pop('stored_timezone', 'Europe/Madrid'),
        **kwargs
    )


def create_test_practitioner(practitioner_id: str, start: datetime, minutes: int) -> AppointmentPractitioner:
    return AppointmentPractitioner(
        practitioner_id=practitioner_id,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
    )


def create_test_patient(patient_id: str, **kwargs) -> PatientContact:
    return PatientContact(
        id=patient_id,
        email=kwargs.get('email', f"{patient_id}@example.com"),
        first_name=kwargs.get('first_name', 'Test'),
        last_name=kwargs.get('last_name', 'Patient'),
    )


def create_existing_appointment(time: str, duration=None, **kwargs) -> ExistingAppointment:
    """Create an appointment-feed record on MONDAY"""
    return ExistingAppointment(
        date=kwargs.pop('date', MONDAY.isoformat()),
        time=time,
        duration=duration,
        status=kwargs.pop('status', 'confirmed'),
        **kwargs
    )
