"""
Conflict detection against existing appointments.

Two rules decide whether a candidate slot is taken:

1. Overlap rule: half-open interval intersection between the slot and the
   appointment, using the appointment's own stored duration.
2. Slot-blocking rule: the older scheme that blocks ceil(duration / session)
   consecutive session-length starts from the appointment start. Only
   consulted when the overlap rule finds nothing.

Appointments created before duration tracking fall back to the current
session duration.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Union

from clinic_scheduling.exceptions import MalformedAppointmentRecordError
from clinic_scheduling.models.scheduling import ExistingAppointment
from clinic_scheduling.services.scheduling.date_matching import appointment_on_date

logger = logging.getLogger(__name__)


def intervals_overlap(
    slot_start: datetime,
    slot_end: datetime,
    apt_start: datetime,
    apt_end: datetime
) -> bool:
    """Half-open overlap: touching endpoints do not conflict."""
    return slot_start < apt_end and slot_end > apt_start


def blocked_slot_starts(
    apt_start: datetime,
    apt_duration: int,
    session_duration: int
) -> List[datetime]:
    """Session-length starts occupied by an appointment under the slot-blocking scheme."""
    slots_to_block = math.ceil(apt_duration / session_duration)
    return [
        apt_start + timedelta(minutes=i * session_duration)
        for i in range(slots_to_block)
    ]


def is_slot_blocked(
    slot_start: datetime,
    apt_start: datetime,
    apt_duration: int,
    session_duration: int
) -> bool:
    return slot_start in blocked_slot_starts(apt_start, apt_duration, session_duration)


def parse_appointment_time(appointment: ExistingAppointment) -> time:
    """
    Parse the feed's "HH:MM" (or "HH:MM:SS") start time.

    Raises:
        MalformedAppointmentRecordError: if the value is missing or unparseable
    """
    raw = appointment.time
    if not raw or not isinstance(raw, str):
        raise MalformedAppointmentRecordError(
            appointment.appointment_id, f"Missing appointment time: {raw!r}"
        )

    parts = raw.strip().split(":")
    try:
        if len(parts) < 2:
            raise ValueError("expected HH:MM")
        return time(int(parts[0]), int(parts[1]))
    except ValueError as e:
        raise MalformedAppointmentRecordError(
            appointment.appointment_id, f"Invalid appointment time {raw!r}: {e}"
        ) from e


@dataclass(frozen=True)
class BookedInterval:
    """An existing appointment resolved onto the candidate date."""
    start: datetime
    duration: int
    appointment_id: Optional[Union[int, str]] = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration)


class ConflictDetector:
    """Marks candidate slots that collide with existing appointments."""

    def __init__(self, session_duration: int):
        self.session_duration = session_duration

    def booked_intervals(
        self,
        target_date: date,
        appointments: Iterable[ExistingAppointment]
    ) -> List[BookedInterval]:
        """
        Resolve the appointments that fall on target_date.

        Records with an unparseable time are skipped and logged; they never
        abort slot computation.
        """
        intervals = []
        for appointment in appointments:
            if not appointment_on_date(appointment, target_date):
                continue

            try:
                start_time = parse_appointment_time(appointment)
            except MalformedAppointmentRecordError as e:
                logger.warning(f"Skipping appointment in conflict check: {e.message}")
                continue

            duration = appointment.duration
            if duration is None:
                duration = self.session_duration

            intervals.append(BookedInterval(
                start=datetime.combine(target_date, start_time),
                duration=duration,
                appointment_id=appointment.appointment_id,
            ))
        return intervals

    def is_slot_available(self, slot_start: datetime, intervals: Iterable[BookedInterval]) -> bool:
        slot_end = slot_start + timedelta(minutes=self.session_duration)

        for interval in intervals:
            if intervals_overlap(slot_start, slot_end, interval.start, interval.end):
                return False

            if is_slot_blocked(slot_start, interval.start, interval.duration, self.session_duration):
                # The overlap rule should already cover every blocked start
                logger.warning(
                    f"Slot {slot_start:%H:%M} blocked only by slot-blocking rule "
                    f"(appointment {interval.appointment_id} at {interval.start:%H:%M}, "
                    f"{interval.duration} min, session {self.session_duration} min)"
                )
                return False

        return True
