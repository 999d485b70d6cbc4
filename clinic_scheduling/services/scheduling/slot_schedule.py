"""
Slot schedule builder.

Composes window resolution, the booking policy gate and conflict detection
into the slot list shown for one date:

    candidates -> policy gate -> conflict detection -> dedupe -> sort

Pure and synchronous: calling it twice with the same inputs returns the same
list in the same order.
"""

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from clinic_scheduling.models.scheduling import (
    BookingPolicy,
    ExistingAppointment,
    ScheduleState,
    Slot,
    TimeOfDay,
)
from clinic_scheduling.services.scheduling.availability_windows import (
    AvailabilityMap,
    resolve_candidate_slots,
)
from clinic_scheduling.services.scheduling.booking_policy import BookingPolicyGate
from clinic_scheduling.services.scheduling.conflict_detector import ConflictDetector

logger = logging.getLogger(__name__)


class SlotScheduleBuilder:
    """Builds the slot list for a date under one booking context."""

    def __init__(
        self,
        session_duration: int,
        policy: Optional[BookingPolicy] = None,
        now: Optional[datetime] = None
    ):
        self.session_duration = session_duration
        self.gate = BookingPolicyGate(policy, now)
        self.detector = ConflictDetector(session_duration)

    def build(
        self,
        target_date: date,
        availability: AvailabilityMap,
        existing_appointments: Iterable[ExistingAppointment] = ()
    ) -> List[Slot]:
        candidates = resolve_candidate_slots(target_date, availability, self.session_duration)
        if not candidates:
            return []

        date_disabled = self.gate.is_date_disabled(target_date)
        intervals = self.detector.booked_intervals(target_date, existing_appointments)

        by_time: Dict[str, Slot] = {}
        for candidate in candidates:
            available = (
                not date_disabled
                and self.gate.is_slot_allowed(candidate.start)
                and self.detector.is_slot_available(candidate.start, intervals)
            )
            # Overlapping periods can produce the same start; last one wins
            by_time[candidate.label] = Slot(
                time=candidate.label,
                available=available,
                period=candidate.period,
            )

        slots = sorted(by_time.values(), key=lambda s: s.time)
        logger.debug(
            f"Built {len(slots)} slots for {target_date} "
            f"({sum(1 for s in slots if s.available)} available)"
        )
        return slots


def compute_slots_for_date(
    target_date: date,
    availability: AvailabilityMap,
    session_duration: int,
    policy: Optional[BookingPolicy] = None,
    existing_appointments: Iterable[ExistingAppointment] = (),
    now: Optional[datetime] = None
) -> List[Slot]:
    """
    Compute the bookable slots for a date.

    Args:
        target_date: Local date being viewed
        availability: weekday name -> availability periods
        session_duration: Slot length in minutes
        policy: Booking policy for this context
        existing_appointments: Appointment feed, already in location-local time
        now: Local "now" (defaults to the server clock)

    Returns:
        Slots sorted by start time. Empty when the weekday has no availability;
        all unavailable when the day is fully booked or disabled by policy.
    """
    builder = SlotScheduleBuilder(session_duration, policy, now)
    return builder.build(target_date, availability, existing_appointments)


def is_date_disabled(
    target_date: date,
    policy: Optional[BookingPolicy] = None,
    now: Optional[datetime] = None
) -> bool:
    return BookingPolicyGate(policy, now).is_date_disabled(target_date)


def group_slots_by_period(slots: Iterable[Slot]) -> Dict[str, List[Slot]]:
    """Bucket slots into morning/afternoon/evening, preserving order."""
    groups: Dict[str, List[Slot]] = {p.value: [] for p in TimeOfDay}
    for slot in slots:
        groups[slot.period.value].append(slot)
    return groups


def describe_schedule(slots: List[Slot]) -> ScheduleState:
    """Tell "nothing configured" apart from "everything taken"."""
    if not slots:
        return ScheduleState.NO_AVAILABILITY
    if not any(s.available for s in slots):
        return ScheduleState.FULLY_BOOKED
    return ScheduleState.AVAILABLE
