"""Slot availability and conflict resolution."""

from .availability_windows import CandidateSlot, resolve_candidate_slots
from .booking_policy import BookingPolicyGate
from .conflict_detector import ConflictDetector
from .slot_schedule import (
    SlotScheduleBuilder,
    compute_slots_for_date,
    describe_schedule,
    group_slots_by_period,
    is_date_disabled,
)

__all__ = [
    "CandidateSlot",
    "resolve_candidate_slots",
    "BookingPolicyGate",
    "ConflictDetector",
    "SlotScheduleBuilder",
    "compute_slots_for_date",
    "describe_schedule",
    "group_slots_by_period",
    "is_date_disabled",
]
