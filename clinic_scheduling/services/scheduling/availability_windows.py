"""
Availability window resolution.

Turns a weekday's recurring availability periods into fixed-length candidate
slot start times. A slot must fit entirely inside its period: no partial
trailing slot is ever emitted.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, List, Mapping, Sequence, Union

from clinic_scheduling.exceptions import InvalidSchedulingRequestError
from clinic_scheduling.models.scheduling import AvailabilityPeriod, TimeOfDay, weekday_name

logger = logging.getLogger(__name__)

PeriodLike = Union[AvailabilityPeriod, Mapping[str, Any]]
AvailabilityMap = Mapping[str, Sequence[PeriodLike]]


@dataclass(frozen=True)
class CandidateSlot:
    """A candidate start time on a concrete local date."""
    start: datetime
    end: datetime
    period: TimeOfDay

    @property
    def label(self) -> str:
        return self.start.strftime("%H:%M")


def _coerce_period(period: PeriodLike) -> AvailabilityPeriod:
    if isinstance(period, AvailabilityPeriod):
        return period
    return AvailabilityPeriod.model_validate(period)


def periods_for_date(availability: AvailabilityMap, target_date: date) -> List[AvailabilityPeriod]:
    """Availability periods configured for the target date's weekday."""
    raw = availability.get(weekday_name(target_date)) or []
    return [_coerce_period(p) for p in raw]


def generate_period_slots(
    target_date: date,
    period: AvailabilityPeriod,
    session_duration: int
) -> List[CandidateSlot]:
    """
    Generate candidate slots for one period.

    Args:
        target_date: Local date the period applies to
        period: Availability window [start_time, end_time)
        session_duration: Slot length in minutes

    Returns:
        Candidates in ascending order, floor((end - start) / duration) of them
    """
    if session_duration <= 0:
        raise InvalidSchedulingRequestError(
            f"Session duration must be positive, got {session_duration}"
        )

    step = timedelta(minutes=session_duration)
    current = datetime.combine(target_date, period.start_time)
    period_end = datetime.combine(target_date, period.end_time)

    slots = []
    while current + step <= period_end:
        slots.append(CandidateSlot(
            start=current,
            end=current + step,
            period=TimeOfDay.for_hour(current.hour),
        ))
        current += step

    return slots


def resolve_candidate_slots(
    target_date: date,
    availability: AvailabilityMap,
    session_duration: int
) -> List[CandidateSlot]:
    """
    Candidate slots for every period on the target date's weekday.

    Returns an empty list when the weekday has no availability. Candidates are
    returned per period in configuration order; deduplication and sorting are
    left to the schedule builder.
    """
    periods = periods_for_date(availability, target_date)
    if not periods:
        logger.debug(f"No availability for {weekday_name(target_date)}")
        return []

    candidates: List[CandidateSlot] = []
    for period in periods:
        candidates.extend(generate_period_slots(target_date, period, session_duration))
    return candidates
