"""
Scheduling API Endpoints
Slot computation for the booking calendar, plus advisory external calendar checks.
"""

import logging
import datetime as dt
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from clinic_scheduling.api.dependencies import get_app_settings, get_calendar_checker
from clinic_scheduling.config import SchedulingSettings
from clinic_scheduling.exceptions import InvalidSchedulingRequestError
from clinic_scheduling.models.calendar import DayConflictResult, SlotConflictResult
from clinic_scheduling.models.scheduling import (
    AvailabilityPeriod,
    BookingPolicy,
    ExistingAppointment,
    ScheduleState,
    Slot,
)
from clinic_scheduling.services.calendar_conflict_service import (
    CalendarConflictSession,
    ConnectionState,
    ExternalCalendarConflictChecker,
    conflicting_event_titles,
)
from clinic_scheduling.services.scheduling import (
    compute_slots_for_date,
    describe_schedule,
    group_slots_by_period,
    is_date_disabled,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scheduling", tags=["scheduling"])


# Request/Response Models
class SlotsRequest(BaseModel):
    """Everything needed to compute one date's slots"""
    date: dt.date
    availability: Dict[str, List[AvailabilityPeriod]] = Field(
        default_factory=dict, description="Lowercase weekday name -> availability periods"
    )
    session_duration: Optional[int] = Field(None, gt=0, description="Slot length in minutes")
    policy: Optional[BookingPolicy] = None
    existing_appointments: List[ExistingAppointment] = Field(default_factory=list)
    now: Optional[dt.datetime] = Field(None, description="Location-local current time")


class SlotsResponse(BaseModel):
    date: dt.date
    date_disabled: bool
    state: ScheduleState
    slots: List[Slot]
    periods: Dict[str, List[Slot]]


class DateStatusRequest(BaseModel):
    date: dt.date
    policy: Optional[BookingPolicy] = None
    now: Optional[dt.datetime] = None


class CalendarSessionState(BaseModel):
    """Client-held calendar connection state, echoed back updated"""
    conflict_checking_enabled: bool = True
    connection_state: ConnectionState = ConnectionState.UNKNOWN
    integrated_practitioner_ids: List[str] = Field(default_factory=list)

    def to_session(self, server_enabled: bool = True) -> CalendarConflictSession:
        # CALENDAR_CONFLICT_CHECKS_ENABLED=false overrides whatever the client sends
        session = CalendarConflictSession(
            conflict_checking_enabled=self.conflict_checking_enabled and server_enabled,
            integrated_practitioner_ids=self.integrated_practitioner_ids,
        )
        session.state = self.connection_state
        return session


class SlotConflictRequest(BaseModel):
    date_time: dt.datetime = Field(..., description="Slot start, location-local")
    timezone: Optional[str] = None
    practitioner_ids: List[str]
    session: CalendarSessionState = Field(default_factory=CalendarSessionState)


class DayConflictRequest(BaseModel):
    date: dt.date
    timezone: Optional[str] = None
    practitioner_ids: List[str]
    session: CalendarSessionState = Field(default_factory=CalendarSessionState)


class SlotConflictResponse(BaseModel):
    result: SlotConflictResult
    connection_state: ConnectionState


class DayConflictResponse(BaseModel):
    result: DayConflictResult
    warning: Optional[str] = None
    event_titles: List[str] = Field(default_factory=list, description="Blocking event titles, untitled as Busy")
    connection_state: ConnectionState


@router.post("/slots", response_model=SlotsResponse)
async def get_slots(
    request: SlotsRequest,
    settings: SchedulingSettings = Depends(get_app_settings)
):
    """Compute the slot list for a date"""
    session_duration = request.session_duration or settings.DEFAULT_SESSION_DURATION_MINUTES

    try:
        slots = compute_slots_for_date(
            request.date,
            request.availability,
            session_duration,
            policy=request.policy,
            existing_appointments=request.existing_appointments,
            now=request.now,
        )
    except InvalidSchedulingRequestError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return SlotsResponse(
        date=request.date,
        date_disabled=is_date_disabled(request.date, request.policy, request.now),
        state=describe_schedule(slots),
        slots=slots,
        periods=group_slots_by_period(slots),
    )


@router.post("/date-status")
async def get_date_status(request: DateStatusRequest):
    """Whether the calendar should grey out a date"""
    return {
        "date": request.date,
        "disabled": is_date_disabled(request.date, request.policy, request.now),
    }


@router.post("/calendar-conflicts/slot", response_model=SlotConflictResponse)
async def check_slot_conflict(
    request: SlotConflictRequest,
    checker: ExternalCalendarConflictChecker = Depends(get_calendar_checker),
    settings: SchedulingSettings = Depends(get_app_settings)
):
    """Advisory check of one slot against connected external calendars"""
    session = request.session.to_session(settings.CALENDAR_CONFLICT_CHECKS_ENABLED)
    result = await checker.check_slot_conflict(
        session, request.date_time, request.practitioner_ids, request.timezone
    )
    return SlotConflictResponse(result=result, connection_state=session.state)


@router.post("/calendar-conflicts/day", response_model=DayConflictResponse)
async def check_day_conflicts(
    request: DayConflictRequest,
    checker: ExternalCalendarConflictChecker = Depends(get_calendar_checker),
    settings: SchedulingSettings = Depends(get_app_settings)
):
    """Advisory list of external events on a day"""
    session = request.session.to_session(settings.CALENDAR_CONFLICT_CHECKS_ENABLED)
    result = await checker.check_day_conflicts(
        session, request.date, request.practitioner_ids, request.timezone
    )
    return DayConflictResponse(
        result=result,
        warning=result.warning,
        event_titles=conflicting_event_titles(result),
        connection_state=session.state,
    )
