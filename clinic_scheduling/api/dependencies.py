"""
FastAPI dependency providers.

Services are built once in the application lifespan and parked on
app.state; routes pull them from there. Tests swap them through
app.dependency_overrides.
"""
from fastapi import HTTPException, Request

from clinic_scheduling.config import SchedulingSettings, get_settings
from clinic_scheduling.services.calendar_conflict_service import ExternalCalendarConflictChecker
from clinic_scheduling.services.waitlist_service import WaitlistMatcher


def get_app_settings() -> SchedulingSettings:
    return get_settings()


def get_waitlist_matcher(request: Request) -> WaitlistMatcher:
    matcher = getattr(request.app.state, "waitlist_matcher", None)
    if matcher is None:
        raise HTTPException(status_code=503, detail="Waitlist service not initialized")
    return matcher


def get_calendar_checker(request: Request) -> ExternalCalendarConflictChecker:
    checker = getattr(request.app.state, "calendar_checker", None)
    if checker is None:
        raise HTTPException(status_code=503, detail="Calendar conflict service not initialized")
    return checker
