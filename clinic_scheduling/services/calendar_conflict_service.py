"""
External Calendar Conflict Checker

Asks the calendar integration service whether a slot (or a whole day)
collides with events on a practitioner's connected calendar.

Results are advisory: they feed a warning banner and never change a slot's
availability. Connection state lives in a CalendarConflictSession owned by
the caller, one per booking session:

    unknown --(is_connected=true)--> connected
    unknown/connected --(is_connected=false | network error)--> disconnected

Once disconnected, no further requests are made for that session. Toggling
the conflict-checking flag resets the state to unknown.
"""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Iterable, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from clinic_scheduling.exceptions import ExternalCalendarUnavailableError
from clinic_scheduling.models.calendar import DayConflictResult, SlotConflictResult
from clinic_scheduling.models.waitlist import LOCAL_DATETIME_FORMAT
from clinic_scheduling.services.external_timeouts import CALENDAR_TIMEOUT

logger = logging.getLogger(__name__)

SLOT_CONFLICT_PATH = "/integrations/check-calendar-conflicts"
DAY_CONFLICT_PATH = "/integrations/check-day-conflicts"


class ConnectionState(str, Enum):
    UNKNOWN = "unknown"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class CalendarConflictSession:
    """Per-session calendar connection cache."""

    def __init__(
        self,
        conflict_checking_enabled: bool = True,
        integrated_practitioner_ids: Iterable[str] = ()
    ):
        self._conflict_checking_enabled = conflict_checking_enabled
        self.integrated_practitioner_ids = {str(p) for p in integrated_practitioner_ids}
        self.state = ConnectionState.UNKNOWN

    @property
    def conflict_checking_enabled(self) -> bool:
        return self._conflict_checking_enabled

    @conflict_checking_enabled.setter
    def conflict_checking_enabled(self, value: bool) -> None:
        if value != self._conflict_checking_enabled:
            self.state = ConnectionState.UNKNOWN
        self._conflict_checking_enabled = value

    def has_calendar_integration(self, practitioner_ids: Iterable[str]) -> bool:
        return any(str(p) in self.integrated_practitioner_ids for p in practitioner_ids)

    def should_check(self, practitioner_ids: Iterable[str]) -> bool:
        return (
            self._conflict_checking_enabled
            and self.state != ConnectionState.DISCONNECTED
            and self.has_calendar_integration(practitioner_ids)
        )

    def mark_connected(self) -> None:
        self.state = ConnectionState.CONNECTED

    def mark_disconnected(self) -> None:
        self.state = ConnectionState.DISCONNECTED


class ExternalCalendarConflictChecker:
    """Client for the calendar integration conflict endpoints."""

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        api_token: Optional[str] = None,
        timeout: httpx.Timeout = CALENDAR_TIMEOUT
    ):
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client
        self.api_token = api_token
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def _post(self, path: str, payload: dict) -> dict:
        url = f"{self.base_url}{path}"
        try:
            if self.http_client is not None:
                response = await self.http_client.post(
                    url, json=payload, headers=self._headers(), timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalCalendarUnavailableError(f"Calendar conflict check failed: {e}") from e

        if not isinstance(data, dict):
            raise ExternalCalendarUnavailableError(
                f"Unexpected calendar conflict response type: {type(data).__name__}"
            )
        return data

    async def check_slot_conflict(
        self,
        session: CalendarConflictSession,
        slot_local: datetime,
        practitioner_ids: Sequence[str],
        timezone: Optional[str] = None
    ) -> SlotConflictResult:
        """
        Check one slot against the practitioners' external calendars.

        Never raises: an unreachable service marks the session disconnected
        and returns an unchecked result.
        """
        practitioner_ids = [str(p) for p in practitioner_ids]
        if not session.should_check(practitioner_ids):
            return SlotConflictResult(checked=False)

        payload = {
            "date_time": slot_local.strftime(LOCAL_DATETIME_FORMAT),
            "timezone": timezone,
            "practitioner_ids": practitioner_ids,
        }

        try:
            data = await self._post(SLOT_CONFLICT_PATH, payload)
            result = SlotConflictResult.model_validate({**data, "checked": True})
        except (ExternalCalendarUnavailableError, ValidationError) as e:
            logger.warning(f"Calendar conflict check unavailable, disabling for session: {e}")
            session.mark_disconnected()
            return SlotConflictResult(checked=False, message="Calendar conflict check unavailable")

        if not result.is_connected:
            logger.info("Calendar not connected for practitioners, skipping further checks")
            session.mark_disconnected()
            return result

        session.mark_connected()
        if result.has_conflict:
            logger.info(f"External calendar conflict at {payload['date_time']} for {practitioner_ids}")
        return result

    async def check_day_conflicts(
        self,
        session: CalendarConflictSession,
        target_date: date,
        practitioner_ids: Sequence[str],
        timezone: Optional[str] = None
    ) -> DayConflictResult:
        """Fetch the day's external events for the first practitioner."""
        practitioner_ids = [str(p) for p in practitioner_ids]
        if not practitioner_ids or not session.should_check(practitioner_ids):
            return DayConflictResult(checked=False)

        payload = {
            "date": target_date.isoformat(),
            "timezone": timezone,
            "practitioner_id": practitioner_ids[0],
        }

        try:
            data = await self._post(DAY_CONFLICT_PATH, payload)
            result = DayConflictResult.model_validate({**data, "checked": True})
        except (ExternalCalendarUnavailableError, ValidationError) as e:
            logger.warning(f"Day conflict check unavailable, disabling for session: {e}")
            session.mark_disconnected()
            return DayConflictResult(checked=False, message="Calendar conflict check unavailable")

        if not result.is_connected:
            session.mark_disconnected()
            return result

        session.mark_connected()
        if not result.conflict_count:
            result.conflict_count = len(result.conflicts)
        return result


def conflicting_event_titles(result: DayConflictResult) -> List[str]:
    """Titles for the day banner, untitled events shown as 'Busy'."""
    return [event.title or "Busy" for event in result.conflicts]
