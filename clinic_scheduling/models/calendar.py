"""
External calendar conflict responses.

The integration service owns these shapes; only the connection flag, the
conflict flag and the event list are interpreted here.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CalendarEvent(BaseModel):
    """An event from a practitioner's connected calendar."""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: Optional[str] = None
    title: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    is_all_day: bool = False


class SlotConflictResult(BaseModel):
    """Advisory result for one slot."""
    model_config = ConfigDict(extra="ignore")

    checked: bool = Field(False, description="Whether the integration was actually queried")
    is_connected: bool = False
    has_conflict: bool = False
    message: Optional[str] = None
    conflict_details: Optional[Dict[str, Any]] = None


class DayConflictResult(BaseModel):
    """Advisory result for a whole day."""
    model_config = ConfigDict(extra="ignore")

    checked: bool = False
    is_connected: bool = False
    has_conflicts: bool = False
    message: Optional[str] = None
    conflicts: List[CalendarEvent] = Field(default_factory=list)
    conflict_count: int = 0

    @property
    def warning(self) -> Optional[str]:
        """Banner text, only for real conflicts on a connected calendar."""
        if self.is_connected and self.has_conflicts and self.conflicts:
            return f"Found {self.conflict_count or len(self.conflicts)} calendar event(s) for this day."
        return None
