"""
Booking policy gate.

Two independent gates decide what a patient may book:

- date-level: past dates are always disabled. With same-day booking enabled,
  dates lying entirely before now + advance_booking_hours and dates beyond
  today + max_advance_booking_days are disabled too. With same-day booking
  explicitly disabled, the advance settings are bypassed altogether.
- slot-level: only on today's date, only with same-day booking enabled and
  advance hours set, a slot must start at or after now + advance hours.

All instants are naive local wall-clock datetimes at the booking location.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from clinic_scheduling.models.scheduling import BookingPolicy


class BookingPolicyGate:
    """Evaluates a BookingPolicy against a fixed `now`."""

    def __init__(self, policy: Optional[BookingPolicy] = None, now: Optional[datetime] = None):
        self.policy = policy or BookingPolicy()
        now = now or datetime.now()
        # Wall-clock comparison only; an offset on `now` is already local
        self.now = now.replace(tzinfo=None)
        self.today = self.now.date()

    @property
    def same_day_enabled(self) -> bool:
        return self.policy.allow_same_day_booking is True

    @property
    def min_booking_instant(self) -> Optional[datetime]:
        """Earliest bookable instant, or None when no advance notice applies."""
        if not self.same_day_enabled or self.policy.advance_booking_hours is None:
            return None
        try:
            return self.now + timedelta(hours=self.policy.advance_booking_hours)
        except OverflowError:
            # Notice runs past the last representable instant: nothing is bookable
            return datetime.max

    @property
    def max_booking_date(self) -> Optional[date]:
        if not self.same_day_enabled or self.policy.max_advance_booking_days is None:
            return None
        try:
            return self.today + timedelta(days=self.policy.max_advance_booking_days)
        except OverflowError:
            return None

    def is_date_disabled(self, target_date: date) -> bool:
        if target_date < self.today:
            return True

        if self.policy.allow_same_day_booking is False:
            return False

        min_instant = self.min_booking_instant
        if min_instant is not None:
            if target_date == date.max:
                end_of_day = datetime.max
            else:
                end_of_day = datetime.combine(target_date + timedelta(days=1), time.min)
            if end_of_day <= min_instant:
                return True

        max_date = self.max_booking_date
        if max_date is not None and target_date > max_date:
            return True

        return False

    def is_slot_allowed(self, slot_start: datetime) -> bool:
        if slot_start.date() != self.today:
            return True

        min_instant = self.min_booking_instant
        if min_instant is None:
            return True

        return slot_start >= min_instant
