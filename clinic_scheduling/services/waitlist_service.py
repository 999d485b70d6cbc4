"""
Waitlist Matcher

Backfills cancelled appointments from the waiting list.

Each entry moves through waiting -> offered -> confirmed | expired:

1. A cancellation frees a slot. Every waiting entry that matches it (exact
   original date first, then day/time preferences, FIFO within a tier) gets
   its own single-use token. Offers are broadcast: the whole batch is
   notified at once and the first patient to confirm wins.
2. Confirming a token creates a new appointment cloned from the cancelled
   one, links it into the same history chain, confirms the entry and expires
   the rest of the batch. The store performs this as one atomic swap.
3. Offers nobody redeems expire after the offer TTL (see WaitlistCleanupJob).
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from clinic_scheduling.exceptions import AlreadyOnWaitlistError
from clinic_scheduling.models.waitlist import (
    Appointment,
    AppointmentPractitioner,
    CancellationEvent,
    OfferConfirmation,
    OfferDetails,
    WaitlistEntry,
    WaitlistEntryCreate,
)
from clinic_scheduling.services.locks import OfferLock
from clinic_scheduling.services.waitlist_notifier import WaitlistNotifier
from clinic_scheduling.services.waitlist_store import WaitlistStore, ensure_redeemable

logger = logging.getLogger(__name__)

DEFAULT_APPOINTMENT_MINUTES = 30
BACKFILL_SOURCE = "waiting_list"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_offer_token() -> str:
    return secrets.token_hex(16)


def build_backfill_appointment(
    entry: WaitlistEntry,
    original: Optional[Appointment],
    practitioners: Sequence[AppointmentPractitioner] = (),
    slot_start: Optional[datetime] = None
) -> Appointment:
    """
    The appointment created when an offer is confirmed.

    Clones the cancelled appointment's service, location, mode and
    practitioners. Practitioner times move by the same delta as the
    appointment start, and the appointment ends with the latest practitioner.
    """
    if slot_start is None:
        if original is not None:
            slot_start = original.appointment_datetime
        else:
            slot_start = entry.offered_at or entry.created_at

    delta = slot_start - original.appointment_datetime if original is not None else timedelta(0)
    shifted = [
        AppointmentPractitioner(
            practitioner_id=p.practitioner_id,
            start_time=p.start_time + delta,
            end_time=p.end_time + delta,
        )
        for p in practitioners
    ]

    if shifted:
        end_time = max(p.end_time for p in shifted)
    elif original is not None and original.start_time and original.end_time:
        end_time = slot_start + (original.end_time - original.start_time)
    else:
        end_time = slot_start + timedelta(minutes=DEFAULT_APPOINTMENT_MINUTES)

    if original is not None:
        parent_id = original.id
        root_id = original.root_appointment_id or original.id
    else:
        # Store assigns the new id as root
        parent_id = None
        root_id = None

    return Appointment(
        patient_id=entry.patient_id,
        parent_appointment_id=parent_id,
        root_appointment_id=root_id,
        appointment_datetime=slot_start,
        start_time=slot_start,
        end_time=end_time,
        status="confirmed",
        booking_source=BACKFILL_SOURCE,
        notes="From waiting list",
        service_id=original.service_id if original else entry.service_id,
        location_id=original.location_id if original else entry.location_id,
        mode=(original.mode if original else entry.mode) or "in-person",
        stored_timezone=original.stored_timezone if original else "UTC",
        practitioners=shifted,
    )


class WaitlistMatcher:
    """Matches freed slots to waiting patients and redeems their offers."""

    def __init__(
        self,
        store: WaitlistStore,
        notifier: Optional[WaitlistNotifier] = None,
        offer_lock: Optional[OfferLock] = None,
        offer_ttl_hours: int = 24,
        clock: Callable[[], datetime] = _utcnow,
        token_factory: Callable[[], str] = new_offer_token
    ):
        self.store = store
        self.notifier = notifier
        self.offer_lock = offer_lock
        self.offer_ttl = timedelta(hours=offer_ttl_hours)
        self.clock = clock
        self.token_factory = token_factory

    async def match_and_offer(self, cancelled: CancellationEvent) -> List[WaitlistEntry]:
        """
        Offer a freed slot to every matching waiting entry.

        Returns:
            Entries that were moved to offered, in priority order
        """
        if self.offer_lock is None:
            return await self._offer_slot(cancelled)

        async with self.offer_lock.acquire(cancelled.appointment_id):
            return await self._offer_slot(cancelled)

    async def _offer_slot(self, cancelled: CancellationEvent) -> List[WaitlistEntry]:
        slot_local = cancelled.local_datetime
        weekday = cancelled.weekday
        period = cancelled.period

        logger.info(
            f"Processing cancelled appointment {cancelled.appointment_id}: "
            f"{slot_local:%Y-%m-%d %H:%M} ({weekday}, {period.value})"
        )

        matches = await self.store.find_waiting_matches(slot_local, weekday, period)
        if not matches:
            logger.info(f"No waitlist entries match appointment {cancelled.appointment_id}")
            return []

        logger.info(f"Found {len(matches)} waitlist entries for appointment {cancelled.appointment_id}")

        # One instant for the whole batch; confirm uses it to find siblings
        offered_at = self.clock()
        expires_at = offered_at + self.offer_ttl

        offered = []
        for entry in matches:
            updated = await self.store.mark_offered(
                entry.id,
                token=self.token_factory(),
                offered_at=offered_at,
                expires_at=expires_at,
                appointment_id=cancelled.appointment_id,
                offered_slot=slot_local,
            )
            if updated is None:
                logger.info(f"Waitlist entry {entry.id} was no longer waiting, skipped")
                continue

            offered.append(updated)
            if self.notifier is not None:
                await self.notifier.notify_offer(updated, slot_local)

        return offered

    async def get_offer_details(self, token: str) -> OfferDetails:
        """
        What the acceptance page shows.

        Raises:
            InvalidTokenError: unknown token
            OfferExpiredError: offer window has passed
            OfferNoLongerAvailableError: confirmed already, or a sibling won the slot
        """
        entry = ensure_redeemable(await self.store.get_by_token(token), token, self.clock())

        original = None
        if entry.appointment_id:
            original = await self.store.get_appointment(entry.appointment_id)

        appointment_date = entry.offered_slot
        if appointment_date is None:
            appointment_date = original.appointment_datetime if original else (entry.offered_at or entry.created_at)

        return OfferDetails(
            entry=entry,
            appointment_date=appointment_date,
            expires_at=entry.expires_at,
            original_appointment=original,
        )

    async def confirm_offer(self, token: str) -> OfferConfirmation:
        """
        Redeem an offer token.

        Raises:
            InvalidTokenError, OfferNoLongerAvailableError, OfferExpiredError
        """
        logger.info(f"Confirming waitlist offer {token[:8]}...")
        now = self.clock()
        entry = ensure_redeemable(await self.store.get_by_token(token), token, now)

        original = None
        practitioners: List[AppointmentPractitioner] = []
        if entry.appointment_id:
            original = await self.store.get_appointment(entry.appointment_id)
        if original is not None:
            practitioners = await self.store.get_appointment_practitioners(original.id)
        else:
            logger.warning(f"Original appointment {entry.appointment_id} not found for entry {entry.id}")

        appointment = build_backfill_appointment(entry, original, practitioners)

        # Status is checked again inside the swap; a sibling may have won meanwhile
        confirmation = await self.store.confirm_offer(token, appointment, now)

        logger.info(
            f"Waitlist entry {confirmation.entry.id} confirmed as appointment "
            f"{confirmation.appointment.id}; expired {len(confirmation.expired_entries)} sibling offers"
        )

        if self.notifier is not None:
            slot_local = entry.offered_slot or appointment.appointment_datetime
            await self.notifier.notify_confirmation(confirmation, slot_local)

        return confirmation

    async def join_waitlist(self, data: WaitlistEntryCreate) -> WaitlistEntry:
        """
        Add a patient to the waiting list.

        Raises:
            AlreadyOnWaitlistError: the patient already has an active entry for the service
        """
        existing = await self.store.find_active_entry(data.patient_id, data.service_id)
        if existing is not None:
            raise AlreadyOnWaitlistError(data.patient_id, data.service_id)

        entry = await self.store.create_entry(data, self.clock())
        logger.info(
            f"Patient {data.patient_id} joined waitlist (entry {entry.id}, "
            f"{data.preferred_day}/{data.preferred_time})"
        )
        return entry

    async def expire_stale_offers(self) -> List[str]:
        expired_ids = await self.store.expire_stale_offers(self.clock())
        if expired_ids:
            logger.info(f"Expired {len(expired_ids)} stale waitlist offers")
        return expired_ids
