"""
Waitlist notifications.

Every send is best effort: a failed lookup or email is logged and never
propagates, so one bad address cannot stop the rest of an offer batch or undo
a confirmed booking.
"""

import logging
from datetime import datetime
from typing import Optional

from clinic_scheduling.config import SchedulingSettings, get_settings
from clinic_scheduling.models.waitlist import OfferConfirmation, PatientContact, WaitlistEntry
from clinic_scheduling.services.email_service import EmailService
from clinic_scheduling.services.waitlist_store import WaitlistStore

logger = logging.getLogger(__name__)


class WaitlistNotifier:
    """Sends offer, confirmation and slot-taken emails for waitlist entries."""

    def __init__(
        self,
        email_service: EmailService,
        store: WaitlistStore,
        settings: Optional[SchedulingSettings] = None
    ):
        self.email_service = email_service
        self.store = store
        self.settings = settings or get_settings()

    async def _contact_for(self, entry: WaitlistEntry) -> Optional[PatientContact]:
        contact = await self.store.get_patient_contact(entry.patient_id)
        if contact is None or not contact.email:
            logger.warning(f"No email on file for patient {entry.patient_id}, skipping notification")
            return None
        return contact

    async def notify_offer(self, entry: WaitlistEntry, slot_local: datetime) -> bool:
        try:
            contact = await self._contact_for(entry)
            if contact is None:
                return False

            sent = await self.email_service.send_waitlist_offer(
                to_email=contact.email,
                patient_name=contact.display_name,
                slot_local=slot_local,
                accept_url=self.settings.accept_url(entry.acceptance_token),
                expires_in_hours=self.settings.WAITLIST_OFFER_TTL_HOURS,
            )
            if sent:
                logger.info(f"Waitlist offer sent for entry {entry.id}")
            return sent
        except Exception as e:
            logger.error(f"Waitlist offer email failed for entry {entry.id}: {e}", exc_info=True)
            return False

    async def notify_confirmation(self, confirmation: OfferConfirmation, slot_local: datetime) -> None:
        """Confirm to the winner, tell the rest of the batch the slot is gone."""
        try:
            contact = await self._contact_for(confirmation.entry)
            if contact is not None:
                await self.email_service.send_waitlist_confirmed(
                    contact.email, contact.display_name, slot_local
                )
        except Exception as e:
            logger.error(
                f"Waitlist confirmation email failed for entry {confirmation.entry.id}: {e}",
                exc_info=True
            )

        for sibling in confirmation.expired_entries:
            try:
                contact = await self._contact_for(sibling)
                if contact is not None:
                    await self.email_service.send_waitlist_slot_taken(
                        contact.email, contact.display_name, slot_local
                    )
            except Exception as e:
                logger.error(f"Slot-taken email failed for entry {sibling.id}: {e}", exc_info=True)
