"""
Waitlist persistence.

WaitlistStore is the seam between the matcher and the database. Two
implementations:

- SupabaseWaitlistStore: healthcare schema tables, with the confirm step
  running inside the confirm_waitlist_offer Postgres function so the status
  check, appointment insert and sibling expiry share one transaction and a
  row lock.
- InMemoryWaitlistStore: dict-backed, an asyncio.Lock stands in for the row
  lock. Used for local development and tests.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from supabase import Client

from clinic_scheduling.exceptions import (
    InvalidTokenError,
    OfferError,
    OfferExpiredError,
    OfferNoLongerAvailableError,
)
from clinic_scheduling.models.scheduling import TimeOfDay
from clinic_scheduling.models.waitlist import (
    LOCAL_DATETIME_FORMAT,
    Appointment,
    AppointmentPractitioner,
    OfferConfirmation,
    PatientContact,
    WaitlistEntry,
    WaitlistEntryCreate,
    WaitlistStatus,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (WaitlistStatus.WAITING.value, WaitlistStatus.OFFERED.value)


def select_matches(
    entries: Iterable[WaitlistEntry],
    slot_local: datetime,
    weekday: str,
    period: TimeOfDay
) -> List[WaitlistEntry]:
    """
    Waiting entries that want this slot, best first.

    Exact original-date matches come first, then everyone else whose day and
    time preferences fit; created_at ascending within each tier.
    """
    matched = [
        e for e in entries
        if e.status == WaitlistStatus.WAITING
        and (e.is_exact_match(slot_local) or e.matches_preferences(weekday, period))
    ]
    return sorted(
        matched,
        key=lambda e: (0 if e.is_exact_match(slot_local) else 1, e.created_at)
    )


def ensure_redeemable(entry: Optional[WaitlistEntry], token: str, now: datetime) -> WaitlistEntry:
    """
    Raise the patient-facing reason an offer cannot be confirmed.

    Raises:
        InvalidTokenError: no entry carries the token
        OfferExpiredError: the offer window has passed
        OfferNoLongerAvailableError: confirmed already, or lost to a sibling
    """
    if entry is None:
        raise InvalidTokenError(token)

    if entry.status == WaitlistStatus.OFFERED:
        if entry.is_expired(now):
            raise OfferExpiredError(token)
        return entry

    # An expired entry whose window is still open lost the race to a sibling
    if entry.status == WaitlistStatus.EXPIRED and entry.is_expired(now):
        raise OfferExpiredError(token)
    raise OfferNoLongerAvailableError(token)


class WaitlistStore(ABC):
    """Persistence operations the waitlist matcher depends on."""

    @abstractmethod
    async def find_waiting_matches(
        self,
        slot_local: datetime,
        weekday: str,
        period: TimeOfDay
    ) -> List[WaitlistEntry]:
        """Waiting entries matching the freed slot, ranked best first."""

    @abstractmethod
    async def mark_offered(
        self,
        entry_id: str,
        token: str,
        offered_at: datetime,
        expires_at: datetime,
        appointment_id: str,
        offered_slot: datetime
    ) -> Optional[WaitlistEntry]:
        """Move a waiting entry to offered. None if it was no longer waiting."""

    @abstractmethod
    async def get_by_token(self, token: str) -> Optional[WaitlistEntry]:
        ...

    @abstractmethod
    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        ...

    @abstractmethod
    async def get_appointment_practitioners(self, appointment_id: str) -> List[AppointmentPractitioner]:
        ...

    @abstractmethod
    async def get_patient_contact(self, patient_id: str) -> Optional[PatientContact]:
        ...

    @abstractmethod
    async def confirm_offer(
        self,
        token: str,
        appointment: Appointment,
        now: datetime
    ) -> OfferConfirmation:
        """
        Atomically redeem an offer.

        Re-checks the entry under lock, creates the appointment, confirms the
        entry and expires its batch siblings. Raises an OfferError subclass if
        the entry is not redeemable at the moment of the swap.
        """

    @abstractmethod
    async def expire_stale_offers(self, now: datetime) -> List[str]:
        """Expire offered entries past expires_at; returns their ids."""

    @abstractmethod
    async def find_active_entry(
        self,
        patient_id: str,
        service_id: Optional[str]
    ) -> Optional[WaitlistEntry]:
        ...

    @abstractmethod
    async def create_entry(self, data: WaitlistEntryCreate, now: datetime) -> WaitlistEntry:
        ...


class InMemoryWaitlistStore(WaitlistStore):
    """Process-local store; the lock makes confirm a compare-and-swap."""

    def __init__(self):
        self.entries: Dict[str, WaitlistEntry] = {}
        self.appointments: Dict[str, Appointment] = {}
        self.practitioners: Dict[str, List[AppointmentPractitioner]] = {}
        self.patients: Dict[str, PatientContact] = {}
        self._lock = asyncio.Lock()

    def add_entry(self, entry: WaitlistEntry) -> WaitlistEntry:
        self.entries[entry.id] = entry
        return entry

    def add_appointment(
        self,
        appointment: Appointment,
        practitioners: Iterable[AppointmentPractitioner] = ()
    ) -> Appointment:
        if appointment.id is None:
            appointment = appointment.model_copy(update={"id": str(uuid.uuid4())})
        self.appointments[appointment.id] = appointment
        self.practitioners[appointment.id] = list(practitioners)
        return appointment

    def add_patient(self, patient: PatientContact) -> PatientContact:
        self.patients[patient.id] = patient
        return patient

    async def find_waiting_matches(self, slot_local, weekday, period):
        return select_matches(self.entries.values(), slot_local, weekday, period)

    async def mark_offered(self, entry_id, token, offered_at, expires_at, appointment_id, offered_slot):
        async with self._lock:
            entry = self.entries.get(entry_id)
            if entry is None or entry.status != WaitlistStatus.WAITING:
                return None
            updated = entry.model_copy(update={
                "status": WaitlistStatus.OFFERED,
                "offered_at": offered_at,
                "expires_at": expires_at,
                "acceptance_token": token,
                "appointment_id": appointment_id,
                "offered_slot": offered_slot,
            })
            self.entries[entry_id] = updated
            return updated

    def _find_by_token(self, token: str) -> Optional[WaitlistEntry]:
        for entry in self.entries.values():
            if entry.acceptance_token == token:
                return entry
        return None

    async def get_by_token(self, token):
        return self._find_by_token(token)

    async def get_appointment(self, appointment_id):
        return self.appointments.get(appointment_id)

    async def get_appointment_practitioners(self, appointment_id):
        return list(self.practitioners.get(appointment_id, []))

    async def get_patient_contact(self, patient_id):
        return self.patients.get(patient_id)

    async def confirm_offer(self, token, appointment, now):
        async with self._lock:
            entry = ensure_redeemable(self._find_by_token(token), token, now)

            new_id = str(uuid.uuid4())
            created = appointment.model_copy(update={
                "id": new_id,
                "root_appointment_id": appointment.root_appointment_id or new_id,
            })
            self.appointments[new_id] = created
            self.practitioners[new_id] = list(appointment.practitioners)

            confirmed = entry.model_copy(update={
                "status": WaitlistStatus.CONFIRMED,
                "appointment_id": new_id,
            })
            self.entries[entry.id] = confirmed

            expired = []
            for sibling in list(self.entries.values()):
                if (
                    sibling.id != entry.id
                    and sibling.status == WaitlistStatus.OFFERED
                    and sibling.offered_at == entry.offered_at
                    and sibling.appointment_id == entry.appointment_id
                ):
                    updated = sibling.model_copy(update={"status": WaitlistStatus.EXPIRED})
                    self.entries[sibling.id] = updated
                    expired.append(updated)

            return OfferConfirmation(entry=confirmed, appointment=created, expired_entries=expired)

    async def expire_stale_offers(self, now):
        async with self._lock:
            expired_ids = []
            for entry in list(self.entries.values()):
                if entry.status == WaitlistStatus.OFFERED and entry.is_expired(now):
                    self.entries[entry.id] = entry.model_copy(update={"status": WaitlistStatus.EXPIRED})
                    expired_ids.append(entry.id)
            return expired_ids

    async def find_active_entry(self, patient_id, service_id):
        for entry in self.entries.values():
            if (
                entry.patient_id == patient_id
                and entry.service_id == service_id
                and entry.status in (WaitlistStatus.WAITING, WaitlistStatus.OFFERED)
            ):
                return entry
        return None

    async def create_entry(self, data, now):
        entry = WaitlistEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            status=WaitlistStatus.WAITING,
            **data.model_dump(),
        )
        self.entries[entry.id] = entry
        return entry


RPC_ERRORS = {
    "invalid_token": InvalidTokenError,
    "no_longer_available": OfferNoLongerAvailableError,
    "expired": OfferExpiredError,
}


class SupabaseWaitlistStore(WaitlistStore):
    """Waitlist tables in the healthcare schema."""

    ENTRIES_TABLE = "appointment_waitlist"
    APPOINTMENTS_TABLE = "appointments"
    PRACTITIONERS_TABLE = "appointment_practitioner"
    PATIENTS_TABLE = "patients"

    def __init__(self, client: Client):
        self.client = client

    async def find_waiting_matches(self, slot_local, weekday, period):
        slot_str = slot_local.strftime(LOCAL_DATETIME_FORMAT)
        preference_filter = (
            f"original_requested_date.eq.{slot_str},"
            f"and(preferred_day.in.({weekday},any),preferred_time.in.({period.value},any))"
        )
        result = self.client.table(self.ENTRIES_TABLE).select('*').eq(
            'status', WaitlistStatus.WAITING.value
        ).is_('offered_at', 'null').or_(preference_filter).order('created_at').execute()

        entries = [WaitlistEntry.model_validate(row) for row in result.data or []]
        # PostgREST cannot order by the exact-match tier, so rank here
        return select_matches(entries, slot_local, weekday, period)

    async def mark_offered(self, entry_id, token, offered_at, expires_at, appointment_id, offered_slot):
        result = self.client.table(self.ENTRIES_TABLE).update({
            "status": WaitlistStatus.OFFERED.value,
            "offered_at": offered_at.isoformat(),
            "expires_at": expires_at.isoformat(),
            "acceptance_token": token,
            "appointment_id": appointment_id,
            "offered_slot": offered_slot.strftime(LOCAL_DATETIME_FORMAT),
        }).eq('id', entry_id).eq('status', WaitlistStatus.WAITING.value).execute()

        if not result.data:
            return None
        return WaitlistEntry.model_validate(result.data[0])

    async def get_by_token(self, token):
        result = self.client.table(self.ENTRIES_TABLE).select('*').eq(
            'acceptance_token', token
        ).limit(1).execute()
        if not result.data:
            return None
        return WaitlistEntry.model_validate(result.data[0])

    async def get_appointment(self, appointment_id):
        result = self.client.table(self.APPOINTMENTS_TABLE).select('*').eq(
            'id', appointment_id
        ).limit(1).execute()
        if not result.data:
            return None
        return Appointment.model_validate(result.data[0])

    async def get_appointment_practitioners(self, appointment_id):
        result = self.client.table(self.PRACTITIONERS_TABLE).select(
            'practitioner_id, start_time, end_time'
        ).eq('appointment_id', appointment_id).execute()
        return [AppointmentPractitioner.model_validate(row) for row in result.data or []]

    async def get_patient_contact(self, patient_id):
        result = self.client.table(self.PATIENTS_TABLE).select(
            'id, email, first_name, last_name'
        ).eq('id', patient_id).limit(1).execute()
        if not result.data:
            return None
        return PatientContact.model_validate(result.data[0])

    async def confirm_offer(self, token, appointment, now):
        result = self.client.rpc(
            "confirm_waitlist_offer",
            {
                "p_token": token,
                "p_appointment": appointment.model_dump(mode="json", exclude={"id", "practitioners"}),
                "p_practitioners": [p.model_dump(mode="json") for p in appointment.practitioners],
                "p_now": now.isoformat(),
            }
        ).execute()

        data = result.data
        if not data:
            logger.error("confirm_waitlist_offer RPC returned no data")
            raise OfferError(token)

        if not data.get("success"):
            error_cls = RPC_ERRORS.get(data.get("error_code"), OfferError)
            raise error_cls(token)

        created = Appointment.model_validate({
            **data["appointment"],
            "practitioners": [p.model_dump() for p in appointment.practitioners],
        })
        return OfferConfirmation(
            entry=WaitlistEntry.model_validate(data["entry"]),
            appointment=created,
            expired_entries=[WaitlistEntry.model_validate(row) for row in data.get("expired_entries") or []],
        )

    async def expire_stale_offers(self, now):
        result = self.client.table(self.ENTRIES_TABLE).update({
            "status": WaitlistStatus.EXPIRED.value,
        }).eq('status', WaitlistStatus.OFFERED.value).lte('expires_at', now.isoformat()).execute()
        return [row['id'] for row in result.data or []]

    async def find_active_entry(self, patient_id, service_id):
        query = self.client.table(self.ENTRIES_TABLE).select('*').eq(
            'patient_id', patient_id
        ).in_('status', list(ACTIVE_STATUSES))
        if service_id is None:
            query = query.is_('service_id', 'null')
        else:
            query = query.eq('service_id', service_id)

        result = query.limit(1).execute()
        if not result.data:
            return None
        return WaitlistEntry.model_validate(result.data[0])

    async def create_entry(self, data, now):
        row = data.model_dump(mode="json")
        row["status"] = WaitlistStatus.WAITING.value
        row["created_at"] = now.isoformat()
        if data.original_requested_date is not None:
            # Stored as local wall-clock time, same as the exact-match lookup
            row["original_requested_date"] = data.original_requested_date.strftime(LOCAL_DATETIME_FORMAT)

        result = self.client.table(self.ENTRIES_TABLE).insert(row).execute()
        return WaitlistEntry.model_validate(result.data[0])
