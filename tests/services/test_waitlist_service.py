"""
Tests for the waitlist matcher
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from clinic_scheduling.exceptions import (
    AlreadyOnWaitlistError,
    InvalidTokenError,
    OfferExpiredError,
    OfferNoLongerAvailableError,
)
from clinic_scheduling.models.waitlist import CancellationEvent, WaitlistEntryCreate, WaitlistStatus
from clinic_scheduling.services.locks import OfferLock
from clinic_scheduling.services.waitlist_notifier import WaitlistNotifier
from clinic_scheduling.services.waitlist_service import WaitlistMatcher, build_backfill_appointment

from tests.fixtures import (
    NOW_UTC,
    create_offered_entry,
    create_test_appointment,
    create_test_entry,
    create_test_patient,
    create_test_practitioner,
)

# Monday 10:00 local, morning
FREED_SLOT = datetime(2026, 3, 2, 10, 0)


def cancellation(appointment_id="apt-cancelled", local=FREED_SLOT) -> CancellationEvent:
    return CancellationEvent(appointment_id=appointment_id, local_datetime=local)


class TestMatchAndOffer:
    """Matching a freed slot to waiting entries"""

    async def test_exact_date_outranks_earlier_any_entry(self, matcher, store):
        early_any = store.add_entry(create_test_entry(created_at=NOW_UTC - timedelta(days=10)))
        exact = store.add_entry(create_test_entry(
            created_at=NOW_UTC - timedelta(days=1),
            original_requested_date=FREED_SLOT,
            preferred_day="friday",
            preferred_time="evening",
        ))

        offered = await matcher.match_and_offer(cancellation())

        assert [e.id for e in offered] == [exact.id, early_any.id]

    async def test_fifo_within_preference_tier(self, matcher, store):
        second = store.add_entry(create_test_entry(created_at=NOW_UTC - timedelta(days=2), preferred_day="monday"))
        first = store.add_entry(create_test_entry(created_at=NOW_UTC - timedelta(days=5), preferred_time="morning"))
        third = store.add_entry(create_test_entry(created_at=NOW_UTC - timedelta(days=1)))

        offered = await matcher.match_and_offer(cancellation())

        assert [e.id for e in offered] == [first.id, second.id, third.id]

    @pytest.mark.parametrize("day,time,matches", [
        ("monday", "morning", True),
        ("any", "morning", True),
        ("monday", "any", True),
        ("tuesday", "morning", False),
        ("monday", "afternoon", False),
        ("any", "evening", False),
    ])
    async def test_preference_matching(self, matcher, store, day, time, matches):
        store.add_entry(create_test_entry(preferred_day=day, preferred_time=time))

        offered = await matcher.match_and_offer(cancellation())

        assert bool(offered) is matches

    async def test_offer_batch_shares_offered_at(self, matcher, store, clock):
        store.add_entry(create_test_entry())
        store.add_entry(create_test_entry())

        offered = await matcher.match_and_offer(cancellation())

        assert len({e.offered_at for e in offered}) == 1
        assert len({e.acceptance_token for e in offered}) == 2
        for entry in offered:
            assert entry.status == WaitlistStatus.OFFERED
            assert entry.offered_at == clock.now
            assert entry.expires_at == clock.now + timedelta(hours=24)
            assert entry.appointment_id == "apt-cancelled"
            assert entry.offered_slot == FREED_SLOT

    async def test_only_waiting_entries_are_offered(self, matcher, store):
        store.add_entry(create_offered_entry("old-token"))
        store.add_entry(create_test_entry(status=WaitlistStatus.CONFIRMED))
        store.add_entry(create_test_entry(status=WaitlistStatus.EXPIRED))

        assert await matcher.match_and_offer(cancellation()) == []

    async def test_notifies_every_offer(self, matcher, store, mock_notifier):
        store.add_entry(create_test_entry())
        store.add_entry(create_test_entry())

        offered = await matcher.match_and_offer(cancellation())

        assert mock_notifier.notify_offer.await_count == 2
        mock_notifier.notify_offer.assert_any_await(offered[0], FREED_SLOT)

    async def test_no_matches(self, matcher, mock_notifier):
        assert await matcher.match_and_offer(cancellation()) == []
        mock_notifier.notify_offer.assert_not_awaited()

    async def test_uses_offer_lock_when_configured(self, store, clock):
        redis_client = MagicMock()
        redis_client.set.return_value = True
        matcher = WaitlistMatcher(store, offer_lock=OfferLock(redis_client), clock=clock)
        store.add_entry(create_test_entry())

        offered = await matcher.match_and_offer(cancellation("apt-42"))

        assert len(offered) == 1
        assert redis_client.set.call_args[0][0] == "waitlist_offer_lock:apt-42"
        redis_client.eval.assert_called_once()


class TestConfirmOffer:
    """Redeeming offer tokens"""

    @pytest.fixture
    def batch(self, store):
        """Cancelled appointment plus three offered entries from one batch"""
        original = create_test_appointment()
        store.add_appointment(original, [
            create_test_practitioner("doc-1", original.appointment_datetime, 45),
            create_test_practitioner("doc-2", original.appointment_datetime + timedelta(minutes=15), 60),
        ])
        entries = [store.add_entry(create_offered_entry(f"tok-{i}")) for i in range(3)]
        return original, entries

    async def test_confirm_creates_linked_appointment(self, matcher, store, batch):
        original, entries = batch

        confirmation = await matcher.confirm_offer("tok-0")

        appointment = confirmation.appointment
        assert confirmation.message == "Appointment confirmed!"
        assert appointment.patient_id == entries[0].patient_id
        assert appointment.parent_appointment_id == original.id
        assert appointment.root_appointment_id == original.id
        assert appointment.booking_source == "waiting_list"
        assert appointment.status == "confirmed"
        assert appointment.service_id == original.service_id
        assert appointment.location_id == original.location_id
        assert appointment.appointment_datetime == original.appointment_datetime
        # latest practitioner end: 09:15 + 60
        assert appointment.end_time == original.appointment_datetime + timedelta(minutes=75)
        assert [p.practitioner_id for p in appointment.practitioners] == ["doc-1", "doc-2"]
        assert appointment.id in store.appointments

    async def test_confirm_expires_siblings(self, matcher, store, batch, mock_notifier):
        _, entries = batch

        confirmation = await matcher.confirm_offer("tok-1")

        assert store.entries[entries[1].id].status == WaitlistStatus.CONFIRMED
        assert store.entries[entries[1].id].appointment_id == confirmation.appointment.id
        assert store.entries[entries[0].id].status == WaitlistStatus.EXPIRED
        assert store.entries[entries[2].id].status == WaitlistStatus.EXPIRED
        assert sorted(confirmation.expired_entry_ids) == sorted([entries[0].id, entries[2].id])
        mock_notifier.notify_confirmation.assert_awaited_once()

    async def test_other_batches_untouched(self, matcher, store, batch):
        other = store.add_entry(create_offered_entry(
            "other", batch_at=NOW_UTC - timedelta(hours=1), appointment_id="apt-other"
        ))

        await matcher.confirm_offer("tok-0")

        assert store.entries[other.id].status == WaitlistStatus.OFFERED

    async def test_concurrent_confirms_single_winner(self, matcher, store, batch):
        _, entries = batch

        results = await asyncio.gather(
            matcher.confirm_offer("tok-0"),
            matcher.confirm_offer("tok-2"),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], OfferNoLongerAvailableError)

        statuses = [store.entries[e.id].status for e in entries]
        assert statuses.count(WaitlistStatus.CONFIRMED) == 1
        assert statuses.count(WaitlistStatus.EXPIRED) == 2
        backfills = [a for a in store.appointments.values() if a.booking_source == "waiting_list"]
        assert len(backfills) == 1

    async def test_invalid_token(self, matcher, batch):
        with pytest.raises(InvalidTokenError) as exc:
            await matcher.confirm_offer("nope")
        assert exc.value.message == "Invalid link"

    async def test_reconfirm_fails_without_duplicate(self, matcher, store, batch):
        await matcher.confirm_offer("tok-0")

        with pytest.raises(OfferNoLongerAvailableError):
            await matcher.confirm_offer("tok-0")
        with pytest.raises(OfferNoLongerAvailableError) as exc:
            await matcher.confirm_offer("tok-1")

        assert exc.value.message == "No longer available"
        assert len([a for a in store.appointments.values() if a.booking_source == "waiting_list"]) == 1

    async def test_expired_offer(self, matcher, clock, batch):
        clock.advance(hours=24)

        with pytest.raises(OfferExpiredError) as exc:
            await matcher.confirm_offer("tok-0")
        assert exc.value.message == "Expired"

    async def test_expired_by_cleanup_reports_expired(self, matcher, clock, batch):
        clock.advance(hours=25)
        await matcher.expire_stale_offers()

        with pytest.raises(OfferExpiredError):
            await matcher.confirm_offer("tok-0")

    async def test_notification_failure_does_not_undo_confirmation(self, store, clock, settings, batch):
        _, entries = batch
        store.add_patient(create_test_patient(entries[0].patient_id))
        email_service = MagicMock()
        email_service.send_waitlist_confirmed = AsyncMock(side_effect=ConnectionError("smtp down"))
        email_service.send_waitlist_slot_taken = AsyncMock(return_value=True)
        matcher = WaitlistMatcher(
            store, notifier=WaitlistNotifier(email_service, store, settings), clock=clock
        )

        confirmation = await matcher.confirm_offer("tok-0")

        email_service.send_waitlist_confirmed.assert_awaited_once()
        assert store.entries[confirmation.entry.id].status == WaitlistStatus.CONFIRMED


class TestBuildBackfillAppointment:
    """The appointment cloned from a cancelled one"""

    def test_shifts_practitioners_by_slot_delta(self):
        original = create_test_appointment(root_appointment_id="apt-root")
        practitioners = [create_test_practitioner("doc-1", original.appointment_datetime, 30)]
        entry = create_test_entry()
        new_start = original.appointment_datetime + timedelta(hours=2)

        appointment = build_backfill_appointment(entry, original, practitioners, slot_start=new_start)

        assert appointment.practitioners[0].start_time == new_start
        assert appointment.end_time == new_start + timedelta(minutes=30)
        assert appointment.root_appointment_id == "apt-root"

    def test_without_practitioners_keeps_original_duration(self):
        original = create_test_appointment()
        appointment = build_backfill_appointment(create_test_entry(), original)

        assert appointment.end_time - appointment.start_time == timedelta(minutes=45)

    def test_without_original_defaults(self):
        offered_at = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        entry = create_test_entry(offered_at=offered_at, service_id="svc-9")

        appointment = build_backfill_appointment(entry, None)

        assert appointment.parent_appointment_id is None
        assert appointment.root_appointment_id is None
        assert appointment.service_id == "svc-9"
        assert appointment.mode == "in-person"
        assert appointment.end_time == offered_at + timedelta(minutes=30)


class TestOfferDetails:
    """Acceptance page lookups"""

    async def test_details(self, matcher, store):
        original = store.add_appointment(create_test_appointment())
        entry = store.add_entry(create_offered_entry("tok", appointment_id=original.id))

        details = await matcher.get_offer_details("tok")

        assert details.entry.id == entry.id
        assert details.appointment_date == entry.offered_slot
        assert details.original_appointment.id == original.id

    async def test_invalid_and_expired(self, matcher, store, clock):
        store.add_entry(create_offered_entry("tok"))

        with pytest.raises(InvalidTokenError):
            await matcher.get_offer_details("missing")

        clock.advance(hours=24, seconds=1)
        with pytest.raises(OfferExpiredError):
            await matcher.get_offer_details("tok")

    async def test_sibling_sees_no_longer_available_before_confirming(self, matcher, store):
        store.add_entry(create_offered_entry("tok-a"))
        store.add_entry(create_offered_entry("tok-b"))

        await matcher.confirm_offer("tok-a")

        with pytest.raises(OfferNoLongerAvailableError):
            await matcher.get_offer_details("tok-b")
        with pytest.raises(OfferNoLongerAvailableError):
            await matcher.get_offer_details("tok-a")


class TestJoinWaitlist:
    """Adding patients to the waiting list"""

    async def test_join(self, matcher, store, clock):
        entry = await matcher.join_waitlist(WaitlistEntryCreate(
            patient_id="patient-1", service_id="svc-1", preferred_day="monday",
        ))

        assert entry.status == WaitlistStatus.WAITING
        assert entry.created_at == clock.now
        assert store.entries[entry.id].preferred_day == "monday"

    async def test_duplicate_active_entry_rejected(self, matcher):
        await matcher.join_waitlist(WaitlistEntryCreate(patient_id="patient-1", service_id="svc-1"))

        with pytest.raises(AlreadyOnWaitlistError):
            await matcher.join_waitlist(WaitlistEntryCreate(patient_id="patient-1", service_id="svc-1"))

        # A different service is fine
        await matcher.join_waitlist(WaitlistEntryCreate(patient_id="patient-1", service_id="svc-2"))


class TestExpireStaleOffers:
    """TTL expiry"""

    async def test_expires_only_past_deadline(self, matcher, store, clock):
        stale = store.add_entry(create_offered_entry("old", batch_at=NOW_UTC - timedelta(hours=25)))
        fresh = store.add_entry(create_offered_entry("new"))

        expired = await matcher.expire_stale_offers()

        assert expired == [stale.id]
        assert store.entries[fresh.id].status == WaitlistStatus.OFFERED
