"""
Tests for the waiting list API endpoints
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from clinic_scheduling.api.dependencies import get_app_settings, get_waitlist_matcher
from clinic_scheduling.main import create_app
from clinic_scheduling.models.waitlist import WaitlistStatus
from clinic_scheduling.services.locks import OfferLockBusyError
from clinic_scheduling.services.waitlist_service import WaitlistMatcher

from tests.fixtures import create_offered_entry, create_test_appointment, create_test_entry


@pytest.fixture
def client(settings, matcher):
    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_waitlist_matcher] = lambda: matcher
    return TestClient(app)


class TestJoinWaitlist:

    def test_join(self, client, store):
        response = client.post("/api/waitlist", json={
            "patient_id": "patient-1",
            "service_id": "svc-1",
            "preferred_day": "monday",
            "preferred_time": "morning",
        })

        assert response.status_code == 201
        entry_id = response.json()["id"]
        assert store.entries[entry_id].status == WaitlistStatus.WAITING

    def test_duplicate_is_conflict(self, client):
        payload = {"patient_id": "patient-1", "service_id": "svc-1"}
        client.post("/api/waitlist", json=payload)

        response = client.post("/api/waitlist", json=payload)

        assert response.status_code == 409
        assert response.json()["detail"] == "You are already on the waiting list for this service."

    def test_invalid_preference(self, client):
        response = client.post("/api/waitlist", json={"patient_id": "p", "preferred_day": "someday"})
        assert response.status_code == 422


class TestCancellations:

    def test_utc_cancellation_converted_to_location_time(self, client, store):
        # 09:00 UTC is 10:00 in Madrid (CET), Monday morning
        monday = store.add_entry(create_test_entry(preferred_day="monday", preferred_time="morning"))
        store.add_entry(create_test_entry(preferred_time="afternoon"))

        response = client.post("/api/waitlist/cancellations", json={
            "appointment_id": "apt-1",
            "appointment_datetime": "2026-03-02T09:00:00Z",
            "timezone": "Europe/Madrid",
        })

        assert response.status_code == 200
        assert response.json() == {"offered_count": 1, "offered_entry_ids": [monday.id]}
        assert store.entries[monday.id].offered_slot.hour == 10

    def test_requires_a_datetime(self, client):
        response = client.post("/api/waitlist/cancellations", json={"appointment_id": "apt-1"})
        assert response.status_code == 422

    def test_lock_busy_is_conflict(self, settings):
        matcher = MagicMock(spec=WaitlistMatcher)
        matcher.match_and_offer = AsyncMock(side_effect=OfferLockBusyError("busy"))
        app = create_app(use_lifespan=False)
        app.dependency_overrides[get_waitlist_matcher] = lambda: matcher

        response = TestClient(app).post("/api/waitlist/cancellations", json={
            "appointment_id": "apt-1",
            "local_datetime": "2026-03-02T10:00:00",
        })

        assert response.status_code == 409


class TestOffers:

    @pytest.fixture
    def offered(self, store):
        store.add_appointment(create_test_appointment())
        return [store.add_entry(create_offered_entry(f"tok-{i}")) for i in range(2)]

    def test_offer_details(self, client, offered):
        response = client.get("/api/waitlist/offers/tok-0")

        assert response.status_code == 200
        data = response.json()
        assert data["entry"]["id"] == offered[0].id
        assert data["appointment_date"] == "2026-03-02T10:00:00"
        assert data["original_appointment"]["id"] == "apt-cancelled"

    def test_confirm_then_sibling_gets_conflict(self, client, store, offered):
        first = client.post("/api/waitlist/offers/tok-1/confirm")
        second = client.post("/api/waitlist/offers/tok-0/confirm")

        assert first.status_code == 200
        assert first.json()["message"] == "Appointment confirmed!"
        assert first.json()["appointment"]["booking_source"] == "waiting_list"
        assert second.status_code == 409
        assert second.json() == {"detail": "No longer available"}
        assert store.entries[offered[0].id].status == WaitlistStatus.EXPIRED

    def test_details_after_sibling_confirmed(self, client, offered):
        assert client.post("/api/waitlist/offers/tok-1/confirm").status_code == 200

        response = client.get("/api/waitlist/offers/tok-0")

        assert response.status_code == 409
        assert response.json() == {"detail": "No longer available"}

    def test_unknown_token(self, client, offered):
        response = client.post("/api/waitlist/offers/nope/confirm")

        assert response.status_code == 404
        assert response.json() == {"detail": "Invalid link"}

    def test_expired_offer(self, client, clock, offered):
        clock.advance(hours=24, minutes=1)

        assert client.get("/api/waitlist/offers/tok-0").status_code == 410
        response = client.post("/api/waitlist/offers/tok-0/confirm")
        assert response.status_code == 410
        assert response.json() == {"detail": "Expired"}

    def test_unexpected_error_is_generic_500(self):
        matcher = MagicMock(spec=WaitlistMatcher)
        matcher.confirm_offer = AsyncMock(side_effect=RuntimeError("connection pool exhausted"))
        app = create_app(use_lifespan=False)
        app.dependency_overrides[get_waitlist_matcher] = lambda: matcher

        response = TestClient(app).post("/api/waitlist/offers/tok-0/confirm")

        assert response.status_code == 500
        assert response.json() == {"detail": "Failed to confirm appointment"}

    def test_matcher_missing_returns_503(self):
        app = create_app(use_lifespan=False)
        assert TestClient(app).get("/api/waitlist/offers/tok-0").status_code == 503
