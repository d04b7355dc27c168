"""Tests for scheduling API endpoints."""

import logging

import pytest
from fastapi.testclient import TestClient

from homevisit.api.app import create_app


@pytest.fixture
def client(settings, repository, oracle):
    app = create_app(settings=settings, repository=repository, oracle=oracle)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def available_only_client(settings, repository, oracle):
    app = create_app(
        settings=settings.model_copy(update={"ranking_available_only": True}),
        repository=repository,
        oracle=oracle,
    )
    with TestClient(app) as test_client:
        yield test_client


def _book(client, patient_id="pat-1", doctor_id="doc-1", requested_time="09:00", **extra):
    return client.post(
        "/api/v1/scheduling/appointments",
        json={"patient_id": patient_id, "doctor_id": doctor_id, "requested_time": requested_time, **extra},
    )


class TestFindAvailableDoctors:
    def test_ranked_doctors(self, client):
        response = client.post(
            "/api/v1/scheduling/find-available-doctors",
            json={"patient_id": "pat-1", "requested_time": "2025-03-01 09:00", "duration_minutes": 30},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["start_time"] == "09:00"
        assert [d["doctor_id"] for d in data["doctors"]] == ["doc-1", "doc-2", "doc-3"]

    def test_available_only_setting(self, available_only_client):
        response = available_only_client.post(
            "/api/v1/scheduling/find-available-doctors",
            json={"patient_id": "pat-1", "requested_time": "09:00"},
        )

        assert [d["doctor_id"] for d in response.json()["doctors"]] == ["doc-1", "doc-2"]

    def test_no_slot_is_empty_list(self, available_only_client):
        client = available_only_client
        _book(client, patient_id="pat-2", doctor_id="doc-1")
        _book(client, patient_id="pat-3", doctor_id="doc-2")

        response = client.post(
            "/api/v1/scheduling/find-available-doctors",
            json={"patient_id": "pat-1", "requested_time": "09:00"},
        )

        assert response.status_code == 200
        assert response.json()["doctors"] == []

    def test_unknown_patient_404(self, client):
        response = client.post(
            "/api/v1/scheduling/find-available-doctors",
            json={"patient_id": "nobody", "requested_time": "09:00"},
        )

        assert response.status_code == 404

    def test_invalid_duration_422(self, client):
        response = client.post(
            "/api/v1/scheduling/find-available-doctors",
            json={"patient_id": "pat-1", "requested_time": "09:00", "duration_minutes": 0},
        )

        assert response.status_code == 422


class TestCheckAvailability:
    def test_available(self, client):
        response = client.post(
            "/api/v1/scheduling/check-availability",
            json={"doctor_id": "doc-1", "patient_id": "pat-1", "requested_time": "09:00"},
        )

        assert response.status_code == 200
        assert response.json()["available"] is True

    def test_conflict(self, client):
        _book(client, patient_id="pat-2")

        response = client.post(
            "/api/v1/scheduling/check-availability",
            json={"doctor_id": "doc-1", "patient_id": "pat-1", "requested_time": "09:20"},
        )

        data = response.json()
        assert data["available"] is False
        assert data["reason_code"] == "TimeOverlap"


class TestAppointments:
    def test_book_created(self, client):
        response = _book(client, case_details="post-op check", duration_minutes=45)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "Pending"
        assert data["start_time"] == "09:00"
        assert data["end_time"] == "09:45"
        assert data["case_details"] == "post-op check"
        assert data["location"]["address"] == "North District"

    def test_book_conflict_409(self, client, oracle, loc1, loc2):
        oracle.set(loc1, loc2, 10)
        _book(client, patient_id="pat-1")

        response = _book(client, patient_id="pat-2", requested_time="09:35")

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["reason_code"] == "InsufficientTravelTimeFromPrevious"
        assert detail["shortfall_minutes"] == 10
        assert detail["message"]

    def test_book_double_booked_patient_409(self, client):
        _book(client, doctor_id="doc-1")

        response = _book(client, doctor_id="doc-2")

        assert response.status_code == 409
        assert response.json()["detail"]["reason_code"] == "PatientDoubleBooked"

    def test_book_unknown_doctor_404(self, client):
        assert _book(client, doctor_id="doc-x").status_code == 404

    def test_get_appointment(self, client):
        appointment_id = _book(client).json()["id"]

        response = client.get(f"/api/v1/scheduling/appointments/{appointment_id}")

        assert response.status_code == 200
        assert response.json()["id"] == appointment_id

    def test_get_missing_appointment_404(self, client):
        assert client.get("/api/v1/scheduling/appointments/nope").status_code == 404

    def test_confirm_then_cancel(self, client):
        appointment_id = _book(client).json()["id"]

        confirmed = client.post(f"/api/v1/scheduling/appointments/{appointment_id}/confirm")
        cancelled = client.delete(f"/api/v1/scheduling/appointments/{appointment_id}")
        again = client.delete(f"/api/v1/scheduling/appointments/{appointment_id}")

        assert confirmed.json()["status"] == "Confirmed"
        assert cancelled.json()["status"] == "Cancelled"
        assert again.status_code == 409

    def test_reschedule(self, client):
        appointment_id = _book(client).json()["id"]

        response = client.put(
            f"/api/v1/scheduling/appointments/{appointment_id}",
            json={"requested_time": "13:30", "doctor_id": "doc-2"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == appointment_id
        assert data["doctor_id"] == "doc-2"
        assert data["start_time"] == "13:30"

    def test_reschedule_conflict_409(self, client):
        _book(client, patient_id="pat-2", requested_time="13:00")
        appointment_id = _book(client).json()["id"]

        response = client.put(
            f"/api/v1/scheduling/appointments/{appointment_id}",
            json={"requested_time": "13:10"},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["reason_code"] == "TimeOverlap"

    def test_list_appointments_ordered_by_start(self, client):
        late = _book(client, patient_id="pat-2", requested_time="11:00").json()["id"]
        early = _book(client, patient_id="pat-1", requested_time="09:00").json()["id"]
        client.delete(f"/api/v1/scheduling/appointments/{late}")

        everything = client.get("/api/v1/scheduling/appointments")
        pending = client.get("/api/v1/scheduling/appointments", params={"status": "Pending"})

        assert [a["id"] for a in everything.json()] == [early, late]
        assert [a["id"] for a in pending.json()] == [early]

    def test_list_appointments_bad_status_422(self, client):
        response = client.get("/api/v1/scheduling/appointments", params={"status": "Lost"})

        assert response.status_code == 422


class TestAlternatives:
    def test_alternatives_exclude_assigned_doctor(self, client):
        appointment_id = _book(client, doctor_id="doc-1").json()["id"]

        response = client.get(f"/api/v1/scheduling/appointments/{appointment_id}/alternatives")

        assert response.status_code == 200
        data = response.json()
        assert data["current_doctor_id"] == "doc-1"
        assert data["start_time"] == "09:00"
        assert [d["doctor_id"] for d in data["doctors"]] == ["doc-2"]

    def test_unknown_appointment_404(self, client):
        response = client.get("/api/v1/scheduling/appointments/nope/alternatives")

        assert response.status_code == 404


class TestDoctorRoute:
    def test_route(self, client, oracle, loc1, loc2):
        oracle.set(loc1, loc2, 14)
        _book(client, patient_id="pat-2", requested_time="11:00")
        _book(client, patient_id="pat-1", requested_time="09:00")

        response = client.get("/api/v1/scheduling/doctors/doc-1/route")

        assert response.status_code == 200
        data = response.json()
        assert [s["start_time"] for s in data["stops"]] == ["09:00", "11:00"]
        assert data["total_travel_minutes"] == 14

    def test_unknown_doctor_404(self, client):
        assert client.get("/api/v1/scheduling/doctors/doc-x/route").status_code == 404


class TestMiddleware:
    def test_process_time_header(self, client):
        response = client.get("/health/live")

        assert "X-Process-Time" in response.headers

    def test_request_id_is_generated(self, client):
        response = client.get("/health/live")

        assert len(response.headers["X-Request-ID"]) == 12

    def test_request_id_is_echoed(self, client):
        response = client.get("/health/live", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"

    def test_health_checks_log_at_debug(self, client, caplog):
        with caplog.at_level(logging.DEBUG, logger="homevisit.api.middleware"):
            client.get("/health/live")
            client.get("/api/v1/scheduling/appointments/nope")

        levels = {r.getMessage().split(" -> ")[0]: r.levelno for r in caplog.records}
        assert [lvl for msg, lvl in levels.items() if msg.endswith("GET /health/live")] == [logging.DEBUG]
        assert [
            lvl for msg, lvl in levels.items() if msg.endswith("GET /api/v1/scheduling/appointments/nope")
        ] == [logging.INFO]
