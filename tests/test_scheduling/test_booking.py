"""Tests for booking validation and the appointment lifecycle."""

import asyncio
import json

import pytest

from homevisit.observability import SchedulingEventLogger
from homevisit.scheduling.booking import BookingService
from homevisit.scheduling.errors import (
    AppointmentNotFoundError,
    DoctorNotFoundError,
    InvalidStatusTransitionError,
    PatientNotFoundError,
)
from homevisit.scheduling.feasibility import FeasibilityEngine
from homevisit.scheduling.models import (
    Appointment,
    AppointmentStatus,
    DoctorStatus,
    FeasibilityReason,
)
from homevisit.scheduling.timeutil import to_minutes
from homevisit.scheduling.travel import TravelTimeOracle


class SlowOracle(TravelTimeOracle):
    """Yields to the event loop before answering."""

    async def estimate_travel_minutes(self, origin_lat, origin_lng, dest_lat, dest_lng) -> int:
        await asyncio.sleep(0.01)
        return 10


async def _seed(repository, appointment_id, patient_id, doctor_id, start, location,
                minutes=30, status=AppointmentStatus.PENDING):
    await repository.persist_appointment(
        Appointment(
            id=appointment_id,
            patient_id=patient_id,
            doctor_id=doctor_id,
            start_minute=to_minutes(start),
            duration_minutes=minutes,
            status=status,
            location=location,
        )
    )


class TestValidateAndBook:
    @pytest.mark.asyncio
    async def test_books_pending_appointment(self, booking, repository, loc1):
        result = await booking.validate_and_book("pat-1", "doc-1", "09:00", 45, case_details="wound care")

        assert result.success
        appt = result.appointment
        assert appt.status == AppointmentStatus.PENDING
        assert appt.start_minute == 540
        assert appt.duration_minutes == 45
        assert appt.location == loc1
        assert appt.time_text == "09:00"
        assert appt.case_details == "wound care"
        assert await repository.get_appointment(appt.id) is not None

    @pytest.mark.asyncio
    async def test_default_duration(self, booking):
        result = await booking.validate_and_book("pat-1", "doc-1", "2025-03-01 09:00")

        assert result.appointment.duration_minutes == 30
        assert result.appointment.start_minute == 540

    @pytest.mark.asyncio
    async def test_address_override_keeps_coordinates(self, booking, loc1):
        result = await booking.validate_and_book("pat-1", "doc-1", "09:00", address="Back door, 3F")

        assert result.appointment.location.address == "Back door, 3F"
        assert result.appointment.location.latitude == loc1.latitude

    @pytest.mark.asyncio
    async def test_overlap_rejected_and_not_persisted(self, booking, repository, loc1):
        await _seed(repository, "a-1", "pat-2", "doc-1", "09:00", loc1)

        result = await booking.validate_and_book("pat-1", "doc-1", "09:15")

        assert not result.success
        assert result.reason_code == FeasibilityReason.TIME_OVERLAP
        assert result.message
        assert len(await repository.get_active_schedule("doc-1")) == 1

    @pytest.mark.asyncio
    async def test_travel_shortfall_reported(self, booking, repository, oracle, loc1, loc2):
        oracle.set(loc1, loc2, 10)
        await _seed(repository, "a-1", "pat-1", "doc-1", "09:00", loc1)

        result = await booking.validate_and_book("pat-2", "doc-1", "09:35")

        assert result.reason_code == FeasibilityReason.INSUFFICIENT_TRAVEL_FROM_PREVIOUS
        assert result.shortfall_minutes == 10

    @pytest.mark.asyncio
    async def test_patient_double_booked_with_other_doctor(self, booking, repository, loc1):
        await _seed(repository, "a-1", "pat-1", "doc-1", "10:00", loc1)

        result = await booking.validate_and_book("pat-1", "doc-2", "10:00")

        assert not result.success
        assert result.reason_code == FeasibilityReason.PATIENT_DOUBLE_BOOKED

    @pytest.mark.asyncio
    async def test_cancelled_visit_does_not_double_book(self, booking, repository, loc1):
        await _seed(repository, "a-1", "pat-1", "doc-1", "10:00", loc1, status=AppointmentStatus.CANCELLED)

        result = await booking.validate_and_book("pat-1", "doc-2", "10:00")

        assert result.success

    @pytest.mark.asyncio
    async def test_doctor_on_leave_rejected(self, booking):
        result = await booking.validate_and_book("pat-1", "doc-3", "10:00")

        assert not result.success
        assert result.reason_code == FeasibilityReason.DOCTOR_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_unknown_doctor_raises(self, booking):
        with pytest.raises(DoctorNotFoundError):
            await booking.validate_and_book("pat-1", "doc-missing", "10:00")

    @pytest.mark.asyncio
    async def test_unknown_patient_raises(self, booking):
        with pytest.raises(PatientNotFoundError):
            await booking.validate_and_book("pat-missing", "doc-1", "10:00")

    @pytest.mark.asyncio
    async def test_concurrent_bookings_for_same_doctor_do_not_overlap(self, repository, resolver, loc1):
        booking = BookingService(repository, FeasibilityEngine(SlowOracle(), buffer_minutes=5), resolver)
        await _seed(repository, "a-0", "pat-1", "doc-1", "08:00", loc1)

        results = await asyncio.gather(
            booking.validate_and_book("pat-2", "doc-1", "10:00"),
            booking.validate_and_book("pat-3", "doc-1", "10:00"),
        )

        assert sorted(r.success for r in results) == [False, True]
        rejected = next(r for r in results if not r.success)
        assert rejected.reason_code == FeasibilityReason.TIME_OVERLAP
        assert len(await repository.get_active_schedule("doc-1")) == 2

    @pytest.mark.asyncio
    async def test_decisions_are_recorded(self, repository, engine, resolver, tmp_path, loc1):
        events = SchedulingEventLogger(log_dir=tmp_path, enabled=True)
        booking = BookingService(repository, engine, resolver, events=events)
        await _seed(repository, "a-1", "pat-2", "doc-1", "09:00", loc1)

        await booking.validate_and_book("pat-1", "doc-1", "09:10")
        await booking.validate_and_book("pat-1", "doc-1", "11:00")

        lines = (tmp_path / "booking_decisions.jsonl").read_text().splitlines()
        decisions = [json.loads(line) for line in lines]
        assert [d["accepted"] for d in decisions] == [False, True]
        assert decisions[0]["reason_code"] == "TimeOverlap"
        assert decisions[1]["appointment_id"]


class TestCheckConflict:
    @pytest.mark.asyncio
    async def test_available(self, booking):
        result = await booking.check_conflict("doc-1", "pat-1", "09:00")

        assert result.available
        assert result.reason_code is None

    @pytest.mark.asyncio
    async def test_conflict_reports_reason_without_persisting(self, booking, repository, oracle, loc1, loc2):
        oracle.set(loc1, loc2, 10)
        await _seed(repository, "a-1", "pat-1", "doc-1", "09:00", loc1)

        result = await booking.check_conflict("doc-1", "pat-2", "09:40")

        assert not result.available
        assert result.reason_code == FeasibilityReason.INSUFFICIENT_TRAVEL_FROM_PREVIOUS
        assert result.shortfall_minutes == 5
        assert "travel" in result.reason
        assert len(await repository.get_active_schedule("doc-1")) == 1

    @pytest.mark.asyncio
    async def test_busy_doctor_unavailable(self, booking, repository):
        doctor = await repository.get_doctor("doc-2")
        repository.add_doctor(doctor.model_copy(update={"status": DoctorStatus.BUSY}))

        result = await booking.check_conflict("doc-2", "pat-1", "09:00")

        assert result.reason_code == FeasibilityReason.DOCTOR_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_unknown_doctor_raises(self, booking):
        with pytest.raises(DoctorNotFoundError):
            await booking.check_conflict("doc-missing", "pat-1", "09:00")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_confirm_pending(self, booking):
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")

        confirmed = await booking.confirm(booked.appointment.id)

        assert confirmed.status == AppointmentStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_confirm_twice_rejected(self, booking):
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")
        await booking.confirm(booked.appointment.id)

        with pytest.raises(InvalidStatusTransitionError):
            await booking.confirm(booked.appointment.id)

    @pytest.mark.asyncio
    async def test_cancel_keeps_record_and_frees_slot(self, booking, repository):
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")
        await booking.confirm(booked.appointment.id)

        cancelled = await booking.cancel(booked.appointment.id)

        assert cancelled.status == AppointmentStatus.CANCELLED
        assert (await repository.get_appointment(booked.appointment.id)) is not None
        assert await repository.get_active_schedule("doc-1") == []
        assert (await booking.validate_and_book("pat-2", "doc-1", "09:00")).success

    @pytest.mark.asyncio
    async def test_cancelled_is_terminal(self, booking):
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")
        await booking.cancel(booked.appointment.id)

        with pytest.raises(InvalidStatusTransitionError):
            await booking.cancel(booked.appointment.id)
        with pytest.raises(InvalidStatusTransitionError):
            await booking.confirm(booked.appointment.id)

    @pytest.mark.asyncio
    async def test_unknown_appointment_raises(self, booking):
        with pytest.raises(AppointmentNotFoundError):
            await booking.confirm("nope")


class TestReschedule:
    @pytest.mark.asyncio
    async def test_moves_time_under_same_id(self, booking, repository):
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")
        await booking.confirm(booked.appointment.id)

        result = await booking.reschedule(booked.appointment.id, requested_time="11:00")

        assert result.success
        assert result.appointment.id == booked.appointment.id
        assert result.appointment.start_minute == 660
        assert result.appointment.status == AppointmentStatus.CONFIRMED
        assert len(await repository.get_active_schedule("doc-1")) == 1

    @pytest.mark.asyncio
    async def test_shift_within_own_slot(self, booking):
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")

        result = await booking.reschedule(booked.appointment.id, requested_time="09:10")

        assert result.success
        assert result.appointment.start_minute == 550

    @pytest.mark.asyncio
    async def test_duration_change_is_not_a_double_booking(self, booking):
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")

        result = await booking.reschedule(booked.appointment.id, requested_duration=60)

        assert result.success
        assert result.appointment.duration_minutes == 60

    @pytest.mark.asyncio
    async def test_rejection_leaves_original(self, booking, repository, loc2):
        await _seed(repository, "a-1", "pat-2", "doc-1", "11:00", loc2)
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")

        result = await booking.reschedule(booked.appointment.id, requested_time="11:10")

        assert not result.success
        assert result.reason_code == FeasibilityReason.TIME_OVERLAP
        stored = await repository.get_appointment(booked.appointment.id)
        assert stored.start_minute == 540

    @pytest.mark.asyncio
    async def test_move_to_other_doctor(self, booking, repository):
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")

        result = await booking.reschedule(booked.appointment.id, doctor_id="doc-2")

        assert result.success
        assert result.appointment.doctor_id == "doc-2"
        assert await repository.get_active_schedule("doc-1") == []

    @pytest.mark.asyncio
    async def test_change_patient_resolves_new_location(self, booking, loc2):
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")

        result = await booking.reschedule(booked.appointment.id, patient_id="pat-2")

        assert result.appointment.patient_id == "pat-2"
        assert result.appointment.location == loc2

    @pytest.mark.asyncio
    async def test_cancelled_cannot_be_edited(self, booking):
        booked = await booking.validate_and_book("pat-1", "doc-1", "09:00")
        await booking.cancel(booked.appointment.id)

        with pytest.raises(InvalidStatusTransitionError):
            await booking.reschedule(booked.appointment.id, requested_time="10:00")

    @pytest.mark.asyncio
    async def test_unknown_appointment_raises(self, booking):
        with pytest.raises(AppointmentNotFoundError):
            await booking.reschedule("nope", requested_time="10:00")


class TestDoctorRoute:
    @pytest.mark.asyncio
    async def test_route_with_travel_between_stops(self, booking, repository, oracle, loc1, loc2):
        oracle.set(loc1, loc2, 17)
        await _seed(repository, "a-2", "pat-2", "doc-1", "11:00", loc2)
        await _seed(repository, "a-1", "pat-1", "doc-1", "09:00", loc1)
        await _seed(repository, "a-3", "pat-3", "doc-1", "13:00", loc2, status=AppointmentStatus.CANCELLED)

        stops = await booking.get_doctor_route("doc-1")

        assert [s.appointment_id for s in stops] == ["a-1", "a-2"]
        assert [s.travel_minutes_from_previous for s in stops] == [0, 17]
        assert stops[0].time_label == "09:00"

    @pytest.mark.asyncio
    async def test_unknown_doctor_raises(self, booking):
        with pytest.raises(DoctorNotFoundError):
            await booking.get_doctor_route("doc-missing")
