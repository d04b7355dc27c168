"""Booking validation, commit, and the appointment state machine.

Appointment lifecycle::

    (new) -> Pending -> Confirmed
    Pending | Confirmed -> Cancelled   (terminal, record retained)

An edit re-runs the same validation path as a new booking with the edited
appointment excluded from the schedules it is checked against, then
replaces the record under the same id.

Commits for the same doctor (and the same patient) are serialized with
per-key ``asyncio.Lock``s around "fetch schedule -> validate -> persist".
The locks are process-local; a multi-process deployment needs the same
guarantee from the database.
"""

import asyncio
import logging
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, time
from typing import Iterable, Optional

from homevisit.observability import SchedulingEventLogger
from homevisit.scheduling.errors import (
    AppointmentNotFoundError,
    DoctorNotFoundError,
    InvalidStatusTransitionError,
    PatientNotFoundError,
    SchedulingError,
)
from homevisit.scheduling.feasibility import FeasibilityEngine
from homevisit.scheduling.locations import LocationResolver
from homevisit.scheduling.models import (
    Appointment,
    AppointmentStatus,
    BookingResult,
    CandidateVisit,
    ConflictCheck,
    Doctor,
    DoctorStatus,
    FeasibilityReason,
    FeasibilityResult,
    GeoLocation,
    RouteStop,
)
from homevisit.scheduling.repository import ScheduleRepository
from homevisit.scheduling.timeutil import TimeInput, format_minutes, to_minutes

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[AppointmentStatus, set[AppointmentStatus]] = {
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.CANCELLED},
    AppointmentStatus.CANCELLED: set(),
}


def _time_text(requested_time: TimeInput, start_minute: int) -> str:
    if isinstance(requested_time, str) and requested_time.strip():
        return requested_time.strip()
    if isinstance(requested_time, (datetime, time)):
        return requested_time.isoformat()
    return format_minutes(start_minute)


class BookingService:
    """Commits home visits after re-validating them against fresh data."""

    def __init__(
        self,
        repository: ScheduleRepository,
        engine: FeasibilityEngine,
        resolver: LocationResolver,
        events: Optional[SchedulingEventLogger] = None,
        default_duration_minutes: int = 30,
    ):
        self.repository = repository
        self.engine = engine
        self.resolver = resolver
        self.events = events or SchedulingEventLogger(enabled=False)
        self.default_duration_minutes = default_duration_minutes

        self._doctor_locks: dict[str, asyncio.Lock] = {}
        self._patient_locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _locked(self, doctor_ids: Iterable[Optional[str]], patient_ids: Iterable[Optional[str]]):
        """Hold the doctor locks, then the patient locks, each in sorted order."""
        async with AsyncExitStack() as stack:
            for doctor_id in sorted({d for d in doctor_ids if d}):
                lock = self._doctor_locks.setdefault(doctor_id, asyncio.Lock())
                await stack.enter_async_context(lock)
            for patient_id in sorted({p for p in patient_ids if p}):
                lock = self._patient_locks.setdefault(patient_id, asyncio.Lock())
                await stack.enter_async_context(lock)
            yield

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _require_doctor(self, doctor_id: str) -> Doctor:
        doctor = await self.repository.get_doctor(doctor_id)
        if doctor is None:
            raise DoctorNotFoundError(doctor_id)
        return doctor

    async def _require_patient(self, patient_id: str) -> None:
        if await self.repository.get_patient(patient_id) is None:
            raise PatientNotFoundError(patient_id)

    async def _require_appointment(self, appointment_id: str) -> Appointment:
        appointment = await self.repository.get_appointment(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)
        return appointment

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def _evaluate(
        self,
        doctor: Doctor,
        candidate: CandidateVisit,
        exclude_appointment_id: Optional[str] = None,
    ) -> FeasibilityResult:
        """Doctor status, doctor schedule, then patient exact-start collision."""
        if doctor.status != DoctorStatus.AVAILABLE:
            return FeasibilityResult.rejected(
                FeasibilityReason.DOCTOR_UNAVAILABLE,
                f"Doctor {doctor.name} is {doctor.status.value}",
            )

        schedule = [
            a.to_visit()
            for a in await self.repository.get_active_schedule(doctor.id)
            if a.id != exclude_appointment_id
        ]
        result = await self.engine.check_insertion(schedule, candidate)
        if not result.feasible:
            return result

        for existing in await self.repository.get_active_appointments_for_patient(candidate.patient_id):
            if existing.id != exclude_appointment_id and existing.start_minute == candidate.start_minute:
                return FeasibilityResult.rejected(
                    FeasibilityReason.PATIENT_DOUBLE_BOOKED,
                    f"Patient already has an appointment at {format_minutes(candidate.start_minute)}",
                    conflicting_appointment_id=existing.id,
                )
        return result

    def _record(
        self,
        operation: str,
        doctor_id: str,
        candidate: CandidateVisit,
        result: FeasibilityResult,
        appointment_id: Optional[str] = None,
    ) -> None:
        if result.feasible:
            logger.info(
                f"{operation}: accepted patient {candidate.patient_id} with doctor {doctor_id} "
                f"at {format_minutes(candidate.start_minute)} ({appointment_id})"
            )
        else:
            logger.info(
                f"{operation}: rejected patient {candidate.patient_id} with doctor {doctor_id} "
                f"at {format_minutes(candidate.start_minute)}: {result.reason.value}"
            )
        self.events.log_booking_decision(
            operation=operation,
            doctor_id=doctor_id,
            patient_id=candidate.patient_id,
            start_minute=candidate.start_minute,
            duration_minutes=candidate.duration_minutes,
            accepted=result.feasible,
            reason_code=result.reason.value if result.reason else None,
            shortfall_minutes=result.shortfall_minutes,
            appointment_id=appointment_id,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def check_conflict(
        self,
        doctor_id: str,
        patient_id: str,
        requested_time: TimeInput,
        requested_duration: Optional[int] = None,
    ) -> ConflictCheck:
        """Check whether a booking would be accepted, without committing."""
        doctor = await self._require_doctor(doctor_id)
        await self._require_patient(patient_id)

        candidate = CandidateVisit(
            patient_id=patient_id,
            start_minute=to_minutes(requested_time),
            duration_minutes=requested_duration or self.default_duration_minutes,
            location=await self.resolver.resolve(patient_id),
        )
        result = await self._evaluate(doctor, candidate)
        return ConflictCheck(
            available=result.feasible,
            reason=result.message,
            reason_code=result.reason,
            shortfall_minutes=result.shortfall_minutes,
        )

    async def validate_and_book(
        self,
        patient_id: str,
        doctor_id: str,
        requested_time: TimeInput,
        requested_duration: Optional[int] = None,
        case_details: Optional[str] = None,
        address: Optional[str] = None,
    ) -> BookingResult:
        """Validate a visit against fresh data and persist it as Pending.

        Args:
            patient_id: Patient to visit
            doctor_id: Chosen doctor
            requested_time: Wall-clock start
            requested_duration: Visit length in minutes
            case_details: Free-text notes stored with the appointment
            address: Address recorded instead of the patient's stored one

        Returns:
            BookingResult with the new appointment, or the rejection reason

        Raises:
            PatientNotFoundError: If the patient does not exist
            DoctorNotFoundError: If the doctor does not exist
        """
        start_minute = to_minutes(requested_time)
        duration = requested_duration or self.default_duration_minutes

        async with self._locked([doctor_id], [patient_id]):
            doctor = await self._require_doctor(doctor_id)
            await self._require_patient(patient_id)

            candidate = CandidateVisit(
                patient_id=patient_id,
                start_minute=start_minute,
                duration_minutes=duration,
                location=await self.resolver.resolve(patient_id, address),
            )
            result = await self._evaluate(doctor, candidate)
            if not result.feasible:
                self._record("book", doctor_id, candidate, result)
                return BookingResult.from_rejection(result)

            appointment = Appointment(
                id=str(uuid.uuid4()),
                patient_id=patient_id,
                doctor_id=doctor_id,
                start_minute=start_minute,
                duration_minutes=duration,
                status=AppointmentStatus.PENDING,
                location=candidate.location,
                time_text=_time_text(requested_time, start_minute),
                case_details=case_details,
            )
            await self.repository.persist_appointment(appointment)
            self._record("book", doctor_id, candidate, result, appointment.id)

        return BookingResult(
            success=True,
            appointment=appointment,
            message=f"Booked with {doctor.name} at {format_minutes(start_minute)}",
        )

    async def reschedule(
        self,
        appointment_id: str,
        requested_time: TimeInput = None,
        doctor_id: Optional[str] = None,
        requested_duration: Optional[int] = None,
        patient_id: Optional[str] = None,
        case_details: Optional[str] = None,
        address: Optional[str] = None,
    ) -> BookingResult:
        """Edit an appointment's time, doctor, duration or patient.

        Omitted fields keep their current values. The edited appointment
        goes through full booking validation with its old slot released;
        on rejection the stored record is left unchanged.

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
            InvalidStatusTransitionError: If the appointment is cancelled
        """
        current = await self._require_appointment(appointment_id)
        target_doctor_id = doctor_id or current.doctor_id
        target_patient_id = patient_id or current.patient_id
        if not target_doctor_id:
            raise SchedulingError(f"Appointment {appointment_id} has no doctor assigned")

        async with self._locked(
            [current.doctor_id, target_doctor_id],
            [current.patient_id, target_patient_id],
        ):
            current = await self._require_appointment(appointment_id)
            if current.status == AppointmentStatus.CANCELLED:
                raise InvalidStatusTransitionError(
                    f"Cannot edit cancelled appointment {appointment_id}"
                )

            doctor = await self._require_doctor(target_doctor_id)
            await self._require_patient(target_patient_id)

            if requested_time is None:
                start_minute = current.start_minute
                time_text = current.time_text
            else:
                start_minute = to_minutes(requested_time)
                time_text = _time_text(requested_time, start_minute)

            if target_patient_id != current.patient_id:
                location = await self.resolver.resolve(target_patient_id, address)
            else:
                location = current.location.model_copy()
                if address:
                    location.address = address

            candidate = CandidateVisit(
                patient_id=target_patient_id,
                start_minute=start_minute,
                duration_minutes=requested_duration or current.duration_minutes,
                location=location,
            )
            result = await self._evaluate(doctor, candidate, exclude_appointment_id=appointment_id)
            if not result.feasible:
                self._record("reschedule", target_doctor_id, candidate, result, appointment_id)
                return BookingResult.from_rejection(result)

            updated = current.model_copy(
                update={
                    "patient_id": target_patient_id,
                    "doctor_id": target_doctor_id,
                    "start_minute": start_minute,
                    "duration_minutes": candidate.duration_minutes,
                    "location": location,
                    "time_text": time_text,
                    "case_details": case_details if case_details is not None else current.case_details,
                }
            )
            await self.repository.persist_appointment(updated)
            self._record("reschedule", target_doctor_id, candidate, result, appointment_id)

        return BookingResult(
            success=True,
            appointment=await self.repository.get_appointment(appointment_id),
            message=f"Rescheduled with {doctor.name} at {format_minutes(start_minute)}",
        )

    async def _transition(self, appointment_id: str, target: AppointmentStatus) -> Appointment:
        current = await self._require_appointment(appointment_id)
        async with self._locked([current.doctor_id], [current.patient_id]):
            current = await self._require_appointment(appointment_id)
            if target not in _ALLOWED_TRANSITIONS[current.status]:
                raise InvalidStatusTransitionError(
                    f"Cannot change appointment {appointment_id} from "
                    f"{current.status.value} to {target.value}"
                )
            current.status = target
            await self.repository.persist_appointment(current)

        logger.info(f"Appointment {appointment_id} is now {target.value}")
        return await self._require_appointment(appointment_id)

    async def confirm(self, appointment_id: str) -> Appointment:
        """Pending -> Confirmed."""
        return await self._transition(appointment_id, AppointmentStatus.CONFIRMED)

    async def cancel(self, appointment_id: str) -> Appointment:
        """Pending | Confirmed -> Cancelled. The record is retained."""
        return await self._transition(appointment_id, AppointmentStatus.CANCELLED)

    async def get_doctor_route(self, doctor_id: str) -> list[RouteStop]:
        """Ordered active visits of a doctor with travel from the previous stop."""
        await self._require_doctor(doctor_id)
        schedule = await self.repository.get_active_schedule(doctor_id)
        oracle = self.engine.memoized().oracle

        stops: list[RouteStop] = []
        previous: Optional[GeoLocation] = None
        for appointment in schedule:
            travel = 0
            if previous is not None:
                travel = await oracle.between(previous, appointment.location)
            stops.append(
                RouteStop(
                    appointment_id=appointment.id,
                    patient_id=appointment.patient_id,
                    start_minute=appointment.start_minute,
                    duration_minutes=appointment.duration_minutes,
                    location=appointment.location,
                    travel_minutes_from_previous=travel,
                )
            )
            previous = appointment.location
        return stops
