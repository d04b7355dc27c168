"""Doctor recommendation: which doctors can take a visit, cheapest travel first."""

import asyncio
import logging
from typing import Optional

from homevisit.scheduling.errors import AppointmentNotFoundError, PatientNotFoundError
from homevisit.scheduling.feasibility import FeasibilityEngine
from homevisit.scheduling.locations import LocationResolver
from homevisit.scheduling.models import (
    CandidateVisit,
    Doctor,
    DoctorCandidate,
    DoctorStatus,
)
from homevisit.scheduling.repository import ScheduleRepository
from homevisit.scheduling.timeutil import TimeInput, format_minutes, to_minutes

logger = logging.getLogger(__name__)


class DoctorRanker:
    """Runs the feasibility check against every doctor on the roster.

    Doctor status is informational here: a doctor is ranked when their
    schedule has room, unless ``available_only`` is set.
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        engine: FeasibilityEngine,
        resolver: LocationResolver,
        default_duration_minutes: int = 30,
        concurrency: int = 8,
        memoize_travel: bool = True,
        available_only: bool = False,
    ):
        self.repository = repository
        self.engine = engine
        self.resolver = resolver
        self.default_duration_minutes = default_duration_minutes
        self.concurrency = concurrency
        self.memoize_travel = memoize_travel
        self.available_only = available_only

    async def find_candidates(
        self,
        patient_id: str,
        requested_time: TimeInput,
        requested_duration: Optional[int] = None,
    ) -> list[DoctorCandidate]:
        """Rank doctors who can feasibly take the requested visit.

        Args:
            patient_id: Patient to visit
            requested_time: Wall-clock start (``HH:MM`` or a date-time)
            requested_duration: Visit length in minutes (default from settings)

        Returns:
            Feasible doctors ordered by travel minutes from their preceding
            visit, then doctor id. Empty when no doctor can take the visit.

        Raises:
            PatientNotFoundError: If the patient does not exist
        """
        patient = await self.repository.get_patient(patient_id)
        if patient is None:
            raise PatientNotFoundError(patient_id)

        candidate = CandidateVisit(
            patient_id=patient_id,
            start_minute=to_minutes(requested_time),
            duration_minutes=requested_duration or self.default_duration_minutes,
            location=await self.resolver.resolve(patient_id),
        )

        doctors = await self.repository.list_doctors()
        if self.available_only:
            doctors = [d for d in doctors if d.status == DoctorStatus.AVAILABLE]
        return await self._rank(candidate, doctors)

    async def find_alternatives(self, appointment_id: str) -> list[DoctorCandidate]:
        """Available doctors, other than the assigned one, who could take over a visit.

        The visit keeps its patient, location, start and duration. Only
        doctors with status Available are offered, whatever
        ``available_only`` says.

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
        """
        appointment = await self.repository.get_appointment(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)

        candidate = CandidateVisit(
            patient_id=appointment.patient_id,
            start_minute=appointment.start_minute,
            duration_minutes=appointment.duration_minutes,
            location=appointment.location,
        )
        doctors = [
            d for d in await self.repository.list_doctors()
            if d.id != appointment.doctor_id and d.status == DoctorStatus.AVAILABLE
        ]
        return await self._rank(candidate, doctors, exclude_appointment_id=appointment_id)

    async def _rank(
        self,
        candidate: CandidateVisit,
        doctors: list[Doctor],
        exclude_appointment_id: Optional[str] = None,
    ) -> list[DoctorCandidate]:
        engine = self.engine.memoized() if self.memoize_travel else self.engine
        semaphore = asyncio.Semaphore(self.concurrency)

        async def evaluate(doctor: Doctor) -> Optional[DoctorCandidate]:
            async with semaphore:
                schedule = [
                    a.to_visit()
                    for a in await self.repository.get_active_schedule(doctor.id)
                    if a.id != exclude_appointment_id
                ]
                result = await engine.check_insertion(schedule, candidate)
            if not result.feasible:
                logger.debug(f"Doctor {doctor.id} rejected: {result.reason.value}")
                return None
            return DoctorCandidate(
                doctor_id=doctor.id,
                doctor_name=doctor.name,
                travel_minutes=result.travel_minutes,
            )

        results = await asyncio.gather(*(evaluate(d) for d in doctors))
        ranked = sorted(
            (r for r in results if r is not None),
            key=lambda c: (c.travel_minutes, c.doctor_id),
        )

        logger.info(
            f"{len(ranked)}/{len(doctors)} doctors can visit patient {candidate.patient_id} "
            f"at {format_minutes(candidate.start_minute)}"
        )
        return ranked
