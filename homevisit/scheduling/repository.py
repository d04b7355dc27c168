"""Schedule repository interface and an in-memory implementation.

The scheduling core only talks to storage through ``ScheduleRepository``.
``homevisit.core.repository.SqlScheduleRepository`` is the database-backed
implementation; ``InMemoryScheduleRepository`` backs tests and the CLI.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from homevisit.scheduling.models import Appointment, AppointmentStatus, Doctor, Patient


class ScheduleRepository(ABC):
    """Read/write interface consumed by the scheduling core."""

    @abstractmethod
    async def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        pass

    @abstractmethod
    async def list_doctors(self) -> list[Doctor]:
        pass

    @abstractmethod
    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        pass

    @abstractmethod
    async def get_active_schedule(self, doctor_id: str) -> list[Appointment]:
        """Non-cancelled appointments of a doctor, ordered by start ascending."""
        pass

    @abstractmethod
    async def get_active_appointments_for_patient(self, patient_id: str) -> list[Appointment]:
        """Non-cancelled appointments of a patient."""
        pass

    @abstractmethod
    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        pass

    @abstractmethod
    async def list_appointments(
        self, status: Optional[AppointmentStatus] = None
    ) -> list[Appointment]:
        """All appointments, or those with ``status``, ordered by start then id."""
        pass

    @abstractmethod
    async def persist_appointment(self, appointment: Appointment) -> str:
        """Insert or replace an appointment atomically; returns its id."""
        pass


class InMemoryScheduleRepository(ScheduleRepository):
    """Dict-backed repository."""

    def __init__(
        self,
        doctors: Optional[list[Doctor]] = None,
        patients: Optional[list[Patient]] = None,
        appointments: Optional[list[Appointment]] = None,
    ):
        self._doctors: dict[str, Doctor] = {d.id: d for d in doctors or []}
        self._patients: dict[str, Patient] = {p.id: p for p in patients or []}
        self._appointments: dict[str, Appointment] = {a.id: a for a in appointments or []}

    @classmethod
    def from_json_file(cls, path: Path) -> "InMemoryScheduleRepository":
        """Load a roster file with ``doctors``, ``patients`` and ``appointments`` lists."""
        data = json.loads(Path(path).read_text())
        return cls(
            doctors=[Doctor.model_validate(d) for d in data.get("doctors", [])],
            patients=[Patient.model_validate(p) for p in data.get("patients", [])],
            appointments=[Appointment.model_validate(a) for a in data.get("appointments", [])],
        )

    def add_doctor(self, doctor: Doctor) -> None:
        self._doctors[doctor.id] = doctor

    def add_patient(self, patient: Patient) -> None:
        self._patients[patient.id] = patient

    async def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        return self._doctors.get(doctor_id)

    async def list_doctors(self) -> list[Doctor]:
        return sorted(self._doctors.values(), key=lambda d: d.id)

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        return self._patients.get(patient_id)

    async def get_active_schedule(self, doctor_id: str) -> list[Appointment]:
        schedule = [
            a.model_copy(deep=True)
            for a in self._appointments.values()
            if a.doctor_id == doctor_id and a.is_active
        ]
        return sorted(schedule, key=lambda a: a.start_minute)

    async def get_active_appointments_for_patient(self, patient_id: str) -> list[Appointment]:
        return [
            a.model_copy(deep=True)
            for a in self._appointments.values()
            if a.patient_id == patient_id and a.is_active
        ]

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        appt = self._appointments.get(appointment_id)
        return appt.model_copy(deep=True) if appt else None

    async def list_appointments(
        self, status: Optional[AppointmentStatus] = None
    ) -> list[Appointment]:
        appointments = [
            a.model_copy(deep=True)
            for a in self._appointments.values()
            if status is None or a.status == status
        ]
        return sorted(appointments, key=lambda a: (a.start_minute, a.id))

    async def persist_appointment(self, appointment: Appointment) -> str:
        stored = appointment.model_copy(deep=True)
        stored.updated_at = datetime.now(timezone.utc)
        self._appointments[stored.id] = stored
        return stored.id
