"""SQLAlchemy-backed schedule repository."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homevisit.core.models import AppointmentRecord, DoctorRecord, PatientRecord
from homevisit.scheduling.models import (
    Appointment,
    AppointmentStatus,
    Doctor,
    GeoLocation,
    Patient,
)
from homevisit.scheduling.repository import ScheduleRepository


def _doctor_from_record(record: DoctorRecord) -> Doctor:
    return Doctor(id=record.id, name=record.name, status=record.status)


def _patient_from_record(record: PatientRecord) -> Patient:
    location = None
    if record.latitude is not None or record.longitude is not None or record.address:
        location = GeoLocation(
            latitude=record.latitude,
            longitude=record.longitude,
            address=record.address or "",
        )
    return Patient(id=record.id, name=record.name, location=location)


def _appointment_from_record(record: AppointmentRecord) -> Appointment:
    return Appointment(
        id=record.id,
        patient_id=record.patient_id,
        doctor_id=record.doctor_id,
        start_minute=record.start_minute,
        duration_minutes=record.duration_minutes,
        status=record.status,
        location=GeoLocation(
            latitude=record.latitude,
            longitude=record.longitude,
            address=record.address or "",
        ),
        time_text=record.time_text,
        case_details=record.case_details,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class SqlScheduleRepository(ScheduleRepository):
    """Schedule repository over an async SQLAlchemy session factory.

    Each call runs in its own session; writes commit before returning.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # Seeding

    async def add_doctor(self, doctor: Doctor) -> None:
        async with self._session() as session:
            await session.merge(
                DoctorRecord(id=doctor.id, name=doctor.name, status=doctor.status)
            )

    async def add_patient(self, patient: Patient) -> None:
        location = patient.location or GeoLocation()
        async with self._session() as session:
            await session.merge(
                PatientRecord(
                    id=patient.id,
                    name=patient.name,
                    latitude=location.latitude,
                    longitude=location.longitude,
                    address=location.address or None,
                )
            )

    # ScheduleRepository

    async def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        async with self._session() as session:
            record = await session.get(DoctorRecord, doctor_id)
            return _doctor_from_record(record) if record else None

    async def list_doctors(self) -> list[Doctor]:
        async with self._session() as session:
            result = await session.execute(select(DoctorRecord).order_by(DoctorRecord.id))
            return [_doctor_from_record(r) for r in result.scalars().all()]

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        async with self._session() as session:
            record = await session.get(PatientRecord, patient_id)
            return _patient_from_record(record) if record else None

    async def get_active_schedule(self, doctor_id: str) -> list[Appointment]:
        stmt = (
            select(AppointmentRecord)
            .where(
                AppointmentRecord.doctor_id == doctor_id,
                AppointmentRecord.status != AppointmentStatus.CANCELLED,
            )
            .order_by(AppointmentRecord.start_minute)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_appointment_from_record(r) for r in result.scalars().all()]

    async def get_active_appointments_for_patient(self, patient_id: str) -> list[Appointment]:
        stmt = (
            select(AppointmentRecord)
            .where(
                AppointmentRecord.patient_id == patient_id,
                AppointmentRecord.status != AppointmentStatus.CANCELLED,
            )
            .order_by(AppointmentRecord.start_minute)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_appointment_from_record(r) for r in result.scalars().all()]

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        async with self._session() as session:
            record = await session.get(AppointmentRecord, appointment_id)
            return _appointment_from_record(record) if record else None

    async def list_appointments(
        self, status: Optional[AppointmentStatus] = None
    ) -> list[Appointment]:
        stmt = select(AppointmentRecord).order_by(
            AppointmentRecord.start_minute, AppointmentRecord.id
        )
        if status is not None:
            stmt = stmt.where(AppointmentRecord.status == status)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_appointment_from_record(r) for r in result.scalars().all()]

    async def persist_appointment(self, appointment: Appointment) -> str:
        async with self._session() as session:
            record = await session.get(AppointmentRecord, appointment.id)
            if record is None:
                record = AppointmentRecord(id=appointment.id, created_at=appointment.created_at)
                session.add(record)
            record.patient_id = appointment.patient_id
            record.doctor_id = appointment.doctor_id
            record.start_minute = appointment.start_minute
            record.duration_minutes = appointment.duration_minutes
            record.status = appointment.status
            record.latitude = appointment.location.latitude
            record.longitude = appointment.location.longitude
            record.address = appointment.location.address or None
            record.time_text = appointment.time_text
            record.case_details = appointment.case_details
            record.updated_at = datetime.now(timezone.utc)
        return appointment.id
