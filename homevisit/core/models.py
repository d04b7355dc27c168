"""SQLAlchemy 2.0 async models for doctors, patients and home visits."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from homevisit.scheduling.models import AppointmentStatus, DoctorStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DoctorRecord(Base):
    __tablename__ = "doctors"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[DoctorStatus] = mapped_column(
        SAEnum(DoctorStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=DoctorStatus.AVAILABLE,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    appointments: Mapped[list[AppointmentRecord]] = relationship(back_populates="doctor")


class PatientRecord(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    address: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    appointments: Mapped[list[AppointmentRecord]] = relationship(back_populates="patient")


class AppointmentRecord(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_doctor_status_start", "doctor_id", "status", "start_minute"),
        Index("ix_appointments_patient_status", "patient_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    patient_id: Mapped[str] = mapped_column(String(64), ForeignKey("patients.id"), nullable=False)
    doctor_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("doctors.id", ondelete="SET NULL"))
    start_minute: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    status: Mapped[AppointmentStatus] = mapped_column(
        SAEnum(AppointmentStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=AppointmentStatus.PENDING,
    )
    # Location resolved at booking time; never re-resolved
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    address: Mapped[str | None] = mapped_column(Text)
    time_text: Mapped[str | None] = mapped_column(String(64))
    case_details: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    doctor: Mapped[DoctorRecord | None] = relationship(back_populates="appointments")
    patient: Mapped[PatientRecord] = relationship(back_populates="appointments")
