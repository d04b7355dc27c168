"""Pydantic models for the scheduling core."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from homevisit.scheduling.timeutil import MINUTES_PER_DAY, format_minutes


class AppointmentStatus(str, Enum):
    """Appointment lifecycle statuses."""

    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


class DoctorStatus(str, Enum):
    """Doctor availability statuses."""

    AVAILABLE = "Available"
    BUSY = "Busy"
    ON_LEAVE = "On Leave"


class FeasibilityReason(str, Enum):
    """Reason codes for a rejected visit."""

    TIME_OVERLAP = "TimeOverlap"
    INSUFFICIENT_TRAVEL_FROM_PREVIOUS = "InsufficientTravelTimeFromPrevious"
    INSUFFICIENT_TRAVEL_TO_NEXT = "InsufficientTravelTimeToNext"
    PATIENT_DOUBLE_BOOKED = "PatientDoubleBooked"
    DOCTOR_UNAVAILABLE = "DoctorUnavailable"


class GeoLocation(BaseModel):
    """A geocoordinate plus free-text address."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: str = ""

    @property
    def has_coordinates(self) -> bool:
        """True when both coordinates are present and non-zero."""
        return bool(self.latitude) and bool(self.longitude)


class Doctor(BaseModel):
    """A doctor who can be assigned home visits."""

    id: str
    name: str
    status: DoctorStatus = DoctorStatus.AVAILABLE


class Patient(BaseModel):
    """A patient receiving home visits."""

    id: str
    name: str
    location: Optional[GeoLocation] = None


class Appointment(BaseModel):
    """A persisted home visit."""

    id: str
    patient_id: str
    doctor_id: Optional[str] = None
    start_minute: int = Field(ge=0, lt=MINUTES_PER_DAY)
    duration_minutes: int = Field(default=30, gt=0)
    status: AppointmentStatus = AppointmentStatus.PENDING
    location: GeoLocation = Field(default_factory=GeoLocation)
    time_text: Optional[str] = None
    case_details: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    @property
    def is_active(self) -> bool:
        return self.status != AppointmentStatus.CANCELLED

    def to_visit(self) -> "ExistingVisit":
        """Project onto the schedule entry used by the feasibility engine."""
        return ExistingVisit(
            appointment_id=self.id,
            start_minute=self.start_minute,
            duration_minutes=self.duration_minutes,
            location=self.location,
        )


class ExistingVisit(BaseModel):
    """A committed entry in a doctor's schedule."""

    appointment_id: Optional[str] = None
    start_minute: int
    duration_minutes: int = Field(default=30, gt=0)
    location: GeoLocation = Field(default_factory=GeoLocation)

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes


class CandidateVisit(BaseModel):
    """A visit being evaluated; not persisted until booked."""

    patient_id: str
    start_minute: int
    duration_minutes: int = Field(default=30, gt=0)
    location: GeoLocation = Field(default_factory=GeoLocation)

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes


class FeasibilityResult(BaseModel):
    """Outcome of inserting a candidate into a schedule.

    ``travel_minutes`` is the travel time from the preceding visit and is
    what the ranker sorts on. ``required_minutes`` is the travel time that
    could not be accommodated, ``shortfall_minutes`` how late the visit
    would start (or end) relative to what the constraint allows.
    """

    feasible: bool
    reason: Optional[FeasibilityReason] = None
    message: str = ""
    travel_minutes: int = 0
    required_minutes: Optional[int] = None
    shortfall_minutes: Optional[int] = None
    conflicting_appointment_id: Optional[str] = None

    @classmethod
    def ok(cls, travel_minutes: int = 0) -> "FeasibilityResult":
        return cls(feasible=True, travel_minutes=travel_minutes)

    @classmethod
    def rejected(
        cls,
        reason: FeasibilityReason,
        message: str,
        **kwargs,
    ) -> "FeasibilityResult":
        return cls(feasible=False, reason=reason, message=message, **kwargs)


class DoctorCandidate(BaseModel):
    """A doctor who can feasibly take the requested visit."""

    doctor_id: str
    doctor_name: Optional[str] = None
    travel_minutes: int = 0


class ConflictCheck(BaseModel):
    """Result of a non-committing availability check."""

    available: bool
    reason: str = ""
    reason_code: Optional[FeasibilityReason] = None
    shortfall_minutes: Optional[int] = None


class BookingResult(BaseModel):
    """Result of a booking or reschedule attempt."""

    success: bool
    appointment: Optional[Appointment] = None
    reason_code: Optional[FeasibilityReason] = None
    message: str = ""
    shortfall_minutes: Optional[int] = None

    @classmethod
    def from_rejection(cls, result: FeasibilityResult) -> "BookingResult":
        return cls(
            success=False,
            reason_code=result.reason,
            message=result.message,
            shortfall_minutes=result.shortfall_minutes,
        )


class RouteStop(BaseModel):
    """One stop in a doctor's day route."""

    appointment_id: str
    patient_id: str
    start_minute: int
    duration_minutes: int
    location: GeoLocation
    travel_minutes_from_previous: int = 0

    @property
    def time_label(self) -> str:
        return format_minutes(self.start_minute)
