"""Scheduling API endpoints: doctor recommendation, booking and lifecycle."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from homevisit.api.dependencies import get_booking_service, get_ranker, get_repository
from homevisit.scheduling.booking import BookingService
from homevisit.scheduling.errors import (
    AppointmentNotFoundError,
    DoctorNotFoundError,
    InvalidStatusTransitionError,
    PatientNotFoundError,
    SchedulingError,
)
from homevisit.scheduling.models import (
    Appointment,
    AppointmentStatus,
    BookingResult,
    ConflictCheck,
    DoctorCandidate,
    GeoLocation,
)
from homevisit.scheduling.ranker import DoctorRanker
from homevisit.scheduling.repository import ScheduleRepository
from homevisit.scheduling.timeutil import format_minutes, to_minutes

router = APIRouter(prefix="/scheduling")


# ---------------------------------------------------------------------------
# Pydantic request/response schemas
# ---------------------------------------------------------------------------

class FindDoctorsRequest(BaseModel):
    patient_id: str
    requested_time: str
    duration_minutes: Optional[int] = Field(default=None, gt=0)


class FindDoctorsResponse(BaseModel):
    patient_id: str
    start_time: str
    doctors: list[DoctorCandidate] = []


class CheckAvailabilityRequest(BaseModel):
    doctor_id: str
    patient_id: str
    requested_time: str
    duration_minutes: Optional[int] = Field(default=None, gt=0)


class AlternativesResponse(BaseModel):
    appointment_id: str
    current_doctor_id: Optional[str] = None
    start_time: str
    doctors: list[DoctorCandidate] = []


class AppointmentCreate(BaseModel):
    patient_id: str
    doctor_id: str
    requested_time: str
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    case_details: Optional[str] = None
    address: Optional[str] = None


class AppointmentUpdate(BaseModel):
    requested_time: Optional[str] = None
    doctor_id: Optional[str] = None
    patient_id: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    case_details: Optional[str] = None
    address: Optional[str] = None


class AppointmentResponse(BaseModel):
    id: str
    patient_id: str
    doctor_id: Optional[str] = None
    start_time: str
    end_time: str
    start_minute: int
    duration_minutes: int
    status: str
    location: GeoLocation
    time_text: Optional[str] = None
    case_details: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RouteStopResponse(BaseModel):
    appointment_id: str
    patient_id: str
    start_time: str
    duration_minutes: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: str = ""
    travel_minutes_from_previous: int = 0


class DoctorRouteResponse(BaseModel):
    doctor_id: str
    stops: list[RouteStopResponse] = []
    total_travel_minutes: int = 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _appt_to_response(appt: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appt.id,
        patient_id=appt.patient_id,
        doctor_id=appt.doctor_id,
        start_time=format_minutes(appt.start_minute),
        end_time=format_minutes(appt.end_minute),
        start_minute=appt.start_minute,
        duration_minutes=appt.duration_minutes,
        status=appt.status.value,
        location=appt.location,
        time_text=appt.time_text,
        case_details=appt.case_details,
        created_at=appt.created_at,
        updated_at=appt.updated_at,
    )


def _http_error(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, (PatientNotFoundError, DoctorNotFoundError, AppointmentNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidStatusTransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _rejection(result: BookingResult) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={
            "reason_code": result.reason_code.value if result.reason_code else None,
            "message": result.message,
            "shortfall_minutes": result.shortfall_minutes,
        },
    )


# ---------------------------------------------------------------------------
# Recommendation and probing
# ---------------------------------------------------------------------------

@router.post("/find-available-doctors", response_model=FindDoctorsResponse)
async def find_available_doctors(
    body: FindDoctorsRequest,
    ranker: DoctorRanker = Depends(get_ranker),
) -> FindDoctorsResponse:
    """Doctors who can take the visit, least travel first. Empty means no slot."""
    try:
        doctors = await ranker.find_candidates(
            body.patient_id, body.requested_time, body.duration_minutes
        )
    except SchedulingError as e:
        raise _http_error(e)

    return FindDoctorsResponse(
        patient_id=body.patient_id,
        start_time=format_minutes(to_minutes(body.requested_time)),
        doctors=doctors,
    )


@router.post("/check-availability", response_model=ConflictCheck)
async def check_availability(
    body: CheckAvailabilityRequest,
    booking: BookingService = Depends(get_booking_service),
) -> ConflictCheck:
    """Check a doctor/time pairing without booking it."""
    try:
        return await booking.check_conflict(
            body.doctor_id, body.patient_id, body.requested_time, body.duration_minutes
        )
    except SchedulingError as e:
        raise _http_error(e)


# ---------------------------------------------------------------------------
# Book / get / reschedule / confirm / cancel
# ---------------------------------------------------------------------------

@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def book_appointment(
    body: AppointmentCreate,
    booking: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    """Book a visit; 409 with the reason code when it does not fit."""
    try:
        result = await booking.validate_and_book(
            patient_id=body.patient_id,
            doctor_id=body.doctor_id,
            requested_time=body.requested_time,
            requested_duration=body.duration_minutes,
            case_details=body.case_details,
            address=body.address,
        )
    except SchedulingError as e:
        raise _http_error(e)

    if not result.success:
        raise _rejection(result)
    return _appt_to_response(result.appointment)


@router.get("/appointments", response_model=list[AppointmentResponse])
async def list_appointments(
    status: Optional[AppointmentStatus] = None,
    repository: ScheduleRepository = Depends(get_repository),
) -> list[AppointmentResponse]:
    """All appointments ordered by start time, optionally filtered by status."""
    return [_appt_to_response(a) for a in await repository.list_appointments(status)]


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    repository: ScheduleRepository = Depends(get_repository),
) -> AppointmentResponse:
    appt = await repository.get_appointment(appointment_id)
    if appt is None:
        raise HTTPException(status_code=404, detail=f"Appointment not found: {appointment_id}")
    return _appt_to_response(appt)


@router.get("/appointments/{appointment_id}/alternatives", response_model=AlternativesResponse)
async def find_alternatives(
    appointment_id: str,
    ranker: DoctorRanker = Depends(get_ranker),
    repository: ScheduleRepository = Depends(get_repository),
) -> AlternativesResponse:
    """Other available doctors who could take over an existing visit."""
    try:
        doctors = await ranker.find_alternatives(appointment_id)
    except SchedulingError as e:
        raise _http_error(e)

    appt = await repository.get_appointment(appointment_id)
    return AlternativesResponse(
        appointment_id=appointment_id,
        current_doctor_id=appt.doctor_id,
        start_time=format_minutes(appt.start_minute),
        doctors=doctors,
    )


@router.put("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: str,
    body: AppointmentUpdate,
    booking: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    """Change time, doctor, duration or patient under full re-validation."""
    try:
        result = await booking.reschedule(
            appointment_id,
            requested_time=body.requested_time,
            doctor_id=body.doctor_id,
            requested_duration=body.duration_minutes,
            patient_id=body.patient_id,
            case_details=body.case_details,
            address=body.address,
        )
    except SchedulingError as e:
        raise _http_error(e)

    if not result.success:
        raise _rejection(result)
    return _appt_to_response(result.appointment)


@router.post("/appointments/{appointment_id}/confirm", response_model=AppointmentResponse)
async def confirm_appointment(
    appointment_id: str,
    booking: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    try:
        appt = await booking.confirm(appointment_id)
    except SchedulingError as e:
        raise _http_error(e)
    return _appt_to_response(appt)


@router.delete("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    booking: BookingService = Depends(get_booking_service),
) -> AppointmentResponse:
    """Cancel a visit. The record is kept with status Cancelled."""
    try:
        appt = await booking.cancel(appointment_id)
    except SchedulingError as e:
        raise _http_error(e)
    return _appt_to_response(appt)


# ---------------------------------------------------------------------------
# Doctor route
# ---------------------------------------------------------------------------

@router.get("/doctors/{doctor_id}/route", response_model=DoctorRouteResponse)
async def get_doctor_route(
    doctor_id: str,
    booking: BookingService = Depends(get_booking_service),
) -> DoctorRouteResponse:
    """Ordered active visits of a doctor with travel between stops."""
    try:
        stops = await booking.get_doctor_route(doctor_id)
    except SchedulingError as e:
        raise _http_error(e)

    return DoctorRouteResponse(
        doctor_id=doctor_id,
        stops=[
            RouteStopResponse(
                appointment_id=s.appointment_id,
                patient_id=s.patient_id,
                start_time=s.time_label,
                duration_minutes=s.duration_minutes,
                latitude=s.location.latitude,
                longitude=s.location.longitude,
                address=s.location.address,
                travel_minutes_from_previous=s.travel_minutes_from_previous,
            )
            for s in stops
        ],
        total_travel_minutes=sum(s.travel_minutes_from_previous for s in stops),
    )
