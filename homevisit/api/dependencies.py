"""FastAPI dependencies resolving services from application state."""

from fastapi import Request

from homevisit.scheduling.booking import BookingService
from homevisit.scheduling.ranker import DoctorRanker
from homevisit.scheduling.repository import ScheduleRepository


def get_repository(request: Request) -> ScheduleRepository:
    return request.app.state.repository


def get_ranker(request: Request) -> DoctorRanker:
    return request.app.state.ranker


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking
