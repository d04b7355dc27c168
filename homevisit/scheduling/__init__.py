"""Home-visit feasibility and doctor assignment."""

from homevisit.scheduling.booking import BookingService
from homevisit.scheduling.feasibility import FeasibilityEngine
from homevisit.scheduling.locations import LocationResolver
from homevisit.scheduling.models import (
    Appointment,
    AppointmentStatus,
    BookingResult,
    CandidateVisit,
    ConflictCheck,
    Doctor,
    DoctorCandidate,
    DoctorStatus,
    ExistingVisit,
    FeasibilityReason,
    FeasibilityResult,
    GeoLocation,
    Patient,
    RouteStop,
)
from homevisit.scheduling.ranker import DoctorRanker
from homevisit.scheduling.repository import InMemoryScheduleRepository, ScheduleRepository
from homevisit.scheduling.travel import (
    CachedTravelTimeOracle,
    HaversineTravelEstimator,
    OSRMTravelTimeClient,
    TravelTimeOracle,
    create_travel_oracle,
)

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "BookingResult",
    "BookingService",
    "CachedTravelTimeOracle",
    "CandidateVisit",
    "ConflictCheck",
    "Doctor",
    "DoctorCandidate",
    "DoctorRanker",
    "DoctorStatus",
    "ExistingVisit",
    "FeasibilityEngine",
    "FeasibilityReason",
    "FeasibilityResult",
    "GeoLocation",
    "HaversineTravelEstimator",
    "InMemoryScheduleRepository",
    "LocationResolver",
    "OSRMTravelTimeClient",
    "Patient",
    "RouteStop",
    "ScheduleRepository",
    "TravelTimeOracle",
    "create_travel_oracle",
]
