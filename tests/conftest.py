"""Pytest configuration and fixtures."""

from typing import Optional

import pytest

from homevisit.config import Settings
from homevisit.scheduling.booking import BookingService
from homevisit.scheduling.feasibility import FeasibilityEngine
from homevisit.scheduling.locations import LocationResolver
from homevisit.scheduling.models import Doctor, DoctorStatus, GeoLocation, Patient
from homevisit.scheduling.ranker import DoctorRanker
from homevisit.scheduling.repository import InMemoryScheduleRepository
from homevisit.scheduling.travel import TravelTimeOracle


class FakeTravelOracle(TravelTimeOracle):
    """Oracle answering from a lookup table keyed by coordinate pair."""

    backend = "fake"

    def __init__(self, default: int = 10, table: Optional[dict] = None):
        self.default = default
        self.table = table or {}
        self.calls: list[tuple] = []

    def set(self, origin: GeoLocation, destination: GeoLocation, minutes: int) -> None:
        key = ((origin.latitude, origin.longitude), (destination.latitude, destination.longitude))
        self.table[key] = minutes

    async def estimate_travel_minutes(self, origin_lat, origin_lng, dest_lat, dest_lng) -> int:
        self.calls.append((origin_lat, origin_lng, dest_lat, dest_lng))
        if not all([origin_lat, origin_lng, dest_lat, dest_lng]):
            return 0
        return self.table.get(((origin_lat, origin_lng), (dest_lat, dest_lng)), self.default)


@pytest.fixture
def loc1() -> GeoLocation:
    return GeoLocation(latitude=24.150, longitude=120.650, address="North District")


@pytest.fixture
def loc2() -> GeoLocation:
    return GeoLocation(latitude=24.140, longitude=120.680, address="West District")


@pytest.fixture
def loc3() -> GeoLocation:
    return GeoLocation(latitude=24.120, longitude=120.700, address="South District")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'homevisit.db'}",
        event_log_dir=tmp_path / "logs",
        event_log_enabled=False,
        travel_backend="haversine",
    )


@pytest.fixture
def oracle() -> FakeTravelOracle:
    return FakeTravelOracle(default=10)


@pytest.fixture
def repository(loc1, loc2, loc3) -> InMemoryScheduleRepository:
    return InMemoryScheduleRepository(
        doctors=[
            Doctor(id="doc-1", name="Dr. Chen"),
            Doctor(id="doc-2", name="Dr. Lin"),
            Doctor(id="doc-3", name="Dr. Wu", status=DoctorStatus.ON_LEAVE),
        ],
        patients=[
            Patient(id="pat-1", name="Wang", location=loc1),
            Patient(id="pat-2", name="Huang", location=loc2),
            Patient(id="pat-3", name="Tsai", location=loc3),
            Patient(id="pat-4", name="Lee"),
        ],
    )


@pytest.fixture
def engine(oracle) -> FeasibilityEngine:
    return FeasibilityEngine(oracle, buffer_minutes=5)


@pytest.fixture
def resolver(repository) -> LocationResolver:
    return LocationResolver(repository)


@pytest.fixture
def ranker(repository, engine, resolver) -> DoctorRanker:
    return DoctorRanker(repository, engine, resolver)


@pytest.fixture
def booking(repository, engine, resolver) -> BookingService:
    return BookingService(repository, engine, resolver)
