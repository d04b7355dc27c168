"""Structured scheduling events."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of scheduling events."""

    TRAVEL_QUERY = "travel_query"
    BOOKING_DECISION = "booking_decision"


class TravelOutcome(str, Enum):
    """How a travel-time query was answered."""

    OK = "ok"
    NO_ROUTE = "no_route"
    FALLBACK = "fallback"
    SKIPPED = "skipped"


class SchedulingEvent(BaseModel):
    """Base class for all scheduling events."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TravelQueryEvent(SchedulingEvent):
    """One call to the travel-time oracle."""

    event_type: EventType = EventType.TRAVEL_QUERY
    backend: str
    origin: tuple[Optional[float], Optional[float]]
    destination: tuple[Optional[float], Optional[float]]
    minutes: Optional[int] = None
    outcome: Optional[TravelOutcome] = None

    # Error fields (populated on fallback)
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class BookingDecisionEvent(SchedulingEvent):
    """Accept/reject decision of the booking validator."""

    event_type: EventType = EventType.BOOKING_DECISION
    operation: str
    doctor_id: str
    patient_id: str
    start_minute: int
    duration_minutes: int
    accepted: bool
    reason_code: Optional[str] = None
    shortfall_minutes: Optional[int] = None
    appointment_id: Optional[str] = None
