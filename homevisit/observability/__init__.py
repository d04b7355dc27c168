"""Observability module for scheduling telemetry."""

from homevisit.observability.events import (
    BookingDecisionEvent,
    EventType,
    SchedulingEvent,
    TravelOutcome,
    TravelQueryEvent,
)
from homevisit.observability.logger import SchedulingEventLogger

__all__ = [
    "BookingDecisionEvent",
    "EventType",
    "SchedulingEvent",
    "SchedulingEventLogger",
    "TravelOutcome",
    "TravelQueryEvent",
]
