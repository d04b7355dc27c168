"""JSON Lines logger for scheduling events."""

import json
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from homevisit.observability.events import (
    BookingDecisionEvent,
    SchedulingEvent,
    TravelOutcome,
    TravelQueryEvent,
)

logger = logging.getLogger(__name__)


class SchedulingEventLogger:
    """Writes travel queries and booking decisions to JSON Lines files.

    Failures to write are logged and swallowed so that event logging can
    never break a scheduling request.
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enabled: bool = True,
    ):
        """Initialize the event logger.

        Args:
            log_dir: Directory for log files (default: data/logs)
            enabled: Whether logging is enabled
        """
        self.enabled = enabled

        if log_dir is None:
            log_dir = Path("data/logs")
        self.log_dir = log_dir
        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self._log_files: dict[str, Path] = {
            "travel": self.log_dir / "travel_queries.jsonl",
            "booking": self.log_dir / "booking_decisions.jsonl",
        }

        # Event callbacks for real-time monitoring
        self._callbacks: list[Callable[[SchedulingEvent], None]] = []

    def add_callback(self, callback: Callable[[SchedulingEvent], None]) -> None:
        """Add callback for real-time event monitoring."""
        self._callbacks.append(callback)

    def _write_event(self, event: SchedulingEvent, log_type: str) -> None:
        """Write event to the appropriate log file."""
        if not self.enabled:
            return

        try:
            log_file = self._log_files.get(log_type)
            if log_file:
                with open(log_file, "a") as f:
                    f.write(event.model_dump_json() + "\n")

            for callback in self._callbacks:
                try:
                    callback(event)
                except Exception as e:
                    logger.warning(f"Event callback failed: {e}")

        except Exception as e:
            logger.warning(f"Failed to write scheduling event: {e}")

    @contextmanager
    def travel_query(
        self,
        backend: str,
        origin: tuple[Optional[float], Optional[float]],
        destination: tuple[Optional[float], Optional[float]],
        request_id: Optional[str] = None,
    ):
        """Context manager for logging one travel-time query.

        Usage:
            with events.travel_query("osrm", (lat1, lng1), (lat2, lng2)) as event:
                event.minutes = await fetch()
                event.outcome = TravelOutcome.OK
        """
        start_time = time.time()
        event = TravelQueryEvent(
            backend=backend,
            origin=origin,
            destination=destination,
            request_id=request_id,
        )

        try:
            yield event
        except Exception as e:
            event.outcome = TravelOutcome.FALLBACK
            event.error_type = type(e).__name__
            event.error_message = str(e)[:200]
            raise
        finally:
            event.duration_ms = (time.time() - start_time) * 1000
            self._write_event(event, "travel")

    def log_booking_decision(
        self,
        operation: str,
        doctor_id: str,
        patient_id: str,
        start_minute: int,
        duration_minutes: int,
        accepted: bool,
        reason_code: Optional[str] = None,
        shortfall_minutes: Optional[int] = None,
        appointment_id: Optional[str] = None,
    ) -> None:
        """Log an accept/reject decision."""
        event = BookingDecisionEvent(
            operation=operation,
            doctor_id=doctor_id,
            patient_id=patient_id,
            start_minute=start_minute,
            duration_minutes=duration_minutes,
            accepted=accepted,
            reason_code=reason_code,
            shortfall_minutes=shortfall_minutes,
            appointment_id=appointment_id,
        )
        self._write_event(event, "booking")

    # Utility methods

    def get_recent_events(
        self,
        log_type: str,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Read recent events from a log file."""
        log_file = self._log_files.get(log_type)
        if not log_file or not log_file.exists():
            return []

        events = []
        with open(log_file) as f:
            for line in f:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

        return events[-limit:]

    def get_stats(self, log_type: str) -> dict[str, Any]:
        """Get basic statistics for a log type."""
        events = self.get_recent_events(log_type, limit=1000)
        if not events:
            return {"total": 0}

        total = len(events)
        avg_duration = sum(e.get("duration_ms") or 0 for e in events) / total
        stats: dict[str, Any] = {"total": total, "avg_duration_ms": avg_duration}

        if log_type == "travel":
            outcomes: dict[str, int] = {}
            for e in events:
                key = e.get("outcome") or "unknown"
                outcomes[key] = outcomes.get(key, 0) + 1
            stats["outcomes"] = outcomes
            stats["fallback_rate"] = outcomes.get(TravelOutcome.FALLBACK.value, 0) / total
        elif log_type == "booking":
            rejected = sum(1 for e in events if not e.get("accepted"))
            stats["rejected"] = rejected
            stats["rejection_rate"] = rejected / total

        return stats
