"""Feasibility of inserting a home visit into a doctor's schedule.

A candidate is feasible when it overlaps no existing visit and the doctor
can drive from the preceding visit, and on to the following visit, with
``buffer_minutes`` to spare:

    previous.end + travel(previous -> candidate) + buffer <= candidate.start
    candidate.end + travel(candidate -> next) + buffer <= next.start

Only the immediate neighbours matter once overlap is excluded, so at most
two oracle calls are made per check.
"""

import bisect
import logging
from typing import Optional, Sequence

from homevisit.scheduling.models import (
    CandidateVisit,
    ExistingVisit,
    FeasibilityReason,
    FeasibilityResult,
)
from homevisit.scheduling.timeutil import format_minutes, overlaps
from homevisit.scheduling.travel import CachedTravelTimeOracle, TravelTimeOracle

logger = logging.getLogger(__name__)


def find_neighbours(
    schedule: Sequence[ExistingVisit],
    candidate: CandidateVisit,
) -> tuple[Optional[ExistingVisit], Optional[ExistingVisit]]:
    """Return the visits immediately before and after a non-overlapping candidate.

    ``schedule`` must be ordered by start and must not overlap the candidate.
    """
    starts = [v.start_minute for v in schedule]
    idx = bisect.bisect_left(starts, candidate.start_minute)
    previous = schedule[idx - 1] if idx > 0 else None
    following = schedule[idx] if idx < len(schedule) else None
    return previous, following


class FeasibilityEngine:
    """Stateless insertion check against an ordered schedule."""

    def __init__(self, oracle: TravelTimeOracle, buffer_minutes: int = 5):
        self.oracle = oracle
        self.buffer_minutes = buffer_minutes

    def memoized(self) -> "FeasibilityEngine":
        """Engine sharing this configuration with a per-request travel cache."""
        return FeasibilityEngine(CachedTravelTimeOracle(self.oracle), self.buffer_minutes)

    async def check_insertion(
        self,
        schedule: Sequence[ExistingVisit],
        candidate: CandidateVisit,
    ) -> FeasibilityResult:
        """Decide whether ``candidate`` fits into ``schedule``.

        Args:
            schedule: Active visits, ordered by start ascending
            candidate: Visit to insert

        Returns:
            FeasibilityResult; infeasibility is reported, never raised
        """
        if any(
            a.start_minute > b.start_minute for a, b in zip(schedule, schedule[1:])
        ):
            schedule = sorted(schedule, key=lambda v: v.start_minute)

        for existing in schedule:
            if overlaps(
                candidate.start_minute, candidate.end_minute,
                existing.start_minute, existing.end_minute,
            ):
                return FeasibilityResult.rejected(
                    FeasibilityReason.TIME_OVERLAP,
                    f"Time overlap with existing visit "
                    f"{format_minutes(existing.start_minute)}-{format_minutes(existing.end_minute)}",
                    conflicting_appointment_id=existing.appointment_id,
                )

        if not schedule:
            return FeasibilityResult.ok(travel_minutes=0)

        previous, following = find_neighbours(schedule, candidate)

        travel_from_previous = 0
        if previous is not None:
            travel_from_previous = await self.oracle.between(previous.location, candidate.location)
            earliest_start = previous.end_minute + travel_from_previous + self.buffer_minutes
            if earliest_start > candidate.start_minute:
                return FeasibilityResult.rejected(
                    FeasibilityReason.INSUFFICIENT_TRAVEL_FROM_PREVIOUS,
                    f"Not enough travel time from previous visit "
                    f"({travel_from_previous} min needed, earliest start "
                    f"{format_minutes(earliest_start)})",
                    travel_minutes=travel_from_previous,
                    required_minutes=travel_from_previous,
                    shortfall_minutes=earliest_start - candidate.start_minute,
                    conflicting_appointment_id=previous.appointment_id,
                )

        if following is not None:
            travel_to_next = await self.oracle.between(candidate.location, following.location)
            latest_end = following.start_minute - travel_to_next - self.buffer_minutes
            if candidate.end_minute > latest_end:
                return FeasibilityResult.rejected(
                    FeasibilityReason.INSUFFICIENT_TRAVEL_TO_NEXT,
                    f"Will delay the next visit at {format_minutes(following.start_minute)} "
                    f"({travel_to_next} min needed)",
                    travel_minutes=travel_from_previous,
                    required_minutes=travel_to_next,
                    shortfall_minutes=candidate.end_minute - latest_end,
                    conflicting_appointment_id=following.appointment_id,
                )

        logger.debug(
            f"Candidate {format_minutes(candidate.start_minute)} for patient "
            f"{candidate.patient_id} fits (travel from previous {travel_from_previous} min)"
        )
        return FeasibilityResult.ok(travel_minutes=travel_from_previous)
