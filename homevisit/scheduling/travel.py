"""Travel-time estimation between two geocoordinates.

The OSRM client is the production oracle. Its failure contract:

- missing/zero coordinates -> 0 (no-cost assumption, no call made)
- route found -> ceil(duration_seconds / 60)
- service answered but found no route -> ``no_route_minutes`` (default 999)
- call failed (transport error, timeout, malformed body) ->
  ``fallback_minutes`` (default 30) when failing open, otherwise
  ``no_route_minutes``

One attempt per call, no retry. ``CachedTravelTimeOracle`` bounds call
volume within a single request.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from homevisit.observability import SchedulingEventLogger, TravelOutcome
from homevisit.scheduling.errors import OracleUnavailableError
from homevisit.scheduling.models import GeoLocation

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

CoordinateKey = tuple[Optional[float], Optional[float], Optional[float], Optional[float]]


def _missing_coordinates(*coords: Optional[float]) -> bool:
    return any(not c for c in coords)


class TravelTimeOracle(ABC):
    """Abstract travel-time oracle."""

    backend: str = "base"

    @abstractmethod
    async def estimate_travel_minutes(
        self,
        origin_lat: Optional[float],
        origin_lng: Optional[float],
        dest_lat: Optional[float],
        dest_lng: Optional[float],
    ) -> int:
        """Estimated door-to-door driving minutes. Never raises."""
        pass

    async def between(self, origin: GeoLocation, destination: GeoLocation) -> int:
        """Estimate travel minutes between two locations."""
        return await self.estimate_travel_minutes(
            origin.latitude, origin.longitude,
            destination.latitude, destination.longitude,
        )

    async def aclose(self) -> None:
        """Release any held resources."""
        pass


class OSRMTravelTimeClient(TravelTimeOracle):
    """Travel-time oracle backed by an OSRM routing service."""

    backend = "osrm"

    def __init__(
        self,
        base_url: str = "http://router.project-osrm.org",
        profile: str = "driving",
        timeout: float = 5.0,
        fallback_minutes: int = 30,
        no_route_minutes: int = 999,
        fail_open: bool = True,
        client: Optional[httpx.AsyncClient] = None,
        events: Optional[SchedulingEventLogger] = None,
    ):
        """Initialize OSRM client.

        Args:
            base_url: Routing service base URL
            profile: OSRM profile (driving, car, ...)
            timeout: Per-call timeout in seconds
            fallback_minutes: Minutes assumed when the call fails (fail-open)
            no_route_minutes: Minutes reported when no route exists
            fail_open: When False, call failures report ``no_route_minutes``
            client: Optional shared HTTP client (not closed by this object)
            events: Optional event logger for per-call telemetry
        """
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout = timeout
        self.fallback_minutes = fallback_minutes
        self.no_route_minutes = no_route_minutes
        self.fail_open = fail_open
        self.events = events or SchedulingEventLogger(enabled=False)

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @property
    def failure_minutes(self) -> int:
        """Minutes reported when the routing call itself fails."""
        return self.fallback_minutes if self.fail_open else self.no_route_minutes

    async def estimate_travel_minutes(
        self,
        origin_lat: Optional[float],
        origin_lng: Optional[float],
        dest_lat: Optional[float],
        dest_lng: Optional[float],
    ) -> int:
        with self.events.travel_query(
            self.backend, (origin_lat, origin_lng), (dest_lat, dest_lng)
        ) as event:
            if _missing_coordinates(origin_lat, origin_lng, dest_lat, dest_lng):
                event.minutes = 0
                event.outcome = TravelOutcome.SKIPPED
                return 0

            try:
                seconds = await self._route_duration_seconds(
                    origin_lat, origin_lng, dest_lat, dest_lng
                )
            except OracleUnavailableError as e:
                minutes = self.failure_minutes
                logger.warning(
                    f"Routing unavailable for ({origin_lat},{origin_lng})->"
                    f"({dest_lat},{dest_lng}): {e}; using {minutes} min"
                )
                event.minutes = minutes
                event.outcome = TravelOutcome.FALLBACK
                event.error_type = type(e.__cause__ or e).__name__
                event.error_message = str(e)[:200]
                return minutes

            if seconds is None:
                logger.info(
                    f"No route for ({origin_lat},{origin_lng})->({dest_lat},{dest_lng})"
                )
                event.minutes = self.no_route_minutes
                event.outcome = TravelOutcome.NO_ROUTE
                return self.no_route_minutes

            minutes = math.ceil(seconds / 60)
            event.minutes = minutes
            event.outcome = TravelOutcome.OK
            return minutes

    async def _route_duration_seconds(
        self,
        origin_lat: float,
        origin_lng: float,
        dest_lat: float,
        dest_lng: float,
    ) -> Optional[float]:
        """Query OSRM; None means the service reported no viable route."""
        url = (
            f"{self.base_url}/route/v1/{self.profile}/"
            f"{origin_lng},{origin_lat};{dest_lng},{dest_lat}"
        )
        try:
            response = await asyncio.wait_for(
                self._client.get(url, params={"overview": "false"}),
                timeout=self.timeout,
            )
            data = response.json()
        except asyncio.TimeoutError as e:
            raise OracleUnavailableError(f"Routing request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise OracleUnavailableError(f"Routing request failed: {e}") from e
        except ValueError as e:
            raise OracleUnavailableError("Routing response is not valid JSON") from e

        if not isinstance(data, dict):
            raise OracleUnavailableError("Routing response has unexpected shape")

        routes = data.get("routes") or []
        if not isinstance(routes, list):
            raise OracleUnavailableError("Routing response has malformed routes")
        if data.get("code") != "Ok" or not routes:
            return None
        if not isinstance(routes[0], dict):
            raise OracleUnavailableError("Routing response has malformed routes")

        duration = routes[0].get("duration")
        if not isinstance(duration, (int, float)):
            raise OracleUnavailableError("Routing response has no route duration")
        return float(duration)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class HaversineTravelEstimator(TravelTimeOracle):
    """Offline estimate from great-circle distance at an average speed."""

    backend = "haversine"

    def __init__(
        self,
        speed_kmh: float = 40.0,
        events: Optional[SchedulingEventLogger] = None,
    ):
        self.speed_kmh = speed_kmh
        self.events = events or SchedulingEventLogger(enabled=False)

    @staticmethod
    def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
        """Great-circle distance in kilometers."""
        lat1, lng1, lat2, lng2 = map(math.radians, [lat1, lng1, lat2, lng2])
        dlat = lat2 - lat1
        dlng = lng2 - lng1
        a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
        return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))

    async def estimate_travel_minutes(
        self,
        origin_lat: Optional[float],
        origin_lng: Optional[float],
        dest_lat: Optional[float],
        dest_lng: Optional[float],
    ) -> int:
        with self.events.travel_query(
            self.backend, (origin_lat, origin_lng), (dest_lat, dest_lng)
        ) as event:
            if _missing_coordinates(origin_lat, origin_lng, dest_lat, dest_lng):
                event.minutes = 0
                event.outcome = TravelOutcome.SKIPPED
                return 0

            km = self.distance_km(origin_lat, origin_lng, dest_lat, dest_lng)
            minutes = math.ceil(km / self.speed_kmh * 60)
            event.minutes = minutes
            event.outcome = TravelOutcome.OK
            return minutes


class CachedTravelTimeOracle(TravelTimeOracle):
    """Memoizes an oracle by coordinate pair for the lifetime of one request.

    Concurrent lookups of the same pair share a single in-flight call.
    """

    def __init__(self, inner: TravelTimeOracle):
        self._inner = inner
        self._tasks: dict[CoordinateKey, asyncio.Task] = {}

    @property
    def backend(self) -> str:  # type: ignore[override]
        return self._inner.backend

    @property
    def cache_size(self) -> int:
        return len(self._tasks)

    async def estimate_travel_minutes(
        self,
        origin_lat: Optional[float],
        origin_lng: Optional[float],
        dest_lat: Optional[float],
        dest_lng: Optional[float],
    ) -> int:
        key = (origin_lat, origin_lng, dest_lat, dest_lng)
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._inner.estimate_travel_minutes(*key))
            self._tasks[key] = task
        return await task


def create_travel_oracle(
    settings=None,
    events: Optional[SchedulingEventLogger] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> TravelTimeOracle:
    """Build the configured travel-time oracle."""
    if settings is None:
        from homevisit.config import get_settings

        settings = get_settings()

    if settings.travel_backend == "haversine":
        return HaversineTravelEstimator(speed_kmh=settings.haversine_speed_kmh, events=events)

    return OSRMTravelTimeClient(
        base_url=settings.osrm_base_url,
        profile=settings.osrm_profile,
        timeout=settings.travel_timeout_seconds,
        fallback_minutes=settings.travel_fallback_minutes,
        no_route_minutes=settings.travel_no_route_minutes,
        fail_open=settings.travel_fail_open,
        client=client,
        events=events,
    )
