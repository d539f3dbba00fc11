"""
Detour evaluation: how much a driver's trip grows when it picks up and drops
off the passenger on the way.
"""

import asyncio
import logging
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Optional

from .errors import PermanentRouteError, RouteProviderError
from .models import CandidateRoute, GeoPoint, Leg, MatchConfig, PassengerQuery, RouteGeometry
from .route_client import RouteClient

logger = logging.getLogger(__name__)

DRIVER_PICKUP = "Driver pickup"
PASSENGER_PICKUP = "Passenger pickup"
PASSENGER_DROPOFF = "Passenger dropoff"
DRIVER_DROPOFF = "Driver dropoff"

LEG_LABELS = (
    (DRIVER_PICKUP, PASSENGER_PICKUP),
    (PASSENGER_PICKUP, PASSENGER_DROPOFF),
    (PASSENGER_DROPOFF, DRIVER_DROPOFF),
)


@dataclass
class DetourOutcome:
    original_route: Optional[RouteGeometry] = None
    recommended_route: Optional[RouteGeometry] = None
    detour_distance_km: Optional[float] = None
    detour_duration_min: Optional[float] = None
    error: Optional[RouteProviderError] = None

    @property
    def resolved(self) -> bool:
        return self.original_route is not None and self.recommended_route is not None


def label_legs(route: RouteGeometry, candidate: CandidateRoute, query: PassengerQuery) -> RouteGeometry:
    """Name the three legs of a driver route diverted through the passenger's stops"""
    if len(route.legs) != len(LEG_LABELS):
        raise PermanentRouteError(
            f"Expected {len(LEG_LABELS)} legs for waypoint route, got {len(route.legs)}",
            status="INVALID_LEGS",
        )

    stops = (candidate.pickup, query.pickup, query.dropoff, candidate.dropoff)
    legs = []
    for index, (leg, (from_label, to_label)) in enumerate(zip(route.legs, LEG_LABELS)):
        legs.append(Leg(
            from_label=from_label,
            to_label=to_label,
            distance_km=leg.distance_km,
            duration_min=leg.duration_min,
            start=leg.start or stops[index],
            end=leg.end or stops[index + 1],
        ))
    return route.with_legs(legs)


def compute_detour(original: RouteGeometry, recommended: RouteGeometry, clamp: bool = True):
    distance = recommended.distance_km - original.distance_km
    duration = recommended.duration_min - original.duration_min
    if clamp:
        # Providers round per leg, so a tiny negative detour is noise
        distance = max(0.0, distance)
        duration = max(0.0, duration)
    return distance, duration


class DetourEvaluator:
    """Compare a candidate's own route with the route through the passenger's stops"""

    def __init__(self, route_client: RouteClient, config: Optional[MatchConfig] = None):
        self.route_client = route_client
        self.config = config or MatchConfig()

    async def _fetch(self, semaphore: Optional[asyncio.Semaphore], origin: GeoPoint, destination: GeoPoint, waypoints=()):
        async with (semaphore if semaphore is not None else nullcontext()):
            return await self.route_client.get_route(
                origin,
                destination,
                waypoints,
                timeout=self.config.fetch_timeout_s,
                ttl=self.config.cache_ttl_s,
                max_retries=self.config.max_retries,
                retry_backoff_s=self.config.retry_backoff_s,
            )

    async def evaluate(self,
                       candidate: CandidateRoute,
                       query: PassengerQuery,
                       semaphore: Optional[asyncio.Semaphore] = None) -> DetourOutcome:
        """
        Fetch the original and passenger-augmented routes concurrently.

        Provider failures are recorded on the outcome rather than raised; the
        half that succeeded is kept.
        """
        original_result, recommended_result = await asyncio.gather(
            self._fetch(semaphore, candidate.pickup, candidate.dropoff),
            self._fetch(semaphore, candidate.pickup, candidate.dropoff, (query.pickup, query.dropoff)),
            return_exceptions=True,
        )

        outcome = DetourOutcome()
        for result in (original_result, recommended_result):
            if isinstance(result, BaseException) and not isinstance(result, RouteProviderError):
                raise result

        if isinstance(original_result, RouteProviderError):
            logger.warning(f"Original route failed for candidate {candidate.id}: {original_result}")
            outcome.error = original_result
        else:
            outcome.original_route = original_result

        if isinstance(recommended_result, RouteProviderError):
            logger.warning(f"Recommended route failed for candidate {candidate.id}: {recommended_result}")
            outcome.error = outcome.error or recommended_result
        else:
            try:
                outcome.recommended_route = label_legs(recommended_result, candidate, query)
            except PermanentRouteError as e:
                logger.warning(f"Recommended route unusable for candidate {candidate.id}: {e}")
                outcome.error = outcome.error or e

        if outcome.resolved:
            outcome.detour_distance_km, outcome.detour_duration_min = compute_detour(
                outcome.original_route, outcome.recommended_route, self.config.clamp_negative_detour
            )

        return outcome
