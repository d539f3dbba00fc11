"""Shared fixtures: Bucharest mock drivers and a scripted directions provider."""

import asyncio
import math
from typing import Dict, Optional, Sequence

import polyline
import pytest

from ridematch.modules.models import CandidateRoute, GeoPoint, Leg, PassengerQuery, ScheduleSpec
from ridematch.modules.route_client import DirectionsProvider, DirectionsResponse, RouteClient

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]
EARTH_RADIUS_KM = 6371.0


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    lat1, lon1 = math.radians(a.latitude), math.radians(a.longitude)
    lat2, lon2 = math.radians(b.latitude), math.radians(b.longitude)
    h = math.sin((lat2 - lat1) / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


class FakeDirectionsProvider(DirectionsProvider):
    """
    Straight-line "routing": each leg is the great-circle hop between stops,
    driven at 30 km/h. Failures and delays can be scripted per request kind
    ("original" for two-stop requests, "waypoints" otherwise) or per origin.
    """

    def __init__(self,
                 statuses: Optional[Dict[str, str]] = None,
                 delay: float = 0.0,
                 slow_origins: Optional[Dict[tuple, float]] = None,
                 transient_failures: int = 0):
        self.statuses = statuses or {}
        self.delay = delay
        self.slow_origins = slow_origins or {}
        self.transient_failures = transient_failures
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_route(self, origin: GeoPoint, destination: GeoPoint, waypoints: Sequence[GeoPoint] = ()) -> DirectionsResponse:
        kind = "waypoints" if waypoints else "original"
        self.calls.append((origin, destination, tuple(waypoints)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.slow_origins.get(origin.rounded(4), self.delay)
            if delay:
                await asyncio.sleep(delay)
            else:
                await asyncio.sleep(0)

            if self.transient_failures > 0:
                self.transient_failures -= 1
                return DirectionsResponse(status="UNKNOWN_ERROR")

            status = self.statuses.get(kind, "OK")
            if status != "OK":
                return DirectionsResponse(status=status, error_message=f"scripted {status}")

            stops = [origin, *waypoints, destination]
            legs = []
            for start, end in zip(stops, stops[1:]):
                km = haversine_km(start, end)
                legs.append(Leg(from_label="", to_label="", distance_km=km, duration_min=km * 2, start=start, end=end))
            return DirectionsResponse(
                status="OK",
                distance_km=sum(leg.distance_km for leg in legs),
                duration_min=sum(leg.duration_min for leg in legs),
                polyline=polyline.encode([p.as_tuple() for p in stops]),
                legs=legs,
            )
        finally:
            self.in_flight -= 1


@pytest.fixture
def provider():
    return FakeDirectionsProvider()


@pytest.fixture
def route_client(provider):
    return RouteClient(provider, retry_backoff_s=0.0)


@pytest.fixture
def passenger_query():
    return PassengerQuery(
        pickup=GeoPoint(44.4378, 26.0967),   # Calea Victoriei
        dropoff=GeoPoint(44.4450, 26.0880),  # towards Herastrau
        schedule=ScheduleSpec(days=WEEKDAYS, time="7:30 AM"),
    )


@pytest.fixture
def john_doe():
    return CandidateRoute(
        id=1,
        owner_id=1,
        owner_name="John Doe",
        owner_rating=4.5,
        pickup=GeoPoint(44.4268, 26.1025),   # University Square
        dropoff=GeoPoint(44.4515, 26.0853),  # Herastrau Park
        schedule=ScheduleSpec(days=WEEKDAYS, time="7:30 AM"),
        price="15.00",
        available_seats=2,
    )


@pytest.fixture
def jane_smith():
    return CandidateRoute(
        id=2,
        owner_id=2,
        owner_name="Jane Smith",
        owner_rating=4.8,
        pickup=GeoPoint(44.4200, 26.1000),
        dropoff=GeoPoint(44.4500, 26.0900),
        schedule=ScheduleSpec(days=WEEKDAYS, time="7:45 AM"),
        price="12.00",
        available_seats=3,
    )


@pytest.fixture
def bob_johnson():
    # Disjoint route south-east of the city, departing well outside the window
    return CandidateRoute(
        id=3,
        owner_id=3,
        owner_name="Bob Johnson",
        owner_rating=4.2,
        pickup=GeoPoint(44.4000, 26.1500),
        dropoff=GeoPoint(44.3800, 26.2000),
        schedule=ScheduleSpec(days=["monday", "wednesday", "friday"], time="9:00 AM"),
        price="18.00",
        available_seats=1,
    )


@pytest.fixture
def mock_drivers(john_doe, jane_smith, bob_johnson):
    return [john_doe, jane_smith, bob_johnson]
