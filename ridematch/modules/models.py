"""
Domain models for ride matching.

Everything here is created fresh for a matching request and discarded once the
response is built. Value types are frozen so cached route geometry can be
handed out to concurrent callers without copying.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple, Union

from .errors import InvalidInputError
from .schedule import normalize_days, parse_time

CandidateId = Union[int, str]


@dataclass(frozen=True)
class GeoPoint:
    """Latitude/longitude in decimal degrees"""
    latitude: float
    longitude: float

    def __post_init__(self):
        try:
            lat = float(self.latitude)
            lon = float(self.longitude)
        except (TypeError, ValueError):
            raise InvalidInputError(f"Coordinates must be numeric: ({self.latitude}, {self.longitude})")

        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise InvalidInputError(f"Coordinates must be finite: ({lat}, {lon})")
        if not -90 <= lat <= 90:
            raise InvalidInputError(f"Latitude must be between -90 and 90, got {lat}")
        if not -180 <= lon <= 180:
            raise InvalidInputError(f"Longitude must be between -180 and 180, got {lon}")

        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def rounded(self, digits: int = 5) -> Tuple[float, float]:
        return (round(self.latitude, digits), round(self.longitude, digits))


@dataclass(frozen=True)
class ScheduleSpec:
    """Days of the week plus an "H:MM AM|PM" departure time"""
    days: FrozenSet[str]
    time: str
    minutes: int = field(init=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "days", normalize_days(self.days))
        object.__setattr__(self, "minutes", parse_time(self.time))


@dataclass(frozen=True)
class CandidateRoute:
    """A driver's offered trip, as supplied by the ride store"""
    id: CandidateId
    owner_id: CandidateId
    owner_name: str
    owner_rating: float
    pickup: GeoPoint
    dropoff: GeoPoint
    schedule: ScheduleSpec
    price: Decimal = Decimal("0")
    available_seats: int = 1

    def __post_init__(self):
        try:
            rating = float(self.owner_rating)
        except (TypeError, ValueError):
            raise InvalidInputError(f"Candidate {self.id}: rating must be numeric")
        if not 0 <= rating <= 5:
            raise InvalidInputError(f"Candidate {self.id}: rating must be between 0 and 5, got {rating}")
        object.__setattr__(self, "owner_rating", rating)

        try:
            price = Decimal(str(self.price))
        except InvalidOperation:
            raise InvalidInputError(f"Candidate {self.id}: price must be a decimal, got {self.price!r}")
        if not price.is_finite() or price < 0:
            raise InvalidInputError(f"Candidate {self.id}: price must be >= 0, got {price}")
        object.__setattr__(self, "price", price)

        if isinstance(self.available_seats, bool) or not isinstance(self.available_seats, int) or self.available_seats < 1:
            raise InvalidInputError(f"Candidate {self.id}: available seats must be an integer >= 1")


@dataclass(frozen=True)
class PassengerQuery:
    pickup: GeoPoint
    dropoff: GeoPoint
    schedule: ScheduleSpec


@dataclass(frozen=True)
class Leg:
    """One labeled segment of a multi-waypoint route"""
    from_label: str
    to_label: str
    distance_km: float
    duration_min: float
    start: Optional[GeoPoint] = None
    end: Optional[GeoPoint] = None


@dataclass(frozen=True)
class RouteGeometry:
    distance_km: float
    duration_min: float
    polyline: str
    legs: Tuple[Leg, ...] = ()

    def with_legs(self, legs: Iterable[Leg]) -> "RouteGeometry":
        return RouteGeometry(
            distance_km=self.distance_km,
            duration_min=self.duration_min,
            polyline=self.polyline,
            legs=tuple(legs),
        )


class MatchState(str, Enum):
    """Terminal state of a candidate within one matching request"""
    SCORED_EXCLUDED = "scored-excluded"
    INCLUDED_NO_ROUTE = "scored-included-no-route"
    INCLUDED_WITH_ROUTE = "scored-included-with-route"


class RouteStatus(str, Enum):
    RESOLVED = "resolved"            # full detour data
    DEGRADED = "degraded"            # route fetch attempted and failed
    NOT_ATTEMPTED = "not_attempted"  # invalid order or no directions provider


@dataclass
class MatchResult:
    candidate_ref: CandidateId
    match_score: int
    pickup_distance_km: Optional[float]
    dropoff_distance_km: Optional[float]
    is_valid_order: bool
    reasons: List[str] = field(default_factory=list)
    original_route: Optional[RouteGeometry] = None
    recommended_route: Optional[RouteGeometry] = None
    detour_distance_km: Optional[float] = None
    detour_duration_min: Optional[float] = None

    owner_rating: float = 0.0
    state: MatchState = MatchState.INCLUDED_NO_ROUTE
    route_status: RouteStatus = RouteStatus.NOT_ATTEMPTED
    route_error: Optional[str] = None


@dataclass(frozen=True)
class MatchConfig:
    """Tunable matching policy, passed explicitly into every matching call"""
    proximity_threshold_km: float = 2.0
    time_window_min: int = 30
    min_match_score: int = 30
    max_concurrent_fetches: int = 5
    fetch_timeout_s: float = 10.0
    cache_ttl_s: float = 3600.0
    match_deadline_s: Optional[float] = None
    order_tolerance: float = 0.0
    clamp_negative_detour: bool = True
    tie_break: str = "rating"  # "rating" or "id"
    use_cached_geometry: bool = False
    max_retries: int = 1
    retry_backoff_s: float = 0.5

    def __post_init__(self):
        if self.proximity_threshold_km < 0:
            raise InvalidInputError("proximity_threshold_km must be >= 0")
        if self.time_window_min < 0:
            raise InvalidInputError("time_window_min must be >= 0")
        if not 0 <= self.min_match_score <= 100:
            raise InvalidInputError("min_match_score must be between 0 and 100")
        if self.max_concurrent_fetches < 1:
            raise InvalidInputError("max_concurrent_fetches must be >= 1")
        if self.fetch_timeout_s <= 0:
            raise InvalidInputError("fetch_timeout_s must be > 0")
        if self.match_deadline_s is not None and self.match_deadline_s <= 0:
            raise InvalidInputError("match_deadline_s must be > 0")
        if self.tie_break not in ("rating", "id"):
            raise InvalidInputError(f"Unknown tie_break '{self.tie_break}'")
        if self.max_retries < 0:
            raise InvalidInputError("max_retries must be >= 0")
