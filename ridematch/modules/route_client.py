"""
Route client: typed access to an external directions provider.

RouteClient wraps a DirectionsProvider with:
- an in-process TTL cache keyed by rounded coordinates
- a request rate limiter (daily and per-minute caps)
- a per-fetch timeout
- one retry with backoff for transient failures

Non-OK provider statuses surface as classified RouteProviderError subclasses,
never as empty geometry.
"""

import asyncio
import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from .errors import (
    PermanentRouteError,
    RouteProviderError,
    RouteRateLimitError,
    RouteTimeoutError,
    TransientRouteError,
    classify_status,
)
from .models import GeoPoint, Leg, RouteGeometry

logger = logging.getLogger(__name__)

GOOGLE_DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"
CACHE_KEY_DIGITS = 5


class RateLimiter:
    def __init__(self, daily_limit: int = 2000, minute_limit: int = 40):
        self.daily_limit = daily_limit
        self.minute_limit = minute_limit
        self.daily_count = 0
        self.minute_counts = []
        self.daily_reset_time = None
        self._lock = threading.Lock()

    def can_make_request(self) -> bool:
        with self._lock:
            return self._can_make_request(datetime.now())

    def _can_make_request(self, now: datetime) -> bool:
        # Check daily limit
        if self.daily_reset_time and now >= self.daily_reset_time:
            self.daily_count = 0
            self.daily_reset_time = None

        if self.daily_count >= self.daily_limit:
            return False

        # Check minutely limit
        minute_ago = now - timedelta(minutes=1)
        self.minute_counts = [count for count in self.minute_counts if count > minute_ago]

        return len(self.minute_counts) < self.minute_limit

    def try_acquire(self) -> bool:
        """Check and record in one step so concurrent fetches cannot overshoot"""
        with self._lock:
            now = datetime.now()
            if not self._can_make_request(now):
                return False
            self._record(now)
            return True

    def _record(self, now: datetime):
        self.daily_count += 1
        self.minute_counts.append(now)

        if self.daily_reset_time is None:
            self.daily_reset_time = now + timedelta(days=1)

    def time_until_next_request(self) -> Optional[float]:
        with self._lock:
            return self._time_until_next_request(datetime.now())

    def _time_until_next_request(self, now: datetime) -> Optional[float]:
        """Seconds until a request would be admitted, None if the daily window is unknown"""
        if self.daily_count >= self.daily_limit:
            if self.daily_reset_time:
                return max(0.0, (self.daily_reset_time - now).total_seconds())
            return None

        minute_ago = now - timedelta(minutes=1)
        recent = [stamp for stamp in self.minute_counts if stamp > minute_ago]
        if len(recent) >= self.minute_limit:
            return max(0.0, (min(recent) + timedelta(minutes=1) - now).total_seconds())

        return 0.0

    def status(self) -> Dict[str, Any]:
        with self._lock:
            can_request = self._can_make_request(datetime.now())
            return {
                "daily_count": self.daily_count,
                "daily_limit": self.daily_limit,
                "requests_remaining": max(0, self.daily_limit - self.daily_count),
                "can_make_request": can_request,
                "reset_time": self.daily_reset_time.isoformat() if self.daily_reset_time else None,
            }


@dataclass
class DirectionsResponse:
    """Provider answer before it is turned into RouteGeometry"""
    status: str
    distance_km: float = 0.0
    duration_min: float = 0.0
    polyline: str = ""
    legs: List[Leg] = field(default_factory=list)
    error_message: Optional[str] = None


class DirectionsProvider(ABC):
    """External directions service"""

    @abstractmethod
    async def get_route(self,
                        origin: GeoPoint,
                        destination: GeoPoint,
                        waypoints: Sequence[GeoPoint] = ()) -> DirectionsResponse:
        ...

    async def close(self):
        pass


class GoogleDirectionsProvider(DirectionsProvider):
    """Google Directions API over a shared httpx session"""

    def __init__(self,
                 api_key: str,
                 base_url: str = GOOGLE_DIRECTIONS_URL,
                 timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self._session = None

    async def get_session(self) -> httpx.AsyncClient:
        if self._session is None or self._session.is_closed:
            self._session = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                transport=self._transport,
            )
        return self._session

    async def close(self):
        if self._session and not self._session.is_closed:
            await self._session.aclose()

    @staticmethod
    def _format_point(point: GeoPoint) -> str:
        return f"{point.latitude},{point.longitude}"

    async def get_route(self,
                        origin: GeoPoint,
                        destination: GeoPoint,
                        waypoints: Sequence[GeoPoint] = ()) -> DirectionsResponse:
        params = {
            "origin": self._format_point(origin),
            "destination": self._format_point(destination),
            "mode": "driving",
            "alternatives": "false",
            "key": self.api_key,
        }
        if waypoints:
            # Waypoint order is kept as given so legs line up with pickup/dropoff
            params["waypoints"] = "|".join(self._format_point(wp) for wp in waypoints)

        session = await self.get_session()
        try:
            response = await session.get(self.base_url, params=params)
        except httpx.TimeoutException as e:
            raise RouteTimeoutError(f"Directions request timed out: {e}")
        except httpx.HTTPError as e:
            raise TransientRouteError(f"Directions request failed: {e}", status="HTTP_ERROR")

        if response.status_code == 429:
            raise RouteRateLimitError("Directions API returned 429")
        if response.status_code >= 500:
            raise TransientRouteError(f"Directions API error: {response.status_code}", status=f"HTTP_{response.status_code}")
        if response.status_code != 200:
            raise PermanentRouteError(f"Directions API error: {response.status_code}", status=f"HTTP_{response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise TransientRouteError("Directions API returned invalid JSON", status="INVALID_RESPONSE")

        return self.parse_response(data)

    @staticmethod
    def parse_response(data: Dict[str, Any]) -> DirectionsResponse:
        status = data.get("status", "UNKNOWN_ERROR")
        routes = data.get("routes") or []

        if status != "OK" or not routes:
            return DirectionsResponse(
                status=status if status != "OK" else "ZERO_RESULTS",
                error_message=data.get("error_message"),
            )

        # An OK status with a malformed body is not worth retrying
        try:
            route = routes[0]
            legs = []
            for index, leg in enumerate(route.get("legs") or []):
                start = leg.get("start_location") or {}
                end = leg.get("end_location") or {}
                legs.append(Leg(
                    from_label=leg.get("start_address") or f"Stop {index}",
                    to_label=leg.get("end_address") or f"Stop {index + 1}",
                    distance_km=leg["distance"]["value"] / 1000,
                    duration_min=leg["duration"]["value"] / 60,
                    start=GeoPoint(start["lat"], start["lng"]) if start else None,
                    end=GeoPoint(end["lat"], end["lng"]) if end else None,
                ))
            encoded = (route.get("overview_polyline") or {}).get("points") or ""
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise PermanentRouteError(f"Malformed directions response: {e!r}", status="INVALID_RESPONSE")

        return DirectionsResponse(
            status="OK",
            distance_km=sum(leg.distance_km for leg in legs),
            duration_min=sum(leg.duration_min for leg in legs),
            polyline=encoded,
            legs=legs,
        )


CacheKey = Tuple[Tuple[float, float], Tuple[float, float], Tuple[Tuple[float, float], ...]]


def make_cache_key(origin: GeoPoint, destination: GeoPoint, waypoints: Sequence[GeoPoint] = ()) -> CacheKey:
    return (
        origin.rounded(CACHE_KEY_DIGITS),
        destination.rounded(CACHE_KEY_DIGITS),
        tuple(wp.rounded(CACHE_KEY_DIGITS) for wp in waypoints),
    )


class RouteClient:
    """Cached, rate-limited, failure-classifying access to a DirectionsProvider"""

    def __init__(self,
                 provider: DirectionsProvider,
                 rate_limiter: Optional[RateLimiter] = None,
                 cache_ttl_s: float = 3600.0,
                 fetch_timeout_s: float = 10.0,
                 max_retries: int = 1,
                 retry_backoff_s: float = 0.5,
                 clock: Callable[[], float] = time.monotonic):
        self.provider = provider
        self.rate_limiter = rate_limiter
        self.cache_ttl_s = cache_ttl_s
        self.fetch_timeout_s = fetch_timeout_s
        self.max_retries = max_retries
        self.retry_backoff_s = retry_backoff_s
        self._clock = clock

        self._cache: Dict[CacheKey, Tuple[float, RouteGeometry]] = {}
        self._cache_lock = threading.Lock()

        self.request_stats = {
            "requests": 0,
            "provider_calls": 0,
            "cache_hits": 0,
            "retries": 0,
            "transient_errors": 0,
            "permanent_errors": 0,
        }

    def peek(self, origin: GeoPoint, destination: GeoPoint, waypoints: Sequence[GeoPoint] = ()) -> Optional[RouteGeometry]:
        """Cached geometry for the key, without touching the provider"""
        key = make_cache_key(origin, destination, waypoints)
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            expires_at, geometry = entry
            if self._clock() >= expires_at:
                del self._cache[key]
                return None
            return geometry

    def _store(self, key: CacheKey, geometry: RouteGeometry, ttl: float):
        with self._cache_lock:
            now = self._clock()
            # Drop expired entries so keys that are never looked up again don't pile up
            expired = [k for k, (expires_at, _) in self._cache.items() if now >= expires_at]
            for k in expired:
                del self._cache[k]
            self._cache[key] = (now + ttl, geometry)

    def clear_cache(self):
        with self._cache_lock:
            self._cache.clear()

    @property
    def cache_size(self) -> int:
        with self._cache_lock:
            return len(self._cache)

    async def get_route(self,
                        origin: GeoPoint,
                        destination: GeoPoint,
                        waypoints: Sequence[GeoPoint] = (),
                        timeout: Optional[float] = None,
                        ttl: Optional[float] = None,
                        max_retries: Optional[int] = None,
                        retry_backoff_s: Optional[float] = None) -> RouteGeometry:
        """
        Fetch a driving route through the given waypoints, in order.

        Raises:
            TransientRouteError: timeouts, rate limits, provider hiccups
                (after retries are exhausted)
            PermanentRouteError: no route exists or the request was denied
        """
        waypoints = tuple(waypoints)
        self.request_stats["requests"] += 1

        cached = self.peek(origin, destination, waypoints)
        if cached is not None:
            self.request_stats["cache_hits"] += 1
            return cached

        timeout = self.fetch_timeout_s if timeout is None else timeout
        retries = self.max_retries if max_retries is None else max_retries
        backoff = self.retry_backoff_s if retry_backoff_s is None else retry_backoff_s

        last_error: Optional[RouteProviderError] = None
        for attempt in range(retries + 1):
            if attempt > 0:
                self.request_stats["retries"] += 1
                delay = backoff * attempt
                if delay > 0:
                    await asyncio.sleep(delay + random.uniform(0, delay / 2))  # jitter

            try:
                geometry = await self._fetch(origin, destination, waypoints, timeout)
            except TransientRouteError as e:
                self.request_stats["transient_errors"] += 1
                logger.warning(f"Transient route error on attempt {attempt + 1}: {e}")
                last_error = e
                continue
            except PermanentRouteError as e:
                self.request_stats["permanent_errors"] += 1
                logger.error(f"Permanent route error: {e}")
                raise

            self._store(make_cache_key(origin, destination, waypoints), geometry,
                        self.cache_ttl_s if ttl is None else ttl)
            return geometry

        raise last_error

    async def _fetch(self,
                     origin: GeoPoint,
                     destination: GeoPoint,
                     waypoints: Tuple[GeoPoint, ...],
                     timeout: float) -> RouteGeometry:
        if self.rate_limiter is not None and not self.rate_limiter.try_acquire():
            raise RouteRateLimitError(retry_after=self.rate_limiter.time_until_next_request())

        self.request_stats["provider_calls"] += 1
        try:
            response = await asyncio.wait_for(
                self.provider.get_route(origin, destination, waypoints), timeout=timeout
            )
        except asyncio.TimeoutError:
            raise RouteTimeoutError(f"Route fetch exceeded {timeout:.1f}s")

        if response.status != "OK":
            raise classify_status(response.status, response.error_message)

        return self._to_geometry(response, origin, destination, waypoints)

    @staticmethod
    def _to_geometry(response: DirectionsResponse,
                     origin: GeoPoint,
                     destination: GeoPoint,
                     waypoints: Tuple[GeoPoint, ...]) -> RouteGeometry:
        stops = [origin, *waypoints, destination]
        labels = ["Origin"] + [f"Waypoint {i + 1}" for i in range(len(waypoints))] + ["Destination"]

        legs = []
        for index, leg in enumerate(response.legs):
            if len(response.legs) == len(stops) - 1:
                from_label, to_label = labels[index], labels[index + 1]
                start = leg.start or stops[index]
                end = leg.end or stops[index + 1]
            else:
                from_label, to_label, start, end = leg.from_label, leg.to_label, leg.start, leg.end
            legs.append(Leg(
                from_label=from_label,
                to_label=to_label,
                distance_km=leg.distance_km,
                duration_min=leg.duration_min,
                start=start,
                end=end,
            ))

        return RouteGeometry(
            distance_km=max(0.0, response.distance_km),
            duration_min=max(0.0, response.duration_min),
            polyline=response.polyline,
            legs=tuple(legs),
        )

    async def close(self):
        await self.provider.close()
