from fastapi import FastAPI, APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
import logging
import dataclasses
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Any, Union
from enum import Enum
from datetime import datetime

from .config import load_settings
from .modules.errors import InvalidInputError, RouteProviderError, RouteRateLimitError, TransientRouteError
from .modules.gpx_export import route_to_gpx
from .modules.models import CandidateRoute, GeoPoint, MatchResult, PassengerQuery, RouteGeometry, ScheduleSpec
from .modules.normalization import candidates_from_records
from .modules.pipeline import MatchPipeline
from .modules.route_client import GoogleDirectionsProvider, RateLimiter, RouteClient

settings = load_settings()

# Pydantic Models
class OutputFormat(str, Enum):
    JSON = "json"
    GPX = "gpx"

class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in decimal degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in decimal degrees")

    def to_point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

class MatchConfigOverrides(BaseModel):
    proximity_threshold_km: Optional[float] = Field(default=None, ge=0, le=50)
    time_window_min: Optional[int] = Field(default=None, ge=0, le=720)
    min_match_score: Optional[int] = Field(default=None, ge=0, le=100)
    max_concurrent_fetches: Optional[int] = Field(default=None, ge=1, le=20)
    fetch_timeout_s: Optional[float] = Field(default=None, gt=0, le=60)
    match_deadline_s: Optional[float] = Field(default=None, gt=0, le=120)
    use_cached_geometry: Optional[bool] = None

class MatchSearchRequest(BaseModel):
    pickup_latitude: float = Field(..., ge=-90, le=90)
    pickup_longitude: float = Field(..., ge=-180, le=180)
    dropoff_latitude: float = Field(..., ge=-90, le=90)
    dropoff_longitude: float = Field(..., ge=-180, le=180)
    schedule_days: List[str] = Field(..., min_length=1, max_length=7)
    schedule_time: str = Field(..., min_length=1)
    rides: List[Dict[str, Any]] = Field(default_factory=list, description="Candidate ride records from the ride store")
    config: Optional[MatchConfigOverrides] = None

    @field_validator('schedule_time')
    @classmethod
    def strip_schedule_time(cls, v):
        if not v.strip():
            raise ValueError('schedule_time must not be blank')
        return v.strip()

class LegOut(BaseModel):
    from_label: str
    to_label: str
    distance_km: float
    duration_min: float
    start: Optional[Coordinates] = None
    end: Optional[Coordinates] = None

class RouteOut(BaseModel):
    distance_km: float
    duration_min: float
    polyline: str
    legs: List[LegOut] = []

class MatchOut(BaseModel):
    id: Union[int, str]
    driver_id: Union[int, str]
    driver_name: str
    driver_rating: float
    price: float
    available_seats: int
    match_score: int
    reasons: List[str]
    pickup_distance_km: Optional[float] = None
    dropoff_distance_km: Optional[float] = None
    is_valid_order: bool
    original_route: Optional[RouteOut] = None
    recommended_route: Optional[RouteOut] = None
    detour_distance_km: Optional[float] = None
    detour_duration_min: Optional[float] = None
    state: str
    route_status: str
    route_error: Optional[str] = None

class MatchData(BaseModel):
    matches: List[MatchOut]
    count: int

class MatchSearchResponse(BaseModel):
    success: bool = True
    data: MatchData

class RouteRequest(BaseModel):
    origin: Coordinates
    destination: Coordinates
    output_format: OutputFormat = OutputFormat.JSON

class WaypointRouteRequest(RouteRequest):
    waypoints: List[Coordinates] = Field(default_factory=list, max_length=23)

class RouteResponse(BaseModel):
    route: Union[RouteOut, str]  # RouteOut for JSON, XML string for GPX
    distance_km: float
    duration_min: float
    format: str
    generated_at: datetime

# Create the main app without a prefix
app = FastAPI(
    title="RIDEMATCH",
    description="Carpool matching service. Ranks driver trips against a passenger's pickup, dropoff and schedule, with detour-aware recommended routes.",
    version="1.0.0"
)

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")

# Global state for the directions client and matching pipeline
route_client = None
rate_limiter = None
pipeline = MatchPipeline()

# Helper functions
def route_to_out(route: Optional[RouteGeometry]) -> Optional[RouteOut]:
    if route is None:
        return None

    def coords(point: Optional[GeoPoint]) -> Optional[Coordinates]:
        if point is None:
            return None
        return Coordinates(latitude=point.latitude, longitude=point.longitude)

    return RouteOut(
        distance_km=route.distance_km,
        duration_min=route.duration_min,
        polyline=route.polyline,
        legs=[
            LegOut(
                from_label=leg.from_label,
                to_label=leg.to_label,
                distance_km=leg.distance_km,
                duration_min=leg.duration_min,
                start=coords(leg.start),
                end=coords(leg.end),
            )
            for leg in route.legs
        ]
    )

def match_to_out(result: MatchResult, candidate: CandidateRoute) -> MatchOut:
    return MatchOut(
        id=candidate.id,
        driver_id=candidate.owner_id,
        driver_name=candidate.owner_name,
        driver_rating=candidate.owner_rating,
        price=float(candidate.price),
        available_seats=candidate.available_seats,
        match_score=result.match_score,
        reasons=list(result.reasons),
        pickup_distance_km=result.pickup_distance_km,
        dropoff_distance_km=result.dropoff_distance_km,
        is_valid_order=result.is_valid_order,
        original_route=route_to_out(result.original_route),
        recommended_route=route_to_out(result.recommended_route),
        detour_distance_km=result.detour_distance_km,
        detour_duration_min=result.detour_duration_min,
        state=result.state.value,
        route_status=result.route_status.value,
        route_error=result.route_error,
    )

def build_match_config(overrides: Optional[MatchConfigOverrides]):
    config = settings.match_config()
    if overrides is None:
        return config
    values = {k: v for k, v in overrides.model_dump().items() if v is not None}
    return dataclasses.replace(config, **values)

def route_error_to_http(error: RouteProviderError) -> HTTPException:
    if isinstance(error, RouteRateLimitError):
        return HTTPException(status_code=429, detail=f"Failed to calculate route: {error}")
    if isinstance(error, TransientRouteError):
        return HTTPException(status_code=503, detail=f"Failed to calculate route: {error}")
    return HTTPException(status_code=502, detail=f"Failed to calculate route: {error}")

async def calculate_route(request: RouteRequest, waypoints: List[Coordinates]) -> RouteResponse:
    if route_client is None:
        raise HTTPException(status_code=503, detail="Directions provider not configured")

    try:
        route = await route_client.get_route(
            request.origin.to_point(),
            request.destination.to_point(),
            [wp.to_point() for wp in waypoints]
        )
    except RouteProviderError as e:
        logger.error(f"Route calculation failed: {e}")
        raise route_error_to_http(e)

    if request.output_format == OutputFormat.GPX:
        payload = route_to_gpx(route)
    else:
        payload = route_to_out(route)

    return RouteResponse(
        route=payload,
        distance_km=route.distance_km,
        duration_min=route.duration_min,
        format=request.output_format.value,
        generated_at=datetime.now()
    )

# Matching endpoints
@api_router.post("/matching/search", response_model=MatchSearchResponse)
async def search_matches(request: MatchSearchRequest):
    """Rank candidate rides for a passenger's trip"""
    query = PassengerQuery(
        pickup=GeoPoint(request.pickup_latitude, request.pickup_longitude),
        dropoff=GeoPoint(request.dropoff_latitude, request.dropoff_longitude),
        schedule=ScheduleSpec(days=request.schedule_days, time=request.schedule_time)
    )
    candidates = candidates_from_records(request.rides)
    config = build_match_config(request.config)

    results = await pipeline.match(query, candidates, config)

    by_id = {candidate.id: candidate for candidate in candidates}
    matches = [match_to_out(result, by_id[result.candidate_ref]) for result in results]

    return MatchSearchResponse(data=MatchData(matches=matches, count=len(matches)))

# Route endpoints
@api_router.post("/routes/calculate", response_model=RouteResponse)
async def calculate_route_endpoint(request: RouteRequest):
    """Driving route between two points"""
    return await calculate_route(request, [])

@api_router.post("/routes/calculate-with-waypoints", response_model=RouteResponse)
async def calculate_route_with_waypoints_endpoint(request: WaypointRouteRequest):
    """Driving route through ordered waypoints"""
    return await calculate_route(request, request.waypoints)

@api_router.get("/rate-limit-status")
async def get_rate_limit_status():
    """Get current rate limit status"""
    if rate_limiter is None:
        raise HTTPException(status_code=503, detail="Directions provider not configured")
    return rate_limiter.status()

@api_router.get("/stats")
async def get_stats():
    return {
        "matching": dict(pipeline.matching_stats),
        "routes": dict(route_client.request_stats) if route_client else None,
        "cache_size": route_client.cache_size if route_client else 0
    }

@api_router.get("/")
async def root():
    return {"message": "RIDEMATCH API - Carpool route matching"}

# Include the router in the main app
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@app.on_event("startup")
async def startup_event():
    global route_client, rate_limiter, pipeline
    if settings.google_maps_api_key:
        provider = GoogleDirectionsProvider(settings.google_maps_api_key, base_url=settings.directions_base_url)
        rate_limiter = RateLimiter(daily_limit=settings.daily_limit, minute_limit=settings.minute_limit)
        route_client = RouteClient(
            provider,
            rate_limiter=rate_limiter,
            cache_ttl_s=settings.cache_ttl_s,
            fetch_timeout_s=settings.fetch_timeout_s
        )
        pipeline = MatchPipeline(route_client)
        logger.info("RIDEMATCH service initialized")
    else:
        logger.error("GOOGLE_MAPS_API_KEY not found in environment variables, matches will not include routes")

@app.on_event("shutdown")
async def shutdown_event():
    if route_client:
        await route_client.close()
