"""
Error taxonomy for ride matching.

InvalidInputError fails a whole matching request. RouteProviderError and its
subclasses are scoped to a single candidate's detour computation.
"""

from typing import Optional


class RideMatchError(Exception):
    """Base class for all ride matching errors"""


class InvalidInputError(RideMatchError, ValueError):
    """Malformed schedule, time string or out-of-range coordinates"""


class RouteProviderError(RideMatchError):
    """Directions provider failed to produce a route"""

    transient = False

    def __init__(self, message: str, status: str = "UNKNOWN_ERROR"):
        super().__init__(message)
        self.status = status


class TransientRouteError(RouteProviderError):
    """Timeouts, rate limits and provider hiccups; worth one retry"""

    transient = True


class PermanentRouteError(RouteProviderError):
    """The provider answered, but there is no usable route"""


class RouteTimeoutError(TransientRouteError):
    def __init__(self, message: str = "Route fetch timed out"):
        super().__init__(message, status="TIMEOUT")


class RouteRateLimitError(TransientRouteError):
    def __init__(self, message: str = "Directions rate limit exceeded", retry_after: Optional[float] = None):
        super().__init__(message, status="OVER_QUERY_LIMIT")
        self.retry_after = retry_after


PERMANENT_STATUSES = {
    "ZERO_RESULTS",
    "NOT_FOUND",
    "REQUEST_DENIED",
    "INVALID_REQUEST",
    "MAX_WAYPOINTS_EXCEEDED",
    "MAX_ROUTE_LENGTH_EXCEEDED",
    "OVER_DAILY_LIMIT",
}


def classify_status(status: str, message: Optional[str] = None) -> RouteProviderError:
    """Build the error matching a non-OK provider status"""
    detail = f"No route found: {status}"
    if message:
        detail = f"{detail} ({message})"

    if status == "OVER_QUERY_LIMIT":
        return RouteRateLimitError(detail)
    if status in PERMANENT_STATUSES:
        return PermanentRouteError(detail, status=status)
    # Unknown statuses are treated as transient so they get one retry
    return TransientRouteError(detail, status=status)
