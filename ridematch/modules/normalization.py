"""
Store-boundary normalization.

The ride store hands over flat rows (pickup_latitude, driver_name,
schedule_days as a JSON string or a list, ...). This is the only place that
knows that shape; the matching core only ever sees CandidateRoute.
"""

import json
from typing import Any, Dict, Iterable, List

from .errors import InvalidInputError
from .models import CandidateRoute, GeoPoint, PassengerQuery, ScheduleSpec

_REQUIRED_FIELDS = (
    "id",
    "driver_id",
    "pickup_latitude",
    "pickup_longitude",
    "dropoff_latitude",
    "dropoff_longitude",
    "schedule_days",
    "schedule_time",
)


def parse_schedule_days(value: Any) -> List[str]:
    """Schedule days arrive either as a list or as the JSON text stored in the ride table"""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise InvalidInputError(f"Could not parse schedule_days: {value!r}")
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise InvalidInputError(f"schedule_days must be a list, got {type(value).__name__}")
    return list(value)


def _seats(value: Any, ride_id: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Ride record {ride_id}: available_seats must be an integer, got {value!r}")


def candidate_from_record(record: Dict[str, Any]) -> CandidateRoute:
    missing = [name for name in _REQUIRED_FIELDS if record.get(name) is None]
    if missing:
        raise InvalidInputError(f"Ride record {record.get('id')} is missing {', '.join(missing)}")

    return CandidateRoute(
        id=record["id"],
        owner_id=record["driver_id"],
        owner_name=record.get("driver_name") or "",
        owner_rating=record.get("driver_rating") or 0.0,
        pickup=GeoPoint(record["pickup_latitude"], record["pickup_longitude"]),
        dropoff=GeoPoint(record["dropoff_latitude"], record["dropoff_longitude"]),
        schedule=ScheduleSpec(days=parse_schedule_days(record["schedule_days"]), time=record["schedule_time"]),
        price=record.get("price") if record.get("price") is not None else 0,
        available_seats=_seats(record.get("available_seats", 1), record["id"]),
    )


def candidates_from_records(records: Iterable[Dict[str, Any]]) -> List[CandidateRoute]:
    """Results are keyed by ride id, so ids must be unique within one request"""
    candidates = [candidate_from_record(record) for record in records]
    seen = set()
    for candidate in candidates:
        if candidate.id in seen:
            raise InvalidInputError(f"Duplicate ride id {candidate.id}")
        seen.add(candidate.id)
    return candidates


def query_from_record(record: Dict[str, Any]) -> PassengerQuery:
    """Passenger searches use the same flat column names as rides"""
    missing = [name for name in _REQUIRED_FIELDS[2:] if record.get(name) is None]
    if missing:
        raise InvalidInputError(f"Search is missing {', '.join(missing)}")

    return PassengerQuery(
        pickup=GeoPoint(record["pickup_latitude"], record["pickup_longitude"]),
        dropoff=GeoPoint(record["dropoff_latitude"], record["dropoff_longitude"]),
        schedule=ScheduleSpec(days=parse_schedule_days(record["schedule_days"]), time=record["schedule_time"]),
    )
