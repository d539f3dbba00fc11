"""Ride-store record normalization."""

from decimal import Decimal

import pytest

from ridematch.modules.errors import InvalidInputError
from ridematch.modules.models import GeoPoint
from ridematch.modules.normalization import (
    candidate_from_record,
    candidates_from_records,
    parse_schedule_days,
    query_from_record,
)

RIDE_ROW = {
    "id": 1,
    "driver_id": 7,
    "driver_name": "John Doe",
    "driver_rating": "4.5",
    "pickup_latitude": "44.4268",
    "pickup_longitude": "26.1025",
    "dropoff_latitude": "44.4515",
    "dropoff_longitude": "26.0853",
    "schedule_days": '["monday", "tuesday", "wednesday", "thursday", "friday"]',
    "schedule_time": "7:30 AM",
    "price": "15.00",
    "available_seats": 2,
}


def test_ride_row_becomes_candidate():
    candidate = candidate_from_record(RIDE_ROW)

    assert candidate.id == 1
    assert candidate.owner_id == 7
    assert candidate.owner_rating == 4.5
    assert candidate.pickup == GeoPoint(44.4268, 26.1025)
    assert candidate.schedule.days == frozenset({"mon", "tue", "wed", "thu", "fri"})
    assert candidate.schedule.minutes == 450
    assert candidate.price == Decimal("15.00")


def test_schedule_days_accept_lists_and_json_text():
    assert parse_schedule_days(["mon"]) == ["mon"]
    assert parse_schedule_days('["sat", "sun"]') == ["sat", "sun"]
    with pytest.raises(InvalidInputError):
        parse_schedule_days("mon, tue")
    with pytest.raises(InvalidInputError):
        parse_schedule_days(5)


def test_missing_coordinates_are_rejected():
    row = dict(RIDE_ROW, pickup_latitude=None)
    with pytest.raises(InvalidInputError, match="pickup_latitude"):
        candidate_from_record(row)


@pytest.mark.parametrize("field,value", [
    ("pickup_latitude", 95.0),
    ("dropoff_longitude", -181.0),
    ("schedule_time", "7:30"),
    ("driver_rating", 6),
    ("price", "-1"),
    ("available_seats", 0),
    ("available_seats", "many"),
])
def test_out_of_range_values_are_rejected(field, value):
    with pytest.raises(InvalidInputError):
        candidate_from_record(dict(RIDE_ROW, **{field: value}))


def test_search_row_becomes_query():
    query = query_from_record(RIDE_ROW)
    assert query.dropoff == GeoPoint(44.4515, 26.0853)
    assert query.schedule.time == "7:30 AM"


def test_duplicate_ride_ids_are_rejected():
    with pytest.raises(InvalidInputError, match="Duplicate ride id 1"):
        candidates_from_records([RIDE_ROW, dict(RIDE_ROW, driver_name="Someone Else")])
