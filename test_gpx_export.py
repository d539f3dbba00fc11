"""GPX export of recommended routes."""

import asyncio

import gpxpy

from ridematch.modules.detour import DetourEvaluator
from ridematch.modules.gpx_export import route_to_gpx


def test_recommended_route_exports_track_and_stops(route_client, john_doe, passenger_query):
    outcome = asyncio.run(DetourEvaluator(route_client).evaluate(john_doe, passenger_query))

    parsed = gpxpy.parse(route_to_gpx(outcome.recommended_route, "John Doe"))

    assert parsed.name == "John Doe"
    assert len(parsed.tracks[0].segments[0].points) == 4
    assert [wp.name for wp in parsed.waypoints] == [
        "Driver pickup",
        "Passenger pickup",
        "Passenger dropoff",
        "Driver dropoff",
    ]
    assert abs(parsed.waypoints[1].latitude - passenger_query.pickup.latitude) < 1e-6
