"""
GPX export for route geometry, so a driver can load the recommended route
(with the passenger's stops as waypoints) into a navigation app.
"""

import gpxpy
import gpxpy.gpx

from .geometry import decode_polyline
from .models import RouteGeometry


def route_to_gpx(route: RouteGeometry, route_name: str = "Carpool Route") -> str:
    """Convert route geometry to GPX XML"""

    gpx = gpxpy.gpx.GPX()
    gpx.name = route_name
    gpx.description = f"{route.distance_km:.2f} km, {route.duration_min:.0f} min"
    gpx.creator = "RIDEMATCH"

    # Create track
    gpx_track = gpxpy.gpx.GPXTrack()
    gpx_track.name = route_name
    gpx.tracks.append(gpx_track)

    # Create track segment
    gpx_segment = gpxpy.gpx.GPXTrackSegment()
    gpx_track.segments.append(gpx_segment)

    for lat, lon in decode_polyline(route.polyline):
        gpx_segment.points.append(gpxpy.gpx.GPXTrackPoint(latitude=lat, longitude=lon))

    # One waypoint per stop: every leg start plus the final leg end
    for leg in route.legs:
        if leg.start is not None:
            gpx.waypoints.append(gpxpy.gpx.GPXWaypoint(
                latitude=leg.start.latitude,
                longitude=leg.start.longitude,
                name=leg.from_label,
                description=f"{leg.from_label} to {leg.to_label}: {leg.distance_km:.2f} km",
            ))

    if route.legs and route.legs[-1].end is not None:
        last = route.legs[-1]
        gpx.waypoints.append(gpxpy.gpx.GPXWaypoint(
            latitude=last.end.latitude,
            longitude=last.end.longitude,
            name=last.to_label,
        ))

    return gpx.to_xml()
