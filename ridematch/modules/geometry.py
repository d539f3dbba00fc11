"""
Geometry evaluation for ride matching.

Planar point-to-segment projection on raw latitude/longitude degrees, scaled
to kilometers with a fixed factor. Good enough at city scale; no geodesic
correction is applied.

Two projection strategies answer "how far is this point from the driver's
trip, and how far along it does it land":
- ChordProjection uses the straight driver pickup -> dropoff chord and needs
  no route data.
- PolylineProjection uses the decoded route polyline when a route has already
  been fetched for the candidate.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import polyline as polyline_codec

from .models import CandidateRoute, GeoPoint, RouteGeometry

logger = logging.getLogger(__name__)

KM_PER_DEGREE = 111.0
DEFAULT_PROXIMITY_KM = 2.0


@dataclass(frozen=True)
class Projection:
    distance_km: float
    projection_param: float  # 0 = route start, 1 = route end


def evaluate(point: GeoPoint, segment_start: GeoPoint, segment_end: GeoPoint) -> Projection:
    """Project point onto the segment, clamped to its endpoints"""
    a = point.latitude - segment_start.latitude
    b = point.longitude - segment_start.longitude
    c = segment_end.latitude - segment_start.latitude
    d = segment_end.longitude - segment_start.longitude

    len_sq = c * c + d * d
    param = 0.0
    if len_sq != 0:
        param = min(1.0, max(0.0, (a * c + b * d) / len_sq))

    dx = a - param * c
    dy = b - param * d
    return Projection(distance_km=math.sqrt(dx * dx + dy * dy) * KM_PER_DEGREE, projection_param=param)


def is_on_route(point: GeoPoint, start: GeoPoint, end: GeoPoint, threshold_km: float = DEFAULT_PROXIMITY_KM) -> bool:
    return evaluate(point, start, end).distance_km <= threshold_km


def is_valid_order(pickup_param: float, dropoff_param: float, tolerance: float = 0.0) -> bool:
    """Pickup must land no later than dropoff along the driver's direction of travel"""
    return pickup_param <= dropoff_param + tolerance


class ProjectionStrategy(ABC):
    """Locates a point relative to a driver's trip"""

    name = "base"

    @abstractmethod
    def project(self, point: GeoPoint) -> Projection:
        ...


class ChordProjection(ProjectionStrategy):
    """Straight line from the driver's pickup to the driver's dropoff"""

    name = "chord"

    def __init__(self, start: GeoPoint, end: GeoPoint):
        self.start = start
        self.end = end

    def project(self, point: GeoPoint) -> Projection:
        return evaluate(point, self.start, self.end)


class PolylineProjection(ProjectionStrategy):
    """
    Per-segment projection along a decoded route polyline.

    The closest segment wins; its local parameter is converted to a global
    arc-length fraction so pickup and dropoff parameters stay comparable.
    """

    name = "polyline"

    def __init__(self, points: Sequence[Tuple[float, float]]):
        if len(points) < 2:
            raise ValueError("Polyline projection needs at least two points")

        coords = np.asarray(points, dtype=float)
        self._starts = coords[:-1]
        self._deltas = coords[1:] - coords[:-1]
        self._len_sq = np.einsum("ij,ij->i", self._deltas, self._deltas)

        seg_lengths = np.sqrt(self._len_sq)
        self._cumulative = np.concatenate(([0.0], np.cumsum(seg_lengths)[:-1]))
        self._seg_lengths = seg_lengths
        self._total = float(seg_lengths.sum())

    @classmethod
    def from_encoded(cls, encoded: str) -> "PolylineProjection":
        return cls(polyline_codec.decode(encoded))

    def project(self, point: GeoPoint) -> Projection:
        p = np.array([point.latitude, point.longitude], dtype=float)
        offsets = p - self._starts
        dots = np.einsum("ij,ij->i", offsets, self._deltas)

        params = np.zeros_like(dots)
        nonzero = self._len_sq > 0
        params[nonzero] = np.clip(dots[nonzero] / self._len_sq[nonzero], 0.0, 1.0)

        residual = offsets - params[:, None] * self._deltas
        distances = np.sqrt(np.einsum("ij,ij->i", residual, residual))

        best = int(np.argmin(distances))
        if self._total > 0:
            along = (self._cumulative[best] + params[best] * self._seg_lengths[best]) / self._total
        else:
            along = 0.0

        return Projection(
            distance_km=float(distances[best]) * KM_PER_DEGREE,
            projection_param=float(min(1.0, max(0.0, along))),
        )


def decode_polyline(encoded: str) -> List[Tuple[float, float]]:
    if not encoded:
        return []
    return polyline_codec.decode(encoded)


def select_projection(candidate: CandidateRoute, route: Optional[RouteGeometry] = None) -> ProjectionStrategy:
    """Polyline strategy when the candidate's route is already known, chord otherwise"""
    if route is not None and route.polyline:
        try:
            points = decode_polyline(route.polyline)
        except (ValueError, IndexError) as e:
            logger.warning(f"Could not decode polyline for candidate {candidate.id}: {e}")
            points = []
        if len(points) >= 2:
            return PolylineProjection(points)
    return ChordProjection(candidate.pickup, candidate.dropoff)
