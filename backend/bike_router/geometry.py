from __future__ import annotations

import math
from collections.abc import Sequence

from .models import Coordinate

EARTH_RADIUS_KM = 6371.0


def distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle (haversine) distance in kilometres."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = phi2 - phi1
    dlambda = math.radians(b.lng - a.lng)
    h = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(max(0.0, 1.0 - h)))


def is_within_distance(a: Coordinate, b: Coordinate, max_km: float) -> bool:
    return distance(a, b) <= max_km


def total_distance(points: Sequence[Coordinate]) -> float:
    return sum(distance(points[i], points[i + 1]) for i in range(len(points) - 1))


def _projection(point: Coordinate, seg_start: Coordinate, seg_end: Coordinate) -> Coordinate:
    # Equirectangular frame: longitude deltas shrink with cos(lat). Good enough
    # at city scale, where segments span a few hundred metres.
    kx = math.cos(math.radians((seg_start.lat + seg_end.lat) / 2.0))
    dx = (seg_end.lng - seg_start.lng) * kx
    dy = seg_end.lat - seg_start.lat
    l2 = dx * dx + dy * dy
    if l2 == 0.0:
        return seg_start

    px = (point.lng - seg_start.lng) * kx
    py = point.lat - seg_start.lat
    t = (px * dx + py * dy) / l2
    if t <= 0.0:
        return seg_start
    if t >= 1.0:
        return seg_end
    return Coordinate(
        lat=seg_start.lat + t * (seg_end.lat - seg_start.lat),
        lng=seg_start.lng + t * (seg_end.lng - seg_start.lng),
    )


def project_point_onto_segment(point: Coordinate, seg_start: Coordinate, seg_end: Coordinate) -> Coordinate:
    """Closest point on the finite segment, clamped to its endpoints."""
    return _projection(point, seg_start, seg_end)


def distance_to_segment(point: Coordinate, seg_start: Coordinate, seg_end: Coordinate) -> float:
    """Distance in kilometres from point to the finite segment."""
    return distance(point, _projection(point, seg_start, seg_end))


def estimate_duration_min(distance_km: float, speed_kmh: float = 15.0) -> float:
    if speed_kmh <= 0:
        raise ValueError("speed_kmh must be positive")
    return (max(0.0, distance_km) / speed_kmh) * 60.0
