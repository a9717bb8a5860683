from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

from .geometry import distance
from .models import RouteSegment

# Kilometres per degree of arc on the haversine sphere.
_KM_PER_DEG = 6371.0 * math.pi / 180.0
_CELL_SAFETY = 1.5


@dataclass(frozen=True)
class SegmentLink:
    from_index: int
    to_index: int
    distance_km: float


def _grid_key(lat: float, lng: float, cell_lat: float, cell_lng: float) -> tuple[int, int]:
    return (int(math.floor(lat / cell_lat)), int(math.floor(lng / cell_lng)))


def _cell_sizes(segments: Sequence[RouteSegment], threshold_km: float) -> tuple[float, float]:
    max_abs_lat = max((abs(p.lat) for seg in segments for p in seg.points), default=0.0)
    cos_min = max(0.01, math.cos(math.radians(min(89.9, max_abs_lat + 0.5))))
    cell_lat = max(1e-9, _CELL_SAFETY * threshold_km / _KM_PER_DEG)
    cell_lng = max(1e-9, _CELL_SAFETY * threshold_km / (_KM_PER_DEG * cos_min))
    return cell_lat, cell_lng


def build_connections(
    segments: Sequence[RouteSegment],
    threshold_m: float = 150.0,
) -> dict[str, set[str]]:
    """Undirected proximity graph between segments.

    Two segments are connected when any vertex of one lies within
    `threshold_m` of any vertex of the other. Vertices are bucketed on a
    lat/lng grid at least as wide as the threshold, so only neighbouring cells
    are compared; every candidate pair is confirmed with the haversine distance.
    """
    routable = [seg for seg in segments if seg.is_routable]
    connections: dict[str, set[str]] = {seg.id: set() for seg in routable}
    if len(routable) < 2:
        return connections

    threshold_km = max(0.0, float(threshold_m)) / 1000.0
    cell_lat, cell_lng = _cell_sizes(routable, max(threshold_km, 1e-6))

    grid: dict[tuple[int, int], list[tuple[str, int, int]]] = defaultdict(list)
    for seg_idx, seg in enumerate(routable):
        for v_idx, p in enumerate(seg.points):
            grid[_grid_key(p.lat, p.lng, cell_lat, cell_lng)].append((seg.id, seg_idx, v_idx))

    for (row, col), members in grid.items():
        for dr in (-1, 0, 1):
            for dc in (-1, 0, 1):
                neighbours = grid.get((row + dr, col + dc))
                if not neighbours:
                    continue
                for id_a, seg_a, v_a in members:
                    pa = routable[seg_a].points[v_a]
                    for id_b, seg_b, v_b in neighbours:
                        if id_a == id_b or id_b in connections[id_a]:
                            continue
                        pb = routable[seg_b].points[v_b]
                        if distance(pa, pb) <= threshold_km:
                            connections[id_a].add(id_b)
                            connections[id_b].add(id_a)
    return connections


def find_best_connection(
    from_segment: RouteSegment,
    to_segment: RouteSegment,
    start_index: int = 0,
) -> SegmentLink | None:
    """Closest vertex pair between two segments, scanning `from_segment` from `start_index`."""
    best: SegmentLink | None = None
    for i in range(max(0, start_index), len(from_segment.points)):
        pa = from_segment.points[i]
        for j, pb in enumerate(to_segment.points):
            d = distance(pa, pb)
            if best is None or d < best.distance_km:
                best = SegmentLink(from_index=i, to_index=j, distance_km=d)
    return best
