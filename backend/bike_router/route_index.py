from __future__ import annotations

from collections.abc import Iterator, Sequence

from .geometry import distance, distance_to_segment, project_point_onto_segment
from .models import Coordinate, NearestPointResult, NearestSegmentResult, RouteSegment


def sampled_indices(point_count: int, stride: int = 1) -> Iterator[int]:
    """Indices of the first, last and every `stride`-th vertex, in order."""
    stride = max(1, int(stride))
    last = point_count - 1
    for idx in range(point_count):
        if idx == 0 or idx == last or idx % stride == 0:
            yield idx


def find_nearest_route_point(
    target: Coordinate,
    segments: Sequence[RouteSegment],
    *,
    sample_stride: int = 1,
) -> NearestPointResult | None:
    best: NearestPointResult | None = None
    for segment in segments:
        if not segment.is_routable:
            continue
        for idx in sampled_indices(len(segment.points), sample_stride):
            vertex = segment.points[idx]
            d = distance(target, vertex)
            # Strictly smaller: ties keep the first vertex seen.
            if best is None or d < best.distance_km:
                best = NearestPointResult(point=vertex, route_id=segment.id, index=idx, distance_km=d)
    return best


def find_nearest_route_segment(
    target: Coordinate,
    segments: Sequence[RouteSegment],
) -> NearestSegmentResult | None:
    best: NearestSegmentResult | None = None
    for segment in segments:
        if not segment.is_routable:
            continue
        pts = segment.points
        for i in range(len(pts) - 1):
            d = distance_to_segment(target, pts[i], pts[i + 1])
            if best is None or d < best.distance_km:
                best = NearestSegmentResult(
                    segment=(pts[i], pts[i + 1]),
                    route_id=segment.id,
                    insert_index=i + 1,
                    distance_km=d,
                )
    return best


def snap_to_route_network(
    target: Coordinate,
    segments: Sequence[RouteSegment],
) -> tuple[Coordinate, NearestSegmentResult] | None:
    """Project a click onto the nearest edge of the drawn network."""
    nearest = find_nearest_route_segment(target, segments)
    if nearest is None:
        return None
    seg_start, seg_end = nearest.segment
    return project_point_onto_segment(target, seg_start, seg_end), nearest


def insert_point_into_segment(segment: RouteSegment, insert_index: int, point: Coordinate) -> RouteSegment:
    """Return a copy of `segment` with `point` spliced in before `insert_index`.

    The index is clamped so the existing first and last vertices stay the
    segment's endpoints.
    """
    if len(segment.points) < 2:
        raise ValueError(f"segment {segment.id!r} has fewer than two points")
    idx = min(max(1, int(insert_index)), len(segment.points) - 1)
    points = (*segment.points[:idx], point, *segment.points[idx:])
    return RouteSegment(
        id=segment.id,
        points=points,
        rating=segment.rating,
        slope=segment.slope,
        name=segment.name,
    )
