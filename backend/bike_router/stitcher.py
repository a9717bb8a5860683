from __future__ import annotations

import time
from collections.abc import Sequence

from .connections import build_connections, find_best_connection
from .geometry import distance, estimate_duration_min, is_within_distance, total_distance
from .greedy import greedy_fallback_path
from .leg_cache import LEG_CACHE, LegCacheStore
from .logging_utils import log_event
from .models import (
    Coordinate,
    NearestPointResult,
    RouteSegment,
    RouteSummary,
    RouteType,
    RoutingPreference,
    StitchedRoute,
    StitchStrategy,
)
from .path_search import find_segment_path, same_segment_path
from .route_index import find_nearest_route_point
from .routing_osrm import RoadRouter, external_route
from .settings import settings


def remove_redundant_points(points: Sequence[Coordinate], min_km: float = 0.01) -> list[Coordinate]:
    """Drop interior points within `min_km` of the last kept point.

    The first and last points are always kept as given.
    """
    if len(points) <= 2:
        return list(points)

    result: list[Coordinate] = [points[0]]
    for p in points[1:-1]:
        if not is_within_distance(result[-1], p, min_km):
            result.append(p)
    result.append(points[-1])
    return result


def summarize_route(points: Sequence[Coordinate], route_type: RouteType) -> RouteSummary:
    distance_km = total_distance(points)
    return RouteSummary(
        distance_km=round(distance_km, 3),
        duration_min=round(estimate_duration_min(distance_km, settings.average_speed_kmh), 1),
        route_type=route_type,
    )


def _unique_routable(segments: Sequence[RouteSegment]) -> list[RouteSegment]:
    # First segment wins when the store hands out duplicate ids.
    seen: set[str] = set()
    out: list[RouteSegment] = []
    for seg in segments:
        if not seg.is_routable or seg.id in seen:
            continue
        seen.add(seg.id)
        out.append(seg)
    return out


def walk_segment_path(
    path_ids: Sequence[str],
    segments_by_id: dict[str, RouteSegment],
    start_snap: NearestPointResult,
    end_snap: NearestPointResult,
) -> list[Coordinate]:
    """Vertices from the start snap to the end snap along consecutive segments.

    The start snap point itself is not included. Each segment is traversed
    from the vertex where it was entered to the vertex closest to the next
    segment on the path.
    """
    out: list[Coordinate] = []
    entry_index = start_snap.index
    for pos, seg_id in enumerate(path_ids):
        segment = segments_by_id[seg_id]
        if pos == len(path_ids) - 1:
            out.extend(same_segment_path(segment, entry_index, end_snap.index)[1:])
            break

        following = segments_by_id[path_ids[pos + 1]]
        link = find_best_connection(segment, following)
        if link is None:
            break
        out.extend(same_segment_path(segment, entry_index, link.from_index)[1:])
        out.append(following.points[link.to_index])
        entry_index = link.to_index
    return out


def _finalize(
    points: list[Coordinate],
    *,
    start: Coordinate,
    end: Coordinate,
    preference: RoutingPreference,
    strategy: StitchStrategy,
    segment_path: tuple[str, ...],
    external_legs: int,
    t0: float,
    segment_count: int,
) -> StitchedRoute:
    if not points or points[0] != start:
        points.insert(0, start)
    if points[-1] != end or len(points) < 2:
        points.append(end)
    cleaned = remove_redundant_points(points, settings.redundant_point_m / 1000.0)
    summary = summarize_route(cleaned, preference.route_type)

    log_event(
        "route_stitched",
        strategy=strategy,
        route_type=preference.route_type.value,
        avoid_steep_slopes=preference.avoid_steep_slopes,
        segment_count=segment_count,
        segment_path=list(segment_path),
        external_legs=external_legs,
        point_count=len(cleaned),
        distance_km=summary.distance_km,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return StitchedRoute(
        points=tuple(cleaned),
        summary=summary,
        strategy=strategy,
        segment_path=segment_path,
        external_legs=external_legs,
    )


class _CountingRouter:
    """Counts fetches that reach the road router; cache hits never get here."""

    def __init__(self, router: RoadRouter) -> None:
        self._router = router
        self.calls = 0

    async def fetch_route(self, start: Coordinate, end: Coordinate) -> list[Coordinate]:
        self.calls += 1
        return await self._router.fetch_route(start, end)


async def build_full_route(
    start: Coordinate,
    end: Coordinate,
    segments: Sequence[RouteSegment],
    preference: RoutingPreference,
    router: RoadRouter,
    *,
    cache: LegCacheStore | None = LEG_CACHE,
) -> StitchedRoute:
    """Route from start to end over the drawn bike paths, bridged by the road router.

    The only suspension points are the external router calls; everything
    else runs synchronously on a graph built from this call's snapshot.
    """
    t0 = time.perf_counter()
    routable = _unique_routable(segments)
    approach_km = settings.approach_threshold_m / 1000.0
    counting = _CountingRouter(router)

    async def _leg(a: Coordinate, b: Coordinate) -> list[Coordinate]:
        return await external_route(counting, a, b, cache=cache)

    def _done(points: list[Coordinate], strategy: StitchStrategy, path: tuple[str, ...] = ()) -> StitchedRoute:
        return _finalize(
            points,
            start=start,
            end=end,
            preference=preference,
            strategy=strategy,
            segment_path=path,
            external_legs=counting.calls,
            t0=t0,
            segment_count=len(routable),
        )

    start_snap = find_nearest_route_point(start, routable, sample_stride=settings.snap_sample_stride)
    end_snap = find_nearest_route_point(end, routable, sample_stride=settings.snap_sample_stride)

    max_snap_km = settings.max_snap_distance_m / 1000.0
    if (
        start_snap is None
        or end_snap is None
        or start_snap.distance_km > max_snap_km
        or end_snap.distance_km > max_snap_km
    ):
        return _done(await _leg(start, end), "external_direct")

    if distance(start, start_snap.point) > approach_km:
        route_points = await _leg(start, start_snap.point)
    else:
        route_points = [start, start_snap.point]

    segments_by_id = {seg.id: seg for seg in routable}
    strategy: StitchStrategy
    segment_path: tuple[str, ...]

    if start_snap.route_id == end_snap.route_id:
        section = same_segment_path(segments_by_id[start_snap.route_id], start_snap.index, end_snap.index)
        route_points.extend(section[1:])
        strategy = "same_segment"
        segment_path = (start_snap.route_id,)
    else:
        connections = build_connections(routable, settings.connection_threshold_m)
        found = find_segment_path(
            connections,
            segments_by_id,
            start_snap.route_id,
            end_snap.route_id,
            preference,
        )
        if found is not None:
            route_points.extend(walk_segment_path(found.nodes, segments_by_id, start_snap, end_snap))
            strategy = "graph"
            segment_path = found.nodes
        else:
            hops = greedy_fallback_path(
                start_snap,
                end_snap.point,
                routable,
                preference,
                sample_stride=settings.greedy_sample_stride,
                search_radius_km=settings.greedy_search_radius_km,
                arrival_km=settings.greedy_arrival_m / 1000.0,
                max_steps=settings.greedy_max_steps,
            )
            arrived = is_within_distance(start_snap.point, end_snap.point, settings.greedy_arrival_m / 1000.0)
            if not hops and not arrived:
                log_event(
                    "route_greedy_no_progress",
                    start_route_id=start_snap.route_id,
                    end_route_id=end_snap.route_id,
                )
                return _done(await _leg(start, end), "external_direct")
            route_points.extend(hops)
            strategy = "greedy"
            segment_path = ()

    last = route_points[-1]
    if distance(last, end) > approach_km:
        exit_leg = await _leg(last, end)
        route_points.extend(exit_leg[1:])
    elif len(route_points) > 1 and is_within_distance(last, end, settings.redundant_point_m / 1000.0):
        # The path already ends on the destination; don't stack a duplicate.
        route_points[-1] = end
    else:
        route_points.append(end)

    return _done(route_points, strategy, segment_path)
