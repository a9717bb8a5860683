from __future__ import annotations

import heapq
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from math import inf

from .models import Coordinate, RouteSegment, RouteType, RoutingPreference, SlopeCategory

UNRATED_PENALTY = 20.0
UNKNOWN_SLOPE_WEIGHT = 8.0
STEEP_AVOIDANCE_FACTOR = 10.0

SLOPE_WEIGHTS: dict[SlopeCategory, float] = {
    SlopeCategory.FLAT: 0.01,
    SlopeCategory.LIGHT: 0.2,
    SlopeCategory.MEDIUM: 5.0,
    SlopeCategory.STEEP: 100.0,
    SlopeCategory.VARYING: 10.0,
}


@dataclass(frozen=True)
class PathResult:
    nodes: tuple[str, ...]
    cost: float


def edge_weight(target: RouteSegment | None, preference: RoutingPreference) -> float:
    """Cost of moving onto `target`; lower is preferred."""
    slope = target.slope if target is not None else None
    if preference.route_type is RouteType.BEST_RATED:
        rating = target.rating if target is not None else None
        # Cubic emphasis: a 5-star path costs 1/125, a 2-star one 1/8.
        weight = 1.0 / (rating**3) if rating is not None and rating > 0 else UNRATED_PENALTY
    elif preference.route_type is RouteType.FLATTEST:
        weight = SLOPE_WEIGHTS[slope] if slope is not None else UNKNOWN_SLOPE_WEIGHT
    else:
        weight = 1.0
    if preference.avoid_steep_slopes and slope is SlopeCategory.STEEP:
        weight *= STEEP_AVOIDANCE_FACTOR
    return weight


def bfs_segment_path(
    connections: Mapping[str, set[str]],
    start_id: str,
    end_id: str,
) -> PathResult | None:
    """Fewest-hop path between two segments, or None when disconnected."""
    if start_id not in connections or end_id not in connections:
        return None
    if start_id == end_id:
        return PathResult(nodes=(start_id,), cost=0.0)

    queue: deque[tuple[str, tuple[str, ...]]] = deque([(start_id, (start_id,))])
    visited = {start_id}
    while queue:
        node, path = queue.popleft()
        for nxt in sorted(connections.get(node, ())):
            if nxt == end_id:
                full = (*path, nxt)
                return PathResult(nodes=full, cost=float(len(full) - 1))
            if nxt in visited:
                continue
            visited.add(nxt)
            queue.append((nxt, (*path, nxt)))
    return None


def dijkstra_segment_path(
    connections: Mapping[str, set[str]],
    segments_by_id: Mapping[str, RouteSegment],
    start_id: str,
    end_id: str,
    preference: RoutingPreference,
) -> PathResult | None:
    """Lowest-cost path where entering segment B costs `edge_weight(B, preference)`."""
    if start_id not in connections or end_id not in connections:
        return None

    dist: dict[str, float] = {start_id: 0.0}
    previous: dict[str, str | None] = {start_id: None}
    settled: set[str] = set()
    # The sequence number makes equal-cost entries pop in discovery order.
    seq = 0
    heap: list[tuple[float, int, str]] = [(0.0, seq, start_id)]

    while heap:
        cost, _, node = heapq.heappop(heap)
        if node in settled:
            continue
        settled.add(node)
        if node == end_id:
            break
        for nxt in sorted(connections.get(node, ())):
            if nxt in settled:
                continue
            new_cost = cost + edge_weight(segments_by_id.get(nxt), preference)
            if new_cost < dist.get(nxt, inf):
                dist[nxt] = new_cost
                previous[nxt] = node
                seq += 1
                heapq.heappush(heap, (new_cost, seq, nxt))

    if end_id not in settled:
        return None

    nodes: list[str] = []
    current: str | None = end_id
    while current is not None:
        nodes.append(current)
        current = previous[current]
    nodes.reverse()
    return PathResult(nodes=tuple(nodes), cost=dist[end_id])


def find_segment_path(
    connections: Mapping[str, set[str]],
    segments_by_id: Mapping[str, RouteSegment],
    start_id: str,
    end_id: str,
    preference: RoutingPreference,
) -> PathResult | None:
    if start_id == end_id:
        if start_id not in connections:
            return None
        return PathResult(nodes=(start_id,), cost=0.0)
    if preference.is_weighted:
        return dijkstra_segment_path(connections, segments_by_id, start_id, end_id, preference)
    return bfs_segment_path(connections, start_id, end_id)


def same_segment_path(segment: RouteSegment, start_index: int, end_index: int) -> list[Coordinate]:
    """Vertices between two indices of one segment, inclusive, oriented start -> end."""
    lo, hi = sorted((start_index, end_index))
    section = list(segment.points[lo : hi + 1])
    if start_index > end_index:
        section.reverse()
    return section
