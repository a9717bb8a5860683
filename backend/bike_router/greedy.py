from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .geometry import distance, is_within_distance
from .models import Coordinate, NearestPointResult, RouteSegment, RouteType, RoutingPreference, SlopeCategory
from .route_index import sampled_indices

CONTINUITY_BONUS = 3.0

FLATTEST_SLOPE_SCORES: dict[SlopeCategory, float] = {
    SlopeCategory.FLAT: 50.0,
    SlopeCategory.LIGHT: 25.0,
    SlopeCategory.MEDIUM: -10.0,
    SlopeCategory.STEEP: -100.0,
    SlopeCategory.VARYING: -25.0,
}


@dataclass(frozen=True)
class _Candidate:
    point: Coordinate
    segment: RouteSegment
    index: int


def _candidates(segments: Sequence[RouteSegment], stride: int) -> list[_Candidate]:
    out: list[_Candidate] = []
    for seg in segments:
        if not seg.is_routable:
            continue
        for idx in sampled_indices(len(seg.points), stride):
            out.append(_Candidate(point=seg.points[idx], segment=seg, index=idx))
    return out


def preference_score(segment: RouteSegment, preference: RoutingPreference, distance_to_end_km: float) -> float:
    """Additive bonus / penalty a candidate vertex earns from its segment's attributes."""
    score = 0.0
    if preference.route_type is RouteType.BEST_RATED and segment.rating:
        score += (segment.rating**3) * 10.0
    elif preference.route_type is RouteType.FLATTEST and segment.slope is not None:
        score += FLATTEST_SLOPE_SCORES[segment.slope]
    elif preference.route_type is RouteType.FASTEST:
        score -= distance_to_end_km * 8.0
        if segment.slope is SlopeCategory.STEEP:
            score -= 25.0
    if preference.avoid_steep_slopes and segment.slope is SlopeCategory.STEEP:
        score -= 100.0
    return score


def greedy_fallback_path(
    start_snap: NearestPointResult,
    end_point: Coordinate,
    segments: Sequence[RouteSegment],
    preference: RoutingPreference,
    *,
    sample_stride: int = 5,
    search_radius_km: float = 5.0,
    arrival_km: float = 0.1,
    max_steps: int = 100,
) -> list[Coordinate]:
    """Best-effort hop sequence over sampled vertices when the graph has no path.

    Not optimal and possibly disconnected; callers treat an empty result as
    "no progress".
    """
    candidates = _candidates(segments, sample_stride)
    current = start_snap.point
    visited_routes = {start_snap.route_id}
    chosen: list[Coordinate] = []

    steps = 0
    while not is_within_distance(current, end_point, arrival_km) and steps < max_steps:
        steps += 1
        best: _Candidate | None = None
        best_score = 0.0
        for cand in candidates:
            from_current = distance(current, cand.point)
            if from_current > search_radius_km:
                continue
            to_end = distance(cand.point, end_point)
            score = -to_end * 2.0 - from_current
            if cand.segment.id in visited_routes:
                score += CONTINUITY_BONUS
            score += preference_score(cand.segment, preference, to_end)
            if best is None or score > best_score:
                best = cand
                best_score = score

        if best is None or best.point == current:
            break
        chosen.append(best.point)
        current = best.point
        visited_routes.add(best.segment.id)
    return chosen
