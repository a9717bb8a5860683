from __future__ import annotations

import random

import pytest

from bike_router.geometry import (
    distance,
    distance_to_segment,
    estimate_duration_min,
    is_within_distance,
    project_point_onto_segment,
    total_distance,
)
from bike_router.models import Coordinate

KM_PER_DEG = 111.19492664455873


def _random_point(rng: random.Random) -> Coordinate:
    # City-scale box around Stuttgart.
    return Coordinate(lat=rng.uniform(48.70, 48.85), lng=rng.uniform(9.05, 9.30))


def test_distance_one_degree_of_longitude_on_equator() -> None:
    assert distance(Coordinate(0.0, 0.0), Coordinate(0.0, 1.0)) == pytest.approx(KM_PER_DEG, rel=1e-9)
    assert distance(Coordinate(10.0, 10.0), Coordinate(10.0, 10.0)) == 0.0


def test_is_within_distance_is_inclusive() -> None:
    a = Coordinate(0.0, 0.0)
    b = Coordinate(0.0, 0.001)
    d = distance(a, b)
    assert is_within_distance(a, b, d)
    assert not is_within_distance(a, b, d * 0.999)


def test_total_distance_handles_short_inputs() -> None:
    assert total_distance([]) == 0.0
    assert total_distance([Coordinate(1.0, 1.0)]) == 0.0
    pts = [Coordinate(0.0, 0.0), Coordinate(0.0, 1.0), Coordinate(0.0, 2.0)]
    assert total_distance(pts) == pytest.approx(2 * KM_PER_DEG, rel=1e-9)


def test_distance_symmetry_and_triangle_inequality_randomized() -> None:
    rng = random.Random(20250412)
    for _ in range(200):
        a, b, c = _random_point(rng), _random_point(rng), _random_point(rng)
        assert distance(a, b) == pytest.approx(distance(b, a), abs=1e-12)
        assert distance(a, c) <= distance(a, b) + distance(b, c) + 1e-9


def test_projection_clamps_to_segment_endpoints() -> None:
    s = Coordinate(0.0, 0.0)
    e = Coordinate(0.0, 1.0)
    assert project_point_onto_segment(Coordinate(0.0, -1.0), s, e) == s
    assert project_point_onto_segment(Coordinate(0.0, 3.0), s, e) == e

    mid = project_point_onto_segment(Coordinate(1.0, 0.5), s, e)
    assert mid.lat == pytest.approx(0.0)
    assert mid.lng == pytest.approx(0.5)
    assert distance_to_segment(Coordinate(1.0, 0.5), s, e) == pytest.approx(KM_PER_DEG, rel=1e-9)


def test_degenerate_segment_falls_back_to_point_distance() -> None:
    p = Coordinate(48.78, 9.18)
    s = Coordinate(48.77, 9.17)
    assert distance_to_segment(p, s, s) == pytest.approx(distance(p, s))
    assert project_point_onto_segment(p, s, s) == s


def test_projection_consistency_randomized() -> None:
    rng = random.Random(7)
    for _ in range(300):
        p, s, e = _random_point(rng), _random_point(rng), _random_point(rng)
        projected = project_point_onto_segment(p, s, e)
        assert distance_to_segment(p, s, e) == pytest.approx(distance(p, projected), abs=1e-12)
        # Never meaningfully farther than the nearer endpoint.
        assert distance_to_segment(p, s, e) <= min(distance(p, s), distance(p, e)) * 1.001 + 1e-9


def test_estimate_duration_uses_average_speed() -> None:
    assert estimate_duration_min(15.0) == pytest.approx(60.0)
    assert estimate_duration_min(7.5, speed_kmh=30.0) == pytest.approx(15.0)
    assert estimate_duration_min(-3.0) == 0.0
    with pytest.raises(ValueError):
        estimate_duration_min(1.0, speed_kmh=0.0)
