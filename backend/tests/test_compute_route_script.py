from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

import pytest

import scripts.compute_route as compute_route
from bike_router.models import Coordinate


def _write_segments(path: Path) -> None:
    docs = [
        {"id": "A", "points": [{"lat": 0.0, "lng": 0.0}, {"lat": 0.0, "lng": 1.0}], "slope": "flach"},
        {"id": "B", "points": [{"lat": 0.0, "lng": 1.001}, {"lat": 0.0, "lng": 2.0}], "rating": 5},
    ]
    path.write_text(json.dumps(docs), encoding="utf-8")


def test_parse_lat_lng_validation() -> None:
    assert compute_route.parse_lat_lng("48.77, 9.18") == Coordinate(48.77, 9.18)
    for bad in ("48.77", "a,b", "95,0"):
        with pytest.raises(argparse.ArgumentTypeError):
            compute_route.parse_lat_lng(bad)


def test_offline_run_writes_geojson(tmp_path: Path) -> None:
    segments = tmp_path / "routes.json"
    out = tmp_path / "nested" / "route.geojson"
    _write_segments(segments)

    rc = compute_route.main(
        [
            "--segments",
            str(segments),
            "--start",
            "0,0",
            "--end",
            "0,2",
            "--route-type",
            "best_rated",
            "--offline",
            "--out",
            str(out),
        ]
    )

    assert rc == 0
    feature = json.loads(out.read_text(encoding="utf-8"))
    assert feature["type"] == "Feature"
    assert feature["geometry"]["type"] == "LineString"
    assert feature["geometry"]["coordinates"][0] == [0.0, 0.0]
    assert feature["geometry"]["coordinates"][-1] == [2.0, 0.0]
    assert feature["properties"]["strategy"] == "graph"
    assert feature["properties"]["segment_path"] == ["A", "B"]
    assert feature["properties"]["route_type"] == "best_rated"


def test_run_compute_accepts_injected_router(tmp_path: Path) -> None:
    calls: list[tuple[Coordinate, Coordinate]] = []

    class _Router:
        async def fetch_route(self, start: Coordinate, end: Coordinate) -> list[Coordinate]:
            calls.append((start, end))
            return [start, end]

    args = compute_route.build_parser().parse_args(
        ["--segments", str(tmp_path / "missing.json"), "--start", "48.77,9.17", "--end", "48.78,9.19"]
    )
    feature = asyncio.run(compute_route.run_compute(args, router=_Router()))

    assert feature["properties"]["strategy"] == "external_direct"
    assert feature["properties"]["external_legs"] == 1
    assert len(calls) == 1
