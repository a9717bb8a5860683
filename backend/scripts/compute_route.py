from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from bike_router.models import Coordinate, RouteType, RoutingPreference, StitchedRoute
from bike_router.routing_osrm import OSRMClient, RoadRouter
from bike_router.segment_store import JsonFileSegmentStore
from bike_router.settings import settings
from bike_router.stitcher import build_full_route


class StraightLineRouter:
    """Offline stand-in for OSRM: every external leg is the direct line."""

    async def fetch_route(self, start: Coordinate, end: Coordinate) -> list[Coordinate]:
        return [start, end]


def parse_lat_lng(value: str) -> Coordinate:
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"expected LAT,LNG, got {value!r}")
    try:
        lat, lng = float(parts[0]), float(parts[1])
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected numeric LAT,LNG, got {value!r}") from e
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise argparse.ArgumentTypeError(f"coordinate out of range: {value!r}")
    return Coordinate(lat=lat, lng=lng)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compute a bike route over a snapshot of drawn paths."
    )
    parser.add_argument("--segments", required=True, help="JSON export of the route collection")
    parser.add_argument("--start", required=True, type=parse_lat_lng, help="LAT,LNG")
    parser.add_argument("--end", required=True, type=parse_lat_lng, help="LAT,LNG")
    parser.add_argument(
        "--route-type",
        default=RouteType.FASTEST.value,
        choices=[t.value for t in RouteType],
    )
    parser.add_argument("--avoid-steep", action="store_true")
    parser.add_argument("--osrm-url", default=settings.osrm_base_url)
    parser.add_argument("--offline", action="store_true", help="Use straight lines instead of OSRM")
    parser.add_argument("--out", default=None, help="Write GeoJSON here instead of stdout")
    return parser


def route_to_geojson(route: StitchedRoute) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {
            "type": "LineString",
            "coordinates": [list(p.as_lng_lat()) for p in route.points],
        },
        "properties": {
            "distance_km": route.summary.distance_km,
            "duration_min": route.summary.duration_min,
            "route_type": route.summary.route_type.value,
            "strategy": route.strategy,
            "segment_path": list(route.segment_path),
            "external_legs": route.external_legs,
        },
    }


async def run_compute(args: argparse.Namespace, *, router: RoadRouter | None = None) -> dict[str, Any]:
    segments = JsonFileSegmentStore(args.segments).snapshot()
    preference = RoutingPreference(
        route_type=RouteType(args.route_type),
        avoid_steep_slopes=bool(args.avoid_steep),
    )

    own_client: OSRMClient | None = None
    if router is None:
        if args.offline:
            router = StraightLineRouter()
        else:
            own_client = OSRMClient(
                base_url=args.osrm_url,
                profile=settings.osrm_profile,
                timeout_s=settings.osrm_timeout_s,
                connect_timeout_s=settings.osrm_connect_timeout_s,
                max_retries=settings.osrm_max_retries,
            )
            router = own_client
    try:
        route = await build_full_route(args.start, args.end, segments, preference, router, cache=None)
    finally:
        if own_client is not None:
            await own_client.aclose()
    return route_to_geojson(route)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    feature = asyncio.run(run_compute(args))
    text = json.dumps(feature, indent=2)
    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
