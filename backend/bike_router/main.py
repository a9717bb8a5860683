from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .leg_cache import clear_leg_cache, leg_cache_stats
from .logging_utils import log_event
from .models import (
    InsertPointRequest,
    InsertPointResponse,
    LatLng,
    NearestPointResponse,
    NearestRequest,
    NearestSegmentResponse,
    RouteRequest,
    RouteResponse,
    RouteSegment,
    RouteSummaryPayload,
    SegmentPayload,
)
from .route_index import find_nearest_route_point, insert_point_into_segment, snap_to_route_network
from .routing_osrm import OSRMClient, RoadRouter
from .segment_store import SegmentStore, default_segment_store
from .settings import settings
from .stitcher import build_full_route
from .store_errors import SegmentStoreError, normalize_reason_code


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.osrm = OSRMClient(
        base_url=settings.osrm_base_url,
        profile=settings.osrm_profile,
        timeout_s=settings.osrm_timeout_s,
        connect_timeout_s=settings.osrm_connect_timeout_s,
        max_retries=settings.osrm_max_retries,
    )
    app.state.segment_store = default_segment_store()
    yield
    await app.state.osrm.aclose()


app = FastAPI(title="Bike Path Router", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def osrm_client(request: Request) -> RoadRouter:
    osrm: RoadRouter | None = getattr(request.app.state, "osrm", None)
    if osrm is None:
        raise HTTPException(status_code=503, detail="OSRM client not initialised")
    return osrm


def segment_store(request: Request) -> SegmentStore:
    store: SegmentStore | None = getattr(request.app.state, "segment_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="segment store not initialised")
    return store


RouterDep = Annotated[RoadRouter, Depends(osrm_client)]
StoreDep = Annotated[SegmentStore, Depends(segment_store)]


def _resolve_segments(inline: list[SegmentPayload] | None, store: SegmentStore) -> tuple[RouteSegment, ...]:
    if inline is not None:
        return tuple(s.to_segment() for s in inline)
    try:
        return store.snapshot()
    except SegmentStoreError as e:
        log_event(
            "segment_store_unavailable",
            reason_code=normalize_reason_code(e.reason_code),
            details=e.details or {},
        )
        raise HTTPException(status_code=503, detail="segment store unavailable") from e


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Backend is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/route", response_model=RouteResponse)
async def compute_route(req: RouteRequest, router: RouterDep, store: StoreDep) -> RouteResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()

    segments = _resolve_segments(req.segments, store)
    preference = req.preference.to_preference()
    stitched = await build_full_route(
        req.start.to_coordinate(),
        req.end.to_coordinate(),
        segments,
        preference,
        router,
    )

    log_event(
        "route_request",
        request_id=request_id,
        route_type=preference.route_type.value,
        avoid_steep_slopes=preference.avoid_steep_slopes,
        start=req.start.model_dump(),
        end=req.end.model_dump(),
        segment_count=len(segments),
        inline_segments=req.segments is not None,
        strategy=stitched.strategy,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )

    return RouteResponse(
        points=[LatLng.from_coordinate(p) for p in stitched.points],
        summary=RouteSummaryPayload(
            distance_km=stitched.summary.distance_km,
            duration_min=stitched.summary.duration_min,
            route_type=stitched.summary.route_type,
        ),
        strategy=stitched.strategy,
        segment_path=list(stitched.segment_path),
        external_legs=stitched.external_legs,
    )


@app.post("/nearest/point", response_model=NearestPointResponse)
async def nearest_point(req: NearestRequest, store: StoreDep) -> NearestPointResponse:
    segments = _resolve_segments(req.segments, store)
    found = find_nearest_route_point(req.target.to_coordinate(), segments, sample_stride=settings.snap_sample_stride)
    if found is None:
        return NearestPointResponse()
    return NearestPointResponse(
        point=LatLng.from_coordinate(found.point),
        route_id=found.route_id,
        index=found.index,
        distance_km=found.distance_km,
    )


@app.post("/nearest/segment", response_model=NearestSegmentResponse)
async def nearest_segment(req: NearestRequest, store: StoreDep) -> NearestSegmentResponse:
    segments = _resolve_segments(req.segments, store)
    snapped = snap_to_route_network(req.target.to_coordinate(), segments)
    if snapped is None:
        return NearestSegmentResponse()
    projection, found = snapped
    return NearestSegmentResponse(
        segment=(LatLng.from_coordinate(found.segment[0]), LatLng.from_coordinate(found.segment[1])),
        projection=LatLng.from_coordinate(projection),
        route_id=found.route_id,
        insert_index=found.insert_index,
        distance_km=found.distance_km,
    )


@app.post("/segments/insert-point", response_model=InsertPointResponse)
async def insert_point(req: InsertPointRequest) -> InsertPointResponse:
    updated = insert_point_into_segment(req.segment.to_segment(), req.insert_index, req.point.to_coordinate())
    log_event(
        "segment_point_inserted",
        route_id=updated.id,
        insert_index=req.insert_index,
        point_count=len(updated.points),
    )
    return InsertPointResponse(segment=SegmentPayload.from_segment(updated))


@app.get("/cache/stats")
async def cache_stats() -> dict[str, int]:
    return leg_cache_stats()


@app.delete("/cache")
async def clear_cache() -> dict[str, int]:
    return {"cleared": clear_leg_cache()}
