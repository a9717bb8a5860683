from __future__ import annotations

import json
import math
from pathlib import Path
from threading import Lock
from typing import Protocol

from .logging_utils import log_warning
from .models import Coordinate, RouteSegment, parse_slope
from .settings import settings
from .store_errors import SegmentStoreError


class SegmentStore(Protocol):
    def snapshot(self) -> tuple[RouteSegment, ...]: ...


def _parse_point(raw: object) -> Coordinate | None:
    if not isinstance(raw, dict):
        return None
    lat = raw.get("lat")
    lng = raw.get("lng", raw.get("lon"))
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return Coordinate(lat=float(lat), lng=float(lng))


def parse_segment(raw: object) -> RouteSegment | None:
    """Build a segment from a stored route document, or None if it can't be routed."""
    if not isinstance(raw, dict):
        return None
    seg_id = raw.get("id")
    if not isinstance(seg_id, str) or not seg_id.strip():
        return None
    raw_points = raw.get("points")
    if not isinstance(raw_points, list):
        return None

    points: list[Coordinate] = []
    for item in raw_points:
        point = _parse_point(item)
        if point is None:
            return None
        points.append(point)
    if len(points) < 2:
        return None

    rating = raw.get("rating")
    name = raw.get("name")
    return RouteSegment(
        id=seg_id.strip(),
        points=tuple(points),
        rating=float(rating) if isinstance(rating, (int, float)) and math.isfinite(rating) else None,
        slope=parse_slope(raw.get("slope")),
        name=name if isinstance(name, str) else None,
    )


def parse_segments(payload: object) -> tuple[RouteSegment, ...]:
    if isinstance(payload, dict):
        payload = payload.get("routes", payload.get("segments"))
    if not isinstance(payload, list):
        raise SegmentStoreError(
            reason_code="segment_store_invalid",
            message="segment snapshot must be a list or an object with a 'routes' list",
        )

    out: list[RouteSegment] = []
    skipped = 0
    for raw in payload:
        segment = parse_segment(raw)
        if segment is None:
            skipped += 1
            continue
        out.append(segment)
    if skipped:
        log_warning(
            "segment_documents_skipped",
            reason_code="segment_document_invalid",
            skipped=skipped,
            kept=len(out),
        )
    return tuple(out)


class InMemorySegmentStore:
    def __init__(self, segments: tuple[RouteSegment, ...] | list[RouteSegment] = ()) -> None:
        self._segments = tuple(segments)

    def snapshot(self) -> tuple[RouteSegment, ...]:
        return self._segments


class JsonFileSegmentStore:
    """Reads the exported route collection on every snapshot, so graphs never see stale data."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = Lock()

    def snapshot(self) -> tuple[RouteSegment, ...]:
        with self._lock:
            if not self.path.exists():
                return ()
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise SegmentStoreError(
                    reason_code="segment_store_unavailable",
                    message=f"segment snapshot unreadable: {self.path}",
                    details={"error": f"{type(e).__name__}: {e}"},
                ) from e
        return parse_segments(raw)


def default_segment_store() -> SegmentStore:
    if settings.segments_path:
        return JsonFileSegmentStore(settings.segments_path)
    return InMemorySegmentStore()
