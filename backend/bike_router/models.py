from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    def as_lng_lat(self) -> tuple[float, float]:
        return (self.lng, self.lat)


class SlopeCategory(str, Enum):
    FLAT = "flat"
    LIGHT = "light"
    MEDIUM = "medium"
    STEEP = "steep"
    VARYING = "varying"


# Labels written by the map frontend (German UI) alongside the English names.
_SLOPE_ALIASES: dict[str, SlopeCategory] = {
    "flat": SlopeCategory.FLAT,
    "flach": SlopeCategory.FLAT,
    "light": SlopeCategory.LIGHT,
    "leicht": SlopeCategory.LIGHT,
    "medium": SlopeCategory.MEDIUM,
    "mittel": SlopeCategory.MEDIUM,
    "steep": SlopeCategory.STEEP,
    "steil": SlopeCategory.STEEP,
    "varying": SlopeCategory.VARYING,
    "varierend": SlopeCategory.VARYING,
    "variierend": SlopeCategory.VARYING,
}


def parse_slope(value: object) -> SlopeCategory | None:
    """Map a stored slope label onto a category; unknown labels become None."""
    if isinstance(value, SlopeCategory):
        return value
    if not isinstance(value, str):
        return None
    return _SLOPE_ALIASES.get(value.strip().lower())


class RouteType(str, Enum):
    FASTEST = "fastest"
    FLATTEST = "flattest"
    BEST_RATED = "best_rated"


@dataclass(frozen=True)
class RoutingPreference:
    route_type: RouteType = RouteType.FASTEST
    avoid_steep_slopes: bool = False

    @property
    def is_weighted(self) -> bool:
        return self.route_type in (RouteType.BEST_RATED, RouteType.FLATTEST) or self.avoid_steep_slopes


@dataclass(frozen=True)
class RouteSegment:
    id: str
    points: tuple[Coordinate, ...]
    rating: float | None = None
    slope: SlopeCategory | None = None
    name: str | None = None

    @property
    def is_routable(self) -> bool:
        return bool(self.id) and len(self.points) >= 2


@dataclass(frozen=True)
class NearestPointResult:
    point: Coordinate
    route_id: str
    index: int
    distance_km: float


@dataclass(frozen=True)
class NearestSegmentResult:
    segment: tuple[Coordinate, Coordinate]
    route_id: str
    insert_index: int
    distance_km: float


StitchStrategy = Literal["external_direct", "same_segment", "graph", "greedy"]


@dataclass(frozen=True)
class RouteSummary:
    distance_km: float
    duration_min: float
    route_type: RouteType


@dataclass(frozen=True)
class StitchedRoute:
    points: tuple[Coordinate, ...]
    summary: RouteSummary
    strategy: StitchStrategy
    segment_path: tuple[str, ...] = field(default_factory=tuple)
    external_legs: int = 0


# --- HTTP payloads ---------------------------------------------------------


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lng=self.lng)

    @classmethod
    def from_coordinate(cls, coord: Coordinate) -> LatLng:
        return cls(lat=coord.lat, lng=coord.lng)


class SegmentPayload(BaseModel):
    id: str = Field(..., min_length=1)
    points: list[LatLng] = Field(default_factory=list)
    rating: float | None = Field(default=None, ge=0.0)
    slope: str | None = None
    name: str | None = None

    def to_segment(self) -> RouteSegment:
        return RouteSegment(
            id=self.id,
            points=tuple(p.to_coordinate() for p in self.points),
            rating=self.rating,
            slope=parse_slope(self.slope),
            name=self.name,
        )

    @classmethod
    def from_segment(cls, segment: RouteSegment) -> SegmentPayload:
        return cls(
            id=segment.id,
            points=[LatLng.from_coordinate(p) for p in segment.points],
            rating=segment.rating,
            slope=segment.slope.value if segment.slope is not None else None,
            name=segment.name,
        )


class PreferencePayload(BaseModel):
    """Routing preference as sent by the navigation panel."""

    route_type: RouteType = RouteType.FASTEST
    avoid_steep_slopes: bool = False

    def to_preference(self) -> RoutingPreference:
        return RoutingPreference(route_type=self.route_type, avoid_steep_slopes=self.avoid_steep_slopes)


class RouteRequest(BaseModel):
    start: LatLng
    end: LatLng
    preference: PreferencePayload = Field(default_factory=PreferencePayload)
    # When omitted the configured segment store snapshot is used.
    segments: list[SegmentPayload] | None = Field(default=None, max_length=20_000)


class RouteSummaryPayload(BaseModel):
    distance_km: float
    duration_min: float
    route_type: RouteType


class RouteResponse(BaseModel):
    points: list[LatLng]
    summary: RouteSummaryPayload
    strategy: StitchStrategy
    segment_path: list[str] = Field(default_factory=list)
    external_legs: int = 0


class NearestRequest(BaseModel):
    target: LatLng
    segments: list[SegmentPayload] | None = Field(default=None, max_length=20_000)


class NearestPointResponse(BaseModel):
    point: LatLng | None = None
    route_id: str | None = None
    index: int | None = None
    distance_km: float | None = None


class NearestSegmentResponse(BaseModel):
    segment: tuple[LatLng, LatLng] | None = None
    projection: LatLng | None = None
    route_id: str | None = None
    insert_index: int | None = None
    distance_km: float | None = None


class InsertPointRequest(BaseModel):
    segment: SegmentPayload
    insert_index: int = Field(..., ge=0)
    point: LatLng

    @field_validator("segment")
    @classmethod
    def routable(cls, v: SegmentPayload) -> SegmentPayload:
        if len(v.points) < 2:
            raise ValueError("segment must have at least two points")
        return v


class InsertPointResponse(BaseModel):
    segment: SegmentPayload
