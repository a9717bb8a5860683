from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _running_in_docker() -> bool:
    """Best-effort check for container execution.

    Used only to pick sensible defaults. Environment variables always win.
    """
    return Path("/.dockerenv").exists() or os.environ.get("RUNNING_IN_DOCKER") == "1"


def _default_out_dir() -> str:
    if _running_in_docker():
        return "/app/out"
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping routing thresholds out of code."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # The public OSRM demo server exposes a bicycle profile; self-hosted
    # instances can be swapped in through the environment.
    osrm_base_url: str = Field(default="https://router.project-osrm.org", alias="OSRM_BASE_URL")
    osrm_profile: str = Field(default="bicycle", alias="OSRM_PROFILE")
    osrm_timeout_s: float = Field(default=10.0, ge=0.5, le=120.0, alias="OSRM_TIMEOUT_S")
    osrm_connect_timeout_s: float = Field(default=5.0, ge=0.1, le=60.0, alias="OSRM_CONNECT_TIMEOUT_S")
    osrm_max_retries: int = Field(default=3, ge=1, le=10, alias="OSRM_MAX_RETRIES")

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Read-only snapshot of user-drawn bike paths (JSON export of the document store).
    segments_path: str = Field(default="", alias="SEGMENTS_PATH")

    connection_threshold_m: float = Field(default=150.0, gt=0.0, le=5_000.0, alias="CONNECTION_THRESHOLD_M")
    approach_threshold_m: float = Field(default=50.0, ge=0.0, le=5_000.0, alias="APPROACH_THRESHOLD_M")
    max_snap_distance_m: float = Field(default=2_000.0, gt=0.0, le=50_000.0, alias="MAX_SNAP_DISTANCE_M")
    redundant_point_m: float = Field(default=10.0, ge=0.0, le=500.0, alias="REDUNDANT_POINT_M")

    # Vertex sampling strides. 1 scans every vertex; larger values trade
    # granularity for speed on long segments.
    snap_sample_stride: int = Field(default=1, ge=1, le=100, alias="SNAP_SAMPLE_STRIDE")
    greedy_sample_stride: int = Field(default=5, ge=1, le=100, alias="GREEDY_SAMPLE_STRIDE")

    greedy_search_radius_km: float = Field(default=5.0, gt=0.0, le=100.0, alias="GREEDY_SEARCH_RADIUS_KM")
    greedy_arrival_m: float = Field(default=100.0, gt=0.0, le=5_000.0, alias="GREEDY_ARRIVAL_M")
    greedy_max_steps: int = Field(default=100, ge=1, le=10_000, alias="GREEDY_MAX_STEPS")

    average_speed_kmh: float = Field(default=15.0, gt=0.0, le=60.0, alias="AVERAGE_SPEED_KMH")

    leg_cache_ttl_s: int = Field(default=600, ge=1, alias="LEG_CACHE_TTL_S")
    leg_cache_max_entries: int = Field(default=1024, ge=1, alias="LEG_CACHE_MAX_ENTRIES")

    @model_validator(mode="after")
    def _check_thresholds(self) -> Settings:
        if self.approach_threshold_m > self.max_snap_distance_m:
            raise ValueError("APPROACH_THRESHOLD_M must not exceed MAX_SNAP_DISTANCE_M")
        return self


settings = Settings()
