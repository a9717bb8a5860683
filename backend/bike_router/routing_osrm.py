# backend/bike_router/routing_osrm.py
from __future__ import annotations

import asyncio
from typing import Any, Final, Protocol

import httpx

from .leg_cache import LEG_CACHE, LegCacheStore, leg_cache_key
from .logging_utils import log_warning
from .models import Coordinate


class OSRMError(RuntimeError):
    pass


class OSRMRetryableError(OSRMError):
    """An OSRM error that is likely transient and safe to retry."""

    pass


_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}


class RoadRouter(Protocol):
    async def fetch_route(self, start: Coordinate, end: Coordinate) -> list[Coordinate]: ...


def _format_osrm_error(resp: httpx.Response) -> str:
    """Best-effort decode of OSRM JSON error payloads."""
    try:
        data = resp.json()
        if isinstance(data, dict):
            code = data.get("code")
            message = data.get("message")
            if code and message:
                return f"OSRM {resp.status_code} {code}: {message}"
            if code:
                return f"OSRM {resp.status_code} {code}"
            if message:
                return f"OSRM {resp.status_code}: {message}"
    except ValueError:
        # not JSON, fall through to text
        pass

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"OSRM {resp.status_code}: {body}"
    return f"OSRM HTTP {resp.status_code}"


def parse_route_geometry(route: dict[str, Any]) -> list[Coordinate]:
    """Convert an OSRM GeoJSON geometry ([lng, lat] pairs) into coordinates."""
    geom = route.get("geometry")
    if not isinstance(geom, dict):
        raise OSRMError("OSRM route missing geometry")

    coords = geom.get("coordinates")
    if not isinstance(coords, list) or len(coords) < 2:
        raise OSRMError("OSRM geometry missing coordinates")

    out: list[Coordinate] = []
    for pt in coords:
        if (
            isinstance(pt, (list, tuple))
            and len(pt) >= 2
            and isinstance(pt[0], (int, float))
            and isinstance(pt[1], (int, float))
        ):
            out.append(Coordinate(lat=float(pt[1]), lng=float(pt[0])))
    if len(out) < 2:
        raise OSRMError("OSRM geometry invalid")
    return out


class OSRMClient:
    def __init__(
        self,
        *,
        base_url: str,
        profile: str = "bicycle",
        timeout_s: float = 10.0,
        connect_timeout_s: float = 5.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.max_retries = max(1, int(max_retries))

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=connect_timeout_s),
            headers={"accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_route(self, start: Coordinate, end: Coordinate) -> list[Coordinate]:
        """Fetch the best bicycle route between two points from OSRM.

        Raises OSRMError on request errors, non-Ok responses and empty or
        malformed route lists. Transient failures are retried with a capped
        exponential backoff.
        """
        coords = f"{start.lng},{start.lat};{end.lng},{end.lat}"
        url = f"{self.base_url}/route/v1/{self.profile}/{coords}"
        params = {"overview": "full", "geometries": "geojson"}

        last_err: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                resp = await self._client.get(url, params=params)

                # Fast-fail on most 4xx: these are usually request errors
                if 400 <= resp.status_code < 500 and resp.status_code not in _RETRYABLE_STATUS:
                    raise OSRMError(_format_osrm_error(resp))

                if resp.status_code in _RETRYABLE_STATUS:
                    raise OSRMRetryableError(_format_osrm_error(resp))

                resp.raise_for_status()
                try:
                    data = resp.json()
                except ValueError as e:
                    raise OSRMError("OSRM returned a non-JSON body") from e

                if not isinstance(data, dict) or data.get("code") != "Ok":
                    code = data.get("code") if isinstance(data, dict) else None
                    message = data.get("message") if isinstance(data, dict) else None
                    raise OSRMError(f"OSRM error code={code} message={message}")

                routes = data.get("routes", [])
                if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
                    raise OSRMError("OSRM returned no routes")

                return parse_route_geometry(routes[0])

            except OSRMRetryableError as e:
                last_err = e
            except (httpx.TimeoutException, httpx.NetworkError, httpx.TransportError) as e:
                last_err = e
            except httpx.HTTPStatusError as e:
                raise OSRMError(str(e)) from e

            if attempt < self.max_retries - 1:
                await asyncio.sleep(min(0.25 * (2**attempt), 2.0))

        # httpx exceptions can stringify to "" (e.g. some timeouts), so include the type.
        if last_err is None:
            detail = "unknown error"
        else:
            msg = str(last_err).strip()
            detail = f"{type(last_err).__name__}: {msg}" if msg else f"{type(last_err).__name__}: {last_err!r}"
        raise OSRMError(f"OSRM request failed after {self.max_retries} retries (base={self.base_url}): {detail}")


async def external_route(
    router: RoadRouter,
    start: Coordinate,
    end: Coordinate,
    *,
    cache: LegCacheStore | None = LEG_CACHE,
) -> list[Coordinate]:
    """Road route between two points; degrades to the straight line on any failure."""
    key = leg_cache_key(start, end)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    try:
        points = list(await router.fetch_route(start, end) or [])
    except Exception as e:
        # Any failure of the injected router degrades; cancellation still propagates.
        log_warning(
            "external_route_degraded",
            start=[start.lat, start.lng],
            end=[end.lat, end.lng],
            error=f"{type(e).__name__}: {e}",
        )
        return [start, end]

    if len(points) < 2:
        log_warning("external_route_degraded", start=[start.lat, start.lng], end=[end.lat, end.lng], error="empty route")
        return [start, end]

    if cache is not None:
        cache.set(key, points)
    return points
