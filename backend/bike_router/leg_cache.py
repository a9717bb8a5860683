from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock

from .models import Coordinate
from .settings import settings


@dataclass
class _LegCacheEntry:
    inserted_at: float
    points: tuple[Coordinate, ...]


def leg_cache_key(start: Coordinate, end: Coordinate) -> str:
    # ~1 m resolution; clicks that land on the same spot share a leg.
    return f"{start.lat:.5f},{start.lng:.5f}|{end.lat:.5f},{end.lng:.5f}"


class LegCacheStore:
    """TTL + LRU cache for external router legs. Only successful responses are stored."""

    def __init__(self, *, ttl_s: int, max_entries: int) -> None:
        self._ttl_s = max(1, int(ttl_s))
        self._max_entries = max(1, int(max_entries))
        self._lock = Lock()
        self._items: OrderedDict[str, _LegCacheEntry] = OrderedDict()

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _is_expired(self, entry: _LegCacheEntry) -> bool:
        return (time.time() - entry.inserted_at) > self._ttl_s

    def get(self, key: str) -> list[Coordinate] | None:
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._is_expired(entry):
                self._items.pop(key, None)
                self._misses += 1
                return None

            self._items.move_to_end(key)
            self._hits += 1
            return list(entry.points)

    def set(self, key: str, points: list[Coordinate]) -> None:
        with self._lock:
            if key in self._items:
                self._items.move_to_end(key)
            self._items[key] = _LegCacheEntry(inserted_at=time.time(), points=tuple(points))

            while len(self._items) > self._max_entries:
                self._items.popitem(last=False)
                self._evictions += 1

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._items)
            self._items.clear()
            return cleared

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "ttl_s": self._ttl_s,
                "max_entries": self._max_entries,
            }


LEG_CACHE = LegCacheStore(
    ttl_s=settings.leg_cache_ttl_s,
    max_entries=settings.leg_cache_max_entries,
)


def clear_leg_cache() -> int:
    return LEG_CACHE.clear()


def leg_cache_stats() -> dict[str, int]:
    return LEG_CACHE.snapshot()
