"""Result caches shared by the engine components.

Each component owns its own cache; nothing is global.

:class:`ResultCache`
    Hash-keyed results with per-entry expiry and optional LRU size
    bounding.  Entries expire lazily on lookup, and :meth:`ResultCache.put`
    sweeps expired entries once ``cleanup_interval_seconds`` has passed
    since the last sweep.
:class:`SpatialPatternCache`
    Shapes bucketed by square region of the plane, so a moved or removed
    node invalidates only the regions around it.
"""

from __future__ import annotations

import hashlib
import json
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from .geometry import Bounds
from .models import SHAPE_TYPES, Node, Point, Shape

logger = structlog.get_logger()

RegionId = Tuple[int, int]

INVALIDATION_STRATEGIES: tuple[str, ...] = ("immediate", "lazy")


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    evictions: int
    size: int

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ResultCache:
    """Thread-safe mapping of key → value with per-entry expiry.

    Parameters
    ----------
    ttl_seconds : float
        Default lifetime of an entry.
    cleanup_interval_seconds : float
        Minimum time between full sweeps triggered by :meth:`put`.
    max_entries : int, optional
        Least recently used entries are evicted beyond this size.
        ``None`` leaves the cache unbounded.
    clock : callable
        Returns the current time in seconds; injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        cleanup_interval_seconds: float = 300.0,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if cleanup_interval_seconds < 0:
            raise ValueError("cleanup_interval_seconds must be >= 0")
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self.ttl_seconds = ttl_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[Any, float]]" = OrderedDict()
        self._lock = threading.RLock()
        self._last_cleanup = clock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self._evictions += 1
                self._misses += 1
                return default
            self._entries.move_to_end(key)
            self._hits += 1
            return value

    def put(self, key: Hashable, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            now = self._clock()
            self._entries[key] = (value, now + ttl)
            self._entries.move_to_end(key)
            if now - self._last_cleanup >= self.cleanup_interval_seconds:
                self._sweep(now)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    self._evictions += 1
                    logger.debug("Cache entry evicted", key=_short(evicted))

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """Cached value for *key*, computing and storing it on a miss.

        *compute* runs without the lock held.  When another caller
        stored *key* in the meantime, that value wins and the fresh one
        is discarded.
        """
        missing = object()
        value = self.get(key, missing)
        if value is not missing:
            logger.debug("Cache hit", key=_short(key))
            return value
        value = compute()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() < entry[1]:
                return entry[0]
            self.put(key, value)
        return value

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            return self._sweep(self._clock())

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                size=len(self._entries),
            )

    def _sweep(self, now: float) -> int:
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self._evictions += len(expired)
        self._last_cleanup = now
        if expired:
            logger.debug("Cache swept", removed=len(expired), remaining=len(self._entries))
        return len(expired)


# ═══════════════════════════════════════════════════════════════════
# Region cache
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SpatialCacheConfig:
    """Sizing and invalidation for :class:`SpatialPatternCache`.

    Attributes
    ----------
    max_entries : int
        Regions kept before the least recently used is evicted.
    max_age_seconds : float
        Lifetime of a region entry.
    region_size : float
        Side length of one square region.
    invalidation : str
        ``immediate`` drops an invalidated region at once; ``lazy``
        marks it dirty and drops it on the next lookup or
        :meth:`SpatialPatternCache.compact`.
    """

    max_entries: int = 1000
    max_age_seconds: float = 30.0
    region_size: float = 300.0
    invalidation: str = "lazy"

    def __post_init__(self) -> None:
        if self.max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        if self.max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be > 0")
        if self.region_size <= 0:
            raise ValueError("region_size must be > 0")
        if self.invalidation not in INVALIDATION_STRATEGIES:
            raise ValueError(
                f"Unknown invalidation {self.invalidation!r}; "
                f"expected one of {', '.join(INVALIDATION_STRATEGIES)}"
            )


@dataclass
class RegionEntry:
    region: RegionId
    shapes: Tuple[Shape, ...]
    updated_at: float
    access_count: int = 1
    dirty: bool = False


class SpatialPatternCache:
    """Shapes grouped by the region holding their centre.

    Shapes can straddle region borders, so changing a node invalidates
    its own region and the eight around it.

    Parameters
    ----------
    config : SpatialCacheConfig, optional
    clock : callable
        Returns the current time in seconds; injectable for tests.
    """

    def __init__(
        self,
        config: Optional[SpatialCacheConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or SpatialCacheConfig()
        self._clock = clock
        self._entries: "OrderedDict[RegionId, RegionEntry]" = OrderedDict()
        self._shape_regions: Dict[str, Set[RegionId]] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, region: object) -> bool:
        with self._lock:
            return region in self._entries

    # ── Region arithmetic ───────────────────────────────────────────

    def region_of(self, position: Point) -> RegionId:
        size = self.config.region_size
        return (math.floor(position[0] / size), math.floor(position[1] / size))

    def region_bounds(self, region: RegionId) -> Bounds:
        size = self.config.region_size
        return (region[0] * size, region[1] * size, (region[0] + 1) * size, (region[1] + 1) * size)

    def regions_around(self, position: Point) -> List[RegionId]:
        rx, ry = self.region_of(position)
        return [(rx + dx, ry + dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1)]

    def regions_in_bounds(self, bounds: Bounds) -> List[RegionId]:
        min_x, min_y = self.region_of((bounds[0], bounds[1]))
        max_x, max_y = self.region_of((bounds[2], bounds[3]))
        return [(x, y) for x in range(min_x, max_x + 1) for y in range(min_y, max_y + 1)]

    def regions_in_radius(self, center: Point, radius: float) -> List[RegionId]:
        reach = math.ceil(radius / self.config.region_size)
        cx, cy = self.region_of(center)
        return [
            (cx + dx, cy + dy)
            for dx in range(-reach, reach + 1)
            for dy in range(-reach, reach + 1)
            if dx * dx + dy * dy <= reach * reach
        ]

    # ── Lookup and storage ──────────────────────────────────────────

    def get_region(self, region: RegionId) -> Optional[Tuple[Shape, ...]]:
        """Cached shapes of *region*, or ``None`` when absent or stale."""
        with self._lock:
            entry = self._entries.get(region)
            if entry is not None and self._is_fresh(entry):
                entry.access_count += 1
                self._entries.move_to_end(region)
                self._hits += 1
                return entry.shapes
            if entry is not None:
                self._remove(region)
                self._evictions += 1
            self._misses += 1
            return None

    def put_region(self, region: RegionId, shapes: Iterable[Shape]) -> None:
        with self._lock:
            self._remove(region)
            entry = RegionEntry(region=region, shapes=tuple(shapes), updated_at=self._clock())
            self._entries[region] = entry
            for shape in entry.shapes:
                self._shape_regions.setdefault(shape.id, set()).add(region)
            while len(self._entries) > self.config.max_entries:
                oldest = next(iter(self._entries))
                self._remove(oldest)
                self._evictions += 1

    def put_shapes(self, shapes: Sequence[Shape], nodes: Sequence[Node] = ()) -> int:
        """Replace every region touched by *shapes* or *nodes*.

        Regions that hold a node but no shape centre are stored empty,
        so shapes that no longer exist drop out.  Returns the number of
        regions written.
        """
        grouped: Dict[RegionId, List[Shape]] = {}
        for node in nodes:
            grouped.setdefault(self.region_of(node.position), [])
        for shape in shapes:
            grouped.setdefault(self.region_of(shape.center), []).append(shape)
        with self._lock:
            for region, members in grouped.items():
                self.put_region(region, members)
        logger.debug("Regions cached", regions=len(grouped), shape_count=len(shapes))
        return len(grouped)

    def shapes_by_type(self, shape_type: str, bounds: Optional[Bounds] = None) -> List[Shape]:
        """Cached shapes of *shape_type*, optionally with centres inside *bounds*."""
        if shape_type not in SHAPE_TYPES:
            raise ValueError(f"Unknown shape type {shape_type!r}")
        with self._lock:
            regions = self.regions_in_bounds(bounds) if bounds is not None else list(self._entries)
            found: List[Shape] = []
            for region in regions:
                if region not in self._entries:
                    continue
                shapes = self.get_region(region)
                if not shapes:
                    continue
                for shape in shapes:
                    if shape.shape_type != shape_type:
                        continue
                    if bounds is not None and not _inside(shape.center, bounds):
                        continue
                    found.append(shape)
            return found

    # ── Invalidation ────────────────────────────────────────────────

    def invalidate_region(self, region: RegionId) -> bool:
        with self._lock:
            entry = self._entries.get(region)
            if entry is None:
                return False
            if self.config.invalidation == "immediate":
                self._remove(region)
            else:
                entry.dirty = True
            return True

    def invalidate_position(self, position: Point, old_position: Optional[Point] = None) -> int:
        """Invalidate the regions around *position* (and *old_position*)."""
        affected = set(self.regions_around(position))
        if old_position is not None:
            affected.update(self.regions_around(old_position))
        with self._lock:
            count = sum(1 for region in affected if self.invalidate_region(region))
        logger.debug("Regions invalidated", count=count)
        return count

    def invalidate_node(self, node: Node, old_position: Optional[Point] = None) -> int:
        """Invalidate around a placed, moved or removed node."""
        return self.invalidate_position(node.position, old_position)

    def invalidate_shapes(self, shape_ids: Iterable[str]) -> int:
        with self._lock:
            affected: Set[RegionId] = set()
            for shape_id in shape_ids:
                affected.update(self._shape_regions.get(shape_id, ()))
            return sum(1 for region in affected if self.invalidate_region(region))

    def compact(self) -> int:
        """Drop expired and dirty regions; returns how many were removed."""
        with self._lock:
            stale = [r for r, entry in self._entries.items() if not self._is_fresh(entry)]
            for region in stale:
                self._remove(region)
            self._evictions += len(stale)
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._shape_regions.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                size=len(self._entries),
            )

    def _is_fresh(self, entry: RegionEntry) -> bool:
        if entry.dirty:
            return False
        return self._clock() - entry.updated_at < self.config.max_age_seconds

    def _remove(self, region: RegionId) -> None:
        entry = self._entries.pop(region, None)
        if entry is None:
            return
        for shape in entry.shapes:
            regions = self._shape_regions.get(shape.id)
            if regions is None:
                continue
            regions.discard(region)
            if not regions:
                del self._shape_regions[shape.id]


def _inside(point: Point, bounds: Bounds) -> bool:
    return bounds[0] <= point[0] <= bounds[2] and bounds[1] <= point[1] <= bounds[3]


# ═══════════════════════════════════════════════════════════════════
# Input hashing
# ═══════════════════════════════════════════════════════════════════


def _digest(payload: Any) -> str:
    encoded = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return hashlib.sha1(encoded).hexdigest()


def network_hash(nodes: Sequence[Node]) -> str:
    """Stable key over node ids, positions, levels, types and links."""
    return _digest(
        [
            [n.id, n.x, n.y, n.level, n.node_type, sorted(n.connections)]
            for n in nodes
        ]
    )


def shapes_hash(shapes: Sequence[Shape]) -> str:
    """Stable key over shape ids and their ordered members."""
    return _digest([[s.id, s.shape_type, list(s.node_ids)] for s in shapes])


def _short(key: Hashable) -> str:
    text = str(key)
    return text if len(text) <= 48 else text[:48] + "..."
