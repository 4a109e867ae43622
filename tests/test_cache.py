"""Tests for the TTL result cache and input hashing."""

from __future__ import annotations

import threading

import pytest

from beaconnet.cache import (
    CacheStats,
    ResultCache,
    SpatialCacheConfig,
    SpatialPatternCache,
    network_hash,
    shapes_hash,
)
from beaconnet.models import Node, Shape


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestResultCache:
    def test_put_and_get(self, clock):
        cache = ResultCache(ttl_seconds=10, clock=clock)
        cache.put("k", 42)
        assert cache.get("k") == 42
        assert len(cache) == 1

    def test_missing_returns_default(self, clock):
        cache = ResultCache(clock=clock)
        assert cache.get("nope") is None
        assert cache.get("nope", "fallback") == "fallback"

    def test_entry_expires_at_ttl(self, clock):
        cache = ResultCache(ttl_seconds=10, clock=clock)
        cache.put("k", 1)
        clock.advance(9.9)
        assert cache.get("k") == 1
        clock.advance(0.1)
        assert cache.get("k") is None
        assert cache.stats().evictions == 1

    def test_per_entry_ttl(self, clock):
        cache = ResultCache(ttl_seconds=100, clock=clock)
        cache.put("short", 1, ttl_seconds=1)
        clock.advance(2)
        assert cache.get("short") is None

    def test_put_sweeps_after_interval(self, clock):
        cache = ResultCache(ttl_seconds=1, cleanup_interval_seconds=10, clock=clock)
        cache.put("old", 1)
        clock.advance(11)
        cache.put("new", 2)
        assert len(cache) == 1

    def test_cleanup(self, clock):
        cache = ResultCache(ttl_seconds=1, clock=clock)
        cache.put("a", 1)
        cache.put("b", 2)
        clock.advance(5)
        assert cache.cleanup() == 2
        assert len(cache) == 0

    def test_get_or_compute_computes_once(self, clock):
        cache = ResultCache(clock=clock)
        calls = []

        def compute():
            calls.append(1)
            return "value"

        assert cache.get_or_compute("k", compute) == "value"
        assert cache.get_or_compute("k", compute) == "value"
        assert len(calls) == 1

    def test_invalidate_and_clear(self, clock):
        cache = ResultCache(clock=clock)
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.invalidate("a")
        assert not cache.invalidate("a")
        cache.clear()
        assert len(cache) == 0

    def test_stats(self, clock):
        cache = ResultCache(clock=clock)
        cache.put("a", 1)
        cache.get("a")
        cache.get("b")
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)
        assert stats.hit_ratio == pytest.approx(0.5)

    def test_empty_hit_ratio(self):
        assert CacheStats(hits=0, misses=0, evictions=0, size=0).hit_ratio == 0.0

    def test_invalid_ttl(self):
        with pytest.raises(ValueError):
            ResultCache(ttl_seconds=0)

    def test_invalid_max_entries(self):
        with pytest.raises(ValueError):
            ResultCache(max_entries=0)

    def test_least_recently_used_evicted(self, clock):
        cache = ResultCache(max_entries=2, clock=clock)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")
        cache.put("c", 3)
        assert len(cache) == 2
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.stats().evictions == 1

    def test_value_stored_during_compute_wins(self, clock):
        cache = ResultCache(clock=clock)

        def compute():
            cache.put("k", "stored first")
            return "late"

        assert cache.get_or_compute("k", compute) == "stored first"
        assert cache.get("k") == "stored first"

    def test_compute_does_not_block_other_keys(self):
        cache = ResultCache()
        started = threading.Event()
        release = threading.Event()
        results = []

        def slow():
            started.set()
            release.wait(5)
            return "slow"

        worker = threading.Thread(target=lambda: results.append(cache.get_or_compute("a", slow)))
        worker.start()
        assert started.wait(5)

        other = threading.Thread(target=lambda: results.append(cache.get_or_compute("b", lambda: "fast")))
        other.start()
        other.join(2)
        try:
            assert results == ["fast"]
        finally:
            release.set()
            worker.join(5)
        assert results == ["fast", "slow"]


def _shape(name: str, shape_type: str, center) -> Shape:
    return Shape(id=name, shape_type=shape_type, node_ids=("a", "b", "c"), center=center, bonus=1.5)


class TestSpatialPatternCache:
    @pytest.fixture
    def cache(self, clock):
        return SpatialPatternCache(SpatialCacheConfig(region_size=100, invalidation="immediate"), clock=clock)

    def test_region_arithmetic(self, cache):
        assert cache.region_of((150.0, -20.0)) == (1, -1)
        assert cache.region_bounds((1, -1)) == (100, -100, 200, 0)
        assert len(cache.regions_around((50.0, 50.0))) == 9
        assert cache.regions_in_bounds((0, 0, 250, 150)) == [(0, 0), (0, 1), (1, 0), (1, 1), (2, 0), (2, 1)]
        assert (0, 0) in cache.regions_in_radius((50.0, 50.0), 150.0)

    def test_put_and_get(self, cache):
        shape = _shape("s1", "triangle", (50.0, 50.0))
        cache.put_region((0, 0), [shape])
        assert cache.get_region((0, 0)) == (shape,)
        assert cache.get_region((9, 9)) is None
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)

    def test_expires(self, cache, clock):
        cache.put_region((0, 0), [])
        clock.advance(31)
        assert cache.get_region((0, 0)) is None
        assert len(cache) == 0

    def test_least_recently_used_evicted(self, clock):
        cache = SpatialPatternCache(SpatialCacheConfig(max_entries=2), clock=clock)
        cache.put_region((0, 0), [])
        cache.put_region((1, 0), [])
        cache.get_region((0, 0))
        cache.put_region((2, 0), [])
        assert (1, 0) not in cache
        assert (0, 0) in cache
        assert cache.stats().evictions == 1

    def test_node_change_invalidates_only_nearby_regions(self, cache):
        cache.put_region((0, 0), [])
        cache.put_region((5, 5), [])
        assert cache.invalidate_node(Node(id="n", x=50.0, y=50.0)) == 1
        assert (0, 0) not in cache
        assert (5, 5) in cache

    def test_moved_node_invalidates_old_position_too(self, cache):
        cache.put_region((0, 0), [])
        cache.put_region((5, 5), [])
        assert cache.invalidate_node(Node(id="n", x=550.0, y=550.0), old_position=(50.0, 50.0)) == 2
        assert len(cache) == 0

    def test_lazy_invalidation_marks_dirty(self, clock):
        cache = SpatialPatternCache(SpatialCacheConfig(region_size=100, invalidation="lazy"), clock=clock)
        cache.put_region((0, 0), [])
        cache.put_region((3, 3), [])
        cache.invalidate_position((50.0, 50.0))
        assert (0, 0) in cache
        assert cache.get_region((0, 0)) is None
        assert (0, 0) not in cache
        cache.invalidate_region((3, 3))
        assert cache.compact() == 1
        assert len(cache) == 0

    def test_invalidate_shapes(self, cache):
        cache.put_region((0, 0), [_shape("s1", "triangle", (50.0, 50.0))])
        cache.put_region((4, 0), [_shape("s2", "triangle", (450.0, 50.0))])
        assert cache.invalidate_shapes(["s1", "missing"]) == 1
        assert (0, 0) not in cache
        assert (4, 0) in cache

    def test_shapes_by_type(self, cache):
        shapes = [
            _shape("t1", "triangle", (50.0, 50.0)),
            _shape("q1", "square", (250.0, 50.0)),
            _shape("t2", "triangle", (450.0, 450.0)),
        ]
        assert cache.put_shapes(shapes) == 3
        assert sorted(s.id for s in cache.shapes_by_type("triangle")) == ["t1", "t2"]
        assert [s.id for s in cache.shapes_by_type("triangle", bounds=(0, 0, 300, 300))] == ["t1"]
        assert cache.shapes_by_type("hexagon") == []
        with pytest.raises(ValueError):
            cache.shapes_by_type("circle")

    def test_put_shapes_clears_regions_holding_nodes(self, cache):
        cache.put_shapes([_shape("t1", "triangle", (50.0, 50.0))])
        cache.put_shapes([], nodes=[Node(id="n", x=60.0, y=60.0)])
        assert cache.shapes_by_type("triangle") == []

    def test_config_validation(self):
        with pytest.raises(ValueError):
            SpatialCacheConfig(invalidation="eventually")
        with pytest.raises(ValueError):
            SpatialCacheConfig(region_size=0)


class TestHashing:
    def test_network_hash_stable(self):
        a = [Node(id="a", x=0, y=0, connections=("b", "c"))]
        b = [Node(id="a", x=0, y=0, connections=("c", "b"))]
        assert network_hash(a) == network_hash(b)

    def test_network_hash_sees_moves(self):
        a = [Node(id="a", x=0, y=0)]
        b = [Node(id="a", x=1, y=0)]
        assert network_hash(a) != network_hash(b)

    def test_shapes_hash(self):
        s = Shape(id="triangle_a_b_c", shape_type="triangle", node_ids=("a", "b", "c"), center=(0, 0), bonus=1.5)
        assert shapes_hash([s]) == shapes_hash([s])
        assert shapes_hash([s]) != shapes_hash([])
