"""Tests for the PatternEngine facade."""

from __future__ import annotations

import math

import pytest

import beaconnet.engine as engine_module
import beaconnet.patterns as patterns_module
from beaconnet.cache import SpatialCacheConfig
from beaconnet.engine import PatternEngine
from beaconnet.models import Node
from beaconnet.patterns import PatternFinderConfig
from beaconnet.placement import PlacementValidator


@pytest.fixture
def triangle_nodes():
    h = 50.0 * math.sqrt(3)
    return [
        Node(id="a", x=0.0, y=0.0, connections=("b", "c")),
        Node(id="b", x=100.0, y=0.0, connections=("a", "c")),
        Node(id="c", x=50.0, y=h, connections=("a", "b")),
    ]


class TestAnalyze:
    def test_full_pipeline(self, triangle_nodes):
        analysis = PatternEngine().analyze(triangle_nodes)
        assert [s.shape_type for s in analysis.shapes] == ["triangle"]
        assert analysis.bonus.multiplier == pytest.approx(1.5)
        assert analysis.validation.is_valid
        assert len(analysis.triangulation.mesh.triangles) == 1
        assert all(c.shape_types == ("triangle",) for c in analysis.connections)

    def test_suggestions_skip_existing_shape_positions(self, triangle_nodes):
        analysis = PatternEngine().analyze(triangle_nodes)
        for suggestion in analysis.suggestions.suggestions:
            for node in triangle_nodes:
                assert math.dist(suggestion.position, node.position) > 1.0

    def test_validator_applied(self, triangle_nodes):
        validator = PlacementValidator(nodes=triangle_nodes)
        analysis = PatternEngine(validator=validator).analyze(triangle_nodes)
        for suggestion in analysis.suggestions.suggestions:
            assert validator.is_valid_position(suggestion.position, "pioneer").valid


class TestCaching:
    def test_shapes_cached(self, triangle_nodes):
        engine = PatternEngine()
        first = engine.find_shapes(triangle_nodes)
        second = engine.find_shapes(triangle_nodes)
        assert first == second
        assert engine.shape_cache.stats().hits == 1

    def test_moved_node_misses(self, triangle_nodes):
        engine = PatternEngine()
        engine.find_shapes(triangle_nodes)
        moved = [triangle_nodes[0], triangle_nodes[1], Node(id="c", x=50.0, y=80.0, connections=("a", "b"))]
        engine.find_shapes(moved)
        assert engine.shape_cache.stats().hits == 0
        assert len(engine.shape_cache) == 2

    def test_update_bonus_config(self, triangle_nodes):
        engine = PatternEngine()
        engine.calculate_bonus(triangle_nodes)
        engine.update_bonus_config(strategy="additive")
        assert engine.bonus_config.strategy == "additive"
        assert engine.calculate_bonus(triangle_nodes).strategy == "additive"

    def test_clear_caches(self, triangle_nodes):
        engine = PatternEngine()
        engine.analyze(triangle_nodes)
        engine.clear_caches()
        assert len(engine.shape_cache) == 0
        assert len(engine.suggestion_cache) == 0
        assert len(engine.triangulation_cache) == 0
        assert len(engine.bonus_calculator.cache) == 0

    def test_triangulated_tier_reuses_cached_triangulation(self, triangle_nodes, monkeypatch):
        calls = []
        real = engine_module.triangulate

        def counting(nodes, options=None):
            calls.append(len(nodes))
            return real(nodes, options)

        monkeypatch.setattr(engine_module, "triangulate", counting)
        monkeypatch.setattr(patterns_module, "triangulate", counting)
        finder = PatternFinderConfig(triangulation_threshold=3, high_density_threshold=100)
        analysis = PatternEngine(finder_config=finder).analyze(triangle_nodes)
        assert [s.shape_type for s in analysis.shapes] == ["triangle"]
        assert calls == [3]


class TestRegionCache:
    def test_shapes_indexed_by_region(self, triangle_nodes):
        engine = PatternEngine()
        engine.find_shapes(triangle_nodes)
        assert [s.shape_type for s in engine.shapes_by_type("triangle")] == ["triangle"]
        assert engine.shapes_by_type("square") == []

    def test_node_changed_drops_only_nearby_regions(self, triangle_nodes):
        engine = PatternEngine(region_cache_config=SpatialCacheConfig(invalidation="immediate"))
        engine.find_shapes(triangle_nodes)
        assert engine.node_changed(Node(id="far", x=5000.0, y=5000.0)) == 0
        assert len(engine.shapes_by_type("triangle")) == 1
        assert engine.node_changed(triangle_nodes[0]) == 1
        assert engine.shapes_by_type("triangle") == []

    def test_clear_caches_empties_regions(self, triangle_nodes):
        engine = PatternEngine()
        engine.find_shapes(triangle_nodes)
        engine.clear_caches()
        assert len(engine.region_cache) == 0
