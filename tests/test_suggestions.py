"""Tests for incomplete-pattern detection and placement suggestions."""

from __future__ import annotations

import math
from dataclasses import replace

import pytest

from beaconnet.geometry import distance
from beaconnet.models import Node, Shape, shape_id
from beaconnet.placement import PlacementCheck
from beaconnet.suggestions import (
    SuggestionConfig,
    analyze_suggestions,
    formation_quality,
    pattern_probability,
    phase_multiplier,
    strategic_recommendations,
    feasibility_score,
    find_incomplete_patterns,
    find_multi_shape_positions,
    generate_combinations,
    jaccard,
    nudge_position,
    polygon_completion,
    proximity_score,
    square_completion,
    suggestions_in_area,
    triangle_apexes,
)

H = 50.0 * math.sqrt(3)


def _nodes(points):
    return [Node(id=chr(ord("a") + i), x=float(x), y=float(y)) for i, (x, y) in enumerate(points)]


def _regular(sides, radius=100.0):
    return [
        (radius * math.cos(2 * math.pi * k / sides), radius * math.sin(2 * math.pi * k / sides))
        for k in range(sides)
    ]


class RejectNear:
    """Rejects every position closer than *radius* to *center*."""

    def __init__(self, center, radius):
        self.center = center
        self.radius = radius

    def is_valid_position(self, position, node_type):
        if distance(position, self.center) < self.radius:
            return PlacementCheck(valid=False, reasons=("blocked",))
        return PlacementCheck(valid=True)


class RejectAll:
    def is_valid_position(self, position, node_type):
        return PlacementCheck(valid=False, reasons=("blocked",))


# ═══════════════════════════════════════════════════════════════════
# Building blocks
# ═══════════════════════════════════════════════════════════════════


class TestCombinations:
    def test_capped_in_generation_order(self):
        combos = generate_combinations(list(range(10)), 3, limit=5)
        assert combos == [(0, 1, 2), (0, 1, 3), (0, 1, 4), (0, 1, 5), (0, 1, 6)]

    def test_never_exceeds_limit(self):
        assert len(generate_combinations(list(range(30)), 4, limit=1000)) == 1000

    def test_degenerate(self):
        assert generate_combinations([1, 2], 3) == []
        assert generate_combinations([1, 2, 3], 2, limit=0) == []

    def test_jaccard(self):
        assert jaccard("ab", "abc") == pytest.approx(2 / 3)
        assert jaccard([], []) == 0.0


class TestScores:
    def test_proximity_peaks_at_ideal_spacing(self):
        assert proximity_score([(0, 0), (150, 0)]) == pytest.approx(1.0)
        assert proximity_score([(0, 0), (300, 0)]) == pytest.approx(0.0)
        assert proximity_score([(0, 0)]) == 0.0

    def test_feasibility_without_tree(self):
        assert feasibility_score([(0, 0)], None) == 1.0


class TestCompletionGeometry:
    def test_triangle_apexes(self):
        first, second = triangle_apexes((0, 0), (100, 0))
        assert first == pytest.approx((50.0, H))
        assert second == pytest.approx((50.0, -H))

    def test_triangle_apexes_zero_length(self):
        assert triangle_apexes((1, 1), (1, 1)) == []

    def test_square_fourth_corner(self):
        fourth = square_completion([(0, 0), (100, 0), (100, 100)], SuggestionConfig())
        assert fourth == pytest.approx((0.0, 100.0))

    def test_hexagon_missing_vertex(self):
        hexagon = _regular(6)
        missing = polygon_completion(hexagon[:5], 6, fallback_radius=100.0)
        assert len(missing) == 1
        assert distance(missing[0], hexagon[5]) < 40.0

    def test_polygon_already_complete(self):
        assert polygon_completion(_regular(5), 5, fallback_radius=100.0) == []

    def test_min_existing(self):
        cfg = SuggestionConfig()
        assert cfg.min_existing("triangle") == 2
        assert cfg.min_existing("square") == 3
        assert cfg.min_existing("pentagon") == 4
        assert cfg.min_existing("hexagon") == 5

    def test_config_validation(self):
        with pytest.raises(ValueError):
            SuggestionConfig(completion_thresholds={"triangle": 0.0, "square": 0.75, "pentagon": 0.8, "hexagon": 0.83})


class TestNudge:
    def test_legal_position_kept(self):
        assert nudge_position((5, 5), RejectNear((100, 100), 1), "pioneer") == (5, 5)

    def test_nudged_out_of_blocked_area(self):
        nudged = nudge_position((0, 0), RejectNear((0, 0), 5), "pioneer", attempts=24, max_distance=100)
        assert nudged is not None
        assert 5 <= distance(nudged, (0, 0)) <= 100

    def test_unplaceable(self):
        assert nudge_position((0, 0), RejectAll(), "pioneer") is None


# ═══════════════════════════════════════════════════════════════════
# Analysis
# ═══════════════════════════════════════════════════════════════════


class TestIncompletePatterns:
    def test_pair_gives_two_triangle_patterns(self):
        patterns = find_incomplete_patterns(_nodes([(0, 0), (100, 0)]))
        assert [p.shape_type for p in patterns] == ["triangle", "triangle"]
        assert patterns[0].id == "incomplete-triangle-a-b"
        assert patterns[1].id == "incomplete-triangle-a-b-1"
        assert patterns[0].missing_count == 1

    def test_far_pair_ignored(self):
        assert find_incomplete_patterns(_nodes([(0, 0), (500, 0)])) == []

    def test_occupied_completion_dropped(self):
        square = _nodes([(0, 0), (100, 0), (100, 100), (0, 100)])
        patterns = find_incomplete_patterns(square)
        assert not [p for p in patterns if p.shape_type == "square"]

    def test_existing_shape_excluded(self):
        nodes = _nodes(_regular(6))
        hexagon = Shape(
            id=shape_id("hexagon", [n.id for n in nodes]),
            shape_type="hexagon",
            node_ids=tuple(n.id for n in nodes),
            center=(0.0, 0.0),
            bonus=5.0,
        )
        without = find_incomplete_patterns(nodes)
        with_existing = find_incomplete_patterns(nodes, [hexagon])
        assert [p for p in without if p.shape_type == "hexagon"]
        assert not [p for p in with_existing if p.shape_type == "hexagon"]

    def test_validator_drops_unplaceable(self):
        assert find_incomplete_patterns(_nodes([(0, 0), (100, 0)]), validator=RejectAll()) == []


class TestAnalyzeSuggestions:
    def test_empty_network(self):
        analysis = analyze_suggestions([])
        assert analysis.suggestions == ()
        assert analysis.best_position is None
        assert analysis.average_completion_cost == 0.0

    def test_pair(self):
        analysis = analyze_suggestions(_nodes([(0, 0), (100, 0)]))
        assert len(analysis.suggestions) == 2
        assert analysis.best_position == pytest.approx((50.0, H))
        assert analysis.total_potential_bonus == pytest.approx(3.0)
        assert analysis.average_completion_cost == pytest.approx(100.0)

    def test_capped_and_ranked(self):
        grid = _nodes([(x * 100, y * 100) for x in range(3) for y in range(3)])
        analysis = analyze_suggestions(grid)
        assert 0 < len(analysis.suggestions) <= 8
        priorities = [s.priority for s in analysis.suggestions]
        assert priorities == sorted(priorities, reverse=True)

    def test_shared_position_boosted(self):
        nodes = _nodes([(0, 0), (100, 0), (150, H)])
        analysis = analyze_suggestions(nodes)
        assert analysis.best_position == pytest.approx((50.0, H), abs=1e-6)

        multi = find_multi_shape_positions(nodes, analysis=analysis)
        assert len(multi) == 1
        assert multi[0].position == pytest.approx((50.0, H), abs=1e-6)
        assert len(multi[0].pattern_ids) == 2

    def test_area_filter(self):
        nodes = _nodes([(0, 0), (100, 0)])
        hits = suggestions_in_area(nodes, (50.0, H), 5.0)
        assert len(hits) == 1
        assert hits[0].shape_type == "triangle"
        assert suggestions_in_area(nodes, (1000.0, 1000.0), 5.0) == []

    def test_validator_respected(self):
        nodes = _nodes([(0, 0), (100, 0)])
        blocker = RejectNear((50.0, H), 10.0)
        analysis = analyze_suggestions(nodes, validator=blocker)
        for suggestion in analysis.suggestions:
            assert blocker.is_valid_position(suggestion.position, "pioneer").valid


# ═══════════════════════════════════════════════════════════════════
# Probability and strategy
# ═══════════════════════════════════════════════════════════════════


class TestPatternProbability:
    def test_equilateral_apex(self):
        result = pattern_probability((50.0, H), _nodes([(0, 0), (100, 0)]), "triangle")
        assert result.probability == pytest.approx(1.0)
        assert result.confidence == pytest.approx(1.0)
        assert result.required_moves == 1
        assert result.time_to_completion == pytest.approx(5.0)
        assert result.risk_factors == ()

    def test_flat_position_is_unlikely(self):
        result = pattern_probability((50.0, 10.0), _nodes([(0, 0), (100, 0)]), "triangle")
        assert result.probability < 0.5

    def test_mixed_formations_lower_confidence(self):
        nodes = _nodes([(0, 0), (100, 0), (60, 150)])
        result = pattern_probability((50.0, H), nodes, "triangle")
        assert result.probability == pytest.approx(1.0)
        assert 0.0 < result.confidence < 1.0

    def test_insufficient_nearby_nodes(self):
        result = pattern_probability((50.0, H), _nodes([(0, 0), (1000, 0)]), "triangle")
        assert result.probability == 0.0
        assert result.confidence == 1.0
        assert result.required_moves == 3
        assert math.isinf(result.time_to_completion)
        assert result.risk_factors == ("Insufficient nearby nodes",)

    def test_spread_out_formation_flagged(self):
        nodes = _nodes([(290, 0), (-290, 0), (-290, 10), (-290, -10)])
        result = pattern_probability((0.0, 0.0), nodes, "pentagon")
        assert "Nodes too far apart" in result.risk_factors

    def test_unknown_shape_type(self):
        with pytest.raises(ValueError):
            pattern_probability((0.0, 0.0), [], "circle")

    def test_formation_quality(self):
        assert formation_quality(_regular(6)) == pytest.approx(1.0)
        assert formation_quality([(0, 0), (0, 0), (0, 0)]) == 0.0


class TestStrategicRecommendations:
    @pytest.fixture
    def pair(self):
        nodes = _nodes([(0, 0), (100, 0)])
        return nodes, analyze_suggestions(nodes)

    @pytest.mark.parametrize("phase, factor", [("early", 1.5), ("mid", 1.0), ("late", 0.6)])
    def test_phase_reweights_triangles(self, pair, phase, factor):
        nodes, analysis = pair
        recs = strategic_recommendations(nodes, 1000.0, phase, analysis=analysis)
        assert [r.priority for r in recs] == pytest.approx([s.priority * factor for s in analysis.suggestions])

    def test_budget_allows_twenty_percent_over(self, pair):
        nodes, analysis = pair
        assert strategic_recommendations(nodes, 50.0, "mid", analysis=analysis) == []
        assert len(strategic_recommendations(nodes, 90.0, "mid", analysis=analysis)) == 2

    def test_damping_overrides_favour(self, pair):
        _, analysis = pair
        big_triangle = replace(analysis.suggestions[0], potential_bonus=2.5)
        assert phase_multiplier(big_triangle, "early") == 0.7

    def test_unknown_phase(self, pair):
        nodes, analysis = pair
        with pytest.raises(ValueError):
            strategic_recommendations(nodes, 100.0, "endgame", analysis=analysis)
