"""Completion hints for partly built shapes.

:func:`analyze_suggestions` looks for node subsets that already hold
most of a shape (the per-type completion threshold), works out where
the missing nodes would have to go, and ranks those positions.

Completion geometry
-------------------
triangle
    Two known points give two equilateral apexes; each is its own
    incomplete pattern.
square
    Three known corners: each corner in turn is taken as the right-angle
    vertex and the fourth corner completes the parallelogram.  The first
    completion accepted by the square detector wins; failing that, rings
    of eight directions around the best completion are searched.
pentagon / hexagon
    Ideal vertices are laid out evenly around the members' centroid at
    their mean radius, anchored on the first member, and the slots
    farthest from any existing member are taken as missing.

Positions are optionally checked against a placement validator and
nudged along a spiral until legal; unplaceable patterns are dropped.

:func:`pattern_probability` scores a single candidate position against
the nodes around it, and :func:`strategic_recommendations` re-ranks the
suggestions for a game phase and a resource budget.
"""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

import numpy as np
import structlog
from scipy.spatial import cKDTree

from .geometry import centroid, distance, distance_squared, mean_pairwise_distance, polar_offset, side_lengths, sort_clockwise
from .models import SHAPE_BONUSES, SHAPE_SIDES, SHAPE_TYPES, IncompletePattern, Node, Point, Shape
from .placement import PlacementValidatorProtocol
from .shapes import square_points_valid

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_COMBINATION_LIMIT = 1000


# ═══════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════


@dataclass
class SuggestionConfig:
    """Thresholds and scoring weights for :func:`analyze_suggestions`.

    Attributes
    ----------
    completion_thresholds : dict
        Fraction of a shape's nodes that must already exist.
    pattern_radii : dict
        Maximum pairwise distance between the existing members.
    bonus_weight, ease_weight, proximity_weight, efficiency_weight : float
        Priority weights for bonus value, feasibility, proximity and
        bonus-per-missing-node.
    ideal_spacing : float
        Member spacing with a proximity score of 1.
    too_close_distance : float
        Missing positions nearer than this to a node halve feasibility.
    existing_match_overlap : float
        Jaccard overlap at which a subset counts as an existing shape.
    occupied_distance : float
        Missing positions this close to a node are already filled.
    grouping_tolerance : float
        Positions within this distance count as the same position.
    multi_shape_boost : float
        Priority added per extra pattern completed by one position.
    max_suggestions : int
        Length of the ranked suggestion list.
    fallback_radius : float
        Polygon radius used when the members have no spread.
    combination_limit : int
        Candidate subsets examined per shape type.
    nudge_attempts : int
        Directions tried when nudging an illegal position.
    nudge_max_distance : float
        Farthest a position may be nudged.
    square_search_rings : int
        Rings of the eight-direction square fallback search.
    square_search_step : float
        Ring spacing as a fraction of the mean side length.
    node_cost : float
        Cost of one node, for completion costs and budgets.
    budget_slack : float
        Strategic recommendations may exceed the available resources
        by this factor.
    seconds_per_node : float
        Estimated build time per missing node.
    suggested_node_type : str
        Node type passed to the placement validator.
    """

    completion_thresholds: Dict[str, float] = field(
        default_factory=lambda: {"triangle": 0.67, "square": 0.75, "pentagon": 0.8, "hexagon": 0.83}
    )
    pattern_radii: Dict[str, float] = field(
        default_factory=lambda: {"triangle": 200.0, "square": 250.0, "pentagon": 300.0, "hexagon": 350.0}
    )
    bonus_weight: float = 0.4
    ease_weight: float = 0.3
    proximity_weight: float = 0.2
    efficiency_weight: float = 0.1
    ideal_spacing: float = 150.0
    too_close_distance: float = 50.0
    existing_match_overlap: float = 0.8
    occupied_distance: float = 1.0
    grouping_tolerance: float = 25.0
    multi_shape_boost: float = 0.5
    max_suggestions: int = 8
    fallback_radius: float = 100.0
    combination_limit: int = DEFAULT_COMBINATION_LIMIT
    nudge_attempts: int = 24
    nudge_max_distance: float = 100.0
    square_search_rings: int = 3
    square_search_step: float = 0.1
    node_cost: float = 100.0
    budget_slack: float = 1.2
    seconds_per_node: float = 5.0
    suggested_node_type: str = "pioneer"

    def __post_init__(self) -> None:
        for shape_type in SHAPE_TYPES:
            threshold = self.completion_thresholds.get(shape_type)
            if threshold is None or not 0.0 < threshold <= 1.0:
                raise ValueError(f"completion threshold for {shape_type} must be within (0, 1]")
            if self.pattern_radii.get(shape_type, 0.0) <= 0:
                raise ValueError(f"pattern radius for {shape_type} must be > 0")
        if self.ideal_spacing <= 0:
            raise ValueError("ideal_spacing must be > 0")
        if self.max_suggestions < 0 or self.combination_limit < 0 or self.nudge_attempts < 0:
            raise ValueError("counts must be >= 0")
        if self.fallback_radius <= 0:
            raise ValueError("fallback_radius must be > 0")
        if self.node_cost < 0 or self.budget_slack < 0 or self.seconds_per_node < 0:
            raise ValueError("costs and timings must be >= 0")

    def min_existing(self, shape_type: str) -> int:
        """Existing members needed; always leaves at least one missing."""
        required = SHAPE_SIDES[shape_type]
        needed = math.ceil(round(required * self.completion_thresholds[shape_type], 9))
        return max(2, min(required - 1, needed))


# ═══════════════════════════════════════════════════════════════════
# Result types
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Suggestion:
    id: str
    shape_type: str
    position: Point
    required_node_ids: Tuple[str, ...]
    potential_bonus: float
    completion_percentage: float
    priority: float
    pattern_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SuggestionAnalysis:
    incomplete_patterns: Tuple[IncompletePattern, ...]
    suggestions: Tuple[Suggestion, ...]
    best_position: Optional[Point]
    total_potential_bonus: float
    average_completion_cost: float


# ═══════════════════════════════════════════════════════════════════
# Combinations and scores
# ═══════════════════════════════════════════════════════════════════


def generate_combinations(items: Sequence[T], size: int, limit: int = DEFAULT_COMBINATION_LIMIT) -> List[Tuple[T, ...]]:
    """At most *limit* combinations of *size* items, in generation order.

    Generation order is lexicographic by position in *items*.  The cap
    is part of the contract: callers never see more than *limit*.
    """
    if size <= 0 or size > len(items) or limit <= 0:
        return []
    return list(itertools.islice(itertools.combinations(items, size), limit))


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    set_a = set(a)
    set_b = set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def within_radius(points: Sequence[Point], radius: float) -> bool:
    limit = radius * radius
    for i, p in enumerate(points):
        for q in points[i + 1:]:
            if distance_squared(p, q) > limit:
                return False
    return True


def proximity_score(points: Sequence[Point], ideal_spacing: float = 150.0) -> float:
    """1 at the ideal mean spacing, falling linearly to 0."""
    if len(points) < 2:
        return 0.0
    avg = mean_pairwise_distance(points)
    return max(0.0, 1.0 - abs(avg - ideal_spacing) / ideal_spacing)


def feasibility_score(positions: Sequence[Point], tree: Optional[cKDTree], too_close: float = 50.0) -> float:
    """Halved for each position nearer than *too_close* to a node."""
    score = 1.0
    if tree is None:
        return score
    for position in positions:
        nearest, _ = tree.query(position)
        if nearest < too_close:
            score *= 0.5
    return score


def priority_score(pattern: IncompletePattern, config: SuggestionConfig) -> float:
    bonus_value = pattern.estimated_bonus / 5.0
    efficiency = pattern.estimated_bonus / max(1, pattern.missing_count)
    return (
        bonus_value * config.bonus_weight
        + pattern.feasibility_score * config.ease_weight
        + pattern.proximity_score * config.proximity_weight
        + efficiency * config.efficiency_weight
    )


# ═══════════════════════════════════════════════════════════════════
# Completion geometry
# ═══════════════════════════════════════════════════════════════════


def triangle_apexes(a: Point, b: Point) -> List[Point]:
    """Both equilateral apexes over the segment *ab*."""
    length = distance(a, b)
    if length == 0:
        return []
    mx = (a[0] + b[0]) / 2.0
    my = (a[1] + b[1]) / 2.0
    height = length * math.sqrt(3) / 2.0
    # Unit normal to ab.
    nx = -(b[1] - a[1]) / length
    ny = (b[0] - a[0]) / length
    return [(mx + nx * height, my + ny * height), (mx - nx * height, my - ny * height)]


def parallelogram_completions(corners: Sequence[Point]) -> List[Tuple[Point, float]]:
    """Fourth corners, each paired with its right-angle error.

    Each known corner is tried as the vertex between the other two.
    Sorted by how close that vertex's angle is to 90 degrees.
    """
    completions: List[Tuple[Point, float]] = []
    for i, vertex in enumerate(corners):
        p, q = [c for j, c in enumerate(corners) if j != i]
        fourth = (p[0] + q[0] - vertex[0], p[1] + q[1] - vertex[1])
        v1 = (p[0] - vertex[0], p[1] - vertex[1])
        v2 = (q[0] - vertex[0], q[1] - vertex[1])
        norm = math.hypot(*v1) * math.hypot(*v2)
        if norm == 0:
            continue
        cos_angle = max(-1.0, min(1.0, (v1[0] * v2[0] + v1[1] * v2[1]) / norm))
        error = abs(math.acos(cos_angle) - math.pi / 2)
        completions.append((fourth, error))
    completions.sort(key=lambda item: item[1])
    return completions


def square_completion(corners: Sequence[Point], config: SuggestionConfig) -> Optional[Point]:
    completions = parallelogram_completions(corners)
    if not completions:
        return None
    for fourth, _ in completions:
        if square_points_valid(list(corners) + [fourth]):
            return fourth

    best = completions[0][0]
    mean_side = sum(side_lengths(sort_clockwise(list(corners) + [best]))) / 4.0
    for ring in range(1, config.square_search_rings + 1):
        radius = mean_side * config.square_search_step * ring
        for k in range(8):
            candidate = polar_offset(best, radius, k * math.pi / 4)
            if square_points_valid(list(corners) + [candidate]):
                return candidate
    return None


def polygon_completion(points: Sequence[Point], sides: int, fallback_radius: float) -> List[Point]:
    """Missing vertices of a regular polygon around the members' centroid."""
    missing = sides - len(points)
    if missing <= 0:
        return []
    center = centroid(points)
    radius = sum(distance(p, center) for p in points) / len(points) if points else 0.0
    if radius <= 0:
        radius = fallback_radius
    anchor = points[0]
    start = math.atan2(anchor[1] - center[1], anchor[0] - center[0]) if anchor != center else 0.0
    slots = [polar_offset(center, radius, start + k * 2 * math.pi / sides) for k in range(sides)]
    # Slots farthest from any member are the empty ones.
    slots.sort(key=lambda s: -min(distance(s, p) for p in points))
    return slots[:missing]


def completion_positions(shape_type: str, points: Sequence[Point], config: SuggestionConfig) -> List[List[Point]]:
    """Alternative sets of missing positions for one member subset."""
    if shape_type == "triangle":
        if len(points) != 2:
            return []
        return [[apex] for apex in triangle_apexes(points[0], points[1])]
    if shape_type == "square":
        if len(points) != 3:
            return []
        fourth = square_completion(points, config)
        return [[fourth]] if fourth is not None else []
    positions = polygon_completion(points, SHAPE_SIDES[shape_type], config.fallback_radius)
    return [positions] if positions else []


# ═══════════════════════════════════════════════════════════════════
# Placement
# ═══════════════════════════════════════════════════════════════════


def nudge_position(
    position: Point,
    validator: PlacementValidatorProtocol,
    node_type: str,
    attempts: int = 24,
    max_distance: float = 100.0,
) -> Optional[Point]:
    """*position* if legal, else the first legal point along a spiral."""
    if validator.is_valid_position(position, node_type).valid:
        return position
    for i in range(attempts):
        angle = i / attempts * 2 * math.pi
        radius = (i + 1) / attempts * max_distance
        candidate = polar_offset(position, radius, angle)
        if validator.is_valid_position(candidate, node_type).valid:
            return candidate
    return None


# ═══════════════════════════════════════════════════════════════════
# Analysis
# ═══════════════════════════════════════════════════════════════════


def find_incomplete_patterns(
    nodes: Sequence[Node],
    existing_shapes: Sequence[Shape] = (),
    config: Optional[SuggestionConfig] = None,
    validator: Optional[PlacementValidatorProtocol] = None,
) -> List[IncompletePattern]:
    cfg = config or SuggestionConfig()
    positions = [n.position for n in nodes]
    tree = cKDTree(positions) if positions else None
    existing_sets = [set(s.node_ids) for s in existing_shapes]

    patterns: List[IncompletePattern] = []
    for shape_type in SHAPE_TYPES:
        size = cfg.min_existing(shape_type)
        radius = cfg.pattern_radii[shape_type]
        for combo in generate_combinations(nodes, size, cfg.combination_limit):
            ids = tuple(n.id for n in combo)
            points = [n.position for n in combo]
            if not within_radius(points, radius):
                continue
            if any(jaccard(ids, existing) >= cfg.existing_match_overlap for existing in existing_sets):
                continue
            for k, missing in enumerate(completion_positions(shape_type, points, cfg)):
                placed = _place(missing, tree, validator, cfg)
                if placed is None:
                    continue
                pattern_id = f"incomplete-{shape_type}-{'-'.join(ids)}"
                if k:
                    pattern_id = f"{pattern_id}-{k}"
                patterns.append(
                    IncompletePattern(
                        id=pattern_id,
                        shape_type=shape_type,
                        existing_node_ids=ids,
                        missing_positions=tuple(placed),
                        estimated_bonus=SHAPE_BONUSES[shape_type],
                        feasibility_score=feasibility_score(placed, tree, cfg.too_close_distance),
                        proximity_score=proximity_score(points, cfg.ideal_spacing),
                    )
                )
    return patterns


def _place(
    missing: Sequence[Point],
    tree: Optional[cKDTree],
    validator: Optional[PlacementValidatorProtocol],
    config: SuggestionConfig,
) -> Optional[List[Point]]:
    placed: List[Point] = []
    for position in missing:
        if tree is not None and tree.query(position)[0] <= config.occupied_distance:
            return None
        if validator is not None:
            nudged = nudge_position(
                position,
                validator,
                config.suggested_node_type,
                config.nudge_attempts,
                config.nudge_max_distance,
            )
            if nudged is None:
                return None
            position = nudged
        placed.append(position)
    return placed


def _group_by_position(suggestions: Sequence[Suggestion], tolerance: float) -> List[Tuple[Point, List[Suggestion]]]:
    """Greedy grouping: each suggestion joins the first group within range."""
    groups: List[Tuple[Point, List[Suggestion]]] = []
    for suggestion in suggestions:
        for anchor, members in groups:
            if distance(anchor, suggestion.position) <= tolerance:
                members.append(suggestion)
                break
        else:
            groups.append((suggestion.position, [suggestion]))
    return groups


def _suggestions_from(patterns: Sequence[IncompletePattern], config: SuggestionConfig) -> Iterator[Suggestion]:
    for pattern in patterns:
        required = SHAPE_SIDES[pattern.shape_type]
        priority = priority_score(pattern, config)
        for position in pattern.missing_positions:
            yield Suggestion(
                id=f"{pattern.id}-pos-{position[0]:.1f}-{position[1]:.1f}",
                shape_type=pattern.shape_type,
                position=position,
                required_node_ids=pattern.existing_node_ids,
                potential_bonus=pattern.estimated_bonus,
                completion_percentage=len(pattern.existing_node_ids) / required,
                priority=priority,
                pattern_ids=(pattern.id,),
            )


def analyze_suggestions(
    nodes: Sequence[Node],
    existing_shapes: Sequence[Shape] = (),
    config: Optional[SuggestionConfig] = None,
    validator: Optional[PlacementValidatorProtocol] = None,
) -> SuggestionAnalysis:
    """Rank positions that would complete partly built shapes.

    Parameters
    ----------
    nodes : sequence of Node
    existing_shapes : sequence of Shape
        Subsets overlapping one of these by the configured Jaccard
        fraction are treated as already built.
    config : SuggestionConfig, optional
    validator : PlacementValidatorProtocol, optional
        Placement-legality check; illegal positions are nudged.

    Returns
    -------
    SuggestionAnalysis
    """
    cfg = config or SuggestionConfig()
    patterns = find_incomplete_patterns(nodes, existing_shapes, cfg, validator)
    raw = list(_suggestions_from(patterns, cfg))

    boosted: List[Suggestion] = []
    for _, members in _group_by_position(raw, cfg.grouping_tolerance):
        extra = len({s.pattern_ids for s in members}) - 1
        for s in members:
            if extra > 0:
                s = replace(s, priority=s.priority + cfg.multi_shape_boost * extra)
            boosted.append(s)
    # Ties keep generation order.
    boosted.sort(key=lambda s: -s.priority)

    ranked = tuple(boosted[: cfg.max_suggestions])
    total_bonus = sum(s.potential_bonus for s in boosted)
    if boosted:
        avg_cost = sum(
            (SHAPE_SIDES[s.shape_type] - len(s.required_node_ids)) * cfg.node_cost for s in boosted
        ) / len(boosted)
    else:
        avg_cost = 0.0

    logger.info(
        "Suggestions analysed",
        node_count=len(nodes),
        incomplete_patterns=len(patterns),
        suggestions=len(ranked),
    )
    return SuggestionAnalysis(
        incomplete_patterns=tuple(patterns),
        suggestions=ranked,
        best_position=ranked[0].position if ranked else None,
        total_potential_bonus=total_bonus,
        average_completion_cost=avg_cost,
    )


def find_multi_shape_positions(
    nodes: Sequence[Node],
    existing_shapes: Sequence[Shape] = (),
    config: Optional[SuggestionConfig] = None,
    validator: Optional[PlacementValidatorProtocol] = None,
    analysis: Optional[SuggestionAnalysis] = None,
) -> List[Suggestion]:
    """Positions among the ranked suggestions that complete several patterns."""
    cfg = config or SuggestionConfig()
    if analysis is None:
        analysis = analyze_suggestions(nodes, existing_shapes, cfg, validator)

    merged: List[Suggestion] = []
    for anchor, members in _group_by_position(analysis.suggestions, cfg.grouping_tolerance):
        if len(members) < 2:
            continue
        required: List[str] = []
        for s in members:
            required.extend(i for i in s.required_node_ids if i not in required)
        pattern_ids: List[str] = []
        for s in members:
            pattern_ids.extend(p for p in s.pattern_ids if p not in pattern_ids)
        merged.append(
            Suggestion(
                id=f"multi-{anchor[0]:.1f}-{anchor[1]:.1f}",
                shape_type=members[0].shape_type,
                position=anchor,
                required_node_ids=tuple(required),
                potential_bonus=sum(s.potential_bonus for s in members),
                completion_percentage=max(s.completion_percentage for s in members),
                priority=max(s.priority for s in members) + cfg.multi_shape_boost,
                pattern_ids=tuple(pattern_ids),
            )
        )
    merged.sort(key=lambda s: -s.priority)
    return merged


def suggestions_in_area(
    nodes: Sequence[Node],
    center: Point,
    radius: float,
    existing_shapes: Sequence[Shape] = (),
    config: Optional[SuggestionConfig] = None,
    validator: Optional[PlacementValidatorProtocol] = None,
    analysis: Optional[SuggestionAnalysis] = None,
) -> List[Suggestion]:
    """Ranked suggestions whose position lies within *radius* of *center*."""
    if analysis is None:
        analysis = analyze_suggestions(nodes, existing_shapes, config, validator)
    return [s for s in analysis.suggestions if distance(s.position, center) <= radius]



# ═══════════════════════════════════════════════════════════════════
# Probability and strategy
# ═══════════════════════════════════════════════════════════════════

GAME_PHASES: tuple[str, ...] = ("early", "mid", "late")


@dataclass(frozen=True)
class PatternProbability:
    shape_type: str
    probability: float
    confidence: float
    required_moves: int
    time_to_completion: float
    risk_factors: Tuple[str, ...] = ()


def formation_quality(points: Sequence[Point]) -> float:
    """1 for points equidistant from their centroid, lower as radii spread."""
    center = centroid(points)
    radii = np.array([distance(p, center) for p in points])
    mean = float(radii.mean()) if len(radii) else 0.0
    if mean <= 0:
        return 0.0
    return max(0.0, 1.0 - float(radii.std()) / mean)


def pattern_probability(
    position: Point,
    nodes: Sequence[Node],
    shape_type: str,
    config: Optional[SuggestionConfig] = None,
) -> PatternProbability:
    """How likely a node at *position* completes a *shape_type*.

    Every combination of ``sides - 1`` nodes within the shape's pattern
    radius of *position* is scored together with *position* by
    :func:`formation_quality`.  The best formation gives the
    probability, its risk factors and the moves still needed; confidence
    is one minus the spread of quality across all formations.
    """
    cfg = config or SuggestionConfig()
    if shape_type not in SHAPE_SIDES:
        raise ValueError(f"Unknown shape type {shape_type!r}")
    required = SHAPE_SIDES[shape_type]
    radius = cfg.pattern_radii[shape_type]

    nearby: List[Node] = []
    if nodes:
        tree = cKDTree([n.position for n in nodes])
        nearby = [nodes[i] for i in sorted(tree.query_ball_point(position, radius))]
    if len(nearby) < required - 1:
        return PatternProbability(
            shape_type=shape_type,
            probability=0.0,
            confidence=1.0,
            required_moves=required,
            time_to_completion=math.inf,
            risk_factors=("Insufficient nearby nodes",),
        )

    qualities: List[float] = []
    best: Optional[Tuple[float, int, Tuple[str, ...]]] = None
    for combo in generate_combinations(nearby, required - 1, cfg.combination_limit):
        points = [n.position for n in combo] + [position]
        quality = formation_quality(points)
        center = centroid(points)
        risks: Tuple[str, ...] = ()
        if max(distance(p, center) for p in points) > radius:
            risks = ("Nodes too far apart",)
        qualities.append(quality)
        if best is None or quality > best[0]:
            best = (quality, required - len(combo), risks)

    if best is None:
        return PatternProbability(
            shape_type=shape_type,
            probability=0.0,
            confidence=0.0,
            required_moves=required,
            time_to_completion=math.inf,
            risk_factors=("No candidate formations",),
        )
    quality, moves, risks = best
    return PatternProbability(
        shape_type=shape_type,
        probability=min(1.0, quality),
        confidence=max(0.0, 1.0 - float(np.std(qualities))),
        required_moves=moves,
        time_to_completion=moves * cfg.seconds_per_node,
        risk_factors=risks,
    )


def phase_multiplier(suggestion: Suggestion, phase: str) -> float:
    """Priority scale for *suggestion* in a game phase.

    - ``early``: triangles x1.5; anything worth more than 2 x0.7
    - ``mid``: squares x1.3; anything worth less than 1.5 x0.8
    - ``late``: pentagons and hexagons x1.4; anything worth less than 3 x0.6

    The damping rule wins when both apply.
    """
    value = suggestion.potential_bonus
    multiplier = 1.0
    if phase == "early":
        if suggestion.shape_type == "triangle":
            multiplier = 1.5
        if value > 2.0:
            multiplier = 0.7
    elif phase == "mid":
        if suggestion.shape_type == "square":
            multiplier = 1.3
        if value < 1.5:
            multiplier = 0.8
    elif phase == "late":
        if suggestion.shape_type in ("pentagon", "hexagon"):
            multiplier = 1.4
        if value < 3.0:
            multiplier = 0.6
    else:
        raise ValueError(f"Unknown game phase {phase!r}; expected one of {', '.join(GAME_PHASES)}")
    return multiplier


def strategic_recommendations(
    nodes: Sequence[Node],
    available_resources: float,
    phase: str,
    existing_shapes: Sequence[Shape] = (),
    config: Optional[SuggestionConfig] = None,
    validator: Optional[PlacementValidatorProtocol] = None,
    analysis: Optional[SuggestionAnalysis] = None,
) -> List[Suggestion]:
    """Ranked suggestions re-weighted for *phase* and filtered by budget.

    A suggestion is affordable when completing its pattern costs at most
    ``available_resources * budget_slack``.
    """
    if phase not in GAME_PHASES:
        raise ValueError(f"Unknown game phase {phase!r}; expected one of {', '.join(GAME_PHASES)}")
    cfg = config or SuggestionConfig()
    if analysis is None:
        analysis = analyze_suggestions(nodes, existing_shapes, cfg, validator)

    budget = available_resources * cfg.budget_slack
    picked: List[Suggestion] = []
    for suggestion in analysis.suggestions:
        missing = max(1, SHAPE_SIDES[suggestion.shape_type] - len(suggestion.required_node_ids))
        if missing * cfg.node_cost > budget:
            continue
        picked.append(replace(suggestion, priority=suggestion.priority * phase_multiplier(suggestion, phase)))
    picked.sort(key=lambda s: -s.priority)
    logger.debug("Strategic recommendations", phase=phase, budget=budget, count=len(picked))
    return picked[: cfg.max_suggestions]
