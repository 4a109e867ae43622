"""Regular-polygon detection for candidate node subsets.

Each ``detect_*`` function resolves candidate ids against the network,
then runs a three-stage pipeline:

1. a basic shape predicate (non-degenerate area for triangles, the
   regular-polygon test for the others),
2. side-length consistency on the clockwise-sorted points,
3. a shape-specific integrity check (triangle angle sum, square
   diagonals).

Tolerance is adaptive by default: sparse networks are judged more
loosely than dense ones because player-placed nodes are never exact.
Every detector returns ``False`` rather than raising for bad input.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Union

from .geometry import (
    angle_between_points,
    centroid,
    distance,
    mean_pairwise_distance,
    side_lengths,
    sort_clockwise,
    triangle_area,
)
from .models import Node, Point

NodeLookup = Union[Sequence[Node], Mapping[str, Node]]

# Floor added to every comparison so exact shapes pass at tolerance 0.
_EPS = 1e-9

ADAPTIVE_SAMPLE_SIZE = 20


# ═══════════════════════════════════════════════════════════════════
# Tolerances
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ShapeTolerances:
    """Fixed tolerances used when adaptive tolerance is switched off.

    Attributes
    ----------
    angle : float
        Allowed error (radians) of a triangle's interior angle sum.
        Doubled when adaptive tolerance is on.
    min_triangle_area : float
        Triangles at or below this area are degenerate.
    max_triangle_side_ratio : float
        Longest / shortest side must stay below this.
    square : float
        Relative side and absolute corner-angle tolerance of the
        square predicate.
    regular_polygon : float
        Tolerance of the pentagon / hexagon predicate.
    side_consistency : float
        Allowed relative deviation of each side from the mean side.
    square_diagonal : float
        Allowed relative diagonal error for squares.
    """

    angle: float = 1e-4
    min_triangle_area: float = 1e-6
    max_triangle_side_ratio: float = 3.0
    square: float = 0.3
    regular_polygon: float = 0.2
    side_consistency: float = 0.25
    square_diagonal: float = 0.35


DEFAULT_TOLERANCES = ShapeTolerances()


def adaptive_tolerance(nodes: NodeLookup) -> float:
    """Density-derived tolerance from the first 20 nodes.

    Sparse networks (large mean spacing) get looser tolerance.
    """
    node_list = _as_list(nodes)
    if len(node_list) < 3:
        return 0.35
    sample = [n.position for n in node_list[:ADAPTIVE_SAMPLE_SIZE]]
    avg = mean_pairwise_distance(sample)
    if avg > 200:
        return 0.4
    if avg > 100:
        return 0.3
    if avg > 50:
        return 0.2
    return 0.15


# ═══════════════════════════════════════════════════════════════════
# Predicates on points
# ═══════════════════════════════════════════════════════════════════


def is_regular_polygon(points: Sequence[Point], tolerance: float) -> bool:
    """Equal radius from the centroid and equal interior angles.

    Points are sorted clockwise first so traversal order does not
    matter.  Radius deviation is relative; angle deviation is in
    radians.
    """
    n = len(points)
    if n < 3:
        return False
    ordered = sort_clockwise(points)
    center = centroid(ordered)
    radii = [distance(p, center) for p in ordered]
    avg_radius = sum(radii) / n
    if avg_radius <= 0:
        return False
    for r in radii:
        if abs(r - avg_radius) / avg_radius > tolerance + _EPS:
            return False

    expected = math.pi - 2 * math.pi / n
    for i in range(n):
        angle = angle_between_points(ordered[i - 1], ordered[i], ordered[(i + 1) % n])
        if abs(angle - expected) > tolerance + _EPS:
            return False
    return True


def sides_consistent(points: Sequence[Point], tolerance: float) -> bool:
    """Every clockwise side within *tolerance* (relative) of the mean."""
    sides = side_lengths(sort_clockwise(points))
    if not sides:
        return False
    avg = sum(sides) / len(sides)
    if avg <= 0:
        return False
    return all(abs(s - avg) / avg <= tolerance + _EPS for s in sides)


def is_square_shape(points: Sequence[Point], tolerance: float) -> bool:
    """Near-equal sides and near-right corners."""
    if len(points) != 4:
        return False
    ordered = sort_clockwise(points)
    if not sides_consistent(ordered, tolerance):
        return False
    for i in range(4):
        angle = angle_between_points(ordered[i - 1], ordered[i], ordered[(i + 1) % 4])
        if abs(angle - math.pi / 2) > tolerance + _EPS:
            return False
    return True


def square_diagonals_ok(points: Sequence[Point], tolerance: float) -> bool:
    ordered = sort_clockwise(points)
    d1 = distance(ordered[0], ordered[2])
    d2 = distance(ordered[1], ordered[3])
    side = distance(ordered[0], ordered[1])
    expected = side * math.sqrt(2)
    if expected <= 0 or max(d1, d2) <= 0:
        return False
    err1 = abs(d1 - expected) / expected
    err2 = abs(d2 - expected) / expected
    diff = abs(d1 - d2) / max(d1, d2)
    limit = tolerance + _EPS
    return err1 <= limit and err2 <= limit and diff <= limit


def square_points_valid(points: Sequence[Point], tolerances: Optional[ShapeTolerances] = None) -> bool:
    """Square predicate plus diagonal check on raw points, fixed tolerances."""
    tol = tolerances or DEFAULT_TOLERANCES
    return is_square_shape(points, tol.square) and square_diagonals_ok(points, tol.square_diagonal)


def triangle_angles_ok(points: Sequence[Point], tolerance: float) -> bool:
    a, b, c = points
    total = (
        angle_between_points(b, a, c)
        + angle_between_points(a, b, c)
        + angle_between_points(a, c, b)
    )
    return abs(total - math.pi) <= tolerance + _EPS


# ═══════════════════════════════════════════════════════════════════
# Detectors
# ═══════════════════════════════════════════════════════════════════


def detect_triangle(
    nodes: NodeLookup,
    candidate_ids: Sequence[str],
    adaptive: bool = True,
    tolerance: Optional[float] = None,
    tolerances: ShapeTolerances = DEFAULT_TOLERANCES,
) -> bool:
    """Non-degenerate, side ratio below 3, angles summing to π.

    Triangle checks use the fixed thresholds in *tolerances*; the
    *tolerance* override applies to the polygon detectors only.
    """
    points = _resolve(nodes, candidate_ids, 3)
    if points is None:
        return False
    if triangle_area(*points) <= tolerances.min_triangle_area:
        return False

    sides = side_lengths(sort_clockwise(points))
    shortest = min(sides)
    if shortest <= 0 or max(sides) / shortest >= tolerances.max_triangle_side_ratio:
        return False

    angle_tol = tolerances.angle * 2 if adaptive else tolerances.angle
    return triangle_angles_ok(points, angle_tol)


def detect_square(
    nodes: NodeLookup,
    candidate_ids: Sequence[str],
    adaptive: bool = True,
    tolerance: Optional[float] = None,
    tolerances: ShapeTolerances = DEFAULT_TOLERANCES,
) -> bool:
    points = _resolve(nodes, candidate_ids, 4)
    if points is None:
        return False
    shared = _shared_tolerance(nodes, adaptive, tolerance)
    predicate_tol = tolerances.square if shared is None else shared
    if not is_square_shape(points, predicate_tol):
        return False
    diagonal_tol = tolerances.square_diagonal if shared is None else shared
    return square_diagonals_ok(points, diagonal_tol)


def detect_pentagon(
    nodes: NodeLookup,
    candidate_ids: Sequence[str],
    adaptive: bool = True,
    tolerance: Optional[float] = None,
    tolerances: ShapeTolerances = DEFAULT_TOLERANCES,
) -> bool:
    return _detect_regular(nodes, candidate_ids, 5, adaptive, tolerance, tolerances)


def detect_hexagon(
    nodes: NodeLookup,
    candidate_ids: Sequence[str],
    adaptive: bool = True,
    tolerance: Optional[float] = None,
    tolerances: ShapeTolerances = DEFAULT_TOLERANCES,
) -> bool:
    return _detect_regular(nodes, candidate_ids, 6, adaptive, tolerance, tolerances)


DETECTORS = {
    "triangle": detect_triangle,
    "square": detect_square,
    "pentagon": detect_pentagon,
    "hexagon": detect_hexagon,
}


def detect_shape(
    shape_type: str,
    nodes: NodeLookup,
    candidate_ids: Sequence[str],
    adaptive: bool = True,
    tolerance: Optional[float] = None,
    tolerances: ShapeTolerances = DEFAULT_TOLERANCES,
) -> bool:
    """Dispatch to the detector for *shape_type*; unknown types are ``False``."""
    detector = DETECTORS.get(shape_type)
    if detector is None:
        return False
    return detector(nodes, candidate_ids, adaptive=adaptive, tolerance=tolerance, tolerances=tolerances)


# ═══════════════════════════════════════════════════════════════════
# Internals
# ═══════════════════════════════════════════════════════════════════


def _as_list(nodes: NodeLookup) -> List[Node]:
    if isinstance(nodes, Mapping):
        return list(nodes.values())
    return list(nodes)


def _as_map(nodes: NodeLookup) -> Mapping[str, Node]:
    if isinstance(nodes, Mapping):
        return nodes
    index: Dict[str, Node] = {}
    for node in nodes:
        index.setdefault(node.id, node)
    return index


def _resolve(nodes: NodeLookup, candidate_ids: Sequence[str], expected: int) -> Optional[List[Point]]:
    if len(candidate_ids) != expected or len(set(candidate_ids)) != expected:
        return None
    index = _as_map(nodes)
    points: List[Point] = []
    for node_id in candidate_ids:
        node = index.get(node_id)
        if node is None:
            return None
        points.append(node.position)
    return points


def _shared_tolerance(nodes: NodeLookup, adaptive: bool, tolerance: Optional[float]) -> Optional[float]:
    """Tolerance applied to every stage, or ``None`` for the fixed defaults."""
    if tolerance is not None:
        return tolerance
    if adaptive:
        return adaptive_tolerance(nodes)
    return None


def _detect_regular(
    nodes: NodeLookup,
    candidate_ids: Sequence[str],
    sides: int,
    adaptive: bool,
    tolerance: Optional[float],
    tolerances: ShapeTolerances,
) -> bool:
    points = _resolve(nodes, candidate_ids, sides)
    if points is None:
        return False
    shared = _shared_tolerance(nodes, adaptive, tolerance)
    predicate_tol = tolerances.regular_polygon if shared is None else shared
    if not is_regular_polygon(points, predicate_tol):
        return False
    consistency_tol = tolerances.side_consistency if shared is None else shared
    return sides_consistent(points, consistency_tol)
