"""Geometry helper functions used across the package.

All functions take plain ``(x, y)`` tuples.  Degenerate inputs (empty
point lists, zero-length vectors, collinear triples) return guarded
fallback values instead of NaN or raising.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from .models import Point

Bounds = Tuple[float, float, float, float]


def distance(a: Point, b: Point) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def distance_squared(a: Point, b: Point) -> float:
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    return dx * dx + dy * dy


def points_equal(a: Point, b: Point, tolerance: float = 1e-10) -> bool:
    return abs(a[0] - b[0]) < tolerance and abs(a[1] - b[1]) < tolerance


def centroid(points: Sequence[Point]) -> Point:
    """Mean of *points*; ``(0, 0)`` for an empty sequence."""
    if not points:
        return (0.0, 0.0)
    n = len(points)
    return (sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)


def angle_between_points(p1: Point, center: Point, p2: Point) -> float:
    """Angle at *center* in the path p1→center→p2, in radians.

    Always the smaller of the two possible angles, in ``[0, π]``.
    """
    a1 = math.atan2(p1[1] - center[1], p1[0] - center[0])
    a2 = math.atan2(p2[1] - center[1], p2[0] - center[0])
    angle = (a2 - a1) % (2 * math.pi)
    return min(angle, 2 * math.pi - angle)


def sort_clockwise(points: Sequence[Point]) -> List[Point]:
    """Return *points* sorted by angle around their centroid."""
    if len(points) <= 2:
        return list(points)
    cx, cy = centroid(points)
    return sorted(points, key=lambda p: math.atan2(p[1] - cy, p[0] - cx))


def signed_area(points: Sequence[Point]) -> float:
    """Shoelace area: positive when wound counter-clockwise."""
    area = 0.0
    n = len(points)
    for i in range(n):
        x1, y1 = points[i]
        x2, y2 = points[(i + 1) % n]
        area += x1 * y2 - x2 * y1
    return area / 2.0


def triangle_area(a: Point, b: Point, c: Point) -> float:
    return abs(a[0] * (b[1] - c[1]) + b[0] * (c[1] - a[1]) + c[0] * (a[1] - b[1])) / 2.0


def circumcircle(a: Point, b: Point, c: Point, tolerance: float = 1e-10) -> Tuple[Point, float]:
    """Circumcenter and circumradius of triangle *abc*.

    Near-collinear triples fall back to the centroid and the largest
    vertex distance from it.
    """
    ax, ay = a
    bx, by = b
    cx, cy = c
    d = 2.0 * (ax * (by - cy) + bx * (cy - ay) + cx * (ay - by))
    if abs(d) < tolerance:
        center = centroid((a, b, c))
        return center, max(distance(center, a), distance(center, b), distance(center, c))

    a2 = ax * ax + ay * ay
    b2 = bx * bx + by * by
    c2 = cx * cx + cy * cy
    ux = (a2 * (by - cy) + b2 * (cy - ay) + c2 * (ay - by)) / d
    uy = (a2 * (cx - bx) + b2 * (ax - cx) + c2 * (bx - ax)) / d
    center = (ux, uy)
    return center, distance(center, a)


def rotate(vector: Point, angle: float) -> Point:
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    return (vector[0] * cos_a - vector[1] * sin_a, vector[0] * sin_a + vector[1] * cos_a)


def polar_offset(origin: Point, radius: float, angle: float) -> Point:
    return (origin[0] + radius * math.cos(angle), origin[1] + radius * math.sin(angle))


def normalize(vector: Point) -> Point:
    length = math.hypot(vector[0], vector[1])
    if length == 0:
        return (0.0, 0.0)
    return (vector[0] / length, vector[1] / length)


def bounding_box(points: Iterable[Point]) -> Bounds:
    """``(min_x, min_y, max_x, max_y)``; all zeros for no points."""
    pts = list(points)
    if not pts:
        return (0.0, 0.0, 0.0, 0.0)
    xs = [p[0] for p in pts]
    ys = [p[1] for p in pts]
    return (min(xs), min(ys), max(xs), max(ys))


def side_lengths(points: Sequence[Point]) -> List[float]:
    """Lengths of consecutive sides (with wraparound)."""
    n = len(points)
    return [distance(points[i], points[(i + 1) % n]) for i in range(n)]


def mean_pairwise_distance(points: Sequence[Point]) -> float:
    """Average distance over all unordered pairs; 0 for fewer than 2 points."""
    if len(points) < 2:
        return 0.0
    arr = np.asarray(points, dtype=float)
    diff = arr[:, None, :] - arr[None, :, :]
    dists = np.sqrt((diff ** 2).sum(axis=-1))
    iu = np.triu_indices(len(points), k=1)
    return float(dists[iu].mean())
