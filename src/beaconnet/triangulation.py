"""Delaunay triangulation of node positions (Bowyer–Watson).

The triangulation is used as a neighbour oracle: the
:attr:`DelaunayResult.neighbor_map` links every node to the nodes it
shares a mesh edge with, which bounds the pattern search on large
networks.  The mesh is rebuilt from scratch on every call.

Algorithm
---------
1. Build a super-triangle around the bounding box of all points
   (expanded by twice the box's larger dimension).
2. Insert points one at a time.  Triangles whose circumcircle contains
   the point are removed; the edges that occur exactly once among them
   form the boundary of the cavity, and a new triangle is fanned from
   the point to each boundary edge.
3. Drop every triangle that touches a super-triangle vertex.
4. Index edges, point → triangle ids, and per-edge triangle neighbours.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

import structlog

from .geometry import Bounds, bounding_box, circumcircle, distance
from .models import Node, Point

logger = structlog.get_logger()

EdgeKey = Tuple[Point, Point]


# ═══════════════════════════════════════════════════════════════════
# Configuration and data model
# ═══════════════════════════════════════════════════════════════════


@dataclass
class TriangulationOptions:
    """Tuneable parameters for :func:`triangulate`.

    Attributes
    ----------
    tolerance : float
        Slack added to the circumradius in the containment test, and
        the determinant threshold below which a triple is degenerate.
    remove_super_triangle : bool
        Drop triangles touching the super-triangle after construction.
    max_points : int
        Points past this count (in input order) are ignored.
    """

    tolerance: float = 1e-10
    remove_super_triangle: bool = True
    max_points: int = 2000

    def __post_init__(self) -> None:
        if self.tolerance < 0:
            raise ValueError("tolerance must be >= 0")
        if self.max_points < 0:
            raise ValueError("max_points must be >= 0")


@dataclass
class Triangle:
    id: str
    vertices: Tuple[Point, Point, Point]
    circumcenter: Point
    circumradius: float
    neighbors: List[Optional[str]] = field(default_factory=lambda: [None, None, None])
    is_super: bool = False

    def edges(self) -> List[Tuple[Point, Point]]:
        a, b, c = self.vertices
        return [(a, b), (b, c), (c, a)]

    def circumcircle_contains(self, point: Point, tolerance: float) -> bool:
        return distance(self.circumcenter, point) <= self.circumradius + tolerance


@dataclass
class MeshEdge:
    start: Point
    end: Point
    triangles: List[Optional[str]] = field(default_factory=lambda: [None, None])

    @property
    def is_hull(self) -> bool:
        return self.triangles[1] is None


@dataclass
class TriangulationMesh:
    triangles: Dict[str, Triangle] = field(default_factory=dict)
    edges: Dict[EdgeKey, MeshEdge] = field(default_factory=dict)
    point_to_triangles: Dict[Point, List[str]] = field(default_factory=dict)
    bounds: Bounds = (0.0, 0.0, 0.0, 0.0)

    def hull_edges(self) -> List[MeshEdge]:
        return [e for e in self.edges.values() if e.is_hull]


@dataclass
class DelaunayResult:
    mesh: TriangulationMesh
    neighbor_map: Dict[str, Set[str]]
    metrics: Dict[str, float] = field(default_factory=dict, compare=False)

    def neighbors_of(self, node_id: str) -> Set[str]:
        return self.neighbor_map.get(node_id, set())


def edge_key(a: Point, b: Point) -> EdgeKey:
    """Order-independent key for the undirected edge *ab*."""
    return (a, b) if a <= b else (b, a)


# ═══════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════


def triangulate(
    nodes: Sequence[Node],
    options: Optional[TriangulationOptions] = None,
) -> DelaunayResult:
    """Triangulate node positions and derive a node neighbour map.

    Fewer than three nodes yields an empty mesh and neighbour map.
    Nodes sharing a position are inserted once; the first id wins.
    """
    opts = options or TriangulationOptions()
    start = time.perf_counter()

    if len(nodes) < 3:
        return _empty_result(start)

    capped = list(nodes)[: opts.max_points]
    position_to_id: Dict[Point, str] = {}
    for node in capped:
        position_to_id.setdefault(node.position, node.id)

    mesh = build_mesh(list(position_to_id), opts)
    neighbor_map = build_neighbor_map(mesh, position_to_id)

    elapsed_ms = (time.perf_counter() - start) * 1000.0
    logger.debug(
        "Triangulation built",
        points=len(position_to_id),
        triangles=len(mesh.triangles),
        edges=len(mesh.edges),
    )
    return DelaunayResult(
        mesh=mesh,
        neighbor_map=neighbor_map,
        metrics={
            "triangle_count": len(mesh.triangles),
            "edge_count": len(mesh.edges),
            "construction_time_ms": elapsed_ms,
        },
    )


def build_mesh(points: Sequence[Point], options: Optional[TriangulationOptions] = None) -> TriangulationMesh:
    """Run Bowyer–Watson over *points* and return the indexed mesh."""
    opts = options or TriangulationOptions()
    bounds = bounding_box(points)
    if len(points) < 3:
        return TriangulationMesh(bounds=bounds)

    counter = _IdCounter()
    super_tri = _super_triangle(bounds, counter, opts.tolerance)
    triangles: Dict[str, Triangle] = {super_tri.id: super_tri}

    for point in points:
        _insert_point(triangles, point, counter, opts.tolerance)

    if opts.remove_super_triangle:
        super_vertices = set(super_tri.vertices)
        triangles = {
            tid: tri
            for tid, tri in triangles.items()
            if not tri.is_super and not super_vertices.intersection(tri.vertices)
        }

    return _index_mesh(triangles, bounds)


def build_neighbor_map(
    mesh: TriangulationMesh,
    position_to_id: Dict[Point, str],
) -> Dict[str, Set[str]]:
    """Map node id → ids joined to it by a mesh edge.

    Edges whose endpoints do not resolve to a node (super-triangle
    vertices when they are kept) are skipped.
    """
    neighbor_map: Dict[str, Set[str]] = {}
    for edge in mesh.edges.values():
        a = position_to_id.get(edge.start)
        b = position_to_id.get(edge.end)
        if a is None or b is None or a == b:
            continue
        neighbor_map.setdefault(a, set()).add(b)
        neighbor_map.setdefault(b, set()).add(a)
    return neighbor_map


def mesh_edges_as_ids(result: DelaunayResult) -> Set[Tuple[str, str]]:
    """Undirected mesh edges as sorted node-id pairs."""
    pairs: Set[Tuple[str, str]] = set()
    for a, nbrs in result.neighbor_map.items():
        for b in nbrs:
            pairs.add((a, b) if a < b else (b, a))
    return pairs


# ═══════════════════════════════════════════════════════════════════
# Internals
# ═══════════════════════════════════════════════════════════════════


class _IdCounter:
    def __init__(self) -> None:
        self._next = 0

    def next_id(self) -> str:
        tid = f"tri_{self._next}"
        self._next += 1
        return tid


def _make_triangle(
    vertices: Tuple[Point, Point, Point],
    counter: _IdCounter,
    tolerance: float,
    is_super: bool = False,
) -> Triangle:
    center, radius = circumcircle(*vertices, tolerance=tolerance)
    return Triangle(
        id=counter.next_id(),
        vertices=vertices,
        circumcenter=center,
        circumradius=radius,
        is_super=is_super,
    )


def _super_triangle(bounds: Bounds, counter: _IdCounter, tolerance: float) -> Triangle:
    min_x, min_y, max_x, max_y = bounds
    delta = max(max_x - min_x, max_y - min_y) or 1.0
    mid_x = (min_x + max_x) / 2.0
    mid_y = (min_y + max_y) / 2.0
    margin = delta * 2.0
    vertices = (
        (mid_x - margin, mid_y - margin),
        (mid_x + margin, mid_y - margin),
        (mid_x, mid_y + margin),
    )
    return _make_triangle(vertices, counter, tolerance, is_super=True)


def _insert_point(
    triangles: Dict[str, Triangle],
    point: Point,
    counter: _IdCounter,
    tolerance: float,
) -> None:
    bad = [t for t in triangles.values() if t.circumcircle_contains(point, tolerance)]
    if not bad:
        return

    counts: Counter = Counter()
    oriented: Dict[EdgeKey, Tuple[Point, Point]] = {}
    for tri in bad:
        for a, b in tri.edges():
            key = edge_key(a, b)
            counts[key] += 1
            oriented[key] = (a, b)

    for tri in bad:
        del triangles[tri.id]

    for key, count in counts.items():
        if count != 1:
            continue
        a, b = oriented[key]
        tri = _make_triangle((point, a, b), counter, tolerance)
        triangles[tri.id] = tri


def _index_mesh(triangles: Dict[str, Triangle], bounds: Bounds) -> TriangulationMesh:
    mesh = TriangulationMesh(triangles=triangles, bounds=bounds)
    for tid, tri in triangles.items():
        for vertex in tri.vertices:
            mesh.point_to_triangles.setdefault(vertex, []).append(tid)
        for a, b in tri.edges():
            key = edge_key(a, b)
            edge = mesh.edges.get(key)
            if edge is None:
                mesh.edges[key] = MeshEdge(start=key[0], end=key[1], triangles=[tid, None])
            else:
                edge.triangles[1] = tid

    # Neighbour slot i of a triangle faces its edge (v[i], v[i+1]).
    for tri in triangles.values():
        for slot, (a, b) in enumerate(tri.edges()):
            edge = mesh.edges[edge_key(a, b)]
            first, second = edge.triangles
            tri.neighbors[slot] = second if first == tri.id else first
    return mesh


def _empty_result(start: float) -> DelaunayResult:
    return DelaunayResult(
        mesh=TriangulationMesh(),
        neighbor_map={},
        metrics={
            "triangle_count": 0,
            "edge_count": 0,
            "construction_time_ms": (time.perf_counter() - start) * 1000.0,
        },
    )
