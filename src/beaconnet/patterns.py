"""Shape enumeration over a beacon network.

:func:`find_shapes` picks a search tier by network size:

``cycles``
    Fewer than ``triangulation_threshold`` nodes.  Bounded DFS for
    cycles of length 3-6 in the connection graph.
``triangulated``
    Up to ``high_density_threshold`` nodes.  The connection graph is
    first restricted to Delaunay neighbours; triangles and squares come
    from explicit 2- and 3-hop walks, pentagons and hexagons from the
    cycle search over the restricted graph.
``neighborhood``
    Larger networks.  Each node is combined with subsets of its
    triangulation neighbours, capped per node and globally.

Every candidate is checked by :mod:`shapes`; one shape is kept per
canonical key (sorted member ids).
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

import structlog

from .geometry import centroid
from .models import SHAPE_BONUSES, SHAPE_SIDES, SHAPE_TYPES, Connection, Node, Shape, shape_id
from .shapes import adaptive_tolerance, detect_shape
from .triangulation import TriangulationOptions, triangulate

logger = structlog.get_logger()

Adjacency = Dict[str, List[str]]

DEFAULT_CYCLE_CAPS = {3: 50, 4: 30, 5: 20, 6: 10}


# ═══════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════


@dataclass
class PatternFinderConfig:
    """Search limits for :func:`find_shapes`.

    Attributes
    ----------
    triangulation_threshold : int
        Networks with at least this many nodes use the triangulation.
    high_density_threshold : int
        Networks with at least this many nodes use neighbour
        combinations only.
    cycle_caps : dict
        Maximum unique candidate cycles per cycle length.
    max_combinations_per_node : int
        Neighbour combinations examined per node (neighbourhood tier).
    max_total_combinations : int
        Neighbour combinations examined overall (neighbourhood tier).
    adaptive : bool
        Use density-adaptive shape tolerance.
    tolerance : float or None
        Fixed tolerance overriding the adaptive / default values.
    triangulation : TriangulationOptions
        Options for the Delaunay pass.
    """

    triangulation_threshold: int = 50
    high_density_threshold: int = 500
    cycle_caps: Dict[int, int] = field(default_factory=lambda: dict(DEFAULT_CYCLE_CAPS))
    max_combinations_per_node: int = 20
    max_total_combinations: int = 500
    adaptive: bool = True
    tolerance: Optional[float] = None
    triangulation: TriangulationOptions = field(default_factory=TriangulationOptions)

    def __post_init__(self) -> None:
        if self.triangulation_threshold < 0:
            raise ValueError("triangulation_threshold must be >= 0")
        if self.high_density_threshold < self.triangulation_threshold:
            raise ValueError("high_density_threshold must be >= triangulation_threshold")
        if self.max_combinations_per_node < 0 or self.max_total_combinations < 0:
            raise ValueError("combination limits must be >= 0")
        if self.tolerance is not None and self.tolerance < 0:
            raise ValueError("tolerance must be >= 0")
        for length, cap in self.cycle_caps.items():
            if cap < 0:
                raise ValueError(f"cycle cap for length {length} must be >= 0")

    def cap_for(self, length: int) -> int:
        return self.cycle_caps.get(length, DEFAULT_CYCLE_CAPS.get(length, 0))


def select_strategy(node_count: int, config: PatternFinderConfig) -> str:
    if node_count < config.triangulation_threshold:
        return "cycles"
    if node_count < config.high_density_threshold:
        return "triangulated"
    return "neighborhood"


# ═══════════════════════════════════════════════════════════════════
# Connection graph
# ═══════════════════════════════════════════════════════════════════


def build_adjacency(nodes: Sequence[Node]) -> Adjacency:
    """Node id → connected ids, restricted to ids present in *nodes*.

    Self-links and repeated entries are dropped; listed order is kept.
    """
    known = {n.id for n in nodes}
    adjacency: Adjacency = {}
    for node in nodes:
        if node.id in adjacency:
            continue
        seen: Set[str] = set()
        linked: List[str] = []
        for other in node.connections:
            if other == node.id or other not in known or other in seen:
                continue
            seen.add(other)
            linked.append(other)
        adjacency[node.id] = linked
    return adjacency


def connection_strength(a: Node, b: Optional[Node]) -> int:
    """Strength 1-5 from the lower level plus node-type synergies."""
    if b is None:
        return 1
    strength = min(a.level, b.level)
    if a.node_type == "architect" or b.node_type == "architect":
        strength += 1
    if {a.node_type, b.node_type} == {"harvester", "pioneer"}:
        strength += 1
    return max(1, min(5, strength))


def build_connections(nodes: Sequence[Node]) -> List[Connection]:
    """Derive one :class:`Connection` per unordered linked pair."""
    index = {n.id: n for n in nodes}
    processed: Set[FrozenSet[str]] = set()
    connections: List[Connection] = []
    for node in nodes:
        for other_id in node.connections:
            if other_id == node.id:
                continue
            pair = frozenset((node.id, other_id))
            if pair in processed:
                continue
            processed.add(pair)
            connections.append(
                Connection(
                    id=f"{node.id}_{other_id}",
                    source_id=node.id,
                    target_id=other_id,
                    strength=connection_strength(node, index.get(other_id)),
                )
            )
    return connections


# ═══════════════════════════════════════════════════════════════════
# Cycle search
# ═══════════════════════════════════════════════════════════════════


def find_cycles(
    adjacency: Mapping[str, Sequence[str]],
    length: int,
    max_cycles: int,
    start_ids: Optional[Iterable[str]] = None,
) -> List[List[str]]:
    """Simple cycles of exactly *length* nodes, in traversal order.

    Iterative depth-first search from every start id.  A cycle is only
    walked from its smallest member, so each canonical key is emitted
    once.  The search stops as soon as *max_cycles* cycles are found.
    """
    cycles: List[List[str]] = []
    if length < 3 or max_cycles <= 0:
        return cycles
    seen: Set[Tuple[str, ...]] = set()
    starts = list(adjacency) if start_ids is None else list(start_ids)

    for start in starts:
        if len(cycles) >= max_cycles:
            break
        stack: List[Tuple[str, ...]] = [(start,)]
        while stack:
            path = stack.pop()
            last = path[-1]
            if len(path) == length:
                if start in adjacency.get(last, ()):
                    key = tuple(sorted(path))
                    if key not in seen:
                        seen.add(key)
                        cycles.append(list(path))
                        if len(cycles) >= max_cycles:
                            break
                continue
            for nxt in reversed(adjacency.get(last, ())):
                if nxt > start and nxt not in path:
                    stack.append(path + (nxt,))
    return cycles


def restrict_adjacency(adjacency: Adjacency, allowed: Mapping[str, Set[str]]) -> Adjacency:
    """Keep only the links that are also present in *allowed*."""
    return {
        node_id: [other for other in linked if other in allowed.get(node_id, ())]
        for node_id, linked in adjacency.items()
    }


def walk_triangles(adjacency: Adjacency, max_cycles: int) -> List[List[str]]:
    """Triangles a→b→c→a found by two-hop walks."""
    found: List[List[str]] = []
    for a in adjacency:
        for b in adjacency[a]:
            if b <= a:
                continue
            for c in adjacency.get(b, ()):
                if c <= a or c == b:
                    continue
                if b < c and a in adjacency.get(c, ()):
                    found.append([a, b, c])
                    if len(found) >= max_cycles:
                        return found
    return found


def walk_squares(adjacency: Adjacency, max_cycles: int) -> List[List[str]]:
    """Quadrilaterals a→b→c→d→a found by three-hop walks."""
    found: List[List[str]] = []
    seen: Set[Tuple[str, ...]] = set()
    for a in adjacency:
        for b in adjacency[a]:
            if b <= a:
                continue
            for c in adjacency.get(b, ()):
                if c <= a or c == b:
                    continue
                for d in adjacency.get(c, ()):
                    if d <= a or d in (b, c) or a not in adjacency.get(d, ()):
                        continue
                    key = tuple(sorted((a, b, c, d)))
                    if key in seen:
                        continue
                    seen.add(key)
                    found.append([a, b, c, d])
                    if len(found) >= max_cycles:
                        return found
    return found


# ═══════════════════════════════════════════════════════════════════
# Candidate generation per tier
# ═══════════════════════════════════════════════════════════════════


def _cycle_candidates(adjacency: Adjacency, config: PatternFinderConfig) -> Iterator[Tuple[str, List[str]]]:
    for shape_type in SHAPE_TYPES:
        length = SHAPE_SIDES[shape_type]
        for cycle in find_cycles(adjacency, length, config.cap_for(length)):
            yield shape_type, cycle


def _triangulated_candidates(
    adjacency: Adjacency,
    neighbor_map: Mapping[str, Set[str]],
    config: PatternFinderConfig,
) -> Iterator[Tuple[str, List[str]]]:
    restricted = restrict_adjacency(adjacency, neighbor_map)
    for cycle in walk_triangles(restricted, config.cap_for(3)):
        yield "triangle", cycle
    for cycle in walk_squares(restricted, config.cap_for(4)):
        yield "square", cycle
    for shape_type in ("pentagon", "hexagon"):
        length = SHAPE_SIDES[shape_type]
        for cycle in find_cycles(restricted, length, config.cap_for(length)):
            yield shape_type, cycle


def _neighborhood_candidates(
    adjacency: Adjacency,
    neighbor_map: Mapping[str, Set[str]],
    config: PatternFinderConfig,
) -> Iterator[Tuple[str, List[str]]]:
    total = 0
    for node_id in adjacency:
        if total >= config.max_total_combinations:
            break
        pool = sorted(neighbor_map.get(node_id, ()))
        per_node = 0
        for shape_type in SHAPE_TYPES:
            size = SHAPE_SIDES[shape_type]
            if len(pool) < size - 1:
                continue
            for combo in itertools.combinations(pool, size - 1):
                if per_node >= config.max_combinations_per_node or total >= config.max_total_combinations:
                    break
                per_node += 1
                total += 1
                members = (node_id,) + combo
                induced = {m: [o for o in adjacency.get(m, ()) if o in members] for m in members}
                ordered = find_cycles(induced, size, 1, start_ids=[min(members)])
                if ordered:
                    yield shape_type, ordered[0]
    logger.debug("Neighbourhood combinations examined", total=total)


# ═══════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════


def make_shape(shape_type: str, member_ids: Sequence[str], index: Mapping[str, Node]) -> Shape:
    """Build a :class:`Shape` for members already checked by a detector."""
    center = centroid([index[i].position for i in member_ids])
    return Shape(
        id=shape_id(shape_type, member_ids),
        shape_type=shape_type,
        node_ids=tuple(member_ids),
        center=center,
        bonus=SHAPE_BONUSES[shape_type],
    )


def find_shapes(
    nodes: Sequence[Node],
    connections: Optional[Sequence[Connection]] = None,
    config: Optional[PatternFinderConfig] = None,
    neighbor_map: Optional[Mapping[str, Set[str]]] = None,
) -> List[Shape]:
    """Detect every regular triangle, square, pentagon and hexagon.

    Parameters
    ----------
    nodes : sequence of Node
        The network snapshot.  Connections are read from
        ``Node.connections``.
    connections : sequence of Connection, optional
        Used to attach connection ids to each shape.  Derived with
        :func:`build_connections` when omitted.
    config : PatternFinderConfig, optional
    neighbor_map : mapping, optional
        Delaunay neighbours of *nodes*, e.g. from a cached
        :func:`~triangulation.triangulate` result.  Triangulated only
        when the selected tier needs it and none is given.

    Returns
    -------
    list of Shape
        Triangles first, then squares, pentagons, hexagons.  No two
        shapes share a canonical key.
    """
    cfg = config or PatternFinderConfig()
    if len(nodes) < 3:
        return []

    index: Dict[str, Node] = {}
    for node in nodes:
        index.setdefault(node.id, node)
    adjacency = build_adjacency(nodes)
    strategy = select_strategy(len(nodes), cfg)
    logger.debug("Pattern search strategy selected", strategy=strategy, node_count=len(nodes))

    if strategy == "cycles":
        candidates = _cycle_candidates(adjacency, cfg)
    else:
        if neighbor_map is None:
            neighbor_map = triangulate(nodes, cfg.triangulation).neighbor_map
        if strategy == "triangulated":
            candidates = _triangulated_candidates(adjacency, neighbor_map, cfg)
        else:
            candidates = _neighborhood_candidates(adjacency, neighbor_map, cfg)

    tolerance = cfg.tolerance
    if tolerance is None and cfg.adaptive:
        tolerance = adaptive_tolerance(nodes)

    shapes: List[Shape] = []
    seen: Set[Tuple[str, ...]] = set()
    for shape_type, members in candidates:
        key = tuple(sorted(members))
        if key in seen:
            continue
        if not detect_shape(shape_type, index, members, adaptive=cfg.adaptive, tolerance=tolerance):
            continue
        seen.add(key)
        shapes.append(make_shape(shape_type, members, index))

    shapes.sort(key=lambda s: SHAPE_SIDES[s.shape_type])
    if connections is None:
        connections = build_connections(nodes)
    shapes = enrich_with_connections(shapes, connections)
    logger.info("Shapes found", strategy=strategy, node_count=len(nodes), shape_count=len(shapes))
    return shapes


def enrich_with_connections(shapes: Sequence[Shape], connections: Sequence[Connection]) -> List[Shape]:
    """Attach the connection id of each consecutive member pair."""
    by_pair: Dict[FrozenSet[str], str] = {}
    for conn in connections:
        by_pair.setdefault(frozenset((conn.source_id, conn.target_id)), conn.id)

    enriched: List[Shape] = []
    for shape in shapes:
        ids = shape.node_ids
        conn_ids: List[str] = []
        for i, current in enumerate(ids):
            conn_id = by_pair.get(frozenset((current, ids[(i + 1) % len(ids)])))
            if conn_id is not None:
                conn_ids.append(conn_id)
        enriched.append(replace(shape, connection_ids=tuple(conn_ids)))
    return enriched


def update_connection_shapes(connections: Sequence[Connection], shapes: Sequence[Shape]) -> List[Connection]:
    """Tag each connection with the types of the shapes using it."""
    membership: Dict[str, List[str]] = {}
    for shape in shapes:
        for conn_id in shape.connection_ids:
            membership.setdefault(conn_id, []).append(shape.shape_type)
    return [replace(c, shape_types=tuple(membership.get(c.id, ()))) for c in connections]
