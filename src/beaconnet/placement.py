"""Placement legality checks consumed by the suggestion engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from scipy.spatial import cKDTree

from .geometry import Bounds
from .models import Node, Point

DEFAULT_MINIMUM_DISTANCES = {
    "pioneer": 80.0,
    "harvester": 60.0,
    "architect": 100.0,
}


@dataclass(frozen=True)
class PlacementCheck:
    valid: bool
    reasons: Tuple[str, ...] = ()


class PlacementValidatorProtocol(Protocol):
    def is_valid_position(self, position: Point, node_type: str) -> PlacementCheck:
        ...


@dataclass
class PlacementValidator:
    """Bounds plus per-type minimum spacing to existing nodes.

    Parameters
    ----------
    bounds : tuple or None
        ``(min_x, min_y, max_x, max_y)``; ``None`` means unbounded.
    minimum_distances : dict
        Node type → minimum distance to any existing node.
    nodes : sequence of Node
        Existing nodes to keep clear of.
    """

    bounds: Optional[Bounds] = None
    minimum_distances: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_MINIMUM_DISTANCES))
    nodes: Sequence[Node] = ()

    def __post_init__(self) -> None:
        if self.bounds is not None:
            min_x, min_y, max_x, max_y = self.bounds
            if min_x > max_x or min_y > max_y:
                raise ValueError("bounds must be (min_x, min_y, max_x, max_y)")
        self._positions = [n.position for n in self.nodes]
        self._tree = cKDTree(self._positions) if self._positions else None

    def is_valid_position(self, position: Point, node_type: str) -> PlacementCheck:
        reasons: List[str] = []
        if self.bounds is not None:
            min_x, min_y, max_x, max_y = self.bounds
            x, y = position
            if not (min_x <= x <= max_x and min_y <= y <= max_y):
                reasons.append("Position is outside the playable bounds")

        min_dist = self.minimum_distances.get(node_type, 0.0)
        if self._tree is not None and min_dist > 0:
            nearest, _ = self._tree.query(position)
            if nearest < min_dist:
                reasons.append(
                    f"Too close to an existing node ({nearest:.1f} < {min_dist:.1f})"
                )
        return PlacementCheck(valid=not reasons, reasons=tuple(reasons))
