from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Tuple

Point = Tuple[float, float]

SHAPE_SIDES = {
    "triangle": 3,
    "square": 4,
    "pentagon": 5,
    "hexagon": 6,
}

SHAPE_TYPES: tuple[str, ...] = tuple(SHAPE_SIDES)

SHAPE_BONUSES = {
    "triangle": 1.5,
    "square": 2.0,
    "pentagon": 3.0,
    "hexagon": 5.0,
}

NODE_TYPES: tuple[str, ...] = ("pioneer", "harvester", "architect")


def shape_id(shape_type: str, node_ids: Iterable[str]) -> str:
    """Deterministic id from the shape type and its sorted member ids."""
    return f"{shape_type}_{'_'.join(sorted(node_ids))}"


@dataclass(frozen=True)
class Node:
    id: str
    x: float
    y: float
    level: int = 1
    node_type: str = "pioneer"
    connections: tuple[str, ...] = field(default_factory=tuple)

    @property
    def position(self) -> Point:
        return (self.x, self.y)

    def connection_count(self) -> int:
        return len(self.connections)


@dataclass(frozen=True)
class Connection:
    id: str
    source_id: str
    target_id: str
    strength: int = 1
    is_active: bool = True
    shape_types: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Shape:
    """A confirmed regular polygon formed by 3-6 connected nodes.

    *node_ids* keeps the traversal order the shape was found in, so
    consecutive ids (with wraparound) are the polygon's sides.
    """

    id: str
    shape_type: str
    node_ids: tuple[str, ...]
    center: Point
    bonus: float
    connection_ids: tuple[str, ...] = field(default_factory=tuple)
    is_complete: bool = True

    @property
    def canonical_key(self) -> tuple[str, ...]:
        return tuple(sorted(self.node_ids))

    def validate(self) -> list[str]:
        errors: list[str] = []
        expected = SHAPE_SIDES.get(self.shape_type)
        if expected is None:
            errors.append(f"Shape {self.id} has unknown type {self.shape_type}")
        elif len(self.node_ids) != expected:
            errors.append(
                f"Shape {self.id} is {self.shape_type} but has {len(self.node_ids)} nodes"
            )
        if len(set(self.node_ids)) != len(self.node_ids):
            errors.append(f"Shape {self.id} has repeated node ids")
        return errors


@dataclass(frozen=True)
class IncompletePattern:
    """A partly built shape: existing members plus the positions it lacks."""

    id: str
    shape_type: str
    existing_node_ids: tuple[str, ...]
    missing_positions: tuple[Point, ...]
    estimated_bonus: float
    feasibility_score: float
    proximity_score: float

    @property
    def missing_count(self) -> int:
        return SHAPE_SIDES[self.shape_type] - len(self.existing_node_ids)
