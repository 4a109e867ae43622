from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from .bonuses import BonusConfig, BonusResult
from .engine import NetworkAnalysis
from .models import NODE_TYPES, Node


PathLike = Union[str, Path]

_REQUIRED_NODE_FIELDS = ("id", "x", "y")


@dataclass(frozen=True)
class NetworkSnapshot:
    """Nodes plus the bonus configuration they should be scored with."""

    nodes: Tuple[Node, ...]
    config: BonusConfig = field(default_factory=BonusConfig)

    def to_dict(self) -> dict:
        return {
            "nodes": [node_to_dict(n) for n in self.nodes],
            "config": _config_to_dict(self.config),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "NetworkSnapshot":
        if not isinstance(payload, dict) or "nodes" not in payload:
            raise ValueError("Snapshot must be an object with a 'nodes' list")
        nodes = tuple(node_from_dict(item) for item in payload["nodes"])
        config = BonusConfig.from_dict(payload.get("config") or {})
        return cls(nodes=nodes, config=config)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_json(cls, json_data: str) -> "NetworkSnapshot":
        return cls.from_dict(json.loads(json_data))


def node_to_dict(node: Node) -> dict:
    return {
        "id": node.id,
        "x": node.x,
        "y": node.y,
        "level": node.level,
        "type": node.node_type,
        "connections": list(node.connections),
    }


def node_from_dict(payload: dict) -> Node:
    missing = [key for key in _REQUIRED_NODE_FIELDS if key not in payload]
    if missing:
        raise ValueError(f"Node entry {payload!r} is missing {', '.join(missing)}")
    node_type = payload.get("type", "pioneer")
    if node_type not in NODE_TYPES:
        raise ValueError(f"Node {payload['id']} has unknown type {node_type!r}")
    try:
        x = float(payload["x"])
        y = float(payload["y"])
        level = int(payload.get("level", 1))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Node {payload['id']} has a non-numeric field: {exc}") from exc
    if level < 1:
        raise ValueError(f"Node {payload['id']} has level {level}; levels start at 1")
    return Node(
        id=str(payload["id"]),
        x=x,
        y=y,
        level=level,
        node_type=node_type,
        connections=tuple(str(c) for c in payload.get("connections", [])),
    )


def _config_to_dict(config: BonusConfig) -> dict:
    data = asdict(config)
    data["target_resource_types"] = list(config.target_resource_types)
    return data


def load_json(path: PathLike) -> NetworkSnapshot:
    return NetworkSnapshot.from_json(Path(path).read_text(encoding="utf-8"))


def save_json(snapshot: NetworkSnapshot, path: PathLike) -> None:
    Path(path).write_text(snapshot.to_json(), encoding="utf-8")


# ═══════════════════════════════════════════════════════════════════
# Reports
# ═══════════════════════════════════════════════════════════════════


def bonus_to_dict(result: BonusResult) -> Dict[str, Any]:
    return {
        "multiplier": result.multiplier,
        "strategy": result.strategy,
        "base_generation": dict(result.base_generation),
        "bonused_generation": dict(result.bonused_generation),
        "overlaps": [
            {
                "shapes": list(o.shape_ids),
                "type": o.overlap_type,
                "severity": o.severity,
                "shared": list(o.shared_node_ids),
            }
            for o in result.overlaps
        ],
        "breakdown": [
            {
                "shape": b.shape_id,
                "type": b.shape_type,
                "base_bonus": b.base_bonus,
                "effective_bonus": b.effective_bonus,
                "has_overlaps": b.has_overlaps,
            }
            for b in result.breakdown
        ],
    }


def analysis_report(analysis: NetworkAnalysis) -> Dict[str, Any]:
    """JSON-ready summary of a :class:`~engine.NetworkAnalysis`."""
    suggestions: List[Dict[str, Any]] = [
        {
            "type": s.shape_type,
            "position": list(s.position),
            "priority": s.priority,
            "required": list(s.required_node_ids),
        }
        for s in analysis.suggestions.suggestions
    ]
    best = analysis.suggestions.best_position
    return {
        "shapes": [
            {"id": s.id, "type": s.shape_type, "nodes": list(s.node_ids), "center": list(s.center)}
            for s in analysis.shapes
        ],
        "bonus": bonus_to_dict(analysis.bonus),
        "validation": {
            "is_valid": analysis.validation.is_valid,
            "errors": list(analysis.validation.errors),
            "warnings": list(analysis.validation.warnings),
        },
        "suggestions": suggestions,
        "best_position": list(best) if best is not None else None,
        "triangulation": {
            "triangles": len(analysis.triangulation.mesh.triangles),
            "edges": len(analysis.triangulation.mesh.edges),
        },
    }


def save_report(analysis: NetworkAnalysis, path: PathLike) -> None:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(analysis_report(analysis), indent=2, sort_keys=True), encoding="utf-8")
