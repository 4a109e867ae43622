"""Debug rendering of a beacon network.

Draws connections, nodes (coloured by type), detected shapes and the
ranked suggestion positions into a PNG.  This is a diagnostic view for
inspecting engine output, not a game renderer.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

from .models import Node, Shape
from .suggestions import Suggestion


# ═══════════════════════════════════════════════════════════════════
# Colour palettes
# ═══════════════════════════════════════════════════════════════════

_NODE_COLORS = {
    "pioneer": "#4363d8",
    "harvester": "#3cb44b",
    "architect": "#f58231",
}

_SHAPE_COLORS = {
    "triangle": "#e6194b",
    "square": "#911eb4",
    "pentagon": "#42d4f4",
    "hexagon": "#f032e6",
}

_CONNECTION_COLOR = "#9a9a9a"
_SUGGESTION_COLOR = "#ff6600"


def _ensure_mpl():
    """Lazy-import matplotlib; raise helpful error if missing."""
    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
        from matplotlib.patches import Polygon
        return plt, Polygon
    except ImportError as exc:
        raise RuntimeError(
            "matplotlib is required for rendering. "
            "Install with `pip install beaconnet[render]`."
        ) from exc


def render_network(
    nodes: Sequence[Node],
    output_path: str | Path,
    shapes: Sequence[Shape] = (),
    suggestions: Sequence[Suggestion] = (),
    title: Optional[str] = None,
    shape_alpha: float = 0.25,
    node_size: float = 30.0,
    padding: float = 20.0,
    dpi: int = 150,
) -> Path:
    """Render *nodes* with their shapes and suggestions to a PNG.

    Returns the output path.
    """
    plt, Polygon = _ensure_mpl()
    index = {n.id: n for n in nodes}

    fig, ax = plt.subplots()

    drawn = set()
    for node in nodes:
        for other_id in node.connections:
            other = index.get(other_id)
            pair = frozenset((node.id, other_id))
            if other is None or pair in drawn:
                continue
            drawn.add(pair)
            ax.plot([node.x, other.x], [node.y, other.y], color=_CONNECTION_COLOR, linewidth=0.8, zorder=1)

    for shape in shapes:
        pts = [index[i].position for i in shape.node_ids if i in index]
        if len(pts) < 3:
            continue
        color = _SHAPE_COLORS.get(shape.shape_type, "#808080")
        ax.add_patch(Polygon(pts, closed=True, facecolor=color, edgecolor=color, alpha=shape_alpha, zorder=2))

    for node_type, color in _NODE_COLORS.items():
        xs = [n.x for n in nodes if n.node_type == node_type]
        ys = [n.y for n in nodes if n.node_type == node_type]
        if xs:
            ax.scatter(xs, ys, s=node_size, color=color, label=node_type, zorder=3)

    if suggestions:
        ax.scatter(
            [s.position[0] for s in suggestions],
            [s.position[1] for s in suggestions],
            s=node_size * 1.5,
            marker="x",
            color=_SUGGESTION_COLOR,
            label="suggestion",
            zorder=4,
        )

    _autofit(ax, nodes, suggestions, padding)
    ax.set_aspect("equal", "box")
    ax.axis("off")
    if title:
        ax.set_title(title)
    if nodes or suggestions:
        ax.legend(loc="upper right", fontsize="small")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=dpi, bbox_inches="tight", pad_inches=0.2)
    plt.close(fig)
    return output_path


def _autofit(ax, nodes: Sequence[Node], suggestions: Sequence[Suggestion], padding: float) -> None:
    xs = [n.x for n in nodes] + [s.position[0] for s in suggestions]
    ys = [n.y for n in nodes] + [s.position[1] for s in suggestions]
    if xs and ys:
        ax.set_xlim(min(xs) - padding, max(xs) + padding)
        ax.set_ylim(min(ys) - padding, max(ys) + padding)
