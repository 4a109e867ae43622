import math
import sys
from pathlib import Path

ROOT = Path(__file__).parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from beaconnet import Node, PatternEngine
from beaconnet.cli import configure_logging


def build_demo_network() -> list:
    """A regular hexagon ring with a hub, plus one spare pair to the east."""
    radius = 120.0
    ring = [f"h{i}" for i in range(6)]
    nodes = []
    for i, node_id in enumerate(ring):
        angle = i * math.pi / 3
        links = (ring[i - 1], ring[(i + 1) % 6], "hub")
        nodes.append(
            Node(
                id=node_id,
                x=radius * math.cos(angle),
                y=radius * math.sin(angle),
                node_type="harvester" if i % 2 else "pioneer",
                connections=links,
            )
        )
    nodes.append(Node(id="hub", x=0.0, y=0.0, level=2, node_type="architect", connections=tuple(ring)))
    nodes.append(Node(id="e1", x=300.0, y=0.0, connections=("e2",)))
    nodes.append(Node(id="e2", x=400.0, y=0.0, connections=("e1",)))
    return nodes


def main() -> None:
    configure_logging()
    nodes = build_demo_network()
    analysis = PatternEngine().analyze(nodes)

    print("Nodes:", len(nodes))
    print("Shapes:", ", ".join(s.shape_type for s in analysis.shapes))
    print("Multiplier:", round(analysis.bonus.multiplier, 3))
    print("Overlaps:", len(analysis.bonus.overlaps))
    print("Best next position:", analysis.suggestions.best_position)

    if "--render" in sys.argv:
        from beaconnet.visualize import render_network

        out = render_network(
            nodes,
            ROOT / "demo_network.png",
            shapes=analysis.shapes,
            suggestions=analysis.suggestions.suggestions,
            title="beaconnet demo",
        )
        print("Saved", out)


if __name__ == "__main__":
    main()
