"""One-stop facade over the pattern pipeline.

:class:`PatternEngine` wires finder → bonus calculator → suggestions
and keeps one :class:`~cache.ResultCache` per component, keyed by the
input hash.  Engines never share caches, so several can run side by
side.

Detected shapes are also bucketed by region in a
:class:`~cache.SpatialPatternCache`; :meth:`PatternEngine.node_changed`
drops only the regions around a changed node.

Usage
-----
>>> from beaconnet import PatternEngine
>>> engine = PatternEngine()
>>> analysis = engine.analyze(nodes)
>>> analysis.bonus.multiplier
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import structlog

from .bonuses import BonusCalculator, BonusConfig, BonusResult, BonusValidation
from .cache import ResultCache, SpatialCacheConfig, SpatialPatternCache, network_hash, shapes_hash
from .geometry import Bounds
from .models import Connection, Node, Point, Shape
from .patterns import PatternFinderConfig, build_connections, find_shapes, select_strategy, update_connection_shapes
from .placement import PlacementValidatorProtocol
from .suggestions import SuggestionAnalysis, SuggestionConfig, analyze_suggestions
from .triangulation import DelaunayResult, TriangulationOptions, triangulate

logger = structlog.get_logger()

SUGGESTION_TTL_SECONDS = 5.0


@dataclass(frozen=True)
class NetworkAnalysis:
    shapes: Tuple[Shape, ...]
    connections: Tuple[Connection, ...]
    bonus: BonusResult
    validation: BonusValidation
    suggestions: SuggestionAnalysis
    triangulation: DelaunayResult


class PatternEngine:
    """Cached access to triangulation, shapes, bonuses and suggestions."""

    def __init__(
        self,
        finder_config: Optional[PatternFinderConfig] = None,
        bonus_config: Optional[BonusConfig] = None,
        suggestion_config: Optional[SuggestionConfig] = None,
        triangulation_options: Optional[TriangulationOptions] = None,
        validator: Optional[PlacementValidatorProtocol] = None,
        cache_ttl_seconds: float = 60.0,
        suggestion_ttl_seconds: float = SUGGESTION_TTL_SECONDS,
        region_cache_config: Optional[SpatialCacheConfig] = None,
    ) -> None:
        self.finder_config = finder_config or PatternFinderConfig()
        self.suggestion_config = suggestion_config or SuggestionConfig()
        self.triangulation_options = triangulation_options or self.finder_config.triangulation
        self.validator = validator
        self.shape_cache = ResultCache(ttl_seconds=cache_ttl_seconds)
        self.triangulation_cache = ResultCache(ttl_seconds=cache_ttl_seconds)
        self.suggestion_cache = ResultCache(ttl_seconds=suggestion_ttl_seconds)
        self.bonus_calculator = BonusCalculator(bonus_config, ResultCache(ttl_seconds=cache_ttl_seconds))
        self.region_cache = SpatialPatternCache(region_cache_config)

    @property
    def bonus_config(self) -> BonusConfig:
        return self.bonus_calculator.config

    def triangulate(self, nodes: Sequence[Node]) -> DelaunayResult:
        key = ("triangulation", network_hash(nodes))
        return self.triangulation_cache.get_or_compute(
            key, lambda: triangulate(nodes, self.triangulation_options)
        )

    def find_shapes(self, nodes: Sequence[Node]) -> List[Shape]:
        key = ("shapes", network_hash(nodes))
        shapes = self.shape_cache.get_or_compute(key, lambda: self._detect(nodes))
        return list(shapes)

    def _detect(self, nodes: Sequence[Node]) -> Tuple[Shape, ...]:
        neighbor_map = None
        if len(nodes) >= 3 and select_strategy(len(nodes), self.finder_config) != "cycles":
            neighbor_map = self.triangulate(nodes).neighbor_map
        shapes = tuple(find_shapes(nodes, config=self.finder_config, neighbor_map=neighbor_map))
        self.region_cache.put_shapes(shapes, nodes)
        return shapes

    def calculate_bonus(self, nodes: Sequence[Node], shapes: Optional[Sequence[Shape]] = None) -> BonusResult:
        if shapes is None:
            shapes = self.find_shapes(nodes)
        return self.bonus_calculator.calculate(shapes, nodes)

    def suggest(self, nodes: Sequence[Node], existing_shapes: Optional[Sequence[Shape]] = None) -> SuggestionAnalysis:
        if existing_shapes is None:
            existing_shapes = self.find_shapes(nodes)
        key = ("suggestions", network_hash(nodes), shapes_hash(existing_shapes))
        return self.suggestion_cache.get_or_compute(
            key,
            lambda: analyze_suggestions(nodes, existing_shapes, self.suggestion_config, self.validator),
        )

    def analyze(self, nodes: Sequence[Node]) -> NetworkAnalysis:
        """Run every component once for *nodes*."""
        shapes = self.find_shapes(nodes)
        connections = update_connection_shapes(build_connections(nodes), shapes)
        bonus = self.calculate_bonus(nodes, shapes)
        analysis = NetworkAnalysis(
            shapes=tuple(shapes),
            connections=tuple(connections),
            bonus=bonus,
            validation=self.bonus_calculator.validate(bonus),
            suggestions=self.suggest(nodes, shapes),
            triangulation=self.triangulate(nodes),
        )
        logger.info(
            "Network analysed",
            node_count=len(nodes),
            shape_count=len(shapes),
            multiplier=round(bonus.multiplier, 4),
        )
        return analysis

    def node_changed(self, node: Node, old_position: Optional[Point] = None) -> int:
        """Invalidate cached regions around a placed, moved or removed node."""
        return self.region_cache.invalidate_node(node, old_position)

    def shapes_by_type(self, shape_type: str, bounds: Optional[Bounds] = None) -> List[Shape]:
        """Shapes of *shape_type* from the region cache, optionally within *bounds*."""
        return self.region_cache.shapes_by_type(shape_type, bounds)

    def update_bonus_config(self, **changes: object) -> BonusConfig:
        return self.bonus_calculator.update_config(**changes)

    def clear_caches(self) -> None:
        self.shape_cache.clear()
        self.triangulation_cache.clear()
        self.suggestion_cache.clear()
        self.region_cache.clear()
        self.bonus_calculator.clear_cache()
