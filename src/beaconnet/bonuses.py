"""Overlap detection and bonus aggregation for detected shapes.

:func:`calculate_bonus` is a pure function of ``(shapes, nodes,
config)``:

1. Every shape pair is compared; overlaps whose severity exceeds
   ``min_overlap_threshold`` are kept.
2. Each node in at least one shape gets a :class:`BonusContribution`:
   the base bonuses of its shapes combined per strategy, scaled by the
   node-type and connection-quality weights, then by one blended
   modifier per overlap it sits in.
3. Contributions are stacked into one multiplier by the configured
   strategy, then diminishing returns and the optional cap apply.
4. Resource rates are scaled by ``1 + (multiplier - 1) * weight``.

:class:`BonusCalculator` wraps the function with a config and an
injected :class:`~cache.ResultCache`.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

from .cache import ResultCache, network_hash, shapes_hash
from .models import SHAPE_BONUSES, Node, Shape

logger = structlog.get_logger()


# ═══════════════════════════════════════════════════════════════════
# Balance tables
# ═══════════════════════════════════════════════════════════════════

STRATEGIES = ("multiplicative", "additive", "maximum", "weighted")

OVERLAP_TYPES = ("none", "vertex", "edge", "partial", "nested", "identical")

NODE_TYPE_WEIGHTS = {
    "pioneer": 1.0,
    "harvester": 1.2,
    "architect": 1.1,
}

CONNECTION_QUALITY_BONUSES = {
    1: 1.0,
    2: 1.05,
    3: 1.1,
    4: 1.15,
    5: 1.2,
}

OVERLAP_MODIFIERS = {
    "none": 1.0,
    "vertex": 0.95,
    "edge": 0.9,
    "partial": 0.85,
    "nested": 1.1,
    "identical": 0.5,
}

RESOURCE_WEIGHTS = {
    "quantum_data": 1.0,
    "stellar_essence": 0.8,
    "void_fragments": 0.6,
    "resonance_crystals": 1.5,
    "chronos_particles": 0.3,
}

BASE_GENERATION_PER_NODE = {
    "quantum_data": 10.0,
    "stellar_essence": 2.0,
    "resonance_crystals": 0.5,
}

HIGH_MULTIPLIER_WARNING = 1000.0
NEUTRAL_EPSILON = 1e-6


# ═══════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class BonusConfig:
    """Stacking and post-processing parameters.

    Attributes
    ----------
    strategy : str
        ``multiplicative``, ``additive``, ``maximum`` or ``weighted``.
    max_multiplier_cap : float
        Hard upper bound on the final multiplier; 0 disables it.
    diminishing_returns_threshold : float
        Multipliers above this keep only a fraction of the excess;
        0 disables diminishing returns.
    diminishing_returns_factor : float
        Fraction (0..1) of the excess that is kept.
    apply_node_type_bonuses : bool
        Scale each node's effective multiplier by its type weight.
    apply_connection_bonuses : bool
        Scale each node's effective multiplier by connection quality.
    min_overlap_threshold : float
        Overlaps at or below this severity are ignored.
    target_resource_types : tuple of str
        Resources that receive the multiplier.
    """

    strategy: str = "multiplicative"
    max_multiplier_cap: float = 0.0
    diminishing_returns_threshold: float = 10.0
    diminishing_returns_factor: float = 0.8
    apply_node_type_bonuses: bool = True
    apply_connection_bonuses: bool = True
    min_overlap_threshold: float = 0.1
    target_resource_types: Tuple[str, ...] = (
        "quantum_data",
        "stellar_essence",
        "resonance_crystals",
    )

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(
                f"Unknown strategy {self.strategy!r}; expected one of {', '.join(STRATEGIES)}"
            )
        if self.max_multiplier_cap < 0:
            raise ValueError("max_multiplier_cap must be >= 0")
        if self.diminishing_returns_threshold < 0:
            raise ValueError("diminishing_returns_threshold must be >= 0")
        if not 0.0 <= self.diminishing_returns_factor <= 1.0:
            raise ValueError("diminishing_returns_factor must be within [0, 1]")
        if not 0.0 <= self.min_overlap_threshold <= 1.0:
            raise ValueError("min_overlap_threshold must be within [0, 1]")
        unknown = [r for r in self.target_resource_types if r not in RESOURCE_WEIGHTS]
        if unknown:
            raise ValueError(f"Unknown resource types: {', '.join(unknown)}")
        # Accept any iterable (e.g. a list from JSON) but store a tuple.
        object.__setattr__(self, "target_resource_types", tuple(self.target_resource_types))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "BonusConfig":
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown bonus config keys: {', '.join(unknown)}")
        return cls(**data)  # type: ignore[arg-type]


DEFAULT_BONUS_CONFIG = BonusConfig()

# Presets for common balance setups.
CAPPED_MULTIPLICATIVE = BonusConfig(max_multiplier_cap=25.0)
FLAT_ADDITIVE = BonusConfig(strategy="additive", diminishing_returns_threshold=0.0)
BEST_NODE_ONLY = BonusConfig(strategy="maximum")


# ═══════════════════════════════════════════════════════════════════
# Result types
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Overlap:
    shape_ids: Tuple[str, str]
    shape_types: Tuple[str, str]
    shared_node_ids: Tuple[str, ...]
    individual_bonuses: Tuple[float, float]
    overlap_type: str
    severity: float


@dataclass(frozen=True)
class BonusContribution:
    node_id: str
    shape_ids: Tuple[str, ...]
    multipliers: Tuple[float, ...]
    effective_multiplier: float
    weight: float
    resource_types: Tuple[str, ...]


@dataclass(frozen=True)
class ShapeBreakdown:
    shape_id: str
    shape_type: str
    base_bonus: float
    effective_bonus: float
    node_count: int
    contributing_node_ids: Tuple[str, ...]
    resource_types: Tuple[str, ...]
    has_overlaps: bool


@dataclass(frozen=True)
class BonusResult:
    multiplier: float
    base_generation: Dict[str, float]
    bonused_generation: Dict[str, float]
    contributions: Tuple[BonusContribution, ...]
    overlaps: Tuple[Overlap, ...]
    breakdown: Tuple[ShapeBreakdown, ...]
    strategy: str
    metrics: Dict[str, float] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class BonusValidation:
    is_valid: bool
    errors: Tuple[str, ...]
    warnings: Tuple[str, ...]


# ═══════════════════════════════════════════════════════════════════
# Overlaps
# ═══════════════════════════════════════════════════════════════════


def shared_members(a: Shape, b: Shape) -> Tuple[str, ...]:
    """Members of *a* that are also in *b*, in *a*'s order."""
    other = set(b.node_ids)
    return tuple(i for i in a.node_ids if i in other)


def _consecutive(a: str, b: str, order: Sequence[str]) -> bool:
    n = len(order)
    diff = abs(order.index(a) - order.index(b))
    return diff == 1 or diff == n - 1


def has_shared_edge(a: Shape, b: Shape, shared: Sequence[str]) -> bool:
    """True when two shared members are adjacent in both shapes."""
    for i, first in enumerate(shared):
        for second in shared[i + 1:]:
            if _consecutive(first, second, a.node_ids) and _consecutive(first, second, b.node_ids):
                return True
    return False


def classify_overlap(a: Shape, b: Shape, shared: Optional[Sequence[str]] = None) -> str:
    """Overlap type of a shape pair; symmetric in ``(a, b)``."""
    if shared is None:
        shared = shared_members(a, b)
    count = len(shared)
    if count == 0:
        return "none"
    size_a = len(a.node_ids)
    size_b = len(b.node_ids)
    if count == size_a and count == size_b:
        return "identical"
    if count == min(size_a, size_b):
        return "nested"
    if count >= 2 and has_shared_edge(a, b, shared):
        return "edge"
    if count > 2:
        return "partial"
    return "vertex"


def overlap_severity(a: Shape, b: Shape, shared_count: Optional[int] = None) -> float:
    """Mean fraction of each shape's membership that is shared."""
    if shared_count is None:
        shared_count = len(shared_members(a, b))
    if shared_count == 0 or not a.node_ids or not b.node_ids:
        return 0.0
    return (shared_count / len(a.node_ids) + shared_count / len(b.node_ids)) / 2.0


def analyze_overlap(a: Shape, b: Shape) -> Overlap:
    shared = shared_members(a, b)
    return Overlap(
        shape_ids=(a.id, b.id),
        shape_types=(a.shape_type, b.shape_type),
        shared_node_ids=shared,
        individual_bonuses=(SHAPE_BONUSES[a.shape_type], SHAPE_BONUSES[b.shape_type]),
        overlap_type=classify_overlap(a, b, shared),
        severity=overlap_severity(a, b, len(shared)),
    )


def detect_overlaps(shapes: Sequence[Shape], min_severity: float = 0.1) -> List[Overlap]:
    """Every shape pair whose overlap severity exceeds *min_severity*."""
    overlaps: List[Overlap] = []
    for i, a in enumerate(shapes):
        for b in shapes[i + 1:]:
            overlap = analyze_overlap(a, b)
            if overlap.severity > min_severity:
                overlaps.append(overlap)
    return overlaps


# ═══════════════════════════════════════════════════════════════════
# Per-node contributions
# ═══════════════════════════════════════════════════════════════════


def connection_quality(node: Node) -> float:
    level = int((node.level + node.connection_count()) // 2)
    level = max(1, min(5, level))
    return CONNECTION_QUALITY_BONUSES[level]


def node_weight(node: Node) -> float:
    """Aggregation weight: ``level * sqrt(connections + 1) * type weight``."""
    return node.level * math.sqrt(node.connection_count() + 1) * NODE_TYPE_WEIGHTS.get(node.node_type, 1.0)


def combine_base_bonuses(multipliers: Sequence[float], strategy: str) -> float:
    if not multipliers:
        return 1.0
    if strategy == "additive":
        return 1.0 + sum(m - 1.0 for m in multipliers)
    if strategy == "maximum":
        return max(multipliers)
    return math.prod(multipliers)


def overlap_modifier(node_id: str, overlaps: Sequence[Overlap]) -> float:
    """Product of severity-blended modifiers over overlaps sharing *node_id*."""
    modifier = 1.0
    for overlap in overlaps:
        if node_id in overlap.shared_node_ids:
            base = OVERLAP_MODIFIERS[overlap.overlap_type]
            modifier *= 1.0 + (base - 1.0) * overlap.severity
    return modifier


def node_contributions(
    shapes: Sequence[Shape],
    nodes: Sequence[Node],
    overlaps: Sequence[Overlap],
    config: BonusConfig,
) -> List[BonusContribution]:
    index: Dict[str, Node] = {}
    for node in nodes:
        index.setdefault(node.id, node)

    membership: Dict[str, List[Shape]] = {}
    for shape in shapes:
        for node_id in shape.node_ids:
            membership.setdefault(node_id, []).append(shape)

    contributions: List[BonusContribution] = []
    for node_id, member_of in membership.items():
        node = index.get(node_id)
        if node is None:
            continue
        multipliers = tuple(SHAPE_BONUSES[s.shape_type] for s in member_of)
        effective = combine_base_bonuses(multipliers, config.strategy)
        if config.apply_node_type_bonuses:
            effective *= NODE_TYPE_WEIGHTS.get(node.node_type, 1.0)
        if config.apply_connection_bonuses:
            effective *= connection_quality(node)
        effective *= overlap_modifier(node_id, overlaps)
        contributions.append(
            BonusContribution(
                node_id=node_id,
                shape_ids=tuple(s.id for s in member_of),
                multipliers=multipliers,
                effective_multiplier=effective,
                weight=node_weight(node),
                resource_types=config.target_resource_types,
            )
        )
    return contributions


# ═══════════════════════════════════════════════════════════════════
# Stacking
# ═══════════════════════════════════════════════════════════════════


def _total_weight(contributions: Sequence[BonusContribution]) -> float:
    return sum(c.weight for c in contributions)


def stack_multiplicative(contributions: Sequence[BonusContribution]) -> float:
    """Weighted geometric mean of effective multipliers."""
    total = _total_weight(contributions)
    if total <= 0:
        return 1.0
    result = 1.0
    for c in contributions:
        result *= c.effective_multiplier ** (c.weight / total)
    return result


def stack_additive(contributions: Sequence[BonusContribution]) -> float:
    total = _total_weight(contributions)
    if total <= 0:
        return 1.0
    return 1.0 + sum((c.effective_multiplier - 1.0) * c.weight / total for c in contributions)


def stack_maximum(contributions: Sequence[BonusContribution]) -> float:
    if not contributions:
        return 1.0
    return max(c.effective_multiplier for c in contributions)


def stack_weighted(contributions: Sequence[BonusContribution]) -> float:
    """Multiplicative for multipliers up to 2, additive above."""
    total = _total_weight(contributions)
    if total <= 0:
        return 1.0
    result = 1.0
    for c in contributions:
        ratio = c.weight / total
        if c.effective_multiplier <= 2.0:
            result *= c.effective_multiplier ** ratio
        else:
            result += (c.effective_multiplier - 1.0) * ratio
    return result


STACKERS = {
    "multiplicative": stack_multiplicative,
    "additive": stack_additive,
    "maximum": stack_maximum,
    "weighted": stack_weighted,
}


def apply_diminishing_returns(multiplier: float, threshold: float, factor: float) -> float:
    """``threshold + (multiplier - threshold) * factor`` above *threshold*."""
    if multiplier <= threshold:
        return multiplier
    return threshold + (multiplier - threshold) * factor


def stack(contributions: Sequence[BonusContribution], config: BonusConfig) -> float:
    if not contributions:
        return 1.0
    multiplier = STACKERS[config.strategy](contributions)
    if config.diminishing_returns_threshold > 0:
        multiplier = apply_diminishing_returns(
            multiplier, config.diminishing_returns_threshold, config.diminishing_returns_factor
        )
    if config.max_multiplier_cap > 0:
        multiplier = min(multiplier, config.max_multiplier_cap)
    return multiplier


# ═══════════════════════════════════════════════════════════════════
# Breakdown and resources
# ═══════════════════════════════════════════════════════════════════


def shape_breakdown(
    shapes: Sequence[Shape],
    contributions: Sequence[BonusContribution],
    overlaps: Sequence[Overlap],
    config: BonusConfig,
) -> List[ShapeBreakdown]:
    overlapping = {sid for o in overlaps for sid in o.shape_ids}
    rows: List[ShapeBreakdown] = []
    for shape in shapes:
        contributing = [c for c in contributions if shape.id in c.shape_ids]
        base = SHAPE_BONUSES[shape.shape_type]
        if contributing:
            effective = sum(c.effective_multiplier for c in contributing) / len(contributing)
        else:
            effective = base
        rows.append(
            ShapeBreakdown(
                shape_id=shape.id,
                shape_type=shape.shape_type,
                base_bonus=base,
                effective_bonus=effective,
                node_count=len(shape.node_ids),
                contributing_node_ids=tuple(c.node_id for c in contributing),
                resource_types=config.target_resource_types,
                has_overlaps=shape.id in overlapping,
            )
        )
    return rows


def base_generation(nodes: Sequence[Node]) -> Dict[str, float]:
    count = len(nodes)
    return {resource: rate * count for resource, rate in BASE_GENERATION_PER_NODE.items()}


def bonused_generation(base: Mapping[str, float], multiplier: float, targets: Sequence[str]) -> Dict[str, float]:
    rates: Dict[str, float] = {}
    for resource, rate in base.items():
        if rate and resource in targets:
            weight = RESOURCE_WEIGHTS.get(resource, 1.0)
            rates[resource] = rate * (1.0 + (multiplier - 1.0) * weight)
    return rates


# ═══════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════


def calculate_bonus(
    shapes: Sequence[Shape],
    nodes: Sequence[Node],
    config: Optional[BonusConfig] = None,
) -> BonusResult:
    """Combine *shapes* into one production multiplier.

    Empty input yields a multiplier of exactly 1 and no contributions.
    The result depends only on the arguments; ``metrics`` is excluded
    from equality.
    """
    cfg = config or DEFAULT_BONUS_CONFIG
    start = time.perf_counter()

    overlaps = detect_overlaps(shapes, cfg.min_overlap_threshold)
    contributions = node_contributions(shapes, nodes, overlaps, cfg)
    multiplier = stack(contributions, cfg)
    breakdown = shape_breakdown(shapes, contributions, overlaps, cfg)
    base = base_generation(nodes)
    bonused = bonused_generation(base, multiplier, cfg.target_resource_types)

    elapsed_ms = (time.perf_counter() - start) * 1000.0
    logger.debug(
        "Bonus calculated",
        strategy=cfg.strategy,
        multiplier=round(multiplier, 6),
        shapes=len(shapes),
        overlaps=len(overlaps),
    )
    return BonusResult(
        multiplier=multiplier,
        base_generation=base,
        bonused_generation=bonused,
        contributions=tuple(contributions),
        overlaps=tuple(overlaps),
        breakdown=tuple(breakdown),
        strategy=cfg.strategy,
        metrics={
            "calculation_time_ms": elapsed_ms,
            "shapes_processed": len(shapes),
            "nodes_analyzed": len(nodes),
            "overlaps_detected": len(overlaps),
        },
    )


def validate_result(result: BonusResult) -> BonusValidation:
    """Self-check a computed result; never raises."""
    errors: List[str] = []
    warnings: List[str] = []
    multiplier = result.multiplier
    if multiplier < 1.0:
        errors.append(f"Total multiplier {multiplier:.4f} is below 1")
    if result.contributions and abs(multiplier - 1.0) < NEUTRAL_EPSILON:
        warnings.append("Contributions present but multiplier is 1")
    if not result.contributions and multiplier != 1.0:
        warnings.append("No contributions but multiplier is not 1")
    if multiplier > HIGH_MULTIPLIER_WARNING:
        warnings.append(f"Very high multiplier: {multiplier:.2f}x")
    return BonusValidation(is_valid=not errors, errors=tuple(errors), warnings=tuple(warnings))


class BonusCalculator:
    """Config-holding calculator with an injected result cache.

    Cache hits return the stored :class:`BonusResult`; a hit or a miss
    never changes the result.
    """

    def __init__(self, config: Optional[BonusConfig] = None, cache: Optional[ResultCache] = None) -> None:
        self.config = config or DEFAULT_BONUS_CONFIG
        self.cache = cache if cache is not None else ResultCache(ttl_seconds=60.0)

    def calculate(self, shapes: Sequence[Shape], nodes: Sequence[Node]) -> BonusResult:
        # BonusConfig is frozen, so it keys directly.
        key = ("bonus", self.config, shapes_hash(shapes), network_hash(nodes))
        return self.cache.get_or_compute(key, lambda: calculate_bonus(shapes, nodes, self.config))

    def update_config(self, **changes: object) -> BonusConfig:
        """Replace config fields and drop every cached result."""
        self.config = replace(self.config, **changes)
        self.cache.clear()
        logger.info("Bonus config updated", strategy=self.config.strategy)
        return self.config

    def validate(self, result: BonusResult) -> BonusValidation:
        return validate_result(result)

    def clear_cache(self) -> None:
        self.cache.clear()
