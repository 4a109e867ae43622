"""beaconnet — geometric pattern engine for beacon networks.

Public API is organised into layers:

- **Core** — models, geometry, I/O
- **Detection** — Delaunay triangulation, shape predicates, pattern finder
- **Scoring** — bonus stacking, overlap analysis, validation
- **Suggestions** — incomplete patterns and ranked placement positions
- **Engine** — cached facade over the whole pipeline
- **Rendering** — debug PNG output (requires matplotlib)
"""

# ── Core ────────────────────────────────────────────────────────────
from .models import (
    Point,
    Node,
    Connection,
    Shape,
    IncompletePattern,
    NODE_TYPES,
    SHAPE_TYPES,
    SHAPE_SIDES,
    SHAPE_BONUSES,
)
from .io import NetworkSnapshot, load_json, save_json, analysis_report, save_report

# ── Detection ───────────────────────────────────────────────────────
from .triangulation import (
    TriangulationOptions,
    Triangle,
    MeshEdge,
    TriangulationMesh,
    DelaunayResult,
    triangulate,
    build_mesh,
    build_neighbor_map,
)
from .shapes import (
    ShapeTolerances,
    DEFAULT_TOLERANCES,
    adaptive_tolerance,
    detect_triangle,
    detect_square,
    detect_pentagon,
    detect_hexagon,
    detect_shape,
)
from .patterns import (
    PatternFinderConfig,
    select_strategy,
    build_connections,
    find_cycles,
    find_shapes,
)

# ── Scoring ─────────────────────────────────────────────────────────
from .bonuses import (
    BonusConfig,
    BonusResult,
    BonusValidation,
    BonusCalculator,
    Overlap,
    DEFAULT_BONUS_CONFIG,
    CAPPED_MULTIPLICATIVE,
    FLAT_ADDITIVE,
    BEST_NODE_ONLY,
    calculate_bonus,
    detect_overlaps,
    validate_result,
)

# ── Suggestions ─────────────────────────────────────────────────────
from .placement import PlacementCheck, PlacementValidator, PlacementValidatorProtocol
from .suggestions import (
    SuggestionConfig,
    Suggestion,
    SuggestionAnalysis,
    generate_combinations,
    find_incomplete_patterns,
    analyze_suggestions,
    find_multi_shape_positions,
    suggestions_in_area,
    PatternProbability,
    GAME_PHASES,
    pattern_probability,
    strategic_recommendations,
)

# ── Engine ──────────────────────────────────────────────────────────
from .cache import ResultCache, CacheStats, SpatialCacheConfig, SpatialPatternCache
from .engine import PatternEngine, NetworkAnalysis

# ── Rendering (requires matplotlib) ────────────────────────────────
from .visualize import render_network

__all__ = [
    # Core
    "Point",
    "Node",
    "Connection",
    "Shape",
    "IncompletePattern",
    "NODE_TYPES",
    "SHAPE_TYPES",
    "SHAPE_SIDES",
    "SHAPE_BONUSES",
    "NetworkSnapshot",
    "load_json",
    "save_json",
    "analysis_report",
    "save_report",
    # Detection
    "TriangulationOptions",
    "Triangle",
    "MeshEdge",
    "TriangulationMesh",
    "DelaunayResult",
    "triangulate",
    "build_mesh",
    "build_neighbor_map",
    "ShapeTolerances",
    "DEFAULT_TOLERANCES",
    "adaptive_tolerance",
    "detect_triangle",
    "detect_square",
    "detect_pentagon",
    "detect_hexagon",
    "detect_shape",
    "PatternFinderConfig",
    "select_strategy",
    "build_connections",
    "find_cycles",
    "find_shapes",
    # Scoring
    "BonusConfig",
    "BonusResult",
    "BonusValidation",
    "BonusCalculator",
    "Overlap",
    "DEFAULT_BONUS_CONFIG",
    "CAPPED_MULTIPLICATIVE",
    "FLAT_ADDITIVE",
    "BEST_NODE_ONLY",
    "calculate_bonus",
    "detect_overlaps",
    "validate_result",
    # Suggestions
    "PlacementCheck",
    "PlacementValidator",
    "PlacementValidatorProtocol",
    "SuggestionConfig",
    "Suggestion",
    "SuggestionAnalysis",
    "generate_combinations",
    "find_incomplete_patterns",
    "analyze_suggestions",
    "find_multi_shape_positions",
    "suggestions_in_area",
    "PatternProbability",
    "GAME_PHASES",
    "pattern_probability",
    "strategic_recommendations",
    # Engine
    "ResultCache",
    "CacheStats",
    "SpatialCacheConfig",
    "SpatialPatternCache",
    "PatternEngine",
    "NetworkAnalysis",
    # Rendering
    "render_network",
]
