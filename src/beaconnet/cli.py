"""beaconnet command-line interface."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

import structlog

from .bonuses import STRATEGIES
from .engine import PatternEngine
from .io import NetworkSnapshot, load_json, save_report


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="beaconnet pattern analysis CLI")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log engine events to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Detect shapes and score a network snapshot")
    analyze.add_argument("--in", dest="input_path", required=True)
    analyze.add_argument("--out", dest="output_path", help="Write a JSON report here")
    analyze.add_argument("--strategy", choices=STRATEGIES)
    analyze.add_argument("--cap", type=float, help="Hard multiplier cap (0 = uncapped)")

    render = sub.add_parser("render", help="Render a network snapshot to PNG")
    render.add_argument("--in", dest="input_path", required=True)
    render.add_argument("--out", dest="output_path", required=True)
    render.add_argument("--no-suggestions", action="store_true")
    render.add_argument("--dpi", type=int, default=150)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        snapshot = load_json(args.input_path)
    except (OSError, ValueError) as exc:
        print(f"Could not load {args.input_path}: {exc}")
        raise SystemExit(1)

    if args.command == "analyze":
        _cmd_analyze(args, snapshot)

    elif args.command == "render":
        _cmd_render(args, snapshot)


def _cmd_analyze(args, snapshot: NetworkSnapshot) -> None:
    changes = {}
    if args.strategy:
        changes["strategy"] = args.strategy
    if args.cap is not None:
        changes["max_multiplier_cap"] = args.cap
    try:
        config = replace(snapshot.config, **changes)
    except ValueError as exc:
        print(exc)
        raise SystemExit(1)

    engine = PatternEngine(bonus_config=config)
    analysis = engine.analyze(snapshot.nodes)

    print(f"Nodes: {len(snapshot.nodes)}")
    print(f"Shapes: {len(analysis.shapes)}")
    for shape in analysis.shapes:
        print(f"  {shape.shape_type:<9} {', '.join(shape.node_ids)}")
    print(f"Multiplier ({config.strategy}): {analysis.bonus.multiplier:.4f}")
    for warning in analysis.validation.warnings:
        print(f"Warning: {warning}")
    for error in analysis.validation.errors:
        print(f"Error: {error}")
    best = analysis.suggestions.best_position
    if best is not None:
        print(f"Best next position: ({best[0]:.1f}, {best[1]:.1f})")

    if args.output_path:
        save_report(analysis, args.output_path)
        print(f"Saved {args.output_path}")


def _cmd_render(args, snapshot: NetworkSnapshot) -> None:
    from .visualize import render_network

    engine = PatternEngine(bonus_config=snapshot.config)
    shapes = engine.find_shapes(snapshot.nodes)
    suggestions = () if args.no_suggestions else engine.suggest(snapshot.nodes, shapes).suggestions
    try:
        render_network(snapshot.nodes, args.output_path, shapes=shapes, suggestions=suggestions, dpi=args.dpi)
    except RuntimeError as exc:
        print(exc)
        raise SystemExit(1)
    print(f"Saved {args.output_path}")


if __name__ == "__main__":
    main()
