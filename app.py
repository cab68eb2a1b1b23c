"""
Pedestrian Network Quality Inspector
Command-line front end for analyzing the structural quality of pedestrian networks.

Usage:
    pedestrian-inspector network.geojson
    pedestrian-inspector network.zip --reference osm_walk.geojson
    pedestrian-inspector network.geojson --seed 7 --sample-size 100 --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from analysis_config import AnalysisConfig
from network_analyzer import NetworkAnalyzer, NoAnalyzableData
from network_graph import load_network_from_file
from problem_report import ProblemType
from reference_comparison import reference_match_percentage

EXIT_OK = 0
EXIT_NO_DATA = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Assess connectivity, topology and geometry quality of a pedestrian network",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Usage:")[1],
    )
    parser.add_argument("network", type=Path, help="Network file (GeoJSON, shapefile or zip)")
    parser.add_argument("--reference", type=Path, help="Reference network for the completeness score")
    parser.add_argument("--buffer", type=float, default=5.0,
                        help="Reference matching tolerance in meters (default: 5)")
    parser.add_argument("--config", type=Path, help="JSON file with analysis settings")

    thresholds = parser.add_argument_group("Thresholds")
    thresholds.add_argument("--short-stub", type=float, help="Short stub threshold in meters")
    thresholds.add_argument("--long-link", type=float, help="Long link threshold in meters")
    thresholds.add_argument("--sharp-angle", type=float, help="Sharp angle threshold in degrees")
    thresholds.add_argument("--sample-size", type=int, help="Centrality source sample size")
    thresholds.add_argument("--seed", type=int, help="Seed for centrality source sampling")

    parser.add_argument("--json", action="store_true", help="Output summary and problems as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")
    return parser


def load_config(args) -> AnalysisConfig:
    if args.config:
        with open(args.config) as f:
            config = AnalysisConfig.from_dict(json.load(f))
    else:
        config = AnalysisConfig.from_env()

    overrides = {
        'short_stub_threshold': args.short_stub,
        'long_link_threshold': args.long_link,
        'sharp_angle_threshold': args.sharp_angle,
        'centrality_sample_size': args.sample_size,
        'centrality_seed': args.seed,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return config.with_overrides(**overrides) if overrides else config


def print_report(result) -> None:
    card = result.scorecard
    print(f"Network: {result.num_nodes} nodes, {result.num_edges} edges, "
          f"{result.total_length / 1000:.2f} km")
    print(f"Grade {card.grade} ({card.overall:.1f}%) - {card.grade_description()}")
    print(f"  Connectivity {card.connectivity:5.1f}%")
    print(f"  Completeness {card.completeness:5.1f}% ({card.completeness_source})")
    print(f"  Topology     {card.topology:5.1f}%")
    print(f"  Smoothness   {result.overall_smoothness:5.1f}%")

    print("\nInsights:")
    for kind, message in card.insights():
        print(f"  [{kind}] {message}")

    print(f"\nProblems ({len(result.problems)}):")
    for problem_type in ProblemType:
        found = result.problems_by_type(problem_type)
        if found:
            print(f"  {problem_type.label}: {len(found)} ({found[0].severity.value})")

    for warning in result.warnings:
        print(f"\nWarning: {warning.stage} stage failed ({warning.cause})")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")

    config = load_config(args)
    network_gdf = load_network_from_file(str(args.network))

    reference_completeness = None
    if args.reference:
        reference_gdf = load_network_from_file(str(args.reference))
        reference_completeness = reference_match_percentage(network_gdf, reference_gdf, args.buffer)

    outcome = NetworkAnalyzer(config).analyze(network_gdf, reference_completeness)

    if isinstance(outcome, NoAnalyzableData):
        print(f"No analyzable data: {outcome.reason}", file=sys.stderr)
        return EXIT_NO_DATA

    if args.json:
        payload = outcome.summary()
        payload['problem_list'] = [p.to_dict() for p in outcome.problems]
        print(json.dumps(payload, indent=2, default=str))
    else:
        print_report(outcome)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
