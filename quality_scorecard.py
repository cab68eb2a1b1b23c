"""
Quality Scorecard Module
Connectivity, completeness and topology sub-scores combined into an overall
letter grade for a pedestrian network.

Score formulas (each clamped to [0, 100]):
- Connectivity: min(avg_degree / 4, 1) * 40 - isolated_ratio * 30
                - dead_end_ratio * 20 + main_component_ratio * 40
- Completeness: reference match percentage, or mean edge quality * 100
- Topology: (1 - dead_end_ratio) * 40 + mean_quality * 30
            + min(edge_node_ratio / 1.5, 1) * 30 - min((components - 1) * 10, 30)
- Overall: Connectivity * 0.30 + Completeness * 0.40 + Topology * 0.30
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from analysis_config import AnalysisConfig, ScorecardConfig
from network_graph import NetworkGraph
from network_topology import ComponentResult, find_components

logger = logging.getLogger(__name__)

GRADE_DESCRIPTIONS = {
    'A': 'Excellent Quality',
    'B': 'Good Quality',
    'C': 'Fair Quality',
    'D': 'Poor Quality',
    'F': 'Critical Issues',
}


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


@dataclass(frozen=True)
class ScorecardMetrics:
    connectivity: float = 0.0
    completeness: float = 0.0
    topology: float = 0.0
    overall: float = 0.0
    grade: str = 'F'
    num_nodes: int = 0
    num_edges: int = 0
    num_dead_ends: int = 0
    num_components: int = 0
    completeness_source: str = 'quality'
    failed_scores: tuple = field(default=())

    def grade_description(self) -> str:
        return GRADE_DESCRIPTIONS.get(self.grade, 'Unknown')

    def insights(self) -> list:
        """Short (kind, message) findings for display next to the scores."""
        insights = []

        if self.connectivity >= 80:
            insights.append(('success', 'Excellent network connectivity'))
        elif self.connectivity < 50:
            insights.append(('warning', f'Low connectivity ({self.num_dead_ends} dead-ends detected)'))

        if self.completeness >= 80:
            insights.append(('success', 'High OSM coverage match'))
        elif self.completeness < 60:
            insights.append(('error', 'Significant gaps compared to OSM'))

        if self.num_components > 1:
            insights.append(('warning', f'{self.num_components} disconnected subgraphs found'))

        if self.num_dead_ends > self.num_nodes * 0.3:
            insights.append(('error', 'High number of dead-ends (>30%)'))

        if self.grade in ('A', 'B'):
            insights.append(('success', 'Network meets production quality standards'))
        elif self.grade in ('D', 'F'):
            insights.append(('error', 'Significant improvements needed'))

        return insights or [('info', 'Analysis complete')]

    def to_dict(self) -> dict:
        return {
            'connectivity': self.connectivity,
            'completeness': self.completeness,
            'topology': self.topology,
            'overall': self.overall,
            'grade': self.grade,
            'completeness_source': self.completeness_source,
            'failed_scores': list(self.failed_scores),
        }


def connectivity_score(graph: NetworkGraph, components: ComponentResult,
                       config: ScorecardConfig = None) -> float:
    """Connectivity sub-score from degree, isolated nodes, dead ends and main component share."""
    config = config or ScorecardConfig()
    total = graph.num_nodes
    if total == 0:
        return 0.0

    degrees = [n.degree for n in graph.nodes.values()]
    avg_degree = sum(degrees) / total
    isolated = sum(1 for d in degrees if d == 0)
    dead_ends = sum(1 for d in degrees if d == 1)
    main_size = components.main.size if components.main is not None else 0

    degree_score = min(avg_degree / config.degree_saturation, 1) * config.degree_points
    isolation_penalty = isolated / total * config.isolation_penalty
    dead_end_penalty = dead_ends / total * config.dead_end_penalty
    component_score = main_size / total * config.main_component_points

    return _clamp(degree_score - isolation_penalty - dead_end_penalty + component_score)


def mean_edge_quality(graph: NetworkGraph) -> float:
    if graph.num_edges == 0:
        return 0.0
    return sum(e.quality for e in graph.edges.values()) / graph.num_edges


def completeness_score(graph: NetworkGraph, reference_completeness: Optional[float] = None) -> float:
    """Reference match percentage when available, otherwise mean edge quality as a percentage."""
    if reference_completeness is not None:
        return _clamp(float(reference_completeness))
    return _clamp(mean_edge_quality(graph) * 100)


def topology_score(graph: NetworkGraph, components: ComponentResult,
                   config: ScorecardConfig = None) -> float:
    """Topology sub-score from dead-end ratio, edge quality, edge/node ratio and component count."""
    config = config or ScorecardConfig()
    total_nodes = graph.num_nodes
    total_edges = graph.num_edges
    if total_nodes == 0 or total_edges == 0:
        return 0.0

    dead_ends = sum(1 for n in graph.nodes.values() if n.degree == 1)
    dead_end_score = max(0.0, (1 - dead_ends / total_nodes) * config.low_dead_end_points)
    quality_score = mean_edge_quality(graph) * config.quality_points
    ratio_score = min(total_edges / total_nodes / config.ideal_edge_node_ratio, 1) * config.ratio_points
    extra_components = max(0, len(components) - 1)
    component_penalty = min(extra_components * config.component_penalty, config.max_component_penalty)

    return _clamp(dead_end_score + quality_score + ratio_score - component_penalty)


def compute_scorecard(graph: NetworkGraph,
                      components: ComponentResult = None,
                      config: AnalysisConfig = None,
                      reference_completeness: Optional[float] = None) -> ScorecardMetrics:
    """
    Compute the quality scorecard.

    Each sub-score is computed independently; a failing sub-score is left out
    and the overall score is the weighted mean of the ones that succeeded.

    Args:
        graph: Analyzed network
        components: Connected components; recomputed when omitted
        config: Analysis configuration holding the scorecard weights
        reference_completeness: Match percentage (0-100) against a reference network
    """
    config = config or AnalysisConfig()
    card = config.scorecard

    if components is None:
        try:
            components = find_components(graph)
        except Exception as e:
            logger.warning("Scorecard could not compute components: %s", e)

    def require_components():
        if components is None:
            raise ValueError("connected components unavailable")
        return components

    calculators = {
        'connectivity': lambda: connectivity_score(graph, require_components(), card),
        'completeness': lambda: completeness_score(graph, reference_completeness),
        'topology': lambda: topology_score(graph, require_components(), card),
    }

    scores = {}
    failed = []
    for name, calculate in calculators.items():
        try:
            scores[name] = calculate()
        except Exception as e:
            logger.warning("Scorecard %s score failed: %s", name, e)
            failed.append(name)

    weights = card.weights()
    overall = sum(scores[name] * weights[name] for name in scores)
    if failed:
        weight_total = sum(weights[name] for name in scores)
        overall = overall / weight_total if weight_total > 0 else 0.0

    metrics = ScorecardMetrics(
        connectivity=scores.get('connectivity', 0.0),
        completeness=scores.get('completeness', 0.0),
        topology=scores.get('topology', 0.0),
        overall=overall,
        grade=card.grade_for(overall),
        num_nodes=graph.num_nodes,
        num_edges=graph.num_edges,
        num_dead_ends=sum(1 for n in graph.nodes.values() if n.degree == 1),
        num_components=len(components) if components is not None else 0,
        completeness_source='reference' if reference_completeness is not None else 'quality',
        failed_scores=tuple(failed),
    )

    logger.info("Overall: %.1f%% (Grade: %s) connectivity=%.1f completeness=%.1f topology=%.1f",
                metrics.overall, metrics.grade, metrics.connectivity,
                metrics.completeness, metrics.topology)
    return metrics
