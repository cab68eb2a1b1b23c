"""
Network Analysis Module for Pedestrian Network Quality Assessment
Runs the full structural-quality pipeline over a pedestrian network:
graph construction, components, centrality, bridges, geometry checks,
problem consolidation and the quality scorecard.
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Union

import geopandas as gpd
from shapely.geometry import Point, LineString

from analysis_config import AnalysisConfig
from geometry_quality import GeometryResult, analyze_geometry
from network_graph import NetworkGraph, build_graph, iter_features
from network_topology import (CentralityResult, ComponentResult, TopologyResult,
                              compute_betweenness, find_bridges_and_articulation_points,
                              find_components)
from problem_report import (ProblemType, Severity, consolidate_problems,
                            problems_to_geodataframe)
from quality_scorecard import ScorecardMetrics, compute_scorecard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageWarning:
    stage: str
    cause: str


@dataclass(frozen=True)
class NoAnalyzableData:
    """Outcome of a run whose input contained nothing to analyze."""
    reason: str
    fingerprint: Optional[str] = None

    def __bool__(self) -> bool:
        return False


def fingerprint(features: Sequence) -> str:
    """Cheap change detector: feature count plus the first feature id."""
    first_id = ''
    if features:
        first = features[0]
        if isinstance(first, dict):
            properties = first.get('properties')
            if isinstance(properties, dict):
                first_id = properties.get('id', '')
    return f"{len(features)}_{first_id}"


@dataclass(frozen=True)
class AnalysisResult:
    """Immutable snapshot of one analysis run."""
    graph: NetworkGraph
    components: ComponentResult
    centrality: CentralityResult
    topology: TopologyResult
    geometry: GeometryResult
    problems: tuple
    scorecard: ScorecardMetrics
    config: AnalysisConfig
    warnings: tuple = ()
    fingerprint: Optional[str] = None
    reference_completeness: Optional[float] = None

    @property
    def num_nodes(self) -> int:
        return self.graph.num_nodes

    @property
    def num_edges(self) -> int:
        return self.graph.num_edges

    def node_centrality(self, node_id: str) -> float:
        return self.centrality.node(node_id)

    def edge_centrality(self, edge_id: str) -> float:
        return self.centrality.edge(edge_id)

    def normalized_node_centrality(self, node_id: str) -> float:
        return self.centrality.normalized_node(node_id)

    def normalized_edge_centrality(self, edge_id: str) -> float:
        return self.centrality.normalized_edge(edge_id)

    def is_bridge(self, edge_id: str) -> bool:
        return self.topology.is_bridge(edge_id)

    def is_articulation_point(self, node_id: str) -> bool:
        return self.topology.is_articulation_point(node_id)

    def problems_by_type(self, problem_type: Union[ProblemType, str]) -> list:
        problem_type = ProblemType(problem_type)
        return [p for p in self.problems if p.type is problem_type]

    def severity_counts(self) -> dict:
        counts = {severity: 0 for severity in Severity}
        for p in self.problems:
            counts[p.severity] += 1
        return counts

    @property
    def isolated_components(self) -> tuple:
        return self.components.isolated

    @property
    def total_length(self) -> float:
        return self.graph.total_length()

    @property
    def main_component_ratio(self) -> float:
        """Share of nodes in the main component (1.0 when components are unknown)."""
        if self.num_nodes == 0:
            return 0.0
        main = self.components.main
        size = main.size if main is not None else self.num_nodes
        return size / self.num_nodes

    @property
    def overall_smoothness(self) -> float:
        return self.geometry.overall_smoothness

    def with_reference(self, reference_completeness: Optional[float]) -> 'AnalysisResult':
        """New result whose scorecard uses the given reference match percentage."""
        components_failed = any(w.stage == 'components' for w in self.warnings)
        scorecard = compute_scorecard(self.graph, None if components_failed else self.components,
                                      self.config, reference_completeness)
        return replace(self, scorecard=scorecard, reference_completeness=reference_completeness)

    def summary(self) -> dict:
        """Headline counts for dashboards and logs."""
        severity = self.severity_counts()
        return {
            'nodes': self.num_nodes,
            'edges': self.num_edges,
            'total_length': self.total_length,
            'centrality': {
                'max_node': self.centrality.max_node,
                'max_edge': self.centrality.max_edge,
                'sample_size': self.centrality.sample_size,
            },
            'topology': {
                'component_count': len(self.components),
                'isolated_count': len(self.components.isolated),
                'bridge_count': len(self.topology.bridges),
                'articulation_point_count': len(self.topology.articulation_points),
            },
            'geometry': {
                'short_stubs': len(self.geometry.short_stubs),
                'long_links': len(self.geometry.long_links),
                'sharp_angles': len(self.geometry.sharp_angles),
                'zigzags': len(self.geometry.zigzags),
                'smoothness': self.overall_smoothness,
            },
            'problems': {
                'total': len(self.problems),
                'error': severity[Severity.ERROR],
                'warning': severity[Severity.WARNING],
                'info': severity[Severity.INFO],
            },
            'connectivity': self.main_component_ratio * 100,
            'scorecard': self.scorecard.to_dict(),
            'warnings': [{'stage': w.stage, 'cause': w.cause} for w in self.warnings],
        }

    def problems_frame(self) -> gpd.GeoDataFrame:
        return problems_to_geodataframe(self.problems)

    def node_frame(self) -> gpd.GeoDataFrame:
        """Nodes with degree, centrality and articulation flags."""
        node_data = []
        for node_id, node in self.graph.nodes.items():
            node_data.append({
                'node_id': node_id,
                'degree': node.degree,
                'centrality': self.node_centrality(node_id),
                'centrality_norm': self.normalized_node_centrality(node_id),
                'is_articulation_point': self.is_articulation_point(node_id),
                'geometry': Point(node.coords[0], node.coords[1]),
            })

        if node_data:
            return gpd.GeoDataFrame(node_data, crs="EPSG:4326")
        return gpd.GeoDataFrame(columns=['node_id', 'degree', 'centrality', 'centrality_norm',
                                         'is_articulation_point', 'geometry'],
                                geometry='geometry', crs="EPSG:4326")

    def edge_frame(self) -> gpd.GeoDataFrame:
        """Edges with length, quality, smoothness, centrality and bridge flags."""
        edge_data = []
        for edge_id, edge in self.graph.edges.items():
            edge_data.append({
                'edge_id': edge_id,
                'start_node': edge.start,
                'end_node': edge.end,
                'length': edge.length,
                'quality': edge.quality,
                'smoothness': self.geometry.edge_smoothness(edge_id),
                'centrality': self.edge_centrality(edge_id),
                'centrality_norm': self.normalized_edge_centrality(edge_id),
                'is_bridge': self.is_bridge(edge_id),
                'geometry': LineString(edge.coordinates),
            })

        if edge_data:
            return gpd.GeoDataFrame(edge_data, crs="EPSG:4326")
        return gpd.GeoDataFrame(columns=['edge_id', 'start_node', 'end_node', 'length', 'quality',
                                         'smoothness', 'centrality', 'centrality_norm',
                                         'is_bridge', 'geometry'],
                                geometry='geometry', crs="EPSG:4326")


class NetworkAnalyzer:
    """Analyzes pedestrian network topology and geometry quality."""

    def __init__(self, config: AnalysisConfig = None):
        """
        Initialize analyzer.

        Args:
            config: Thresholds for every stage; defaults when omitted
        """
        self.config = (config or AnalysisConfig()).validate()
        self.logger = logging.getLogger(__name__)

    def _run_stage(self, name: str, func, default, warnings: list):
        try:
            return func(), True
        except Exception as e:
            self.logger.warning("%s analysis failed: %s", name, e, exc_info=True)
            warnings.append(StageWarning(stage=name, cause=f"{type(e).__name__}: {e}"))
            return default, False

    def analyze(self, collection,
                reference_completeness: Optional[float] = None,
                sources: Optional[Sequence[str]] = None) -> Union[AnalysisResult, NoAnalyzableData]:
        """
        Run the complete analysis pipeline.

        Args:
            collection: FeatureCollection mapping, sequence of features, or GeoDataFrame
            reference_completeness: Match percentage (0-100) against a reference network
            sources: Explicit centrality source nodes, for reproducible runs

        Returns:
            AnalysisResult, or NoAnalyzableData when nothing could be analyzed
        """
        self.logger.info("Running comprehensive network analysis...")

        if collection is None:
            return NoAnalyzableData('No valid network data to analyze')

        try:
            features = iter_features(collection)
        except TypeError as e:
            self.logger.warning("Invalid network input: %s", e)
            return NoAnalyzableData(f'No valid network data to analyze: {e}')

        key = fingerprint(features)
        if not features:
            self.logger.warning("Empty features array - no network data to analyze")
            return NoAnalyzableData('Network data is empty', key)

        try:
            graph = build_graph(features)
        except Exception as e:
            self.logger.error("Failed to build graph from data: %s", e, exc_info=True)
            return NoAnalyzableData(f'Could not build network graph from data: {e}', key)

        if graph.is_empty:
            self.logger.warning("Failed to build graph from data")
            return NoAnalyzableData('Could not build network graph from data', key)

        config = self.config
        warnings = []

        components, components_ok = self._run_stage(
            'components', lambda: find_components(graph), ComponentResult(), warnings)
        centrality, _ = self._run_stage(
            'centrality',
            lambda: compute_betweenness(graph, config.centrality_sample_size,
                                        seed=config.centrality_seed, sources=sources),
            CentralityResult(), warnings)
        topology, _ = self._run_stage(
            'topology', lambda: find_bridges_and_articulation_points(graph),
            TopologyResult(), warnings)
        geometry, _ = self._run_stage(
            'geometry', lambda: analyze_geometry(graph, config), GeometryResult(), warnings)

        problems = consolidate_problems(graph, components, topology, geometry, config)
        scorecard = compute_scorecard(graph, components if components_ok else None,
                                      config, reference_completeness)

        result = AnalysisResult(
            graph=graph,
            components=components,
            centrality=centrality,
            topology=topology,
            geometry=geometry,
            problems=problems,
            scorecard=scorecard,
            config=config,
            warnings=tuple(warnings),
            fingerprint=key,
            reference_completeness=reference_completeness,
        )

        self.logger.info("Analysis summary: nodes=%d edges=%d components=%d bridges=%d "
                         "articulation_points=%d problems=%d",
                         result.num_nodes, result.num_edges, len(components),
                         len(topology.bridges), len(topology.articulation_points),
                         len(problems))
        return result


class AnalysisSession:
    """
    Keeps the latest published analysis for a changing input.

    Runs never overlap. A submission arriving while a run is in flight
    replaces any earlier pending one and is picked up by the running thread
    when it finishes (latest wins). Failed or empty runs leave the previous
    result in place.
    """

    def __init__(self, config: AnalysisConfig = None):
        self.analyzer = NetworkAnalyzer(config)
        self.result: Optional[AnalysisResult] = None
        self.last_outcome: Union[AnalysisResult, NoAnalyzableData, None] = None
        self.last_error: Optional[Exception] = None
        self.reference_completeness: Optional[float] = None
        self.runs = 0

        self._lock = threading.Lock()
        self._running = False
        self._pending = None
        self._last_fingerprint = None

    def submit(self, collection, force: bool = False) -> Optional[AnalysisResult]:
        """
        Analyze a new input snapshot unless it matches the last analyzed one.

        Returns:
            The published result after all queued work has been processed,
            or the current one if another thread is running the analysis
        """
        with self._lock:
            self._pending = (collection, force)
            if self._running:
                return self.result
            self._running = True

        try:
            while True:
                with self._lock:
                    job = self._pending
                    self._pending = None
                    if job is None:
                        self._running = False
                        return self.result
                self._process(*job)
        except BaseException:
            with self._lock:
                self._running = False
            raise

    def _process(self, collection, force: bool):
        try:
            features = iter_features(collection)
        except TypeError:
            features = None
        key = fingerprint(features) if features is not None else None

        if not force and key is not None and key == self._last_fingerprint:
            logger.debug("Input %s unchanged, skipping analysis", key)
            return

        try:
            outcome = self.analyzer.analyze(collection if features is None else features,
                                            self.reference_completeness)
        except Exception as e:
            logger.error("Network analysis failed: %s", e, exc_info=True)
            self.last_error = e
            return

        with self._lock:
            # the reference may have changed while the run was in flight
            if (isinstance(outcome, AnalysisResult) and
                    outcome.reference_completeness != self.reference_completeness):
                outcome = outcome.with_reference(self.reference_completeness)

            self.runs += 1
            self.last_outcome = outcome
            self.last_error = None
            if isinstance(outcome, AnalysisResult):
                self.result = outcome
                self._last_fingerprint = key

    def set_reference_completeness(self, value: Optional[float]) -> Optional[AnalysisResult]:
        """Update the reference match percentage; only the scorecard is recomputed."""
        with self._lock:
            self.reference_completeness = value
            if self.result is not None:
                self.result = self.result.with_reference(value)
            return self.result
