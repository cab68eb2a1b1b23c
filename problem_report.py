"""
Problem Report Module
Merges topology and geometry findings into one severity-tagged list of
network problems, filtering boundary artifacts and capping noisy categories.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import geopandas as gpd
from shapely.geometry import Point

from analysis_config import AnalysisConfig
from geometry_quality import GeometryResult
from network_graph import NetworkGraph
from network_topology import ComponentResult, TopologyResult

logger = logging.getLogger(__name__)


class ProblemType(str, Enum):
    DEAD_END = 'dead-end'
    ISOLATED_COMPONENT = 'isolated-component'
    BRIDGE = 'bridge'
    ARTICULATION_POINT = 'articulation-point'
    SHORT_STUB = 'short-stub'
    LONG_LINK = 'long-link'
    SHARP_ANGLE = 'sharp-angle'
    ZIGZAG = 'zigzag'

    @property
    def label(self) -> str:
        return PROBLEM_LABELS[self]


class Severity(str, Enum):
    ERROR = 'error'
    WARNING = 'warning'
    INFO = 'info'


SEVERITY_BY_TYPE = {
    ProblemType.DEAD_END: Severity.WARNING,
    ProblemType.ISOLATED_COMPONENT: Severity.ERROR,
    ProblemType.BRIDGE: Severity.INFO,
    ProblemType.ARTICULATION_POINT: Severity.INFO,
    ProblemType.SHORT_STUB: Severity.WARNING,
    ProblemType.LONG_LINK: Severity.WARNING,
    ProblemType.SHARP_ANGLE: Severity.WARNING,
    ProblemType.ZIGZAG: Severity.WARNING,
}

PROBLEM_LABELS = {
    ProblemType.DEAD_END: 'Dead Ends',
    ProblemType.ISOLATED_COMPONENT: 'Isolated Subgraphs',
    ProblemType.BRIDGE: 'Bridge Edges',
    ProblemType.ARTICULATION_POINT: 'Articulation Points',
    ProblemType.SHORT_STUB: 'Short Stubs',
    ProblemType.LONG_LINK: 'Long Links',
    ProblemType.SHARP_ANGLE: 'Sharp Angles',
    ProblemType.ZIGZAG: 'Zigzag Patterns',
}


@dataclass(frozen=True)
class Problem:
    type: ProblemType
    coords: tuple
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    component_id: Optional[int] = None
    size: Optional[int] = None
    length: Optional[float] = None
    angle: Optional[float] = None

    @property
    def severity(self) -> Severity:
        return SEVERITY_BY_TYPE[self.type]

    def to_dict(self) -> dict:
        data = {
            'type': self.type.value,
            'severity': self.severity.value,
            'coords': list(self.coords),
            'message': self.message,
        }
        for key in ('node_id', 'edge_id', 'component_id', 'size', 'length', 'angle'):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


class BoundaryFilter:
    """Decides whether a coordinate lies within a margin of the network's bounding box."""

    def __init__(self, bounds: Optional[tuple], margin: float = 0.02):
        self.bounds = bounds
        self.margin = margin

    def _near_edge(self, value: float, low: float, high: float) -> bool:
        extent = high - low
        if extent <= 0:
            return False
        ratio = (value - low) / extent
        return ratio < self.margin or ratio > 1 - self.margin

    def is_on_boundary(self, coords) -> bool:
        if self.bounds is None:
            return False
        min_lon, min_lat, max_lon, max_lat = self.bounds
        return (self._near_edge(coords[0], min_lon, max_lon) or
                self._near_edge(coords[1], min_lat, max_lat))


def _dead_end_problems(graph: NetworkGraph, config: AnalysisConfig) -> list:
    boundary = BoundaryFilter(graph.bounds(), config.boundary_margin)
    problems = []
    internal = 0
    for node_id, node in graph.nodes.items():
        if node.degree != 1 or boundary.is_on_boundary(node.coords):
            continue
        internal += 1
        if internal <= config.max_dead_ends:
            problems.append(Problem(
                type=ProblemType.DEAD_END,
                coords=node.coords,
                node_id=node_id,
                message='Dead-end detected - may need connection to nearby path',
            ))
    if internal > config.max_dead_ends:
        logger.debug("Reporting %d of %d internal dead ends", config.max_dead_ends, internal)
    return problems


def _component_problems(graph: NetworkGraph, components: ComponentResult) -> list:
    problems = []
    for comp in components.isolated:
        coords = [graph.nodes[n].coords for n in comp.nodes if n in graph.nodes]
        if not coords:
            continue
        centroid = (sum(c[0] for c in coords) / len(coords),
                    sum(c[1] for c in coords) / len(coords))
        problems.append(Problem(
            type=ProblemType.ISOLATED_COMPONENT,
            coords=centroid,
            component_id=comp.id,
            size=comp.size,
            message=f'Isolated subgraph with {comp.size} nodes - disconnected from main network',
        ))
    return problems


def _topology_problems(graph: NetworkGraph, topology: TopologyResult,
                       config: AnalysisConfig) -> list:
    problems = []
    for edge_id in topology.bridges[:config.max_bridges]:
        edge = graph.edges.get(edge_id)
        if edge is None:
            continue
        problems.append(Problem(
            type=ProblemType.BRIDGE,
            coords=edge.midpoint,
            edge_id=edge_id,
            message='Bridge edge - removing would disconnect part of network',
        ))

    for node_id in topology.articulation_points[:config.max_articulation_points]:
        node = graph.nodes.get(node_id)
        if node is None:
            continue
        problems.append(Problem(
            type=ProblemType.ARTICULATION_POINT,
            coords=node.coords,
            node_id=node_id,
            message='Articulation point - removing would disconnect part of network',
        ))
    return problems


def _geometry_problems(geometry: GeometryResult) -> list:
    problems = []
    for stub in geometry.short_stubs:
        problems.append(Problem(
            type=ProblemType.SHORT_STUB,
            coords=stub.coords[len(stub.coords) // 2],
            edge_id=stub.edge_id,
            length=stub.length,
            message=f'Very short segment ({stub.length:.1f}m) - may be noise or error',
        ))

    for link in geometry.long_links:
        problems.append(Problem(
            type=ProblemType.LONG_LINK,
            coords=link.coords[len(link.coords) // 2],
            edge_id=link.edge_id,
            length=link.length,
            message=f'Very long segment ({link.length:.0f}m) - may need intermediate nodes',
        ))

    for sharp in geometry.sharp_angles:
        problems.append(Problem(
            type=ProblemType.SHARP_ANGLE,
            coords=sharp.coords,
            node_id=sharp.node_id,
            angle=sharp.angle,
            message=f'Sharp angle ({sharp.angle:.1f}°) - unusual for pedestrian paths',
        ))

    for zigzag in geometry.zigzags:
        problems.append(Problem(
            type=ProblemType.ZIGZAG,
            coords=zigzag.coords[len(zigzag.coords) // 2],
            edge_id=zigzag.edge_id,
            message='Zigzag pattern detected - may indicate noisy data or digitization error',
        ))
    return problems


def consolidate_problems(graph: NetworkGraph,
                         components: ComponentResult = None,
                         topology: TopologyResult = None,
                         geometry: GeometryResult = None,
                         config: AnalysisConfig = None) -> tuple:
    """
    Build the ordered problem list for one analysis run.

    Order: dead ends, isolated components, bridges, articulation points,
    short stubs, long links, sharp angles, zigzags. Missing stage results
    contribute nothing.

    Args:
        graph: Analyzed network
        components: Connected components (isolated ones are reported)
        topology: Bridges and articulation points
        geometry: Geometric issues
        config: Boundary margin and per-category caps
    """
    config = config or AnalysisConfig()

    problems = _dead_end_problems(graph, config)
    if components is not None:
        problems += _component_problems(graph, components)
    if topology is not None:
        problems += _topology_problems(graph, topology, config)
    if geometry is not None:
        problems += _geometry_problems(geometry)

    logger.info("Total problems flagged: %d", len(problems))
    return tuple(problems)


def problems_to_geodataframe(problems) -> gpd.GeoDataFrame:
    """Point GeoDataFrame (EPSG:4326) of problems for map layers."""
    columns = ['type', 'severity', 'message', 'node_id', 'edge_id',
               'component_id', 'size', 'length', 'angle', 'geometry']
    rows = []
    for p in problems:
        rows.append({
            'type': p.type.value,
            'severity': p.severity.value,
            'message': p.message,
            'node_id': p.node_id,
            'edge_id': p.edge_id,
            'component_id': p.component_id,
            'size': p.size,
            'length': p.length,
            'angle': p.angle,
            'geometry': Point(p.coords[0], p.coords[1]),
        })
    if rows:
        return gpd.GeoDataFrame(rows, columns=columns, crs="EPSG:4326")
    return gpd.GeoDataFrame(columns=columns, geometry='geometry', crs="EPSG:4326")
