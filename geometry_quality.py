"""
Geometry Quality Module
Per-edge length classification, smoothness and zigzag scoring, and sharp-angle
detection at nodes of a pedestrian network.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType

import numpy as np

from analysis_config import AnalysisConfig
from network_graph import NetworkGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShortStub:
    edge_id: str
    length: float
    coords: tuple


@dataclass(frozen=True)
class LongLink:
    edge_id: str
    length: float
    coords: tuple


@dataclass(frozen=True)
class SharpAngle:
    node_id: str
    coords: tuple
    angle: float


@dataclass(frozen=True)
class Zigzag:
    edge_id: str
    coords: tuple
    matches: int


@dataclass(frozen=True)
class GeometryResult:
    short_stubs: tuple = ()
    long_links: tuple = ()
    sharp_angles: tuple = ()
    zigzags: tuple = ()
    smoothness: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    overall_smoothness: float = 100.0

    def edge_smoothness(self, edge_id: str) -> float:
        return self.smoothness.get(edge_id, 100.0)


def turn_angles(coords) -> np.ndarray:
    """
    Angle in degrees at every interior vertex between the segments to its neighbors.

    180 means the line continues straight; a vertex touching a zero-length
    segment is treated as straight.
    """
    pts = np.asarray(coords, dtype=float)[:, :2]
    if len(pts) < 3:
        return np.empty(0)

    v1 = pts[:-2] - pts[1:-1]
    v2 = pts[2:] - pts[1:-1]
    mag = np.linalg.norm(v1, axis=1) * np.linalg.norm(v2, axis=1)
    dot = np.einsum('ij,ij->i', v1, v2)

    angles = np.full(len(mag), 180.0)
    valid = mag > 0
    cos_angle = np.clip(dot[valid] / mag[valid], -1.0, 1.0)
    angles[valid] = np.degrees(np.arccos(cos_angle))
    return angles


def edge_smoothness(coords) -> float:
    """
    Smoothness score in [0, 100] from the mean deviation of turn angles from 180.

    0 degrees mean deviation scores 100, 90 degrees or more scores 0.
    """
    angles = turn_angles(coords)
    if len(angles) == 0:
        return 100.0
    avg_deviation = float(np.mean(np.abs(180.0 - angles)))
    return max(0.0, 100.0 - avg_deviation * 100.0 / 90.0)


def zigzag_matches(coords, band: tuple = (60.0, 120.0)) -> int:
    """Number of consecutive turn-angle pairs that both fall inside the band."""
    angles = turn_angles(coords)
    if len(angles) < 2:
        return 0
    low, high = band
    in_band = (angles >= low) & (angles <= high)
    return int(np.sum(in_band[:-1] & in_band[1:]))


def is_zigzag(coords, band: tuple = (60.0, 120.0),
              min_segments: int = 3, min_matches: int = 2) -> bool:
    """
    Detect a zigzag: repeated mid-range turns rather than a single bend.

    Args:
        coords: Edge coordinates
        band: (low, high) turn angle range in degrees
        min_segments: Edges with fewer segments are never zigzags
        min_matches: Required count of consecutive in-band angle pairs
    """
    if len(coords) < min_segments + 1:
        return False
    return zigzag_matches(coords, band) >= min_matches


def _unit(vector):
    norm = np.linalg.norm(vector)
    if norm == 0 or not np.isfinite(norm):
        return None
    return vector / norm


def node_directions(graph: NetworkGraph, node_id: str) -> list:
    """Unit vectors pointing from the node along each incident edge."""
    node = graph.nodes[node_id]
    origin = np.asarray(node.coords[:2], dtype=float)
    directions = []

    for edge_id in dict.fromkeys(node.edge_ids):
        edge = graph.edges[edge_id]
        coords = edge.coordinates
        if edge.start == node_id:
            direction = _unit(np.asarray(coords[1][:2], dtype=float) - origin)
            if direction is not None:
                directions.append(direction)
        if edge.end == node_id:
            direction = _unit(np.asarray(coords[-2][:2], dtype=float) - origin)
            if direction is not None:
                directions.append(direction)

    return directions


def node_angles(graph: NetworkGraph, node_id: str) -> list:
    """Pairwise angles in degrees between the outgoing edge directions at a node."""
    directions = node_directions(graph, node_id)
    angles = []
    for i in range(len(directions)):
        for j in range(i + 1, len(directions)):
            cos_angle = np.clip(np.dot(directions[i], directions[j]), -1, 1)
            angles.append(float(np.degrees(np.arccos(cos_angle))))
    return angles


def analyze_geometry(graph: NetworkGraph, config: AnalysisConfig = None) -> GeometryResult:
    """
    Run all geometric quality checks over the network.

    Args:
        graph: Network to analyze
        config: Thresholds; defaults are used when omitted

    Returns:
        GeometryResult with issues per category and smoothness scores
    """
    config = config or AnalysisConfig()

    short_stubs = []
    long_links = []
    zigzags = []
    smoothness = {}

    for edge in graph.edges.values():
        if edge.length < config.short_stub_threshold:
            short_stubs.append(ShortStub(edge.id, edge.length, edge.coordinates))
        if edge.length > config.long_link_threshold:
            long_links.append(LongLink(edge.id, edge.length, edge.coordinates))

        if is_zigzag(edge.coordinates, config.zigzag_band,
                     config.zigzag_min_segments, config.zigzag_min_matches):
            zigzags.append(Zigzag(edge.id, edge.coordinates,
                                  zigzag_matches(edge.coordinates, config.zigzag_band)))

        smoothness[edge.id] = edge_smoothness(edge.coordinates)

    overall = float(np.mean(list(smoothness.values()))) if smoothness else 100.0

    sharp_angles = []
    for node_id, node in graph.nodes.items():
        if node.degree < 2:
            continue
        angles = node_angles(graph, node_id)
        sharp = [a for a in angles if a < config.sharp_angle_threshold]
        if sharp:
            sharp_angles.append(SharpAngle(node_id, node.coords, min(sharp)))

    logger.info("Geometry issues: %d short stubs, %d long links, %d sharp angles, %d zigzag segments",
                len(short_stubs), len(long_links), len(sharp_angles), len(zigzags))
    logger.info("Network smoothness score: %.1f/100", overall)

    return GeometryResult(
        short_stubs=tuple(short_stubs),
        long_links=tuple(long_links),
        sharp_angles=tuple(sharp_angles),
        zigzags=tuple(zigzags),
        smoothness=MappingProxyType(smoothness),
        overall_smoothness=overall,
    )
