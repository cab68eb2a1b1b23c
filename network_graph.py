"""
Network Graph Module
Builds a node/edge graph from pedestrian network line features with coordinate snapping.
"""

import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Optional

import numpy as np
import pandas as pd
import geopandas as gpd
import networkx as nx
from shapely.errors import GEOSException
from shapely.geometry import shape, LineString, MultiLineString

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0
NODE_KEY_PRECISION = 6  # decimal places, ~0.1 m
DEFAULT_EDGE_QUALITY = 0.5


def haversine(coord1, coord2) -> float:
    """Great-circle distance in meters between two [lon, lat] points."""
    lat1 = math.radians(coord1[1])
    lat2 = math.radians(coord2[1])
    d_lat = math.radians(coord2[1] - coord1[1])
    d_lon = math.radians(coord2[0] - coord1[0])

    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2)
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def path_length(coords) -> float:
    """Sum of haversine distances between consecutive [lon, lat] points."""
    pts = np.radians(np.asarray(coords, dtype=float)[:, :2])
    if len(pts) < 2:
        return 0.0

    lon, lat = pts[:, 0], pts[:, 1]
    d_lat = np.diff(lat)
    d_lon = np.diff(lon)
    a = np.sin(d_lat / 2) ** 2 + np.cos(lat[:-1]) * np.cos(lat[1:]) * np.sin(d_lon / 2) ** 2
    a = np.clip(a, 0.0, 1.0)
    return float(np.sum(EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))))


def node_key(coord) -> str:
    """Snap a coordinate to the node identity key."""
    return f"{coord[0]:.{NODE_KEY_PRECISION}f},{coord[1]:.{NODE_KEY_PRECISION}f}"


@dataclass(frozen=True)
class Node:
    id: str
    coords: tuple
    degree: int
    edge_ids: tuple


@dataclass(frozen=True)
class Edge:
    id: str
    start: str
    end: str
    coordinates: tuple
    length: float
    quality: float = DEFAULT_EDGE_QUALITY
    feature_index: int = -1

    @property
    def midpoint(self) -> tuple:
        """
        Middle vertex of the edge, used as its representative location.

        This is a vertex, not an interpolated point: for a two-point edge it
        is the end vertex.
        """
        return self.coordinates[len(self.coordinates) // 2]


class NetworkGraph:
    """
    Read-only pedestrian network graph produced by build_graph().

    Adjacency is held in a networkx MultiGraph keyed by edge id, so parallel
    edges between the same two nodes keep their own identity.
    """

    def __init__(self, nodes: dict, edges: dict, adjacency: nx.MultiGraph,
                 skipped_features: int = 0):
        self._nodes = nodes
        self._edges = edges
        self._adjacency = adjacency
        self.skipped_features = skipped_features

    @property
    def nodes(self):
        return MappingProxyType(self._nodes)

    @property
    def edges(self):
        return MappingProxyType(self._edges)

    @property
    def num_nodes(self) -> int:
        return len(self._nodes)

    @property
    def num_edges(self) -> int:
        return len(self._edges)

    @property
    def is_empty(self) -> bool:
        return not self._nodes or not self._edges

    def neighbors(self, node_id: str) -> Iterator[tuple]:
        """Yield (neighbor_id, edge_id) for every edge incident to node_id."""
        for neighbor, keyed in self._adjacency.adj[node_id].items():
            for edge_id in keyed:
                yield neighbor, edge_id

    def edges_between(self, u: str, v: str) -> list:
        """Edge ids directly connecting u and v."""
        if not self._adjacency.has_edge(u, v):
            return []
        return list(self._adjacency[u][v])

    def bounds(self) -> Optional[tuple]:
        """(min_lon, min_lat, max_lon, max_lat) over node coordinates."""
        if not self._nodes:
            return None
        coords = np.array([n.coords[:2] for n in self._nodes.values()], dtype=float)
        min_lon, min_lat = coords.min(axis=0)
        max_lon, max_lat = coords.max(axis=0)
        return float(min_lon), float(min_lat), float(max_lon), float(max_lat)

    def total_length(self) -> float:
        return sum(e.length for e in self._edges.values())

    def degree_counts(self) -> dict:
        """Number of nodes per degree value."""
        counts = {}
        for node in self._nodes.values():
            counts[node.degree] = counts.get(node.degree, 0) + 1
        return dict(sorted(counts.items()))

    def to_networkx(self) -> nx.MultiGraph:
        """Independent copy of the adjacency graph, safe to mutate."""
        return self._adjacency.copy()


def _feature_coords(feature) -> Optional[list]:
    """Extract [lon, lat] pairs from a LineString feature, or None if it is not usable."""
    geometry = feature.get('geometry') if isinstance(feature, dict) else None
    if not geometry or geometry.get('type') != 'LineString':
        return None
    try:
        line = shape(geometry)
    except (GEOSException, ValueError, TypeError, KeyError, IndexError):
        return None
    if line.is_empty:
        return None
    coords = [tuple(float(v) for v in c[:2]) for c in line.coords]
    if len(coords) < 2 or not np.isfinite(coords).all():
        return None
    return coords


def _edge_quality(value) -> float:
    if value is None:
        return DEFAULT_EDGE_QUALITY
    try:
        quality = float(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring non-numeric quality %r", value)
        return DEFAULT_EDGE_QUALITY
    return DEFAULT_EDGE_QUALITY if math.isnan(quality) else quality


def iter_features(collection) -> list:
    """
    Normalize supported inputs into a list of GeoJSON-like features.

    Args:
        collection: FeatureCollection mapping, sequence of features, or GeoDataFrame

    Raises:
        TypeError: if the input is none of the supported shapes
    """
    if isinstance(collection, gpd.GeoDataFrame):
        return features_from_geodataframe(collection)
    if isinstance(collection, dict):
        features = collection.get('features')
        if not isinstance(features, (list, tuple)):
            raise TypeError("FeatureCollection has no 'features' array")
        return list(features)
    if isinstance(collection, (list, tuple)):
        return list(collection)
    raise TypeError(f"Unsupported network input: {type(collection).__name__}")


def build_graph(collection) -> NetworkGraph:
    """
    Build a NetworkGraph from line features.

    Features with non-line geometry or fewer than two points are skipped.
    Endpoints are snapped to node keys rounded to 6 decimal places.

    Args:
        collection: FeatureCollection mapping, sequence of features, or GeoDataFrame

    Returns:
        NetworkGraph, possibly empty (check ``is_empty`` before analysis)
    """
    features = iter_features(collection)

    node_coords = {}
    node_edges = {}
    edges = {}
    adjacency = nx.MultiGraph()
    skipped = 0
    fallback_id = 0

    for idx, feature in enumerate(features):
        coords = _feature_coords(feature)
        if coords is None:
            skipped += 1
            logger.debug("Skipping feature %d: not a usable LineString", idx)
            continue

        start_key = node_key(coords[0])
        end_key = node_key(coords[-1])

        for key, coord in ((start_key, coords[0]), (end_key, coords[-1])):
            if key not in node_coords:
                node_coords[key] = coord
                node_edges[key] = []
                adjacency.add_node(key, x=coord[0], y=coord[1])

        properties = feature.get('properties')
        if not isinstance(properties, dict):
            properties = {}
        edge_id = properties.get('id')
        if edge_id is None or edge_id == '':
            edge_id = f"edge_{fallback_id}"
            fallback_id += 1
        edge_id = str(edge_id)
        if edge_id in edges:
            suffix = 1
            while f"{edge_id}#{suffix}" in edges:
                suffix += 1
            logger.debug("Duplicate edge id %s renamed to %s#%d", edge_id, edge_id, suffix)
            edge_id = f"{edge_id}#{suffix}"

        quality = _edge_quality(properties.get('quality'))

        edge = Edge(
            id=edge_id,
            start=start_key,
            end=end_key,
            coordinates=tuple(coords),
            length=path_length(coords),
            quality=quality,
            feature_index=idx,
        )
        edges[edge_id] = edge
        adjacency.add_edge(start_key, end_key, key=edge_id)

        node_edges[start_key].append(edge_id)
        node_edges[end_key].append(edge_id)

    nodes = {
        key: Node(id=key, coords=node_coords[key], degree=len(node_edges[key]),
                  edge_ids=tuple(node_edges[key]))
        for key in node_coords
    }

    logger.info("Graph: %d nodes, %d edges (%d features skipped)",
                len(nodes), len(edges), skipped)
    return NetworkGraph(nodes, edges, adjacency, skipped_features=skipped)


def features_from_geodataframe(network_gdf: gpd.GeoDataFrame) -> list:
    """
    Convert a GeoDataFrame of line geometries into GeoJSON-like features in WGS84.

    MultiLineStrings are split into one feature per part.
    """
    gdf = network_gdf
    if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
        gdf = gdf.to_crs(epsg=4326)

    features = []
    for idx, row in gdf.iterrows():
        geom = row.geometry
        if geom is None or geom.is_empty:
            continue

        if isinstance(geom, MultiLineString):
            lines = list(geom.geoms)
        elif isinstance(geom, LineString):
            lines = [geom]
        else:
            continue

        base_id = row['id'] if 'id' in gdf.columns and not pd.isna(row['id']) else idx
        quality = row['quality'] if 'quality' in gdf.columns else None
        if quality is not None and pd.isna(quality):
            quality = None
        elif quality is not None:
            quality = float(quality)

        for part, line in enumerate(lines):
            feature_id = str(base_id) if len(lines) == 1 else f"{base_id}-{part}"
            features.append({
                'type': 'Feature',
                'geometry': {
                    'type': 'LineString',
                    'coordinates': [list(c[:2]) for c in line.coords],
                },
                'properties': {'id': feature_id, 'quality': quality},
            })
    return features


def load_network_from_file(path: str) -> gpd.GeoDataFrame:
    """Load a network from any vector file geopandas can read (GeoJSON, shapefile, zip)."""
    return gpd.read_file(path)
