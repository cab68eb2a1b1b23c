"""
Reference Network Comparison Module
Measures how much of an inspected network is matched by a reference network
(e.g. an OpenStreetMap extract). The match percentage feeds the completeness
score of the quality scorecard.
"""

import logging

import geopandas as gpd
from shapely.ops import unary_union

logger = logging.getLogger(__name__)


def to_geodataframe(network) -> gpd.GeoDataFrame:
    """Accept a GeoDataFrame, FeatureCollection mapping or list of features."""
    if isinstance(network, gpd.GeoDataFrame):
        return network
    if isinstance(network, dict):
        network = network.get('features', [])
    gdf = gpd.GeoDataFrame.from_features(list(network), crs="EPSG:4326")
    return gdf[gdf.geometry.notna()]


def _local_projection(network: gpd.GeoDataFrame, reference: gpd.GeoDataFrame):
    """Project both networks to the UTM zone of the inspected network."""
    if network.crs is None:
        network = network.set_crs(epsg=4326)
    if reference.crs is None:
        reference = reference.set_crs(epsg=4326)
    if reference.crs != network.crs:
        reference = reference.to_crs(network.crs)

    utm_crs = network.estimate_utm_crs()
    return network.to_crs(utm_crs), reference.to_crs(utm_crs)


def compare_with_reference(network, reference, buffer_m: float = 5.0) -> dict:
    """
    Compare an inspected network with a reference network.

    Args:
        network: Inspected network (GeoDataFrame or GeoJSON-like features)
        reference: Reference network in the same shapes
        buffer_m: Matching tolerance in meters

    Returns:
        Dictionary with match ratios, lengths and edge counts
    """
    net = to_geodataframe(network)
    ref = to_geodataframe(reference)

    if len(net) == 0 or len(ref) == 0:
        return {
            'reference_available': len(ref) > 0,
            'match_ratio': 0.0,
            'reference_match_ratio': 0.0,
            'length_matched_ratio': 0.0,
            'total_edges': len(net),
            'reference_edges': len(ref),
        }

    net_proj, ref_proj = _local_projection(net, ref)

    ref_union = unary_union(ref_proj.geometry.buffer(buffer_m))
    net_union = unary_union(net_proj.geometry.buffer(buffer_m))

    matched = net_proj[net_proj.geometry.intersects(ref_union)]
    ref_matched = ref_proj[ref_proj.geometry.intersects(net_union)]

    total_length = net_proj.geometry.length.sum()
    results = {
        'reference_available': True,
        'match_ratio': len(matched) / len(net_proj),
        'reference_match_ratio': len(ref_matched) / len(ref_proj),
        'length_matched_ratio': matched.geometry.length.sum() / total_length if total_length > 0 else 0.0,
        'total_edges': len(net_proj),
        'reference_edges': len(ref_proj),
    }
    logger.info("Reference comparison: %d/%d segments matched within %.1fm",
                len(matched), len(net_proj), buffer_m)
    return results


def reference_match_percentage(network, reference, buffer_m: float = 5.0) -> float:
    """Percentage (0-100) of network segments that lie within buffer_m of the reference."""
    return compare_with_reference(network, reference, buffer_m)['match_ratio'] * 100
