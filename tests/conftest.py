"""
Test Configuration and Fixtures
================================

Shared pytest fixtures for the pedestrian network inspector.

Networks are built on a small grid of WGS84 coordinates; one grid unit is
0.001 degrees (about 68 m east-west and 111 m north-south near Berlin).

Usage:
    pytest tests/                    # Run all tests
    pytest tests/ -k "topology"      # Run only topology tests
"""

import pytest

from network_graph import build_graph

ORIGIN = (13.40, 52.50)
STEP = 0.001


def pt(i, j):
    """Grid point (i, j) as a [lon, lat] pair."""
    return [round(ORIGIN[0] + i * STEP, 9), round(ORIGIN[1] + j * STEP, 9)]


def line(*points, id=None, quality=None):
    """LineString feature through grid points."""
    properties = {}
    if id is not None:
        properties['id'] = id
    if quality is not None:
        properties['quality'] = quality
    return {
        'type': 'Feature',
        'geometry': {'type': 'LineString', 'coordinates': [pt(*p) for p in points]},
        'properties': properties,
    }


def collection(*features):
    return {'type': 'FeatureCollection', 'features': list(features)}


@pytest.fixture
def make_line():
    return line


@pytest.fixture
def make_collection():
    return collection


@pytest.fixture
def grid_point():
    return pt


@pytest.fixture
def square_features():
    """2x2 grid: four nodes joined in a single cycle."""
    return collection(
        line((0, 0), (1, 0), id='a'),
        line((1, 0), (1, 1), id='b'),
        line((1, 1), (0, 1), id='c'),
        line((0, 1), (0, 0), id='d'),
    )


@pytest.fixture
def path_features():
    """The square with edge 'd' removed: a three edge path."""
    return collection(
        line((0, 0), (1, 0), id='a'),
        line((1, 0), (1, 1), id='b'),
        line((1, 1), (0, 1), id='c'),
    )


def ladder(length=5, prefix='m'):
    """Two parallel rails of `length` nodes joined by rungs at every node."""
    features = []
    for j in (0, 1):
        for i in range(length - 1):
            features.append(line((i, j), (i + 1, j), id=f'{prefix}-rail{j}-{i}'))
    for i in range(length):
        features.append(line((i, 0), (i, 1), id=f'{prefix}-rung-{i}'))
    return features


@pytest.fixture
def ladder_features():
    """10-node ladder, fully connected, no bridges."""
    return collection(*ladder())


@pytest.fixture
def main_with_isolated_features():
    """10-node ladder plus one disconnected single-edge component."""
    return collection(*ladder(), line((20, 20), (21, 20), id='island'))


@pytest.fixture
def grid_features():
    """3x3 grid of nodes (12 edges), with ties between shortest paths."""
    features = []
    for j in range(3):
        for i in range(2):
            features.append(line((i, j), (i + 1, j), id=f'h{i}{j}'))
    for i in range(3):
        for j in range(2):
            features.append(line((i, j), (i, j + 1), id=f'v{i}{j}'))
    return collection(*features)


@pytest.fixture
def square_graph(square_features):
    return build_graph(square_features)


@pytest.fixture
def path_graph(path_features):
    return build_graph(path_features)


@pytest.fixture
def grid_graph(grid_features):
    return build_graph(grid_features)
