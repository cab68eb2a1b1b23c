import networkx as nx
import pytest

from network_graph import build_graph
from network_topology import (compute_betweenness, find_bridges_and_articulation_points,
                              find_components, sample_sources)


def simple_graph(graph):
    """networkx Graph with the same nodes and edges (inputs here have no parallel edges)."""
    G = nx.Graph()
    G.add_nodes_from(graph.nodes)
    for edge in graph.edges.values():
        G.add_edge(edge.start, edge.end, id=edge.id)
    return G


# ============================================================================
# Connected components
# ============================================================================

def test_components_partition_nodes(main_with_isolated_features):
    graph = build_graph(main_with_isolated_features)
    result = find_components(graph)

    members = [n for comp in result.components for n in comp.nodes]
    assert len(members) == len(set(members))
    assert set(members) == set(graph.nodes)
    assert sum(comp.size for comp in result.components) == graph.num_nodes


def test_main_component_is_largest(main_with_isolated_features):
    result = find_components(build_graph(main_with_isolated_features))

    assert result.main.size == 10
    assert [c.size for c in result.isolated] == [2]
    assert all(result.main.size >= c.size for c in result.components)


def test_equal_components_keep_traversal_order(make_line, make_collection):
    graph = build_graph(make_collection(
        make_line((0, 0), (1, 0), id='first'),
        make_line((5, 5), (6, 5), id='second'),
        make_line((9, 9), (9, 10), (10, 10), id='third-a'),
        make_line((10, 10), (11, 10), id='third-b'),
    ))
    result = find_components(graph)

    assert [c.size for c in result.components] == [3, 2, 2]
    # the two-node components were discovered as ids 0 and 1, in that order
    assert [c.id for c in result.components] == [2, 0, 1]


def test_empty_graph_has_no_components(make_collection):
    result = find_components(build_graph(make_collection()))
    assert len(result) == 0
    assert result.main is None
    assert result.isolated == ()


# ============================================================================
# Betweenness centrality
# ============================================================================

def test_exact_betweenness_matches_networkx(grid_graph):
    result = compute_betweenness(grid_graph, sample_size=100)
    G = simple_graph(grid_graph)

    assert result.is_exact
    assert result.sample_size == grid_graph.num_nodes

    # networkx halves undirected scores, every pair is counted once per endpoint here
    expected_nodes = nx.betweenness_centrality(G, normalized=False)
    for node_id, value in expected_nodes.items():
        assert result.node(node_id) == pytest.approx(2 * value)

    expected_edges = nx.edge_betweenness_centrality(G, normalized=False)
    for (u, v), value in expected_edges.items():
        edge_id = G.edges[u, v]['id']
        assert result.edge(edge_id) == pytest.approx(2 * value)


def test_path_center_credit(path_graph):
    result = compute_betweenness(path_graph, sample_size=10)
    inner = [n for n, node in path_graph.nodes.items() if node.degree == 2]
    ends = [n for n, node in path_graph.nodes.items() if node.degree == 1]

    # each inner node of a 4-node path sits between 2 ordered pairs per direction
    for node_id in inner:
        assert result.node(node_id) == pytest.approx(4.0)
    for node_id in ends:
        assert result.node(node_id) == 0.0
    assert result.edge('b') == pytest.approx(8.0)
    assert result.edge('a') == pytest.approx(6.0)


def test_parallel_edges_share_credit(make_line, make_collection):
    graph = build_graph(make_collection(
        make_line((0, 0), (1, 0), id='p1'),
        make_line((0, 0), (0.5, 0.5), (1, 0), id='p2'),
        make_line((1, 0), (2, 0), id='tail'),
    ))
    result = compute_betweenness(graph, sample_size=10)

    assert result.edge('p1') == pytest.approx(result.edge('p2'))
    assert result.edge('p1') + result.edge('p2') == pytest.approx(result.edge('tail'))


def test_centrality_values_non_negative_and_normalized(grid_graph):
    result = compute_betweenness(grid_graph, sample_size=4, seed=1)

    assert all(v >= 0 for v in result.node_betweenness.values())
    assert all(v >= 0 for v in result.edge_betweenness.values())

    top_node = max(result.node_betweenness, key=result.node_betweenness.get)
    top_edge = max(result.edge_betweenness, key=result.edge_betweenness.get)
    assert result.normalized_node(top_node) == 1.0
    assert result.normalized_edge(top_edge) == 1.0
    assert all(0 <= result.normalized_node(n) <= 1 for n in grid_graph.nodes)


def test_sampled_centrality_is_scaled(grid_graph):
    result = compute_betweenness(grid_graph, sample_size=3, seed=7)

    assert result.sample_size == 3
    assert result.scale_factor == pytest.approx(3.0)
    assert not result.is_exact


def test_seeded_sampling_is_reproducible(grid_graph):
    first = compute_betweenness(grid_graph, sample_size=3, seed=11)
    second = compute_betweenness(grid_graph, sample_size=3, seed=11)
    pinned = compute_betweenness(grid_graph, sources=first.sources)

    assert first.sources == second.sources
    assert dict(first.node_betweenness) == dict(second.node_betweenness)
    assert dict(first.node_betweenness) == pytest.approx(dict(pinned.node_betweenness))


def test_sample_sources_degenerates_to_all_nodes():
    nodes = ['a', 'b', 'c']
    assert sample_sources(nodes, 3) == nodes
    assert sample_sources(nodes, 30) == nodes
    assert len(set(sample_sources(nodes, 2, seed=0))) == 2


def test_unknown_and_unreachable_sources(make_line, make_collection):
    graph = build_graph(make_collection(
        make_line((0, 0), (1, 0), id='a'),
        make_line((5, 5), (6, 5), id='b'),
    ))
    result = compute_betweenness(graph, sources=['missing'])
    assert result.max_node == 0.0
    assert result.sample_size == 0

    single = compute_betweenness(graph, sample_size=10)
    assert single.max_node == 0.0
    assert single.edge('a') == pytest.approx(2.0)


# ============================================================================
# Bridges and articulation points
# ============================================================================

def test_cycle_has_no_bridges(square_graph):
    result = find_bridges_and_articulation_points(square_graph)
    assert result.bridges == ()
    assert result.articulation_points == ()


def test_path_edges_are_all_bridges(path_graph):
    result = find_bridges_and_articulation_points(path_graph)

    assert sorted(result.bridges) == ['a', 'b', 'c']
    inner = {n for n, node in path_graph.nodes.items() if node.degree == 2}
    assert set(result.articulation_points) == inner
    assert result.is_bridge('b')
    assert not result.is_bridge('zzz')


@pytest.fixture
def barbell_graph(make_line, make_collection):
    """Two triangles joined by a bridge, with a pendant spur and a separate component."""
    return build_graph(make_collection(
        make_line((0, 0), (1, 0), id='t1a'),
        make_line((1, 0), (0, 1), id='t1b'),
        make_line((0, 1), (0, 0), id='t1c'),
        make_line((1, 0), (3, 0), id='link'),
        make_line((3, 0), (4, 0), id='t2a'),
        make_line((4, 0), (4, 1), id='t2b'),
        make_line((4, 1), (3, 0), id='t2c'),
        make_line((4, 1), (5, 2), id='spur'),
        make_line((8, 8), (9, 8), id='far1'),
        make_line((9, 8), (10, 8), id='far2'),
    ))


def test_bridges_disconnect_when_removed(barbell_graph):
    result = find_bridges_and_articulation_points(barbell_graph)
    G = barbell_graph.to_networkx()
    baseline = nx.number_connected_components(G)

    assert set(result.bridges) == {'link', 'spur', 'far1', 'far2'}
    for edge in barbell_graph.edges.values():
        H = G.copy()
        H.remove_edge(edge.start, edge.end, key=edge.id)
        increases = nx.number_connected_components(H) > baseline
        assert increases == result.is_bridge(edge.id), edge.id


def test_articulation_points_disconnect_when_removed(barbell_graph):
    result = find_bridges_and_articulation_points(barbell_graph)
    G = barbell_graph.to_networkx()
    baseline = nx.number_connected_components(G)

    assert len(result.articulation_points) == 4
    for node_id in barbell_graph.nodes:
        H = G.copy()
        H.remove_node(node_id)
        increases = nx.number_connected_components(H) > baseline
        assert increases == result.is_articulation_point(node_id), node_id


def test_parallel_edges_are_not_bridges(make_line, make_collection):
    graph = build_graph(make_collection(
        make_line((0, 0), (1, 0), id='p1'),
        make_line((0, 0), (0.5, 0.5), (1, 0), id='p2'),
        make_line((1, 0), (2, 0), id='tail'),
    ))
    result = find_bridges_and_articulation_points(graph)

    assert result.bridges == ('tail',)
    assert result.articulation_points == (graph.edges['tail'].start,)


def test_deep_path_does_not_recurse(make_line, make_collection):
    n = 3000
    graph = build_graph(make_collection(
        *[make_line((i, 0), (i + 1, 0), id=f's{i}') for i in range(n)]
    ))
    result = find_bridges_and_articulation_points(graph)

    assert len(result.bridges) == n
    assert len(result.articulation_points) == n - 1
