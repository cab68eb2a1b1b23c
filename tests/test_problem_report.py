import pytest

from analysis_config import AnalysisConfig
from geometry_quality import analyze_geometry
from network_graph import build_graph
from network_topology import find_bridges_and_articulation_points, find_components
from problem_report import (SEVERITY_BY_TYPE, BoundaryFilter, Problem, ProblemType, Severity,
                            consolidate_problems, problems_to_geodataframe)

TYPE_ORDER = list(ProblemType)


def run(graph, config=None):
    config = config or AnalysisConfig()
    return consolidate_problems(
        graph,
        find_components(graph),
        find_bridges_and_articulation_points(graph),
        analyze_geometry(graph, config),
        config,
    )


def of_type(problems, problem_type):
    return [p for p in problems if p.type is problem_type]


@pytest.fixture
def frame_features(make_line):
    """A 10x10 loop with a node halfway up its western side."""
    return [
        make_line((0, 0), (10, 0), id='south'),
        make_line((10, 0), (10, 10), id='east'),
        make_line((10, 10), (0, 10), id='north'),
        make_line((0, 10), (0, 5), id='west-upper'),
        make_line((0, 5), (0, 0), id='west-lower'),
    ]


def test_every_type_has_a_severity():
    assert set(SEVERITY_BY_TYPE) == set(ProblemType)
    assert SEVERITY_BY_TYPE[ProblemType.ISOLATED_COMPONENT] is Severity.ERROR
    assert SEVERITY_BY_TYPE[ProblemType.BRIDGE] is Severity.INFO
    assert SEVERITY_BY_TYPE[ProblemType.DEAD_END] is Severity.WARNING
    assert ProblemType.ZIGZAG.label == 'Zigzag Patterns'


def test_boundary_dead_end_is_suppressed(frame_features, make_line, make_collection):
    graph = build_graph(make_collection(*frame_features, make_line((0, 5), (0.1, 5), id='spur')))
    assert of_type(run(graph), ProblemType.DEAD_END) == []


def test_non_finite_feature_leaves_dead_ends_unchanged(frame_features, make_line, make_collection):
    features = [*frame_features, make_line((0, 5), (0.1, 5), id='spur')]
    broken = {
        'type': 'Feature',
        'geometry': {'type': 'LineString', 'coordinates': [[float('nan'), 52.505], [float('nan'), 52.5051]]},
        'properties': {'id': 'broken'},
    }
    clean = build_graph(make_collection(*features))
    dirty = build_graph(make_collection(*features, broken))

    assert of_type(run(dirty), ProblemType.DEAD_END) == []
    assert dirty.total_length() == pytest.approx(clean.total_length())


def test_internal_dead_end_is_reported(frame_features, make_line, make_collection):
    graph = build_graph(make_collection(*frame_features, make_line((0, 5), (5, 5), id='spur')))
    dead_ends = of_type(run(graph), ProblemType.DEAD_END)

    spur_end = graph.edges['spur'].end
    assert [p.node_id for p in dead_ends] == [spur_end]
    assert dead_ends[0].coords == graph.nodes[spur_end].coords
    assert dead_ends[0].severity is Severity.WARNING
    assert 'Dead-end' in dead_ends[0].message


def test_dead_ends_are_capped(frame_features, make_line, make_collection):
    hub = [make_line((0, 5), (5, 5), id='hub')]
    leaves = [make_line((5, 5), leaf, id=f'leaf{i}')
              for i, leaf in enumerate([(4, 4), (6, 4), (4, 6), (6, 6), (5, 7)])]
    graph = build_graph(make_collection(*frame_features, *hub, *leaves))

    assert len(of_type(run(graph), ProblemType.DEAD_END)) == 5
    capped = of_type(run(graph, AnalysisConfig(max_dead_ends=3)), ProblemType.DEAD_END)
    assert [p.node_id for p in capped] == [graph.edges[f'leaf{i}'].end for i in range(3)]


def test_boundary_filter_ignores_flat_axis():
    flat = BoundaryFilter((0.0, 52.5, 1.0, 52.5), margin=0.02)
    assert not flat.is_on_boundary((0.5, 52.5))
    assert flat.is_on_boundary((0.0, 52.5))
    assert not BoundaryFilter(None).is_on_boundary((0.0, 0.0))


def test_isolated_component_reported_once(main_with_isolated_features, grid_point):
    graph = build_graph(main_with_isolated_features)
    isolated = of_type(run(graph), ProblemType.ISOLATED_COMPONENT)

    assert len(isolated) == 1
    problem = isolated[0]
    assert problem.size == 2
    assert problem.severity is Severity.ERROR
    assert problem.message == 'Isolated subgraph with 2 nodes - disconnected from main network'
    a, b = grid_point(20, 20), grid_point(21, 20)
    assert problem.coords == pytest.approx(((a[0] + b[0]) / 2, (a[1] + b[1]) / 2))


def test_bridge_and_articulation_caps(make_line, make_collection):
    n = 30
    graph = build_graph(make_collection(
        *[make_line((i, 0), (i + 1, 0), id=f's{i}') for i in range(n)]
    ))
    problems = run(graph)

    bridges = of_type(problems, ProblemType.BRIDGE)
    points = of_type(problems, ProblemType.ARTICULATION_POINT)
    assert len(bridges) == 15
    assert len(points) == 10
    assert all(p.severity is Severity.INFO for p in bridges + points)
    for p in bridges:
        assert p.coords == graph.edges[p.edge_id].midpoint

    uncapped = run(graph, AnalysisConfig(max_bridges=100, max_articulation_points=100))
    assert len(of_type(uncapped, ProblemType.BRIDGE)) == n
    assert len(of_type(uncapped, ProblemType.ARTICULATION_POINT)) == n - 1


def test_geometry_problems_and_order(frame_features, make_line, make_collection):
    graph = build_graph(make_collection(
        *frame_features,
        make_line((0, 5), (5, 5), id='spur'),
        make_line((5, 5), (5, 5.02), id='stub'),
        make_line((20, 20), (21, 20), (21, 21), (22, 21), (22, 22), id='stairs'),
    ))
    problems = run(graph)
    types = {p.type for p in problems}

    assert {ProblemType.DEAD_END, ProblemType.ISOLATED_COMPONENT, ProblemType.BRIDGE,
            ProblemType.SHORT_STUB, ProblemType.ZIGZAG} <= types
    indices = [TYPE_ORDER.index(p.type) for p in problems]
    assert indices == sorted(indices)

    stub = of_type(problems, ProblemType.SHORT_STUB)[0]
    assert stub.edge_id == 'stub'
    assert stub.length == pytest.approx(2.2, abs=0.1)
    assert 'Very short segment (2.2m)' in stub.message

    zigzag = of_type(problems, ProblemType.ZIGZAG)[0]
    assert zigzag.coords == graph.edges['stairs'].coordinates[2]


def test_missing_stage_results_contribute_nothing(path_graph):
    problems = consolidate_problems(path_graph)
    assert all(p.type is ProblemType.DEAD_END for p in problems)


def test_problem_dict_omits_unset_fields():
    problem = Problem(type=ProblemType.BRIDGE, coords=(13.4, 52.5), message='m', edge_id='e1')
    assert problem.to_dict() == {
        'type': 'bridge',
        'severity': 'info',
        'coords': [13.4, 52.5],
        'message': 'm',
        'edge_id': 'e1',
    }


def test_problems_geodataframe(main_with_isolated_features):
    problems = run(build_graph(main_with_isolated_features))
    gdf = problems_to_geodataframe(problems)

    assert len(gdf) == len(problems)
    assert gdf.crs.to_epsg() == 4326
    assert set(gdf['type']) == {p.type.value for p in problems}

    empty = problems_to_geodataframe(())
    assert len(empty) == 0
    assert 'severity' in empty.columns
