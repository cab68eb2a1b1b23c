"""
Network Topology Module
Connected components, sampled betweenness centrality (Brandes) and
bridge / articulation point detection (Tarjan) over a NetworkGraph.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Optional, Sequence

import numpy as np

from network_graph import NetworkGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Component:
    id: int
    nodes: tuple

    @property
    def size(self) -> int:
        return len(self.nodes)


@dataclass(frozen=True)
class ComponentResult:
    """Components sorted by size, largest (main) first."""
    components: tuple = ()

    @property
    def main(self) -> Optional[Component]:
        return self.components[0] if self.components else None

    @property
    def isolated(self) -> tuple:
        return self.components[1:]

    def __len__(self) -> int:
        return len(self.components)


def find_components(graph: NetworkGraph) -> ComponentResult:
    """
    Partition the graph into connected components using breadth-first search.

    Components keep their traversal order when sizes tie, so the output is
    deterministic for a given input.
    """
    visited = set()
    found = []

    for start in graph.nodes:
        if start in visited:
            continue

        members = []
        queue = deque([start])
        visited.add(start)
        while queue:
            node_id = queue.popleft()
            members.append(node_id)
            for neighbor, _ in graph.neighbors(node_id):
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)

        found.append(Component(id=len(found), nodes=tuple(members)))

    # sorted() is stable, equal sizes stay in traversal order
    components = tuple(sorted(found, key=lambda c: c.size, reverse=True))

    if len(components) > 1:
        logger.info("Found %d components, %d isolated", len(components), len(components) - 1)
    return ComponentResult(components)


@dataclass(frozen=True)
class CentralityResult:
    """
    Betweenness centrality scores.

    Scores come from a sample of source nodes and are rescaled by
    total_nodes / sample_size, so unless every node was a source they are an
    estimate whose variance shrinks as the sample grows.
    """
    node_betweenness: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    edge_betweenness: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    max_node: float = 0.0
    max_edge: float = 0.0
    sources: tuple = ()
    scale_factor: float = 1.0

    @property
    def sample_size(self) -> int:
        return len(self.sources)

    @property
    def is_exact(self) -> bool:
        return self.scale_factor == 1.0

    def node(self, node_id: str) -> float:
        return self.node_betweenness.get(node_id, 0.0)

    def edge(self, edge_id: str) -> float:
        return self.edge_betweenness.get(edge_id, 0.0)

    def normalized_node(self, node_id: str) -> float:
        return self.node(node_id) / self.max_node if self.max_node > 0 else 0.0

    def normalized_edge(self, edge_id: str) -> float:
        return self.edge(edge_id) / self.max_edge if self.max_edge > 0 else 0.0


def sample_sources(node_ids: Sequence[str], sample_size: int,
                   seed: Optional[int] = None) -> list:
    """Pick up to sample_size distinct source nodes, reproducibly when seeded."""
    node_ids = list(node_ids)
    if sample_size >= len(node_ids):
        return node_ids
    rng = np.random.default_rng(seed)
    picks = rng.choice(len(node_ids), size=sample_size, replace=False)
    return [node_ids[i] for i in picks]


def _single_source_paths(graph: NetworkGraph, source: str):
    """BFS from source tracking shortest-path counts and (predecessor, edge) pairs."""
    sigma = {source: 1.0}
    distance = {source: 0}
    predecessors = {source: []}
    order = []

    queue = deque([source])
    while queue:
        v = queue.popleft()
        order.append(v)
        for w, edge_id in graph.neighbors(v):
            if w not in distance:
                distance[w] = distance[v] + 1
                sigma[w] = 0.0
                predecessors[w] = []
                queue.append(w)
            if distance[w] == distance[v] + 1:
                sigma[w] += sigma[v]
                predecessors[w].append((v, edge_id))

    return order, sigma, predecessors


def compute_betweenness(graph: NetworkGraph,
                        sample_size: int = 30,
                        seed: Optional[int] = None,
                        sources: Optional[Sequence[str]] = None) -> CentralityResult:
    """
    Compute node and edge betweenness centrality with Brandes' algorithm.

    Args:
        graph: Network to analyze
        sample_size: Number of source nodes to sample; at or above the node
            count the computation is exact
        seed: Seed for source sampling
        sources: Explicit source nodes, overrides sample_size and seed

    Returns:
        CentralityResult with scores scaled by total_nodes / number_of_sources
    """
    node_scores = {node_id: 0.0 for node_id in graph.nodes}
    edge_scores = {edge_id: 0.0 for edge_id in graph.edges}

    if not node_scores:
        return CentralityResult()

    if sources is None:
        sources = sample_sources(list(graph.nodes), sample_size, seed)
    else:
        sources = [s for s in sources if s in node_scores]
    if not sources:
        return CentralityResult(MappingProxyType(node_scores), MappingProxyType(edge_scores))

    for source in sources:
        order, sigma, predecessors = _single_source_paths(graph, source)

        delta = dict.fromkeys(order, 0.0)
        # BFS order is non-decreasing in distance, reversed it is non-increasing
        for w in reversed(order):
            coeff = (1.0 + delta[w]) / sigma[w]
            for v, edge_id in predecessors[w]:
                credit = sigma[v] * coeff
                delta[v] += credit
                edge_scores[edge_id] += credit
            if w != source:
                node_scores[w] += delta[w]

    scale = len(node_scores) / len(sources)
    if scale != 1.0:
        node_scores = {k: v * scale for k, v in node_scores.items()}
        edge_scores = {k: v * scale for k, v in edge_scores.items()}

    result = CentralityResult(
        node_betweenness=MappingProxyType(node_scores),
        edge_betweenness=MappingProxyType(edge_scores),
        max_node=max(node_scores.values(), default=0.0),
        max_edge=max(edge_scores.values(), default=0.0),
        sources=tuple(sources),
        scale_factor=scale,
    )
    logger.info("Centrality computed from %d sources: max node=%.2f, max edge=%.2f",
                len(sources), result.max_node, result.max_edge)
    return result


@dataclass(frozen=True)
class TopologyResult:
    bridges: tuple = ()
    articulation_points: tuple = ()
    _bridge_set: frozenset = field(init=False, repr=False, compare=False)
    _ap_set: frozenset = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, '_bridge_set', frozenset(self.bridges))
        object.__setattr__(self, '_ap_set', frozenset(self.articulation_points))

    def is_bridge(self, edge_id: str) -> bool:
        return edge_id in self._bridge_set

    def is_articulation_point(self, node_id: str) -> bool:
        return node_id in self._ap_set


def find_bridges_and_articulation_points(graph: NetworkGraph) -> TopologyResult:
    """
    Find bridges and articulation points with Tarjan's low-link DFS.

    The DFS uses an explicit stack and covers every component. The tree edge
    back to the parent is skipped by edge id, not by node, so a parallel edge
    counts as a back edge and parallel pairs are never reported as bridges.
    """
    disc = {}
    low = {}
    bridges = []
    articulation = {}
    time = 0

    for root in graph.nodes:
        if root in disc:
            continue

        disc[root] = low[root] = time
        time += 1
        root_children = 0
        # frame: (node, edge used to reach it, parent, neighbor iterator)
        stack = [(root, None, None, graph.neighbors(root))]

        while stack:
            u, via_edge, parent, neighbors = stack[-1]
            advanced = False

            for v, edge_id in neighbors:
                if edge_id == via_edge:
                    continue
                if v not in disc:
                    disc[v] = low[v] = time
                    time += 1
                    if u == root:
                        root_children += 1
                    stack.append((v, edge_id, u, graph.neighbors(v)))
                    advanced = True
                    break
                low[u] = min(low[u], disc[v])

            if advanced:
                continue

            stack.pop()
            if parent is None:
                continue

            low[parent] = min(low[parent], low[u])
            if low[u] > disc[parent]:
                bridges.append(via_edge)
            if parent != root and low[u] >= disc[parent]:
                articulation[parent] = None

        if root_children > 1:
            articulation[root] = None

    logger.info("Found %d bridges, %d articulation points", len(bridges), len(articulation))
    return TopologyResult(bridges=tuple(bridges), articulation_points=tuple(articulation))
