"""
Layer classification and dependency-edge synthesis.

Layer order is fixed: API(0) -> Process(1) -> Data(2) -> Infra/Queue(3).
Every node of layer L gets an edge to every node of layer L+1 so that
unconnected nodes in the same batch still respect that direction.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, assert_never

from archgraph.ir.graph import GraphCollection, GraphNode
from archgraph.ir.nodes import (
    ApiBinding,
    DatabaseBlock,
    InfraBlock,
    NodeData,
    ProcessDefinition,
    QueueBlock,
    ServiceBoundaryBlock,
)

logger = logging.getLogger(__name__)

API_LAYER = 0
PROCESS_LAYER = 1
DATA_LAYER = 2
INFRA_LAYER = 3


@dataclass(frozen=True)
class RuntimeEdge:
    source: str
    target: str


@dataclass
class DependencyGraph:
    """Flattened, layered nodes plus the merged edge set used for scheduling."""
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[RuntimeEdge] = field(default_factory=list)


def layer_of(data: NodeData) -> Optional[int]:
    match data:
        case ApiBinding():
            return API_LAYER
        case ProcessDefinition():
            return PROCESS_LAYER
        case DatabaseBlock():
            return DATA_LAYER
        case InfraBlock() | QueueBlock():
            return INFRA_LAYER
        case ServiceBoundaryBlock():
            return None
        case _:
            assert_never(data)


def flatten_nodes(graphs: GraphCollection) -> List[GraphNode]:
    """First occurrence of a graph id wins; layer-less nodes are dropped."""
    seen: Dict[str, GraphNode] = {}
    for _, state in graphs.tabs():
        for node in state.nodes:
            if layer_of(node.data) is None:
                continue
            if node.id not in seen:
                seen[node.id] = node
    return list(seen.values())


def collect_drawn_edges(graphs: GraphCollection) -> List[RuntimeEdge]:
    return [
        RuntimeEdge(source=edge.source, target=edge.target)
        for edge in graphs.all_edges()
    ]


def build_dependency_edges(
    nodes: List[GraphNode],
    drawn_edges: List[RuntimeEdge],
) -> List[RuntimeEdge]:
    layer_by_id = {node.id: layer_of(node.data) for node in nodes}

    edges = [
        edge
        for edge in drawn_edges
        if layer_by_id.get(edge.source) is not None
        and layer_by_id.get(edge.target) is not None
    ]

    buckets: Dict[int, List[str]] = {
        API_LAYER: [],
        PROCESS_LAYER: [],
        DATA_LAYER: [],
        INFRA_LAYER: [],
    }
    for node in nodes:
        layer = layer_by_id[node.id]
        if layer is not None:
            buckets[layer].append(node.id)

    for layer in (API_LAYER, PROCESS_LAYER, DATA_LAYER):
        for source in buckets[layer]:
            for target in buckets[layer + 1]:
                edges.append(RuntimeEdge(source=source, target=target))

    return edges


def build_dependency_graph(graphs: GraphCollection) -> DependencyGraph:
    nodes = flatten_nodes(graphs)
    edges = build_dependency_edges(nodes, collect_drawn_edges(graphs))
    logger.debug("Dependency graph: %d nodes, %d edges", len(nodes), len(edges))
    return DependencyGraph(nodes=nodes, edges=edges)
