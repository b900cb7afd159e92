"""
Execution ordering (Kahn's algorithm) and reachability extraction.
"""

import heapq
import logging
from collections import deque
from typing import Dict, Iterable, List, Set, Tuple

from archgraph.ir.graph import GraphNode
from archgraph.runtime.layers import RuntimeEdge

logger = logging.getLogger(__name__)


def _adjacency(
    node_ids: Iterable[str],
    edges: Iterable[RuntimeEdge],
    drop_self_loops: bool = True,
) -> Dict[str, Set[str]]:
    adjacency: Dict[str, Set[str]] = {node_id: set() for node_id in node_ids}
    for edge in edges:
        if edge.source not in adjacency or edge.target not in adjacency:
            continue
        if drop_self_loops and edge.source == edge.target:
            continue
        adjacency[edge.source].add(edge.target)
    return adjacency


def topological_order(
    nodes: List[GraphNode],
    edges: Iterable[RuntimeEdge],
) -> List[GraphNode]:
    """
    Order nodes so every edge source precedes its target.

    Ties among ready nodes are broken by smallest node id. A cycle never
    raises: unresolved nodes are appended id-sorted after a warning.
    """
    node_by_id = {node.id: node for node in nodes}
    adjacency = _adjacency(node_by_id, edges)

    in_degree = {node_id: 0 for node_id in node_by_id}
    for targets in adjacency.values():
        for target in targets:
            in_degree[target] += 1

    ready = [node_id for node_id, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    ordered: List[GraphNode] = []
    while ready:
        current = heapq.heappop(ready)
        ordered.append(node_by_id[current])
        for neighbor in adjacency[current]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                heapq.heappush(ready, neighbor)

    if len(ordered) < len(node_by_id):
        placed = {node.id for node in ordered}
        unresolved = sorted(node_id for node_id in node_by_id if node_id not in placed)
        logger.warning(
            "Cycle or unresolved dependencies detected; appending %d remaining nodes: %s",
            len(unresolved),
            ", ".join(unresolved),
        )
        ordered.extend(node_by_id[node_id] for node_id in unresolved)

    return ordered


def reachable_subgraph(
    start_id: str,
    nodes: List[GraphNode],
    edges: List[RuntimeEdge],
) -> Tuple[List[GraphNode], List[RuntimeEdge]]:
    """Forward closure from start_id, with the edges internal to it."""
    adjacency = _adjacency((node.id for node in nodes), edges, drop_self_loops=False)

    reachable: Set[str] = set()
    queue = deque([start_id])
    while queue:
        current = queue.popleft()
        if current in reachable or current not in adjacency:
            continue
        reachable.add(current)
        for next_id in adjacency[current]:
            if next_id not in reachable:
                queue.append(next_id)

    flow_nodes = [node for node in nodes if node.id in reachable]
    flow_edges = [
        edge for edge in edges
        if edge.source in reachable and edge.target in reachable
    ]
    return flow_nodes, flow_edges
