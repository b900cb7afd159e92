import logging
from typing import Any, Callable, List, Optional

from archgraph.adapters.persistence import PersistencePool
from archgraph.adapters.queue import QueueAdapter, create_queue_adapter
from archgraph.config import RuntimeSettings
from archgraph.ir.errors import InvalidFlowError, RouteNotFoundError
from archgraph.ir.graph import GraphCollection
from archgraph.ir.nodes import ApiBinding
from archgraph.runtime.context import (
    ExecutionNode,
    GraphExecutionContext,
    ProcessContext,
    RuntimeFlowResult,
    RuntimeResponse,
)
from archgraph.runtime.executor import DatabaseIndex, NodeExecutor
from archgraph.runtime.layers import build_dependency_graph, collect_drawn_edges
from archgraph.runtime.response import compose_response_body
from archgraph.runtime.routing import matches_route, normalize_path
from archgraph.runtime.scheduler import reachable_subgraph, topological_order

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ExecutionNode, int, int], None]

REST_NODE_TYPES = (None, "api_rest", "api_binding")


class RuntimeEngine:
    """
    Executes a graph snapshot.

    The engine works on its own deep copy of `graphs`. The persistence pool
    is owned by the caller so adapters can be shared across engines.
    """

    def __init__(
        self,
        graphs: GraphCollection,
        pool: Optional[PersistencePool] = None,
        queue: Optional[QueueAdapter] = None,
        settings: Optional[RuntimeSettings] = None,
    ):
        self.graphs = graphs.model_copy(deep=True)
        self.settings = settings or RuntimeSettings.from_env()
        self.pool = pool if pool is not None else PersistencePool()
        self.queue = queue if queue is not None else create_queue_adapter(self.settings)
        self.executor = NodeExecutor(self.pool, self.queue, self.settings)
        self.dependencies = build_dependency_graph(self.graphs)
        self.drawn_edges = collect_drawn_edges(self.graphs)

    async def start(
        self,
        on_order: Optional[ProgressCallback] = None,
        on_execute: Optional[ProgressCallback] = None,
    ) -> List[ExecutionNode]:
        """Run the whole layered graph once, without input validation."""
        nodes = self.dependencies.nodes
        ordered = topological_order(nodes, self.dependencies.edges)
        graph = GraphExecutionContext.build(nodes, self.drawn_edges)
        databases = DatabaseIndex.build(ordered)
        context = ProcessContext(input=None, strict_validation=False)
        execution_order = [ExecutionNode.from_graph_node(node) for node in ordered]
        total = len(execution_order)

        logger.info(
            "Execution order: %s",
            ", ".join(f"{node.kind}:{node.id}" for node in execution_order),
        )
        for index, node in enumerate(execution_order):
            if on_order:
                on_order(node, index, total)

        for index, node in enumerate(ordered):
            logger.info("Executing %s:%s", node.kind, node.id)
            if on_execute:
                on_execute(execution_order[index], index, total)
            await self.executor.execute(node, context, databases, graph)

        return execution_order

    def find_rest_api_node(self, method: str, path: str) -> Optional[ExecutionNode]:
        method = method.upper()
        path = normalize_path(path)

        for node in self.dependencies.nodes:
            api = node.data
            if not isinstance(api, ApiBinding) or api.protocol != "rest":
                continue
            if node.type not in REST_NODE_TYPES:
                continue

            route = (api.route or "").strip()
            api_method = (api.method or "").upper()
            if not route or not api_method:
                continue
            if api_method == method and matches_route(route, path):
                return ExecutionNode.from_graph_node(node)

        return None

    async def execute_rest_request(
        self,
        method: str,
        path: str,
        payload: Any = None,
    ) -> RuntimeFlowResult:
        api_node = self.find_rest_api_node(method, path)
        if api_node is None:
            raise RouteNotFoundError(method.upper(), normalize_path(path))
        return await self.execute_from_api_node(api_node.id, payload)

    async def execute_from_api_node(
        self,
        api_node_id: str,
        payload: Any = None,
    ) -> RuntimeFlowResult:
        nodes = self.dependencies.nodes
        node_by_id = {node.id: node for node in nodes}

        flow_nodes, flow_edges = reachable_subgraph(
            api_node_id, nodes, self.dependencies.edges
        )
        flow_ids = {node.id for node in flow_nodes}
        # Queue modes look at drawn edges only, restricted to this flow
        flow_drawn = [
            edge for edge in self.drawn_edges
            if edge.source in flow_ids and edge.target in flow_ids
        ]
        graph = GraphExecutionContext.build(flow_nodes, flow_drawn)
        ordered = topological_order(flow_nodes, flow_edges)

        if not ordered:
            raise InvalidFlowError(f'No executable flow found for API node "{api_node_id}"')

        final_node = ordered[-1]
        api_node = node_by_id.get(api_node_id)
        if api_node is None or not isinstance(api_node.data, ApiBinding):
            raise InvalidFlowError(f'API node "{api_node_id}" is invalid or missing')
        api = api_node.data

        context = ProcessContext(input=payload, strict_validation=True)
        databases = DatabaseIndex.build(nodes)

        for node in ordered:
            logger.info("Executing %s:%s", node.kind, node.id)
            await self.executor.execute(node, context, databases, graph)

        status = api.responses.success.status_code if api.responses else 200
        body = compose_response_body(api, final_node, payload, context.output)

        return RuntimeFlowResult(
            api_node=ExecutionNode.from_graph_node(api_node),
            final_node=ExecutionNode.from_graph_node(final_node),
            execution_order=[ExecutionNode.from_graph_node(node) for node in ordered],
            response=RuntimeResponse(status=status, body=body),
        )
