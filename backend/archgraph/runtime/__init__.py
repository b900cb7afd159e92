from archgraph.runtime.context import ExecutionNode, RuntimeFlowResult, RuntimeResponse
from archgraph.runtime.engine import RuntimeEngine
from archgraph.runtime.layers import build_dependency_edges, layer_of
from archgraph.runtime.routing import match_route, normalize_path
from archgraph.runtime.scheduler import reachable_subgraph, topological_order
