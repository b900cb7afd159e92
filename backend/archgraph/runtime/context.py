from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from archgraph.ir.graph import GraphNode
from archgraph.runtime.layers import RuntimeEdge


@dataclass
class ProcessContext:
    # State threaded through one invocation
    input: Any = None
    output: Optional[Dict[str, Any]] = None
    strict_validation: bool = False

    def input_object(self) -> Optional[Dict[str, Any]]:
        return self.input if isinstance(self.input, dict) else None


@dataclass(frozen=True)
class ExecutionNode:
    id: str
    kind: str
    label: str

    @classmethod
    def from_graph_node(cls, node: GraphNode) -> "ExecutionNode":
        return cls(id=node.id, kind=node.kind, label=node.display_label)

    def to_dict(self) -> dict:
        return {"id": self.id, "kind": self.kind, "label": self.label}


@dataclass
class GraphExecutionContext:
    """Drawn-edge neighbourhood of the nodes being executed."""
    node_by_id: Dict[str, GraphNode] = field(default_factory=dict)
    incoming_by_id: Dict[str, List[str]] = field(default_factory=dict)
    outgoing_by_id: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def build(cls, nodes: List[GraphNode], edges: List[RuntimeEdge]) -> "GraphExecutionContext":
        node_by_id = {node.id: node for node in nodes}
        incoming: Dict[str, List[str]] = {node.id: [] for node in nodes}
        outgoing: Dict[str, List[str]] = {node.id: [] for node in nodes}

        for edge in edges:
            if edge.source not in node_by_id or edge.target not in node_by_id:
                continue
            outgoing[edge.source].append(edge.target)
            incoming[edge.target].append(edge.source)

        return cls(node_by_id=node_by_id, incoming_by_id=incoming, outgoing_by_id=outgoing)


@dataclass
class RuntimeResponse:
    status: int
    body: Dict[str, Any]

    def to_dict(self) -> dict:
        return {"status": self.status, "body": self.body}


@dataclass
class RuntimeFlowResult:
    api_node: ExecutionNode
    final_node: ExecutionNode
    execution_order: List[ExecutionNode]
    response: RuntimeResponse

    def to_dict(self) -> dict:
        return {
            "apiNode": self.api_node.to_dict(),
            "finalNode": self.final_node.to_dict(),
            "executionOrder": [node.to_dict() for node in self.execution_order],
            "response": self.response.to_dict(),
        }
