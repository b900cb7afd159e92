from typing import Iterator, List, Optional, Tuple

from pydantic import Field, model_validator

from archgraph.ir.nodes import CamelModel, NodeData

# Fixed iteration order for graph tabs
TAB_ORDER = ("api", "infra", "database", "functions", "agent", "deploy")


class GraphNode(CamelModel):
    id: str = Field(min_length=1)
    type: Optional[str] = None
    data: NodeData

    @property
    def kind(self) -> str:
        return self.data.kind

    @property
    def display_label(self) -> str:
        return self.data.label or self.id


class GraphEdge(CamelModel):
    id: Optional[str] = None
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)


class GraphState(CamelModel):
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)


class GraphCollection(CamelModel):
    """
    One editor snapshot: independent node/edge sets per tab.

    Tabs are an organisational convenience only; consumers flatten them
    into one logical graph, always walking TAB_ORDER.
    """

    api: Optional[GraphState] = None
    infra: Optional[GraphState] = None
    database: Optional[GraphState] = None
    functions: Optional[GraphState] = None
    agent: Optional[GraphState] = None
    deploy: Optional[GraphState] = None

    def tabs(self) -> Iterator[Tuple[str, GraphState]]:
        for name in TAB_ORDER:
            state = getattr(self, name)
            if state is not None:
                yield name, state

    def tab(self, name: str) -> GraphState:
        return getattr(self, name) or GraphState()

    def all_nodes(self) -> List[GraphNode]:
        return [node for _, state in self.tabs() for node in state.nodes]

    def all_edges(self) -> List[GraphEdge]:
        return [edge for _, state in self.tabs() for edge in state.edges]

    def has_nodes(self) -> bool:
        return any(state.nodes for _, state in self.tabs())


class RuntimeStartPayload(CamelModel):
    graphs: GraphCollection

    @model_validator(mode="after")
    def require_nodes(self) -> "RuntimeStartPayload":
        if not self.graphs.has_nodes():
            raise ValueError("At least one graph tab with nodes is required")
        return self
