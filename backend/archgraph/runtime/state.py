"""
Process-wide holder for the graph snapshot served by the /run routes.
"""

from datetime import datetime, timezone
from threading import Lock
from typing import Optional

from archgraph.ir.graph import GraphCollection

_lock = Lock()
_active_graphs: Optional[GraphCollection] = None
_active_graphs_updated_at: Optional[str] = None


def set_active_graphs(graphs: GraphCollection) -> None:
    global _active_graphs, _active_graphs_updated_at
    with _lock:
        _active_graphs = graphs.model_copy(deep=True)
        _active_graphs_updated_at = datetime.now(timezone.utc).isoformat()


def get_active_graphs() -> Optional[GraphCollection]:
    with _lock:
        if _active_graphs is None:
            return None
        return _active_graphs.model_copy(deep=True)


def get_active_graphs_updated_at() -> Optional[str]:
    return _active_graphs_updated_at


def clear_active_graphs() -> None:
    global _active_graphs, _active_graphs_updated_at
    with _lock:
        _active_graphs = None
        _active_graphs_updated_at = None
