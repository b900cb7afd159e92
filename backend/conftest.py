"""Global fixtures for runtime and validation tests."""

from typing import Any, Dict, List, Optional

import pytest

from archgraph.adapters.persistence import PersistenceAdapter, PersistencePool
from archgraph.adapters.queue import InMemoryQueueAdapter
from archgraph.config import RuntimeSettings
from archgraph.ir.graph import GraphCollection
from archgraph.runtime.engine import RuntimeEngine


class RecordingAdapter(PersistenceAdapter):
    """In-memory persistence double that records every call."""

    def __init__(self, connection_string: str, tables=("orders",), fail_connect: bool = False):
        self.connection_string = connection_string
        self.tables = set(tables)
        self.fail_connect = fail_connect
        self.connects = 0
        self.lookups: List[tuple] = []
        self.inserts: List[tuple] = []

    async def connect(self) -> None:
        if self.fail_connect:
            raise ConnectionError("connection refused")
        self.connects += 1

    async def table_exists(self, schemas, table) -> bool:
        self.lookups.append((tuple(schemas), table))
        return table in self.tables

    async def insert_row(self, schema, table, values) -> None:
        self.inserts.append((schema, table, dict(values)))


def orders_graph_data(
    method: str = "GET",
    route: str = "/orders/:id",
    db_ref: str = "ordersDb",
    steps: Optional[List[Dict[str, Any]]] = None,
    connection_string: str = "",
    deployable: bool = False,
) -> Dict[str, Any]:
    """
    API -> process -> database, in editor wire format.

    With `deployable`, adds a compute host and a service boundary that
    owns every API, function and data node.
    """
    if steps is None:
        steps = [
            {"id": "check", "kind": "condition", "config": {"requiredFields": ["id"]}},
            {"id": "read", "kind": "db_operation", "ref": db_ref, "config": {"operation": "read"}},
            {"id": "done", "kind": "return"},
        ]

    graphs: Dict[str, Any] = {
        "api": {
            "nodes": [
                {
                    "id": "api-orders",
                    "type": "api_binding",
                    "data": {
                        "kind": "api_binding",
                        "id": "getOrder",
                        "label": "Get Order",
                        "protocol": "rest",
                        "method": method,
                        "route": route,
                        "processRef": "loadOrder",
                        "responses": {
                            "success": {
                                "statusCode": 200,
                                "schema": [
                                    {"name": "id", "type": "string"},
                                    {"name": "status", "type": "string"},
                                ],
                            },
                            "error": {"statusCode": 400, "schema": []},
                        },
                    },
                }
            ],
            "edges": [{"source": "api-orders", "target": "fn-load"}],
        },
        "functions": {
            "nodes": [
                {
                    "id": "fn-load",
                    "data": {
                        "kind": "process",
                        "id": "loadOrder",
                        "label": "Load Order",
                        "steps": steps,
                    },
                }
            ],
            "edges": [{"source": "fn-load", "target": "db-orders"}],
        },
        "database": {
            "nodes": [
                {
                    "id": "db-orders",
                    "data": {
                        "kind": "database",
                        "id": "ordersDb",
                        "label": "Orders DB",
                        "dbType": "sql",
                        "environments": {"dev": {"connectionString": connection_string}},
                        "tables": [
                            {"name": "orders", "fields": [{"name": "id", "type": "string"}]}
                        ],
                    },
                }
            ],
            "edges": [],
        },
    }

    if deployable:
        graphs["infra"] = {
            "nodes": [
                {
                    "id": "infra-host",
                    "data": {
                        "kind": "infra",
                        "id": "appHost",
                        "label": "App Host",
                        "resourceType": "ec2",
                    },
                }
            ],
            "edges": [],
        }
        graphs["deploy"] = {
            "nodes": [
                {
                    "id": "svc-orders",
                    "data": {
                        "kind": "service_boundary",
                        "id": "ordersService",
                        "label": "Orders Service",
                        "apiRefs": ["getOrder"],
                        "functionRefs": ["loadOrder"],
                        "dataRefs": ["ordersDb"],
                        "computeRef": "appHost",
                    },
                }
            ],
            "edges": [],
        }

    return graphs


@pytest.fixture
def settings():
    return RuntimeSettings(db_env="dev", database_url="", queue_mode="mock")


@pytest.fixture
def adapters():
    """Every RecordingAdapter the pool creates, keyed by connection string."""
    return {}


@pytest.fixture
def pool(adapters):
    def factory(connection_string: str) -> RecordingAdapter:
        adapter = RecordingAdapter(connection_string)
        adapters[connection_string] = adapter
        return adapter

    return PersistencePool(factory=factory)


@pytest.fixture
def queue():
    return InMemoryQueueAdapter()


@pytest.fixture
def make_graph_data():
    return orders_graph_data


@pytest.fixture
def make_graphs():
    def build(**kwargs) -> GraphCollection:
        return GraphCollection.model_validate(orders_graph_data(**kwargs))

    return build


@pytest.fixture
def make_engine(pool, queue, settings):
    def build(graphs: GraphCollection, **kwargs) -> RuntimeEngine:
        options = {"pool": pool, "queue": queue, "settings": settings}
        options.update(kwargs)
        return RuntimeEngine(graphs, **options)

    return build
