"""HTTP surface tests using FastAPI's TestClient."""

import asyncio
import json

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from archgraph.api.routes import stream_runtime
from archgraph.config import RuntimeSettings
from archgraph.main import create_app
from archgraph.runtime.context import ExecutionNode
from archgraph.runtime.engine import RuntimeEngine
from archgraph.runtime.state import clear_active_graphs


@pytest.fixture(autouse=True)
def reset_active_graphs():
    clear_active_graphs()
    yield
    clear_active_graphs()


@pytest.fixture
def client(pool, queue):
    app = create_app(RuntimeSettings(queue_mode="mock"))
    app.state.pool = pool
    app.state.queue = queue
    with TestClient(app) as test_client:
        yield test_client


def start(client, graphs):
    response = client.post("/runtime/start", json={"graphs": graphs})
    assert response.status_code == 200, response.text
    return response.json()


def events(body):
    """(event, data-line) pairs from an SSE body."""
    parsed = []
    for block in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        parsed.append((lines["event"], lines["data"]))
    return parsed


class TestRuntimeStart:
    def test_start_returns_execution_order(self, client, make_graph_data):
        body = start(client, make_graph_data())

        assert body["ok"] is True
        assert body["totalNodes"] == 3
        assert [node["id"] for node in body["executionOrder"]] == ["api-orders", "fn-load", "db-orders"]
        assert body["executionOrder"][0] == {"id": "api-orders", "kind": "api_binding", "label": "Get Order"}

    def test_rejects_non_json_body(self, client):
        response = client.post(
            "/runtime/start", content="not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "invalid_json"}

    def test_rejects_snapshot_without_nodes(self, client):
        response = client.post("/runtime/start", json={"graphs": {"api": {"nodes": [], "edges": []}}})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_graph_payload"
        assert body["details"]

    def test_rejects_unknown_node_kind(self, client):
        graphs = {"api": {"nodes": [{"id": "x", "data": {"kind": "spaceship", "id": "x"}}]}}

        response = client.post("/runtime/start", json={"graphs": graphs})

        assert response.status_code == 400

    def test_stream_emits_progress_events(self, client, make_graph_data):
        response = client.post("/runtime/stream", json={"graphs": make_graph_data()})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        names = [name for name, _ in events(response.text)]
        assert names[0] == "status"
        assert names.count("order") == 3
        assert names.count("execute") == 3
        assert names[-1] == "complete"
        assert names.index("order") < names.index("execute")

    def test_stream_disconnect_cancels_the_runtime(self, pool, queue, make_graph_data, monkeypatch):
        started, cancelled = [], []

        async def slow_start(self, on_order=None, on_execute=None):
            started.append(True)
            on_order(ExecutionNode(id="api-orders", kind="api_binding", label="Get Order"), 0, 1)
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        monkeypatch.setattr(RuntimeEngine, "start", slow_start)
        app = create_app(RuntimeSettings(queue_mode="mock"))
        app.state.pool = pool
        app.state.queue = queue
        body = json.dumps({"graphs": make_graph_data()}).encode()

        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        async def scenario():
            request = Request(
                {
                    "type": "http",
                    "method": "POST",
                    "path": "/runtime/stream",
                    "headers": [(b"content-type", b"application/json")],
                    "app": app,
                },
                receive,
            )
            response = await stream_runtime(request)
            stream = response.body_iterator
            chunks = [await stream.__anext__(), await stream.__anext__()]
            await stream.aclose()
            for _ in range(3):
                await asyncio.sleep(0)
            return chunks

        chunks = asyncio.run(scenario())

        assert [chunk.split("\n", 1)[0] for chunk in chunks] == ["event: status", "event: order"]
        assert started == [True]
        assert cancelled == [True]


class TestRunRequests:
    def test_run_before_start_is_unavailable(self, client):
        response = client.get("/run/orders/1")

        assert response.status_code == 503
        assert response.json()["error"] == "runtime_not_initialized"

    def test_post_executes_active_graph(self, client, make_graph_data):
        start(client, make_graph_data(method="POST", deployable=True))

        response = client.post("/run/orders/42", json={"id": "42"})

        assert response.status_code == 200
        assert response.json() == {"id": "42"}

    def test_debug_adds_runtime_trace(self, client, make_graph_data):
        start(client, make_graph_data(method="POST", deployable=True))

        response = client.post("/run/orders/42?debug=1", json={"id": "42"})

        trace = response.json()["_runtime"]
        assert trace["apiNode"]["id"] == "api-orders"
        assert [n["id"] for n in trace["executionOrder"]] == [
            "api-orders", "fn-load", "db-orders", "infra-host",
        ]

    def test_get_has_no_payload_so_required_fields_fail(self, client, make_graph_data):
        start(client, make_graph_data(deployable=True))

        response = client.get("/run/orders/42")

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "runtime_execution_failed"
        assert "input object required" in body["message"]

    def test_unknown_route(self, client, make_graph_data):
        start(client, make_graph_data(deployable=True))

        response = client.delete("/run/invoices/1")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "route_not_found"
        assert body["method"] == "DELETE"
        assert body["path"] == "/invoices/1"
        assert body["activeGraphUpdatedAt"]

    def test_service_boundary_violations_block_requests(self, client, make_graph_data):
        start(client, make_graph_data(method="POST"))

        response = client.post("/run/orders/42", json={"id": "42"})

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "service_boundary_violation"
        assert [issue["code"] for issue in body["issues"]] == ["service.none_defined"]


class TestArchitectureEndpoints:
    def test_analyze_accepts_bare_collection(self, client, make_graph_data):
        response = client.post("/architecture/analyze", json=make_graph_data(deployable=True))

        assert response.status_code == 200
        assert response.json()["deploy"]["ready"] is True

    def test_analyze_accepts_wrapped_collection(self, client, make_graph_data):
        response = client.post("/architecture/analyze", json={"graphs": make_graph_data()})

        deploy = response.json()["deploy"]
        assert deploy["ready"] is False
        assert deploy["errorCount"] == 2

    def test_validate_honours_strict_flag(self, client, make_graph_data):
        graphs = make_graph_data(steps=[])

        relaxed = client.post("/architecture/validate", json={"graphs": graphs}).json()
        strict = client.post("/architecture/validate?strict=true", json={"graphs": graphs}).json()

        assert relaxed["is_valid"] is True
        assert strict["is_valid"] is False
        assert [issue["code"] for issue in strict["issues"]] == ["PROCESS_NO_STEPS"]
