import asyncio
import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from archgraph.api.serializers import serialize_runtime, sse_event, validation_details
from archgraph.ir.errors import RouteNotFoundError
from archgraph.ir.graph import GraphCollection, RuntimeStartPayload
from archgraph.runtime.context import ExecutionNode
from archgraph.runtime.engine import RuntimeEngine
from archgraph.runtime.state import (
    get_active_graphs,
    get_active_graphs_updated_at,
    set_active_graphs,
)
from archgraph.validation import (
    ValidationSeverity,
    analyze_design_system,
    validate_architecture,
)

logger = logging.getLogger(__name__)

router = APIRouter()

RUN_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def _error(status: int, error: str, **extra) -> JSONResponse:
    return JSONResponse({"error": error, **extra}, status_code=status)


async def _read_json(request: Request):
    """Parsed JSON body, or a 400 response when the body is not JSON."""
    try:
        return await request.json(), None
    except ValueError:
        return None, _error(400, "invalid_json")


async def _read_graphs(request: Request, require_nodes: bool):
    body, failure = await _read_json(request)
    if failure:
        return None, failure
    try:
        if require_nodes:
            return RuntimeStartPayload.model_validate(body).graphs, None
        graphs = body.get("graphs", body) if isinstance(body, dict) else body
        return GraphCollection.model_validate(graphs), None
    except ValidationError as exc:
        return None, _error(400, "invalid_graph_payload", details=validation_details(exc))


def _engine(request: Request, graphs: GraphCollection) -> RuntimeEngine:
    state = request.app.state
    return RuntimeEngine(graphs, pool=state.pool, queue=state.queue, settings=state.settings)


# ============================================================
# RUNTIME LIFECYCLE
# ============================================================

@router.post("/runtime/start")
async def start_runtime(request: Request):
    graphs, failure = await _read_graphs(request, require_nodes=True)
    if failure:
        return failure

    set_active_graphs(graphs)
    engine = _engine(request, graphs)
    try:
        execution_order = await engine.start()
    except Exception as e:
        logger.exception("Runtime start failed")
        return _error(500, "runtime_start_failed", message=str(e))

    return {
        "ok": True,
        "executionOrder": serialize_runtime(execution_order),
        "totalNodes": len(execution_order),
    }


@router.post("/runtime/stream")
async def stream_runtime(request: Request):
    """
    Start the runtime and stream its progress as Server-Sent Events.

    Events: status, order, execute, complete, error.
    """
    graphs, failure = await _read_graphs(request, require_nodes=True)
    if failure:
        return failure

    set_active_graphs(graphs)
    engine = _engine(request, graphs)

    async def event_generator() -> AsyncGenerator[str, None]:
        events: asyncio.Queue[Optional[str]] = asyncio.Queue()

        def progress(event: str, verb: str):
            def callback(node: ExecutionNode, index: int, total: int) -> None:
                events.put_nowait(sse_event(event, {
                    "index": index + 1,
                    "total": total,
                    "node": node,
                    "message": f"{verb} {index + 1}/{total}: {node.kind}:{node.label}",
                }))
            return callback

        async def run() -> None:
            try:
                execution_order = await engine.start(
                    on_order=progress("order", "Order"),
                    on_execute=progress("execute", "Executing"),
                )
                events.put_nowait(sse_event("complete", {
                    "executionOrder": execution_order,
                    "totalNodes": len(execution_order),
                }))
            except Exception as e:
                logger.exception("Runtime stream failed")
                events.put_nowait(sse_event("error", {
                    "error": "runtime_start_failed",
                    "message": str(e),
                }))
            finally:
                events.put_nowait(None)

        yield sse_event("status", {"message": "runtime_started"})
        task = asyncio.create_task(run())
        try:
            while (chunk := await events.get()) is not None:
                yield chunk
            await task
        finally:
            # Client went away mid-stream
            if not task.done():
                task.cancel()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# ============================================================
# ARCHITECTURE CHECKS
# ============================================================

@router.post("/architecture/analyze")
async def analyze_architecture(request: Request):
    graphs, failure = await _read_graphs(request, require_nodes=False)
    if failure:
        return failure
    return analyze_design_system(graphs).to_dict()


@router.post("/architecture/validate")
async def lint_architecture(request: Request, strict: bool = False):
    graphs, failure = await _read_graphs(request, require_nodes=False)
    if failure:
        return failure
    return validate_architecture(graphs, strict=strict).to_dict()


# ============================================================
# RUNTIME REQUESTS - Execute the active graph
# ============================================================

@router.api_route("/run", methods=RUN_METHODS)
@router.api_route("/run/{path:path}", methods=RUN_METHODS)
async def run_request(request: Request, path: str = ""):
    graphs = get_active_graphs()
    if graphs is None:
        return _error(
            503,
            "runtime_not_initialized",
            message="No active runtime graph is loaded. Start the runtime first.",
        )

    runtime_path = f"/{path}"
    payload = None
    if request.method != "GET" and "application/json" in request.headers.get("content-type", ""):
        payload, failure = await _read_json(request)
        if failure:
            return failure

    report = analyze_design_system(graphs)
    service_errors = [
        issue.to_dict() for issue in report.service_issues if issue.severity == ValidationSeverity.ERROR
    ]
    if service_errors:
        return _error(
            403,
            "service_boundary_violation",
            message="Runtime request blocked by Service Boundary policy violations.",
            issues=service_errors,
        )

    engine = _engine(request, graphs)
    try:
        result = await engine.execute_rest_request(request.method, runtime_path, payload)
    except RouteNotFoundError:
        return _error(
            404,
            "route_not_found",
            method=request.method,
            path=runtime_path,
            activeGraphUpdatedAt=get_active_graphs_updated_at(),
        )
    except Exception as e:
        logger.exception("Runtime execution failed for %s %s", request.method, runtime_path)
        return _error(500, "runtime_execution_failed", message=str(e))

    body = serialize_runtime(result.response.body)
    if request.query_params.get("debug") == "1":
        body = {
            **body,
            "_runtime": {
                "apiNode": result.api_node.to_dict(),
                "finalNode": result.final_node.to_dict(),
                "executionOrder": [node.to_dict() for node in result.execution_order],
            },
        }

    return JSONResponse(body, status_code=result.response.status)
