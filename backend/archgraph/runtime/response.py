from typing import Any, Dict, List, Optional

from archgraph.ir.graph import GraphNode
from archgraph.ir.nodes import ApiBinding, OutputField, ProcessDefinition

TYPE_DEFAULTS = {
    "string": "",
    "number": 0,
    "boolean": False,
}


def default_for_type(field_type: str) -> Any:
    if field_type == "array":
        return []
    if field_type == "object":
        return {}
    return TYPE_DEFAULTS.get(field_type)


def fill_fields(fields: List[OutputField], payload: Any) -> Dict[str, Any]:
    source = payload if isinstance(payload, dict) else {}
    return {
        field.name: source[field.name] if field.name in source else default_for_type(field.type)
        for field in fields
    }


def compose_response_body(
    api: ApiBinding,
    final_node: GraphNode,
    payload: Any = None,
    output: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the reply body for a triggered flow.

    Preference: non-empty process output, then the final process's success
    outputs, then the API success schema (both filled from the payload or
    per-type defaults), then a generic envelope naming the final node.
    """
    if output:
        return output

    if isinstance(final_node.data, ProcessDefinition):
        body = fill_fields(final_node.data.outputs.success, payload)
        if body:
            return body

    success_fields = api.responses.success.fields if api.responses else []
    if success_fields:
        return fill_fields(success_fields, payload)

    return {
        "ok": True,
        "finalNodeId": final_node.id,
        "finalNodeKind": final_node.kind,
        "finalNodeLabel": final_node.display_label,
    }
