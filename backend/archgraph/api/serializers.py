import json
from typing import Any

from pydantic import BaseModel, ValidationError

PRIMITIVE_TYPES = (str, int, float, bool, type(None))


def serialize_runtime(obj: Any):
    """
    Serialize runtime results, reports and graph models into JSON-compatible
    structures. Pydantic models use their camelCase wire aliases.
    """
    if isinstance(obj, PRIMITIVE_TYPES):
        return obj

    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True, exclude_none=True)

    if isinstance(obj, (list, tuple)):
        return [serialize_runtime(item) for item in obj]

    if isinstance(obj, dict):
        return {k: serialize_runtime(v) for k, v in obj.items()}

    if hasattr(obj, "to_dict"):
        return obj.to_dict()

    return str(obj)


def validation_details(exc: ValidationError) -> list:
    # exc.errors() may carry exception objects in `ctx`; exc.json() does not
    return json.loads(exc.json(include_url=False))


def sse_event(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(serialize_runtime(data), default=str)}\n\n"
