import re
from functools import lru_cache
from typing import Dict, Optional, Tuple

_REPEATED_SLASHES = re.compile(r"/+")


def normalize_path(path: str) -> str:
    path = path if path.startswith("/") else f"/{path}"
    path = _REPEATED_SLASHES.sub("/", path)
    if len(path) > 1 and path.endswith("/"):
        return path[:-1]
    return path


def _parse_segment(segment: str) -> Tuple[Optional[str], bool]:
    """Return (param name or None for a literal, captures the rest of the path)."""
    if segment.startswith("[...") and segment.endswith("]"):
        return segment[4:-1], True
    if segment.startswith("[") and segment.endswith("]"):
        return segment[1:-1], False
    if segment.startswith(":"):
        return segment[1:], False
    if segment.startswith("{") and segment.endswith("}"):
        return segment[1:-1], False
    return None, False


@lru_cache(maxsize=256)
def compile_route(route: str) -> Tuple[re.Pattern, Tuple[Tuple[str, str], ...]]:
    """
    Compile a route template into a regex plus (group, param name) pairs.

    `:name`, `[name]` and `{name}` capture one segment; `[...name]`
    captures the remainder of the path. Literal segments are escaped.
    """
    segments = [segment for segment in normalize_path(route).split("/") if segment]
    if not segments:
        return re.compile(r"^/$"), ()

    params = []
    parts = []
    for index, segment in enumerate(segments):
        name, rest = _parse_segment(segment)
        if name is None:
            parts.append(re.escape(segment))
            continue
        # group names must be identifiers, param names need not be
        group = f"p{index}"
        params.append((group, name))
        parts.append(f"(?P<{group}>.+)" if rest else f"(?P<{group}>[^/]+)")

    return re.compile("^/" + "/".join(parts) + "$"), tuple(params)


def match_route(route: str, path: str) -> Optional[Dict[str, str]]:
    """Return captured path parameters, or None when the path does not match."""
    pattern, params = compile_route(route)
    match = pattern.match(normalize_path(path))
    if match is None:
        return None
    return {name: match.group(group) for group, name in params}


def matches_route(route: str, path: str) -> bool:
    return match_route(route, path) is not None
