"""
Form-encoded query string decoding.

Understands the conventions upstream filters use: repeated keys
(``a=1&a=2`` -> ``["1", "2"]``), array brackets (``a[]=1``) and nested
brackets (``fields[sys][id]=x`` -> ``{"fields": {"sys": {"id": "x"}}}``).
"""

import re
from typing import Any, Dict, List
from urllib.parse import parse_qsl

MAX_DEPTH = 5

_BRACKET_RE = re.compile(r"\[([^\[\]]*)\]")


def split_key(key: str) -> List[str]:
    """Split ``a[b][c]`` into ``["a", "b", "c"]``.

    Keys that do not follow the bracket grammar are returned whole.
    """
    head, sep, rest = key.partition("[")
    if not sep or not head:
        return [key]

    rest = "[" + rest
    segments = _BRACKET_RE.findall(rest)
    if "".join(f"[{segment}]" for segment in segments) != rest:
        return [key]

    if len(segments) > MAX_DEPTH:
        overflow = "".join(f"[{segment}]" for segment in segments[MAX_DEPTH:])
        segments = segments[:MAX_DEPTH - 1] + [segments[MAX_DEPTH - 1] + overflow]
    return [head] + segments


def _assign(container: Dict[str, Any], path: List[str], value: str) -> None:
    head, rest = path[0], path[1:]

    if not rest:
        existing = container.get(head)
        if existing is None:
            container[head] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            container[head] = [existing, value]
        return

    if rest[0] == "":
        child = container.get(head)
        if child is None:
            child = []
        elif not isinstance(child, list):
            child = [child]
        container[head] = child
        if len(rest) == 1:
            child.append(value)
        else:
            nested: Dict[str, Any] = {}
            _assign(nested, rest[1:], value)
            child.append(nested)
        return

    child = container.get(head)
    if not isinstance(child, dict):
        child = {}
        container[head] = child
    _assign(child, rest, value)


def parse_query(query: str) -> Dict[str, Any]:
    """Decode a raw query string into a nested mapping."""
    result: Dict[str, Any] = {}
    for key, value in parse_qsl(query, keep_blank_values=True):
        _assign(result, split_key(key), value)
    return result
