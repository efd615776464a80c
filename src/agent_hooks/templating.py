"""
Placeholder substitution for hook message templates.

Templates contain ``{{ expr }}`` tokens where ``expr`` is a property path such
as ``messages[0].subject`` or ``headers["x-github-event"]``. Only field and
index lookups are supported; there are no operators, calls, or conditionals,
so payload content can never be evaluated as code. Lookups that fail render
as an empty string.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Union

from agent_hooks.models import ApplyContext

TEMPLATE_TOKEN_RE = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")
PATH_SEGMENT_RE = re.compile(r"""\.?([^.\[\]"']+)|\[(\d+)\]|\[(?:"([^"]*)"|'([^']*)')\]""")
WHOLE_PAYLOAD_TOKEN = "_payload"

PathSegment = Union[str, int]


def parse_path(expr: str) -> Optional[List[PathSegment]]:
    """Split ``a.b[0]["c-d"]`` into lookup segments, or None when it is not a path."""
    expr = expr.strip()
    if not expr:
        return None
    segments: List[PathSegment] = []
    pos = 0
    while pos < len(expr):
        match = PATH_SEGMENT_RE.match(expr, pos)
        if not match:
            return None
        name, index, double_quoted, single_quoted = match.groups()
        if name is not None:
            dotted = match.group(0).startswith(".")
            if dotted == (pos == 0):
                return None
            name = name.strip()
            if not name:
                return None
            segments.append(name)
        elif index is not None:
            segments.append(int(index))
        else:
            segments.append(double_quoted if double_quoted is not None else single_quoted)
        pos = match.end()
    return segments


def resolve_path(value: Any, segments: List[PathSegment]) -> Any:
    current = value
    for segment in segments:
        if isinstance(current, dict):
            key = str(segment)
            if key not in current:
                return None
            current = current[key]
        elif isinstance(current, list):
            if isinstance(segment, str):
                if not segment.isdigit():
                    return None
                segment = int(segment)
            if segment >= len(current):
                return None
            current = current[segment]
        else:
            return None
    return current


def to_compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def stringify_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return to_compact_json(value)


def _substitute(template: str, lookup: Callable[[str], Any]) -> str:
    def replacer(match: re.Match) -> str:
        return stringify_value(lookup(match.group(1).strip()))

    return TEMPLATE_TOKEN_RE.sub(replacer, template)


def render_template(template: str, context: Any) -> str:
    """Render ``template`` against a JSON value."""

    def lookup(expr: str) -> Any:
        if expr == WHOLE_PAYLOAD_TOKEN:
            return to_compact_json(context)
        segments = parse_path(expr)
        if segments is None:
            return None
        return resolve_path(context, segments)

    return _substitute(template, lookup)


def render_hook_template(template: str, ctx: ApplyContext) -> str:
    """
    Render ``template`` against an inbound request.

    Expressions rooted at ``payload``, ``headers`` or ``query`` address that
    part of the request; ``path`` and ``now`` are the request path and the
    current UTC time. Anything else is looked up in the payload.
    """
    roots = {
        "payload": ctx.payload,
        "headers": ctx.headers,
        "query": ctx.query,
    }

    def lookup(expr: str) -> Any:
        if expr == WHOLE_PAYLOAD_TOKEN:
            return to_compact_json(ctx.payload)
        if expr == "path":
            return ctx.path
        if expr == "now":
            return datetime.now(timezone.utc).isoformat()
        segments = parse_path(expr)
        if segments is None:
            return None
        head = segments[0]
        if isinstance(head, str) and head in roots:
            return resolve_path(roots[head], segments[1:])
        return resolve_path(ctx.payload, segments)

    return _substitute(template, lookup)
