"""kubectl-style field projection for ``wsop get -o jsonpath=...``.

kubectl expressions such as ``{.metadata.labels.workspace\\.jupyter\\.org/template-namespace}``
escape dots inside keys with a backslash.  They are rewritten into a plain
JSONPath (``$.metadata.labels.'workspace.jupyter.org/template-namespace'``)
and evaluated with ``jsonpath_ng``.  Missing fields project to ``None``
(printed as an empty string).
"""

from __future__ import annotations

import json
import re
from typing import Any

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathParserError

_INDEX = re.compile(r"^(?P<key>.*?)\[(?P<index>\d+)\]$")
_PLAIN_KEY = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def split_path(expression: str) -> list[str | int]:
    """Split a kubectl field expression into dict keys and list indexes.

    Raises ``ValueError`` for an expression that is not a ``.``-rooted path.
    """
    expr = expression.strip()
    if expr.startswith("{") and expr.endswith("}"):
        expr = expr[1:-1]
    if not expr.startswith("."):
        msg = f"unsupported field expression {expression!r}: must start with '.'"
        raise ValueError(msg)

    segments: list[str] = []
    current: list[str] = []
    chars = iter(expr[1:])
    for ch in chars:
        if ch == "\\":
            current.append(next(chars, ""))
        elif ch == ".":
            segments.append("".join(current))
            current = []
        else:
            current.append(ch)
    segments.append("".join(current))

    parts: list[str | int] = []
    for segment in segments:
        if not segment:
            continue
        match = _INDEX.match(segment)
        if match:
            if match["key"]:
                parts.append(match["key"])
            parts.append(int(match["index"]))
        else:
            parts.append(segment)
    return parts


def to_jsonpath(expression: str) -> str:
    """Rewrite a kubectl field expression as a ``jsonpath_ng`` expression."""
    path = "$"
    for part in split_path(expression):
        if isinstance(part, int):
            path += f"[{part}]"
        elif _PLAIN_KEY.match(part):
            path += f".{part}"
        else:
            path += f".'{part}'"
    return path


def get_field(obj: dict[str, Any], expression: str) -> Any:
    """Return the value at *expression* in *obj*, or ``None`` if absent."""
    path = to_jsonpath(expression)
    try:
        jsonpath_expr = jsonpath_parse(path)
    except JsonPathParserError as exc:
        msg = f"unsupported field expression {expression!r}: {exc}"
        raise ValueError(msg) from exc

    matches = jsonpath_expr.find(obj)
    if not matches:
        return None
    return matches[0].value


def format_field(value: Any) -> str:
    """Render a projected value the way ``kubectl -o jsonpath`` prints it."""
    if value is None:
        return ""
    if isinstance(value, dict | list):
        return json.dumps(value, separators=(",", ":"))
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
