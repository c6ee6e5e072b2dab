"""Dotted/bracket property paths over message dicts."""

from __future__ import annotations

import re
from typing import Any

_TOKEN_RE = re.compile(r"([^\.\[\]]+)|\[(\d+)\]")


def path_tokens(path: str) -> list[str | int]:
    """Parse a dotted/bracket path into tokens.

    Supported:
    - `a.b.c`
    - `a[0].b`

    Returns tokens as str keys and int indices.
    """
    p = str(path or "").strip()
    if not p:
        return []
    out: list[str | int] = []
    for m in _TOKEN_RE.finditer(p):
        key = m.group(1)
        if key is not None:
            k = key.strip()
            if k:
                out.append(k)
            continue
        idx = m.group(2)
        if idx is not None:
            out.append(int(idx))
    return out


def get_message_property(msg: Any, path: str) -> Any:
    """Best-effort nested lookup (dict keys + list indices). Missing -> None."""
    tokens = path_tokens(path)
    if not tokens:
        return None
    current: Any = msg
    for tok in tokens:
        if isinstance(current, dict) and isinstance(tok, str):
            current = current.get(tok)
            continue
        if isinstance(current, list):
            idx = tok if isinstance(tok, int) else (int(tok) if tok.isdigit() else None)
            if idx is None or idx < 0 or idx >= len(current):
                return None
            current = current[idx]
            continue
        return None
    return current


def set_message_property(msg: dict[str, Any], path: str, value: Any) -> None:
    """Write ``value`` at ``path``, creating intermediate dicts as needed.

    Containers along the path are copied before being written to, so a shallow
    copy of an inbound message can be updated without touching the original.

    Scalars along the path are replaced by containers. Raises ``ValueError``
    for an empty path or when a key is used against a list.
    """
    tokens = path_tokens(path)
    if not tokens:
        raise ValueError("Property path cannot be empty")
    current: Any = msg
    for tok, nxt in zip(tokens, tokens[1:]):
        if isinstance(current, dict) and isinstance(tok, str):
            child = current.get(tok)
            if isinstance(child, dict):
                child = dict(child)
            elif isinstance(child, list):
                child = list(child)
            else:
                child = [] if isinstance(nxt, int) else {}
            current[tok] = child
            current = child
        elif isinstance(current, list) and isinstance(tok, int):
            while len(current) <= tok:
                current.append(None)
            child = current[tok]
            if isinstance(child, dict):
                current[tok] = dict(child)
            elif isinstance(child, list):
                current[tok] = list(child)
            else:
                current[tok] = [] if isinstance(nxt, int) else {}
            current = current[tok]
        else:
            raise ValueError(f"Cannot set property '{path}': '{tok}' is not a container")
    last = tokens[-1]
    if isinstance(current, dict) and isinstance(last, str):
        current[last] = value
    elif isinstance(current, list) and isinstance(last, int):
        while len(current) <= last:
            current.append(None)
        current[last] = value
    else:
        raise ValueError(f"Cannot set property '{path}'")
