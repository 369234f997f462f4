"""
Path and template resolution over applicant data.

Paths use dotted/bracketed notation: 'subscriber.birthDate',
'children[0].birthDate' or 'children.0.birthDate'.
Templates embed '{lead.path}', '{credentials.name}' or '{env.NAME}' tokens.
"""
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


_BRACKET = re.compile(r"\[([^\]]*)\]")
_TOKEN = re.compile(r"\{\s*(lead|credentials|env)\.([^{}]+?)\s*\}")


@dataclass
class ResolveContext:
    """Data visible to templates and value lookups during a run."""
    lead: Dict[str, Any] = field(default_factory=dict)
    credentials: Dict[str, Any] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=lambda: os.environ)


def split_path(path: str) -> List[str]:
    """Split 'a.b[2].c' into ['a', 'b', '2', 'c']."""
    normalized = _BRACKET.sub(lambda m: "." + m.group(1).strip("'\""), path)
    return [part for part in normalized.split(".") if part != ""]


def get_by_path(data: Any, path: Optional[str]) -> Any:
    """
    Resolve a path in nested dicts/lists.

    Returns None on any missing segment; never raises.
    """
    if not path or not isinstance(path, str) or data is None:
        return None

    current = data
    for key in split_path(path):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, (list, tuple)):
            if not key.isdigit():
                return None
            idx = int(key)
            current = current[idx] if idx < len(current) else None
        else:
            return None
    return current


def set_by_path(data: Any, path: str, value: Any) -> Any:
    """
    Set a value at a path, creating intermediate dicts/lists as needed.

    A numeric next segment creates a list, anything else a dict.
    Returns the (possibly newly created) root.
    """
    parts = split_path(path)
    if not parts:
        raise ValueError(f"Empty path: {path!r}")

    root = data if data is not None else ([] if parts[0].isdigit() else {})
    current = root
    for i, key in enumerate(parts):
        last = i == len(parts) - 1
        nxt = None if last else ([] if parts[i + 1].isdigit() else {})

        if isinstance(current, list):
            if not key.isdigit():
                raise TypeError(f"Cannot use key {key!r} on a list in path {path!r}")
            idx = int(key)
            while len(current) <= idx:
                current.append(None)
            if last:
                current[idx] = value
            else:
                if not isinstance(current[idx], (dict, list)):
                    current[idx] = nxt
                current = current[idx]
        else:
            if last:
                current[key] = value
            else:
                if not isinstance(current.get(key), (dict, list)):
                    current[key] = nxt
                current = current[key]
    return root


def stringify(value: Any) -> str:
    """String form matching what the browser side expects ('true', '3')."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def has_template(value: Any) -> bool:
    return isinstance(value, str) and bool(_TOKEN.search(value))


def resolve_template(value: Any, ctx: ResolveContext) -> Any:
    """
    Expand {lead.*}, {credentials.*} and {env.*} tokens in a string.

    Unresolved credentials/env tokens are left verbatim; a missing lead value
    becomes an empty string. Non-string inputs pass through unchanged.
    """
    if not isinstance(value, str):
        return value

    def replace(match):
        namespace, path = match.group(1), match.group(2)
        if namespace == "lead":
            return stringify(get_by_path(ctx.lead, path))
        if namespace == "credentials":
            resolved = get_by_path(ctx.credentials, path)
        else:
            resolved = (ctx.env or {}).get(path)
        if resolved is None:
            return match.group(0)
        return stringify(resolved)

    return _TOKEN.sub(replace, value)
