"""
Canonicalization and key derivation.

Reduces a call's semantically relevant inputs (model, messages, tool
schemas, call options) to one structural form, then hashes it. Two calls
that differ only in key order, omitted versus unset fields, or part
layout produce the same key.
"""

import hashlib
import json
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .normalize import (
    flatten_content,
    get_field,
    load_envelope,
    message_role,
    to_jsonable,
    tool_schema_name,
    tool_schema_parameters,
    unwrap_envelope,
)


class _Unset:
    """Marker for an option that was explicitly left unset."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


def is_unset(value: Any) -> bool:
    """None and UNSET both mean the field was not provided."""
    return value is None or value is UNSET


def deep_sort(value: Any, drop_none: bool = False) -> Any:
    """Rebuild mappings with alphabetized keys at every nesting level.

    Sequences keep their order. UNSET entries are always dropped; None
    entries only when drop_none is set.
    """
    if isinstance(value, Mapping):
        result = {}
        for k in sorted(value.keys(), key=str):
            item = value[k]
            if item is UNSET or (drop_none and item is None):
                continue
            result[str(k)] = deep_sort(item, drop_none)
        return result
    if isinstance(value, (list, tuple)):
        return [deep_sort(item, drop_none) for item in value]
    if value is UNSET:
        return None
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return deep_sort(to_jsonable(value), drop_none)


def canonical_messages(messages: Optional[Iterable[Any]]) -> List[Dict[str, str]]:
    """Reduce each message to `{role, content}` with flattened string content."""
    result = []
    for message in messages or []:
        message = load_envelope(message)
        if isinstance(message, str):
            result.append({"role": "user", "content": message.strip()})
            continue
        role = message_role(message)
        base = unwrap_envelope(message)
        if not role:
            role = message_role(base)
        result.append({"role": role, "content": flatten_content(get_field(base, "content"))})
    return result


def canonical_tools(tools: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    """Reduce tool schemas to `{name, parameters}`, deep sorted and ordered by name."""
    result = [
        {"name": tool_schema_name(tool), "parameters": deep_sort(tool_schema_parameters(tool))}
        for tool in tools or []
    ]
    result.sort(key=lambda t: (t["name"], stable_json(t["parameters"])))
    return result


def canonical_options(call_options: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Drop unset options and deep sort the rest."""
    if not call_options:
        return {}
    return deep_sort(dict(call_options), drop_none=True)


def canonical_tool_args(args: Any) -> Any:
    if is_unset(args):
        return {}
    return deep_sort(args)


def canonicalize_call(
    model: Optional[str],
    messages: Optional[Iterable[Any]],
    tools: Optional[Iterable[Any]] = None,
    call_options: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Canonical structural form of one LLM call."""
    return {
        "model": str(model or ""),
        "messages": canonical_messages(messages),
        "tools": canonical_tools(tools),
        "options": canonical_options(call_options),
    }


def stable_json(value: Any) -> str:
    """Compact JSON with sorted keys; the byte form that gets hashed."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=to_jsonable
    )


def hash_canonical(value: Any) -> str:
    """SHA-256 hex digest of a canonical value."""
    return hashlib.sha256(stable_json(value).encode("utf-8")).hexdigest()


def derive_call_key(
    model: Optional[str],
    messages: Optional[Iterable[Any]],
    tools: Optional[Iterable[Any]] = None,
    call_options: Optional[Mapping[str, Any]] = None
) -> str:
    """64-char hex content key for an LLM call."""
    return hash_canonical(canonicalize_call(model, messages, tools, call_options))


def derive_tool_key(name: str, args: Any) -> str:
    """64-char hex content key for a tool invocation."""
    return hash_canonical({"name": name, "args": canonical_tool_args(args)})
