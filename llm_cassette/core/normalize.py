"""
Reply shape normalization.

Provider SDKs nest assistant text, tool calls and token usage in many
different places. Each helper here resolves a closed set of known shapes in a
fixed order and degrades to a plain value instead of raising.
"""

import dataclasses
import json
from typing import Any, Dict, List, Mapping, Optional

from .token_counter import TokenUsage


ROLE_ALIASES = {
    "human": "user",
    "ai": "assistant",
    "system": "system",
    "tool": "tool",
    "function": "function",
}

# Last element of a serialized LangChain message id
ENVELOPE_ROLES = {
    "HumanMessage": "user",
    "HumanMessageChunk": "user",
    "AIMessage": "assistant",
    "AIMessageChunk": "assistant",
    "SystemMessage": "system",
    "ToolMessage": "tool",
    "FunctionMessage": "function",
}

USAGE_CONTAINERS = ("response_metadata", "_metadata", "metadata", "usage_metadata")
PROMPT_FIELDS = ("promptTokens", "prompt_tokens", "input_tokens")
COMPLETION_FIELDS = ("completionTokens", "completion_tokens", "output_tokens")
TOTAL_FIELDS = ("totalTokens", "total_tokens")


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a key from a mapping or an attribute from an object."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    if isinstance(obj, (str, bytes, int, float, bool, list, tuple)):
        return default
    return getattr(obj, name, default)


def to_jsonable(value: Any) -> Any:
    """Convert SDK objects into JSON-compatible data.

    Also usable as the `default=` hook of `json.dumps`.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(dataclasses.asdict(value))
    for method_name in ("model_dump", "to_dict", "dict"):
        method = getattr(value, method_name, None)
        if callable(method):
            try:
                dumped = method()
            except TypeError:
                continue
            if isinstance(dumped, Mapping):
                return to_jsonable(dumped)
    if hasattr(value, "__dict__"):
        return {k: to_jsonable(v) for k, v in vars(value).items() if not k.startswith("_")}
    return str(value)


def _is_envelope(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and value.get("lc") is not None
        and isinstance(value.get("kwargs"), Mapping)
    )


def load_envelope(value: Any) -> Any:
    """Decode a JSON string holding a serialized LangChain message; other values pass through."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not (text.startswith("{") and '"lc"' in text):
        return value
    try:
        decoded = json.loads(text)
    except ValueError:
        return value
    return decoded if _is_envelope(decoded) else value


def unwrap_envelope(value: Any) -> Any:
    """Unwrap a serialized LangChain message to its inner kwargs.

    Handles the `{"lc": 1, "kwargs": {...}}` constructor form, a JSON string
    holding one, and `lc_kwargs` wrappers. Anything else is returned as is.
    """
    value = load_envelope(value)
    if isinstance(value, str):
        return value
    if _is_envelope(value):
        return value["kwargs"]
    lc_kwargs = get_field(value, "lc_kwargs")
    if isinstance(lc_kwargs, Mapping):
        return lc_kwargs
    return value


def message_role(message: Any, default: str = "") -> str:
    """Resolve a message's role from `role`, a LangChain `type`, or an envelope id."""
    role = get_field(message, "role")
    if isinstance(role, str) and role:
        return role
    kind = get_field(message, "type")
    if isinstance(kind, str) and kind in ROLE_ALIASES:
        return ROLE_ALIASES[kind]
    envelope_id = get_field(message, "id") if _is_envelope(message) else None
    if isinstance(envelope_id, list) and envelope_id:
        return ENVELOPE_ROLES.get(str(envelope_id[-1]), default)
    if _is_envelope(message):
        return message_role(message["kwargs"], default)
    return default


def part_text(part: Any) -> str:
    """Text of one content part; non-text parts give an empty string."""
    if part is None:
        return ""
    if isinstance(part, str):
        return part
    text = get_field(part, "text")
    if isinstance(text, str):
        return text
    value = get_field(text, "value")
    if isinstance(value, str):
        return value
    content = get_field(part, "content")
    if isinstance(content, str):
        return content
    value = get_field(part, "value")
    if isinstance(value, str):
        return value
    return ""


def flatten_content(content: Any) -> str:
    """Flatten message content to a trimmed string.

    Multi-part content is joined with single spaces in order; parts without
    text are dropped.
    """
    content = unwrap_envelope(content)
    if content is None:
        return ""
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, (bool, int, float)):
        return str(content)
    if isinstance(content, (list, tuple)):
        texts = [part_text(unwrap_envelope(part)) for part in content]
        return " ".join(text for text in texts if text).strip()
    inner = get_field(content, "content")
    if inner is not None:
        return flatten_content(inner)
    return part_text(content).strip()


def normalize_reply(response: Any) -> Dict[str, Any]:
    """Normalize any recorded or live response into `{role, content, tool_calls}`.

    Resolution order: bare or serialized-envelope string, list of parts,
    OpenAI completion payload, stored `{"aiMessage": ...}` response, message
    shape, single-key `message` wrapper. Anything else becomes its JSON text,
    with an empty mapping giving an empty string.
    """
    if response is None:
        return _reply("assistant", "", [])

    response = unwrap_envelope(response)
    if isinstance(response, str):
        return _reply("assistant", response, [])
    if isinstance(response, (list, tuple)):
        return _reply("assistant", flatten_content(response), [])

    choices = get_field(response, "choices")
    if isinstance(choices, (list, tuple)) and choices:
        message = get_field(choices[0], "message")
        if message is not None:
            return _message_reply(message)

    ai_message = get_field(response, "aiMessage")
    if ai_message is not None:
        return normalize_reply(ai_message)

    if any(get_field(response, name) is not None
           for name in ("role", "content", "tool_calls", "toolCalls")):
        return _message_reply(response)

    wrapped = get_field(response, "message")
    if wrapped is not None:
        return normalize_reply(wrapped)

    return _reply("assistant", _stringify(response), [])


def extract_assistant_text(message: Any) -> str:
    """Assistant-visible text of a message; tool-call-only replies give ''."""
    return normalize_reply(message)["content"]


def _message_reply(message: Any) -> Dict[str, Any]:
    base = unwrap_envelope(message)
    role = message_role(message) or message_role(base) or "assistant"
    tool_calls = get_field(base, "tool_calls") or get_field(base, "toolCalls") or []
    return _reply(role, _text_from(base), [to_jsonable(tc) for tc in tool_calls])


def _text_from(message: Any) -> str:
    content = get_field(message, "content")
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        return flatten_content(content)
    text = part_text(content)
    return text if text else _stringify(content)


def _stringify(payload: Any) -> str:
    try:
        text = json.dumps(to_jsonable(payload), ensure_ascii=False)
    except (TypeError, ValueError):
        return ""
    return "" if text == "{}" else text


def _reply(role: str, content: str, tool_calls: List[Any]) -> Dict[str, Any]:
    return {"role": role, "content": content, "tool_calls": tool_calls}


def _first_count(container: Any, names) -> Optional[int]:
    for name in names:
        value = get_field(container, name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
    return None


def _has_token_fields(container: Any) -> bool:
    return any(
        _first_count(container, names) is not None
        for names in (PROMPT_FIELDS, COMPLETION_FIELDS, TOTAL_FIELDS)
    )


def _find_usage_container(reply: Any) -> Any:
    for container_name in USAGE_CONTAINERS:
        meta = get_field(reply, container_name)
        if meta is None:
            continue
        for candidate in (
            get_field(meta, "tokenUsage"),
            get_field(meta, "usage"),
            get_field(get_field(meta, "openai"), "usage"),
        ):
            if candidate is not None and _has_token_fields(candidate):
                return candidate
        if _has_token_fields(meta):
            return meta
    usage = get_field(reply, "usage")
    if usage is not None and _has_token_fields(usage):
        return usage
    if _has_token_fields(reply):
        return reply
    return None


def extract_usage(reply: Any) -> Optional[TokenUsage]:
    """Extract token usage from a provider reply.

    Looks under metadata containers first, then a `usage` key, then flat
    fields on the reply. Absent counts default to zero.

    Returns:
        TokenUsage, or None when the reply carries no usage at all
    """
    container = _find_usage_container(reply)
    if container is None:
        return None
    prompt = _first_count(container, PROMPT_FIELDS) or 0
    completion = _first_count(container, COMPLETION_FIELDS) or 0
    total = _first_count(container, TOTAL_FIELDS)
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=total if total is not None else prompt + completion
    )


def get_tool_name(tool_call: Any) -> Optional[str]:
    """Tool name from a flat `{name}` or wrapped `{function: {name}}` call."""
    name = get_field(tool_call, "name")
    if name is None:
        name = get_field(get_field(tool_call, "function"), "name")
    return name


def get_tool_args(tool_call: Any) -> Dict[str, Any]:
    """Tool arguments from a flat `{args}` or wrapped `{function: {arguments}}` call.

    String arguments are JSON decoded; undecodable strings give `{}`.
    """
    args = get_field(tool_call, "args")
    if isinstance(args, Mapping):
        return dict(args)
    if isinstance(args, str):
        decoded = _decode_args(args)
        if decoded is not None:
            return decoded

    raw = get_field(get_field(tool_call, "function"), "arguments")
    if isinstance(raw, str):
        return _decode_args(raw) or {}
    if isinstance(raw, Mapping):
        return dict(raw)
    return {}


def _decode_args(text: str) -> Optional[Dict[str, Any]]:
    try:
        decoded = json.loads(text)
    except ValueError:
        return None
    return decoded if isinstance(decoded, dict) else None


def tool_schema_name(tool: Any) -> str:
    """Name of a tool schema, flat or wrapped in `function`."""
    return str(get_field(tool, "name") or get_field(get_field(tool, "function"), "name") or "")


def tool_schema_parameters(tool: Any) -> Any:
    """Parameter schema of a tool from `parameters`, `schema`, `input_schema` or `function.parameters`."""
    for candidate in (
        get_field(tool, "parameters"),
        get_field(tool, "schema"),
        get_field(tool, "input_schema"),
        get_field(get_field(tool, "function"), "parameters"),
    ):
        if candidate is not None:
            return candidate
    return None
