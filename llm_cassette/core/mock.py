"""
Deterministic stand-in model used when a replay miss is resolved with `mock`.

Never touches the network. The reply echoes (or templates) the last user
message and, when a bound tool is named in that message, requests it.
"""

import hashlib
import json
from typing import Any, Dict, Iterable, List, Optional

from .normalize import (
    flatten_content,
    get_field,
    load_envelope,
    message_role,
    tool_schema_name,
    unwrap_envelope,
)


class MockLLM:
    """Offline chat model with the same `invoke` surface as a provider."""

    def __init__(self, behavior: str = "echo", template: str = "Mock response: {last_user}"):
        if behavior not in ("echo", "template"):
            raise ValueError("behavior must be 'echo' or 'template'")
        self.behavior = behavior
        self.template = template
        self._tools: List[Any] = []

    def bind_tools(self, tools: Optional[Iterable[Any]]) -> "MockLLM":
        self._tools = list(tools or [])
        return self

    async def invoke(self, messages: Iterable[Any], call_options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        last_user = _last_user_text(messages)
        if self.behavior == "template":
            content = self.template.replace("{last_user}", last_user)
        else:
            content = f"Echo: {last_user[:200]}"

        tool_calls = []
        tool_name = self._match_tool(last_user)
        if tool_name:
            digest = hashlib.sha256(f"{tool_name}:{last_user}".encode("utf-8")).hexdigest()
            tool_calls.append({
                "id": f"tool_{digest[:12]}",
                "type": "function",
                "function": {"name": tool_name, "arguments": json.dumps({"mock": True})},
            })

        return {
            "role": "assistant",
            "content": "" if tool_calls else content,
            "tool_calls": tool_calls,
            "response_metadata": {
                "tokenUsage": {"promptTokens": 1, "completionTokens": 1, "totalTokens": 2}
            },
        }

    def _match_tool(self, text: str) -> Optional[str]:
        lowered = text.lower()
        for tool in self._tools:
            name = tool_schema_name(tool)
            if name and name.lower() in lowered:
                return name
        return None


def _last_user_text(messages: Iterable[Any]) -> str:
    for message in reversed(list(messages or [])):
        message = load_envelope(message)
        if isinstance(message, str):
            return message
        if message_role(message) == "user":
            return flatten_content(get_field(unwrap_envelope(message), "content"))
    return ""
