"""
OpenAI chat provider.

Calls the OpenAI chat completions API and returns a plain reply mapping that
the cassette engine can record, normalize and price.
"""

import json
from typing import Any, Dict, Iterable, List, Optional

from openai import AsyncOpenAI

from ..core.normalize import (
    flatten_content,
    get_field,
    load_envelope,
    message_role,
    to_jsonable,
    tool_schema_name,
    tool_schema_parameters,
    unwrap_envelope,
)


class OpenAIChatProvider:
    """Async OpenAI chat completions client with the provider `invoke` surface.

    Failures from the OpenAI SDK propagate unchanged; retries are the
    SDK's own concern.
    """

    def __init__(self, model: str, client: Optional[AsyncOpenAI] = None, **parameters: Any):
        """Initialize the provider.

        Args:
            model: OpenAI model name (required)
            client: Pre-built AsyncOpenAI client (created lazily when omitted)
            **parameters: Default completion parameters such as temperature

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not str(model).strip():
            raise ValueError("model is required and cannot be empty")

        self.model = model
        self.parameters = {k: v for k, v in parameters.items() if v is not None}
        self._client = client
        self._tools: List[Dict[str, Any]] = []

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    def bind_tools(self, tools: Optional[Iterable[Any]]) -> "OpenAIChatProvider":
        """Expose tool schemas to the model as function tools."""
        self._tools = [_function_tool(tool) for tool in tools or []]
        return self

    async def invoke(self, messages: List[Any], call_options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Create a chat completion.

        Args:
            messages: Conversation so far (required)
            call_options: Per-call completion parameters

        Returns:
            `{role, content, tool_calls, id, response_metadata: {model, usage}}`

        Raises:
            ValueError: If messages is empty
            OpenAI API errors: Propagated without modification
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        params = dict(self.parameters)
        params.update({k: v for k, v in (call_options or {}).items() if v is not None})
        if self._tools:
            params.setdefault("tools", self._tools)

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[_to_openai_message(m) for m in messages],
            **params
        )

        message = response.choices[0].message
        usage = response.usage
        return {
            "role": "assistant",
            "content": message.content or "",
            "tool_calls": [_tool_call_dict(tc) for tc in (message.tool_calls or [])],
            "id": response.id,
            "response_metadata": {
                "model": self.model,
                "usage": {
                    "prompt_tokens": usage.prompt_tokens,
                    "completion_tokens": usage.completion_tokens,
                    "total_tokens": usage.total_tokens,
                } if usage else None,
            },
        }


def _function_tool(tool: Any) -> Dict[str, Any]:
    description = get_field(tool, "description") or get_field(get_field(tool, "function"), "description")
    return {
        "type": "function",
        "function": {
            "name": tool_schema_name(tool),
            "description": str(description or ""),
            "parameters": to_jsonable(tool_schema_parameters(tool)) or {"type": "object", "properties": {}},
        },
    }


def _to_openai_message(message: Any) -> Dict[str, Any]:
    message = load_envelope(message)
    if isinstance(message, str):
        return {"role": "user", "content": message}
    base = unwrap_envelope(message)
    converted: Dict[str, Any] = {
        "role": message_role(message) or message_role(base) or "user",
        "content": flatten_content(get_field(base, "content")),
    }
    tool_calls = get_field(base, "tool_calls")
    if tool_calls:
        converted["tool_calls"] = [_to_openai_tool_call(tc, i) for i, tc in enumerate(tool_calls)]
    tool_call_id = get_field(base, "tool_call_id")
    if tool_call_id:
        converted["tool_call_id"] = tool_call_id
    return converted


def _to_openai_tool_call(tool_call: Any, index: int) -> Dict[str, Any]:
    data = to_jsonable(tool_call)
    if "function" in data:
        return data
    # LangChain style {name, args, id}
    return {
        "id": data.get("id") or f"call_{index}",
        "type": "function",
        "function": {"name": data.get("name"), "arguments": json.dumps(data.get("args") or {})},
    }


def _tool_call_dict(tool_call: Any) -> Dict[str, Any]:
    return {
        "id": tool_call.id,
        "type": "function",
        "function": {
            "name": tool_call.function.name,
            "arguments": tool_call.function.arguments,
        },
    }
