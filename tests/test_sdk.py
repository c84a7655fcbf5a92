"""
Unit tests for the OpenAI provider.

Tests request shaping and reply conversion with a mocked AsyncOpenAI client.
"""

import json
from unittest.mock import AsyncMock, Mock, patch

import pytest

from llm_cassette.core.normalize import extract_usage, normalize_reply
from llm_cassette.sdk.openai_client import OpenAIChatProvider


def _completion(content="Hello!", tool_calls=None, usage=True):
    response = Mock()
    response.id = "chatcmpl_123"
    response.choices = [Mock()]
    response.choices[0].message.content = content
    response.choices[0].message.tool_calls = tool_calls
    if usage:
        response.usage.prompt_tokens = 100
        response.usage.completion_tokens = 50
        response.usage.total_tokens = 150
    else:
        response.usage = None
    return response


def _client(response):
    client = Mock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


class TestOpenAIChatProvider:
    """Test OpenAIChatProvider behavior."""

    def test_init_missing_model(self):
        """Test initialization fails with missing model."""
        with pytest.raises(ValueError, match="model is required"):
            OpenAIChatProvider(model="")

        with pytest.raises(ValueError, match="model is required"):
            OpenAIChatProvider(model=None)

    @patch('llm_cassette.sdk.openai_client.AsyncOpenAI')
    def test_client_created_lazily(self, mock_openai_class):
        """Test no client is built until first use."""
        provider = OpenAIChatProvider(model="gpt-4o-mini")

        mock_openai_class.assert_not_called()
        assert provider.client is mock_openai_class.return_value
        mock_openai_class.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_invoke_success(self):
        """Test a plain completion call and its reply mapping."""
        client = _client(_completion())
        provider = OpenAIChatProvider(model="gpt-4o-mini", client=client, temperature=0, seed=None)

        reply = await provider.invoke([{"role": "user", "content": "Hi"}])

        client.chat.completions.create.assert_awaited_once_with(
            model="gpt-4o-mini",
            messages=[{"role": "user", "content": "Hi"}],
            temperature=0
        )
        assert reply["role"] == "assistant"
        assert reply["content"] == "Hello!"
        assert reply["tool_calls"] == []
        assert reply["id"] == "chatcmpl_123"
        assert reply["response_metadata"]["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_reply_usage_extractable(self):
        """Test usage lands where the engine looks for it."""
        client = _client(_completion())
        provider = OpenAIChatProvider(model="gpt-4o-mini", client=client)

        reply = await provider.invoke(["Hi"])

        usage = extract_usage(reply)
        assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens) == (100, 50, 150)

    @pytest.mark.asyncio
    async def test_missing_usage(self):
        client = _client(_completion(usage=False))
        provider = OpenAIChatProvider(model="gpt-4o-mini", client=client)

        reply = await provider.invoke(["Hi"])

        assert reply["response_metadata"]["usage"] is None
        assert extract_usage(reply) is None

    @pytest.mark.asyncio
    async def test_call_options_override_defaults(self):
        client = _client(_completion())
        provider = OpenAIChatProvider(model="gpt-4o-mini", client=client, temperature=0)

        await provider.invoke(["Hi"], {"temperature": 0.7, "max_tokens": 10, "stop": None})

        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 10
        assert "stop" not in kwargs

    @pytest.mark.asyncio
    async def test_empty_messages_rejected(self):
        provider = OpenAIChatProvider(model="gpt-4o-mini", client=_client(_completion()))

        with pytest.raises(ValueError, match="messages is required"):
            await provider.invoke([])

    @pytest.mark.asyncio
    async def test_api_failure_propagates(self):
        """Test SDK errors are not swallowed."""
        client = Mock()
        client.chat.completions.create = AsyncMock(side_effect=RuntimeError("API Error"))
        provider = OpenAIChatProvider(model="gpt-4o-mini", client=client)

        with pytest.raises(RuntimeError, match="API Error"):
            await provider.invoke(["Hi"])

    @pytest.mark.asyncio
    async def test_bound_tools_sent_as_functions(self):
        client = _client(_completion())
        provider = OpenAIChatProvider(model="gpt-4o-mini", client=client)
        provider.bind_tools([{
            "name": "get_weather",
            "description": "Weather lookup",
            "parameters": {"type": "object", "properties": {"city": {"type": "string"}}},
        }])

        await provider.invoke(["Hi"])

        tools = client.chat.completions.create.await_args.kwargs["tools"]
        assert tools == [{
            "type": "function",
            "function": {
                "name": "get_weather",
                "description": "Weather lookup",
                "parameters": {"type": "object", "properties": {"city": {"type": "string"}}},
            },
        }]

    @pytest.mark.asyncio
    async def test_tool_calls_converted(self):
        """Test SDK tool call objects become plain mappings."""
        tool_call = Mock()
        tool_call.id = "call_1"
        tool_call.function.name = "get_weather"
        tool_call.function.arguments = '{"city": "Paris"}'
        client = _client(_completion(content=None, tool_calls=[tool_call]))
        provider = OpenAIChatProvider(model="gpt-4o-mini", client=client)

        reply = await provider.invoke(["Weather?"])

        assert reply["content"] == ""
        assert reply["tool_calls"] == [{
            "id": "call_1",
            "type": "function",
            "function": {"name": "get_weather", "arguments": '{"city": "Paris"}'},
        }]
        assert normalize_reply(reply)["tool_calls"] == reply["tool_calls"]

    @pytest.mark.asyncio
    async def test_message_conversion(self):
        """Test LangChain style messages and tool results are converted."""
        client = _client(_completion())
        provider = OpenAIChatProvider(model="gpt-4o-mini", client=client)
        messages = [
            {"type": "human", "content": [{"type": "text", "text": "Weather?"}]},
            {"role": "assistant", "content": "", "tool_calls": [{"id": "c1", "name": "get_weather", "args": {"city": "Paris"}}]},
            {"role": "tool", "content": '{"temp": 20}', "tool_call_id": "c1"},
        ]

        await provider.invoke(messages)

        sent = client.chat.completions.create.await_args.kwargs["messages"]
        assert sent[0] == {"role": "user", "content": "Weather?"}
        assert sent[1]["tool_calls"] == [{
            "id": "c1",
            "type": "function",
            "function": {"name": "get_weather", "arguments": json.dumps({"city": "Paris"})},
        }]
        assert sent[2] == {"role": "tool", "content": '{"temp": 20}', "tool_call_id": "c1"}
