from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from searchmate.adapters.chat import ChatLanguageModel
from searchmate.errors import AdapterError
from searchmate.models.messages import (
    AssistantMessage,
    CallOptions,
    ToolCall,
    ToolMessage,
    ToolResultPart,
    ToolSpec,
    UserMessage,
)

SEARCH = ToolSpec(name="search", description="Search the web")


class _FakeStream:
    def __init__(self, chunks):
        self._chunks = chunks
        self.closed = False

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for chunk in self._chunks:
            yield chunk

    async def close(self):
        self.closed = True


def _chunk(content=None, tool_calls=None, finish_reason=None, usage=None):
    choices = [] if usage else [
        SimpleNamespace(
            delta=SimpleNamespace(content=content, tool_calls=tool_calls),
            finish_reason=finish_reason,
        )
    ]
    return SimpleNamespace(choices=choices, usage=usage)


def _tool_delta(index, *, id=None, name=None, arguments=""):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


def _client(create: AsyncMock):
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


@pytest.mark.asyncio
async def test_generate_maps_text_tool_calls_and_usage():
    response = SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(
                    content="Looking it up",
                    tool_calls=[
                        SimpleNamespace(id="tc1", function=SimpleNamespace(name="search", arguments='{"query": "Rivian"}')),
                        SimpleNamespace(id="tc2", function=SimpleNamespace(name="search", arguments="{bad json")),
                    ],
                ),
                finish_reason="tool_calls",
            )
        ],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=4),
    )
    create = AsyncMock(return_value=response)
    model = ChatLanguageModel(_client(create), "gpt-4o")

    result = await model.generate([UserMessage(content="hi")], [SEARCH], CallOptions(tool_choice="required"))

    assert result.text == "Looking it up"
    assert [(c.id, c.args) for c in result.tool_calls] == [("tc1", {"query": "Rivian"}), ("tc2", {})]
    assert result.finish_reason == "tool-calls"
    assert result.usage.prompt_tokens == 12
    kwargs = create.await_args.kwargs
    assert kwargs["tool_choice"] == "required"
    assert kwargs["tools"][0]["function"]["name"] == "search"


@pytest.mark.asyncio
async def test_messages_map_to_chat_roles():
    create = AsyncMock(
        return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="ok", tool_calls=None), finish_reason="stop")],
            usage=None,
        )
    )
    model = ChatLanguageModel(_client(create), "gpt-4o")
    messages = [
        UserMessage(content="hi"),
        AssistantMessage(tool_calls=[ToolCall(id="tc1", name="search", args={"query": "x"})]),
        ToolMessage(
            results=[
                ToolResultPart(tool_call_id="tc1", tool_name="search", result={"results": []}),
                ToolResultPart(tool_call_id="tc2", tool_name="search", result={"error": "boom"}, is_error=True),
            ]
        ),
    ]

    await model.generate(messages, options=CallOptions(system="sys", tool_choice="search"))

    sent = create.await_args.kwargs["messages"]
    assert [m["role"] for m in sent] == ["system", "user", "assistant", "tool", "tool"]
    assert sent[2]["tool_calls"][0]["function"]["arguments"] == '{"query": "x"}'
    assert sent[4]["content"].startswith("ERROR: ")
    # no tools declared, so no tool_choice either
    assert "tool_choice" not in create.await_args.kwargs


@pytest.mark.asyncio
async def test_stream_accumulates_tool_calls_by_index():
    stream = _FakeStream(
        [
            _chunk(tool_calls=[_tool_delta(0, id="tc1", name="search", arguments='{"que')]),
            _chunk(tool_calls=[_tool_delta(0, arguments='ry": "Rivian"}')]),
            _chunk(finish_reason="tool_calls"),
            _chunk(usage=SimpleNamespace(prompt_tokens=5, completion_tokens=7)),
        ]
    )
    model = ChatLanguageModel(_client(AsyncMock(return_value=stream)), "gpt-4o")

    parts = [p async for p in model.stream([UserMessage(content="hi")], [SEARCH])]

    assert [p.type for p in parts] == ["tool-call-delta", "tool-call-delta", "tool-call", "finish"]
    assert parts[1].tool_call_id == "tc1"
    assert parts[2].args == {"query": "Rivian"}
    assert parts[3].finish_reason == "tool-calls"
    assert parts[3].usage.completion_tokens == 7
    assert stream.closed


@pytest.mark.asyncio
async def test_stream_text_deltas():
    stream = _FakeStream([_chunk(content="Hello "), _chunk(content="world"), _chunk(finish_reason="stop")])
    model = ChatLanguageModel(_client(AsyncMock(return_value=stream)), "gpt-4o")

    parts = [p async for p in model.stream([UserMessage(content="hi")])]

    assert "".join(p.text for p in parts if p.type == "text-delta") == "Hello world"
    assert parts[-1].finish_reason == "stop"


@pytest.mark.asyncio
async def test_stream_api_error_becomes_error_part():
    create = AsyncMock(
        side_effect=openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    )
    model = ChatLanguageModel(_client(create), "gpt-4o", provider="openai")

    parts = [p async for p in model.stream([UserMessage(content="hi")])]

    assert [p.type for p in parts] == ["error", "finish"]
    assert isinstance(parts[0].error, AdapterError)
    assert parts[0].error.provider == "openai"
    assert parts[1].finish_reason == "error"
