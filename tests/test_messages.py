from __future__ import annotations

import pydantic
import pytest

from searchmate.models.messages import (
    AssistantMessage,
    ToolCall,
    ToolMessage,
    ToolResultPart,
    UserMessage,
    decode_tool_content,
    encode_tool_content,
    has_tool_results,
    parse_messages,
    transform_tool_messages,
)


def _exchange():
    return [
        UserMessage(content="Rivian news", id="u1"),
        AssistantMessage(
            content="",
            tool_calls=[ToolCall(id="call_1", name="search", args={"query": "Rivian"})],
        ),
        ToolMessage(
            results=[
                ToolResultPart(
                    tool_call_id="call_1",
                    tool_name="search",
                    args={"query": "Rivian"},
                    result={"query": "Rivian", "results": [{"title": "R2", "url": "https://a"}]},
                )
            ],
            id="t1",
        ),
    ]


def test_transform_rewrites_tool_messages_as_assistant_text():
    transformed = transform_tool_messages(_exchange())

    assert [m.role for m in transformed] == ["user", "assistant"]
    assert transformed[1].id == "t1"
    assert not has_tool_results(transformed)

    decoded = decode_tool_content(transformed[1].content)
    assert decoded[0].tool_name == "search"
    assert decoded[0].result["results"][0]["title"] == "R2"


def test_transform_keeps_assistant_text_but_drops_its_calls():
    messages = [AssistantMessage(content="Let me check.", tool_calls=[ToolCall(id="c", name="search")])]

    transformed = transform_tool_messages(messages)

    assert transformed == [AssistantMessage(content="Let me check.")]


def test_decode_returns_none_for_plain_text():
    assert decode_tool_content("Rivian makes trucks.") is None
    assert decode_tool_content('{"answer": 1}') is None
    assert decode_tool_content("[1, 2]") is None


def test_encode_keeps_non_ascii_text():
    content = encode_tool_content([ToolResultPart(tool_call_id="c", tool_name="search", result="日本")])
    assert "日本" in content


def test_parse_messages_dispatches_on_role():
    messages = parse_messages(
        [
            {"role": "system", "content": "rules"},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "", "tool_calls": [{"id": "c", "name": "search"}]},
            {"role": "tool", "results": [{"tool_call_id": "c", "tool_name": "search", "result": {}}]},
        ]
    )

    assert [type(m).__name__ for m in messages] == [
        "SystemMessage",
        "UserMessage",
        "AssistantMessage",
        "ToolMessage",
    ]
    assert messages[2].tool_calls[0].args == {}


def test_parse_messages_rejects_unknown_roles():
    with pytest.raises(pydantic.ValidationError):
        parse_messages([{"role": "narrator", "content": "once upon a time"}])
