"""Message and stream-part types shared by every language-model adapter."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

FinishReason = Literal["stop", "length", "tool-calls", "content-filter", "error", "other"]
ToolChoice = str  # "auto" | "required" | "none" | <tool name>


# --- Messages ---


class ToolCall(BaseModel):
    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    is_error: bool = False


class SystemMessage(BaseModel):
    role: Literal["system"] = "system"
    content: str
    id: str | None = None


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    content: str
    id: str | None = None


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    id: str | None = None


class ToolMessage(BaseModel):
    role: Literal["tool"] = "tool"
    results: list[ToolResultPart] = Field(default_factory=list)
    id: str | None = None


Message = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage],
    Field(discriminator="role"),
]

_message_list_adapter = TypeAdapter(list[Message])


def parse_messages(raw: list[dict[str, Any]]) -> list[Message]:
    """Validate plain dict messages into the tagged message types."""
    return _message_list_adapter.validate_python(raw)


class ToolSpec(BaseModel):
    """A tool as declared to a model: name, description and JSON schema."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


# --- Stream parts ---


@dataclass
class Usage:
    # None means the backend does not report token usage
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


@dataclass
class TextDelta:
    text: str
    type: Literal["text-delta"] = "text-delta"


@dataclass
class ToolCallDelta:
    tool_call_id: str
    tool_name: str
    args_text_delta: str
    type: Literal["tool-call-delta"] = "tool-call-delta"


@dataclass
class ToolCallPart:
    tool_call_id: str
    tool_name: str
    args: dict[str, Any]
    type: Literal["tool-call"] = "tool-call"

    def to_tool_call(self) -> ToolCall:
        return ToolCall(id=self.tool_call_id, name=self.tool_name, args=self.args)


@dataclass
class Finish:
    finish_reason: FinishReason
    usage: Usage = field(default_factory=Usage)
    type: Literal["finish"] = "finish"


@dataclass
class StreamError:
    error: Exception
    type: Literal["error"] = "error"


StreamPart = Union[TextDelta, ToolCallDelta, ToolCallPart, Finish, StreamError]


@dataclass
class GenerateResult:
    text: str
    tool_calls: list[ToolCall]
    finish_reason: FinishReason
    usage: Usage = field(default_factory=Usage)


@dataclass
class CallOptions:
    """Per-call settings passed alongside the message list."""

    system: str | None = None
    tool_choice: ToolChoice | None = None
    conversation_id: str | None = None
    # Results for tool calls a previous call surfaced; they resolve a pending run.
    tool_results: list[ToolResultPart] = field(default_factory=list)
    cancel: asyncio.Event | None = None
    max_tokens: int | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()


# --- Tool message transform ---

TOOL_CONTENT_MARKER = "tool_results"


def encode_tool_content(results: list[ToolResultPart]) -> str:
    return json.dumps(
        {TOOL_CONTENT_MARKER: [r.model_dump(mode="json") for r in results]},
        ensure_ascii=False,
    )


def decode_tool_content(text: str) -> list[ToolResultPart] | None:
    """Parse assistant content produced by encode_tool_content; None if it is plain text."""
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(payload, dict) or TOOL_CONTENT_MARKER not in payload:
        return None
    return [ToolResultPart.model_validate(item) for item in payload[TOOL_CONTENT_MARKER]]


def transform_tool_messages(messages: list[Message]) -> list[Message]:
    """Rewrite tool messages as assistant text for backends without a tool role.

    Tool calls are stripped from assistant messages as well, since the call
    and its result are now carried by the encoded assistant text.
    """
    transformed: list[Message] = []
    for message in messages:
        if isinstance(message, ToolMessage):
            transformed.append(
                AssistantMessage(content=encode_tool_content(message.results), id=message.id)
            )
        elif isinstance(message, AssistantMessage) and message.tool_calls:
            if message.content:
                transformed.append(AssistantMessage(content=message.content, id=message.id))
        else:
            transformed.append(message)
    return transformed


def has_tool_results(messages: list[Message]) -> bool:
    return any(isinstance(message, ToolMessage) for message in messages)
