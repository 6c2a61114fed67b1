from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from searchmate.errors import AdapterCancelledError
from searchmate.models.messages import (
    CallOptions,
    FinishReason,
    GenerateResult,
    Message,
    StreamPart,
    ToolSpec,
)

_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": "stop",
    "length": "length",
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
    "content_filter": "content-filter",
}


def map_finish_reason(value: str | None) -> FinishReason:
    if value is None:
        return "other"
    return _FINISH_REASONS.get(value, "other")


class LanguageModel(ABC):
    """Uniform generation contract every backend adapter implements.

    ``generate`` returns one complete result; ``stream`` yields text deltas,
    tool-call deltas, tool calls, and a single closing ``Finish`` part.
    """

    provider: str = "unknown"

    def __init__(self, model_id: str):
        self.model_id = model_id

    @abstractmethod
    async def generate(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
        options: CallOptions | None = None,
    ) -> GenerateResult:
        raise NotImplementedError

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
        options: CallOptions | None = None,
    ) -> AsyncIterator[StreamPart]:
        raise NotImplementedError

    def check_cancelled(self, options: CallOptions) -> None:
        if options.cancelled:
            raise AdapterCancelledError("Generation cancelled", provider=self.provider)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider={self.provider!r}, model_id={self.model_id!r})"
