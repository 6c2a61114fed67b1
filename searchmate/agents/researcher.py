"""Researcher: one tool-augmented answer step per call.

Each ``run`` streams the model once with the tool set, executes the tool
calls it surfaces and appends the exchange to the working messages. The
orchestrator repeats the step until the answer finishes or an error occurs.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncGenerator

from loguru import logger

from searchmate.adapters.base import LanguageModel
from searchmate.config import settings
from searchmate.llm_client import get_model
from searchmate.models.events import SSEEvent
from searchmate.models.messages import (
    AssistantMessage,
    CallOptions,
    Finish,
    FinishReason,
    Message,
    StreamError,
    TextDelta,
    ToolCall,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    has_tool_results,
    transform_tool_messages,
)
from searchmate.services import streaming
from searchmate.services.prompt_store import render_prompt
from searchmate.tools.registry import ToolRegistry


@dataclass
class ResearchResult:
    full_response: str = ""
    has_error: bool = False
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_responses: list[ToolResultPart] = field(default_factory=list)
    finish_reason: FinishReason | None = None
    error: str | None = None


class Researcher:
    name = "researcher"

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        model: LanguageModel | None = None,
        route: str | None = None,
        conversation_id: str | None = None,
        cancel: asyncio.Event | None = None,
        max_tokens: int | None = None,
    ):
        self.registry = registry
        self.model = model
        self.route = route
        self.conversation_id = conversation_id
        self.cancel = cancel
        self.max_tokens = settings.max_tokens if max_tokens is None else max_tokens
        self.result = ResearchResult()

    def _options(self, messages: list[Message], pending: list[ToolResultPart]) -> CallOptions:
        return CallOptions(
            system=render_prompt(
                "researcher.system_prompt",
                current_date=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            ),
            # Force a tool call until this round has tool results to answer from
            tool_choice="auto" if has_tool_results(messages) else "required",
            conversation_id=self.conversation_id,
            tool_results=pending,
            cancel=self.cancel,
            max_tokens=self.max_tokens,
        )

    async def run(
        self,
        messages: list[Message],
        *,
        pending: list[ToolResultPart] | None = None,
        use_sub_model: bool = False,
    ) -> AsyncGenerator[SSEEvent, None]:
        """Run one step; ``messages`` is extended in place with the exchange."""
        result = self.result = ResearchResult()
        has_tool_result = has_tool_results(messages)
        model = self.model or get_model(use_sub_model)
        options = self._options(messages, pending or [])

        async for part in model.stream(transform_tool_messages(messages), self.registry.specs(), options):
            if isinstance(part, TextDelta):
                if not part.text:
                    continue
                result.full_response += part.text
                yield streaming.answer_delta(result.full_response, detail=has_tool_result)
            elif isinstance(part, ToolCallPart):
                result.tool_calls.append(part.to_tool_call())
            elif isinstance(part, StreamError):
                logger.error(f"Researcher stream error: {part.error}")
                result.has_error = True
                result.error = str(part.error)
            elif isinstance(part, Finish):
                result.finish_reason = part.finish_reason

        if not result.has_error:
            for call in result.tool_calls:
                response = await self.registry.execute(call, self.route)
                if response.is_error:
                    result.has_error = True
                    result.error = result.error or f"An error occurred while running {call.name}"
                result.tool_responses.append(response)
                yield streaming.tool_result(
                    response.tool_name,
                    response.result,
                    is_error=response.is_error,
                    args=response.args,
                    **self.registry.display_data(response),
                )

        messages.append(AssistantMessage(content=result.full_response, tool_calls=result.tool_calls))
        if result.tool_responses:
            messages.append(ToolMessage(results=result.tool_responses))
