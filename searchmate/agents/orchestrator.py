"""Conversation orchestrator: sequences one user turn end to end.

Load the recent window -> append the user turn -> task manager ->
either an inquiry, or the researcher loop followed by the answer, related
queries and the follow-up panel. Persists once the conversation holds an
answer.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator

from loguru import logger

from searchmate.adapters.base import LanguageModel
from searchmate.agents.inquire import Inquirer
from searchmate.agents.query_suggestor import QuerySuggestor
from searchmate.agents.researcher import Researcher
from searchmate.agents.task_manager import task_manager
from searchmate.agents.writer import Writer
from searchmate.config import Settings, settings as default_settings
from searchmate.llm_client import is_assistant_backend
from searchmate.models.conversation import (
    Conversation,
    Turn,
    TurnType,
    build_chat_record,
    generate_id,
    tool_turn,
    user_query,
)
from searchmate.models.events import SSEEvent
from searchmate.models.messages import (
    AssistantMessage,
    FinishReason,
    Message,
    ToolResultPart,
    UserMessage,
    has_tool_results,
    transform_tool_messages,
)
from searchmate.services import logger as log_service
from searchmate.services import streaming
from searchmate.services.chat_store import ChatStore, get_chat_store
from searchmate.services.content_moderator import moderate_messages
from searchmate.services.video_service import get_video_results
from searchmate.tools.registry import ToolRegistry, get_tool_registry

DEFAULT_ERROR_MESSAGE = "An error occurred. Please try again."


@dataclass
class TurnInput:
    """One submission from the user.

    Exactly one of ``input``, ``related_query`` or ``inquiry`` is expected
    unless ``skip`` is set. ``route`` picks the search backend for this turn.
    """

    input: str | None = None
    related_query: str | None = None
    inquiry: dict[str, Any] = field(default_factory=dict)
    skip: bool = False
    route: str | None = None

    @property
    def content(self) -> str | None:
        if self.skip:
            return json.dumps({"action": "skip"})
        if self.input is not None:
            return json.dumps({"input": self.input}, ensure_ascii=False)
        if self.related_query is not None:
            return json.dumps({"related_query": self.related_query}, ensure_ascii=False)
        if self.inquiry:
            return json.dumps(self.inquiry, ensure_ascii=False)
        return None

    @property
    def turn_type(self) -> TurnType:
        if self.skip:
            return "skip"
        if self.input is not None:
            return "input"
        if self.related_query is not None:
            return "input_related"
        return "inquiry"


@dataclass
class _Answer:
    text: str = ""
    finish_reason: FinishReason | None = None
    errored: bool = False
    error: str | None = None
    steps: int = 0


class ConversationOrchestrator:
    """Runs turns for one conversation; turns are serialized per instance."""

    def __init__(
        self,
        conversation: Conversation | None = None,
        *,
        registry: ToolRegistry | None = None,
        store: ChatStore | None = None,
        model: LanguageModel | None = None,
        writer_model: LanguageModel | None = None,
        config: Settings | None = None,
    ):
        self.config = config or default_settings
        self.conversation = conversation or Conversation()
        self.registry = registry or get_tool_registry(self.config)
        self.store = store
        self.model = model
        self.writer_model = writer_model
        self._lock = asyncio.Lock()

    @property
    def chat_id(self) -> str:
        return self.conversation.chat_id

    def _log(self, step: str, status: str, **data: Any) -> None:
        log_service.log_turn_step(self.chat_id, step, status, data or None)

    async def submit(self, turn_input: TurnInput) -> AsyncGenerator[SSEEvent, None]:
        async with self._lock:
            cancel = asyncio.Event()
            watchdog = asyncio.get_running_loop().call_later(self.config.turn_timeout, cancel.set)
            outcome = "error"
            persisted = False
            try:
                yield streaming.turn_started(self.chat_id, route=turn_input.route)

                messages = self.conversation.window(self.config.message_window)
                content = turn_input.content
                if content:
                    turn = self.conversation.append(
                        Turn(role="user", content=content, type=turn_input.turn_type)
                    )
                    messages.append(UserMessage(content=content, id=turn.id))

                try:
                    async for event in self._process(messages, turn_input, cancel):
                        if isinstance(event, str):
                            outcome = event
                        else:
                            yield event
                except Exception as e:
                    logger.exception(f"Turn failed for chat {self.chat_id}")
                    self._log("turn", "error", error=str(e))
                    outcome = "error"
                    if cancel.is_set():
                        yield streaming.error(f"Turn timed out after {self.config.turn_timeout:g}s")
                    else:
                        yield streaming.error(f"{DEFAULT_ERROR_MESSAGE} ({e})")

                if outcome != "error" and self.conversation.has_answer():
                    persisted = await self._persist()
                yield streaming.turn_complete(self.chat_id, outcome=outcome, persisted=persisted)
            finally:
                watchdog.cancel()

    async def _process(
        self,
        messages: list[Message],
        turn_input: TurnInput,
        cancel: asyncio.Event,
    ) -> AsyncGenerator[SSEEvent | str, None]:
        """Yield events for the UI; a bare string marks the turn outcome."""
        if self.config.moderation_enabled:
            messages[:] = await moderate_messages(messages)

        next_action = "proceed"
        if not turn_input.skip:
            decision = await task_manager(messages, model=self.model, cancel=cancel)
            if decision is not None:
                next_action = decision.next
        self._log("task_manager", next_action)

        if next_action == "inquire":
            inquirer = Inquirer(self.model, cancel)
            async for event in inquirer.run(messages):
                yield event
            self.conversation.append(
                Turn(role="assistant", content=inquirer.inquiry.model_dump_json(), type="inquiry")
            )
            self._log("inquire", "completed", question=inquirer.inquiry.question)
            yield "inquiry"
            return

        group_id = generate_id()
        answer = _Answer()
        async for event in self._research(messages, turn_input.route, group_id, cancel, answer):
            yield event

        if answer.errored:
            self._log("researcher", "error", error=answer.error, steps=answer.steps)
            if cancel.is_set():
                answer.error = f"Turn timed out after {self.config.turn_timeout:g}s"
            yield streaming.error(answer.error or DEFAULT_ERROR_MESSAGE, agent="researcher")
            yield "error"
            return

        yield streaming.answer_complete(answer.text)
        self.conversation.append(
            Turn(role="assistant", content=answer.text, type="answer", group_id=group_id)
        )
        self._log("researcher", "answered", steps=answer.steps, finish_reason=answer.finish_reason)

        if self.config.ollama_configured:
            processed: list[Message] = [AssistantMessage(content=answer.text)]
        else:
            processed = transform_tool_messages(messages)

        if self.config.enable_related_videos:
            query = user_query(self.conversation.turns)
            if query:
                yield streaming.videos(query, await get_video_results(query))

        suggestor = QuerySuggestor(self.model, cancel, assistant_backend=is_assistant_backend(self.config))
        async for event in suggestor.run(processed):
            yield event
        self.conversation.append(
            Turn(
                role="assistant",
                content=suggestor.related.model_dump_json(),
                type="related",
                group_id=group_id,
            )
        )

        yield streaming.followup(turn_input.route)
        self.conversation.append(
            Turn(role="assistant", content="followup", type="followup", group_id=group_id)
        )
        yield "answered"

    def _keep_researching(self, answer: _Answer, tool_outputs: list[ToolResultPart]) -> bool:
        if answer.errored:
            return False
        if self.config.tool_forced_mode:
            return not tool_outputs and not answer.text
        return answer.finish_reason != "stop"

    async def _research(
        self,
        messages: list[Message],
        route: str | None,
        group_id: str,
        cancel: asyncio.Event,
        answer: _Answer,
    ) -> AsyncGenerator[SSEEvent, None]:
        researcher = Researcher(
            self.registry,
            model=self.model,
            route=route,
            conversation_id=self.chat_id,
            cancel=cancel,
            max_tokens=self.config.max_tokens,
        )
        tool_outputs: list[ToolResultPart] = []

        while self._keep_researching(answer, tool_outputs):
            if answer.steps >= self.config.researcher_max_steps:
                answer.errored = True
                answer.error = "The researcher did not produce an answer within its step limit."
                break
            answer.steps += 1
            use_sub_model = self.config.ollama_configured and has_tool_results(messages)

            async for event in researcher.run(messages, pending=tool_outputs, use_sub_model=use_sub_model):
                yield event

            result = researcher.result
            answer.text = result.full_response
            answer.finish_reason = result.finish_reason
            answer.errored = result.has_error
            answer.error = result.error
            tool_outputs = result.tool_responses
            # Tool turns are recorded even when the result is an error
            for output in tool_outputs:
                self.conversation.append(tool_turn(output, group_id))

        if self.config.tool_forced_mode and not answer.text and not answer.errored:
            latest = transform_tool_messages(messages)[-self.config.message_window:]
            writer = Writer(self.writer_model, cancel, max_tokens=self.config.max_tokens)
            async for event in writer.run(latest):
                yield event
            answer.text = writer.response
            answer.errored = writer.has_error
            answer.error = writer.error
            messages.append(AssistantMessage(content=answer.text))

    async def _persist(self) -> bool:
        store = self.store or get_chat_store()
        try:
            await store.save_chat(build_chat_record(self.conversation))
        except Exception as exc:
            log_service.log_event(
                event_type="chat_persist_error",
                message="Failed to save chat",
                error=str(exc),
                chat_id=self.chat_id,
            )
            return False
        self._log("persist", "completed")
        return True
