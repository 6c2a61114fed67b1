"""Language-model adapter over the OpenAI Assistants thread/run API.

The remote protocol is turn based and poll driven: a thread holds the
conversation, a run executes the assistant against it, and the caller polls
the run until it completes, fails, or stops in ``requires_action`` waiting
for tool outputs. This adapter maps that onto the uniform generate/stream
contract:

* a run stopping in ``requires_action`` is surfaced as tool calls and left
  pending; the next call that carries ``CallOptions.tool_results`` for the
  same conversation submits those outputs and resumes polling;
* completed text is segmented on whitespace and emitted as text deltas,
  since the protocol has no token streaming;
* usage is reported as unknown.

Runs against one adapter instance are serialized by a lock because the
remote API rejects overlapping runs on a thread.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import re
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Literal

import openai
from loguru import logger

from searchmate.adapters.base import LanguageModel
from searchmate.errors import (
    AdapterCancelledError,
    AdapterError,
    RunFailedError,
    RunTimeoutError,
)
from searchmate.models.messages import (
    AssistantMessage,
    CallOptions,
    Finish,
    GenerateResult,
    Message,
    StreamError,
    StreamPart,
    SystemMessage,
    TextDelta,
    ToolCall,
    ToolCallDelta,
    ToolCallPart,
    ToolMessage,
    ToolSpec,
    Usage,
    encode_tool_content,
)
from searchmate.services import logger as log_service

ThreadScope = Literal["conversation", "call"]

TERMINAL_FAILURES = {"failed", "cancelled", "expired", "incomplete"}

_SEGMENT_RE = re.compile(r"\S+\s*|\s+")


@dataclass
class AssistantRunState:
    thread_id: str
    run_id: str | None = None
    status: str = "queued"
    pending_tool_calls: list[ToolCall] = field(default_factory=list)
    synced_message_ids: set[str] = field(default_factory=set)
    # Digests of replies this thread produced itself
    produced_digests: set[str] = field(default_factory=set)


@dataclass
class RunOutcome:
    status: str
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)


def segment_text(text: str) -> list[str]:
    """Split text into whitespace-delimited chunks that concatenate back to it."""
    return _SEGMENT_RE.findall(text)


def _digest(content: str) -> str:
    return hashlib.sha1(content.strip().encode("utf-8")).hexdigest()[:12]


def _system_message_id(content: str) -> str:
    return "system:" + _digest(content)


class AssistantLanguageModel(LanguageModel):
    provider = "openai-assistant"

    def __init__(
        self,
        client: Any,
        assistant_id: str,
        *,
        instructions: str | None = None,
        poll_interval: float = 1.0,
        run_timeout: float = 120.0,
        thread_scope: ThreadScope = "conversation",
        chunk_delay: float = 0.0,
        max_threads: int = 256,
    ):
        super().__init__(assistant_id)
        self._client = client
        self.assistant_id = assistant_id
        self.instructions = instructions
        self.poll_interval = poll_interval
        self.run_timeout = run_timeout
        self.thread_scope = thread_scope
        self.chunk_delay = chunk_delay
        self.max_threads = max(max_threads, 1)
        self._lock = asyncio.Lock()
        # conversation id -> thread state, least recently used first
        self._runs: OrderedDict[str, AssistantRunState] = OrderedDict()

    def run_state(self, conversation_id: str) -> AssistantRunState | None:
        return self._runs.get(conversation_id)

    def _remember(self, key: str, state: AssistantRunState) -> None:
        self._runs[key] = state
        self._runs.move_to_end(key)
        while len(self._runs) > self.max_threads:
            evicted, _ = self._runs.popitem(last=False)
            logger.debug(f"Dropped assistant thread state for {evicted}")

    # --- contract ---

    async def generate(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
        options: CallOptions | None = None,
    ) -> GenerateResult:
        options = options or CallOptions()
        outcome = await self._execute(messages, tools or [], options)
        if outcome.status == "requires_action":
            return GenerateResult(text="", tool_calls=outcome.tool_calls, finish_reason="other")
        return GenerateResult(text=outcome.text, tool_calls=[], finish_reason="stop")

    async def stream(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
        options: CallOptions | None = None,
    ) -> AsyncIterator[StreamPart]:
        options = options or CallOptions()
        try:
            outcome = await self._execute(messages, tools or [], options)
        except AdapterError as exc:
            yield StreamError(error=exc)
            yield Finish(finish_reason="error")
            return

        if outcome.status == "requires_action":
            for call in outcome.tool_calls:
                yield ToolCallDelta(
                    tool_call_id=call.id,
                    tool_name=call.name,
                    args_text_delta=json.dumps(call.args),
                )
                yield ToolCallPart(tool_call_id=call.id, tool_name=call.name, args=call.args)
            yield Finish(finish_reason="tool-calls")
            return

        for chunk in segment_text(outcome.text):
            if options.cancelled:
                yield StreamError(error=AdapterCancelledError("Generation cancelled", provider=self.provider))
                yield Finish(finish_reason="error")
                return
            yield TextDelta(text=chunk)
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
        yield Finish(finish_reason="stop")

    # --- thread/run protocol ---

    async def _execute(
        self,
        messages: list[Message],
        tools: list[ToolSpec],
        options: CallOptions,
    ) -> RunOutcome:
        async with self._lock:
            t0 = time.monotonic()
            deadline = t0 + self.run_timeout
            key = options.conversation_id
            state = self._runs.get(key) if key else None
            try:
                if options.tool_results and state is not None and state.status == "requires_action":
                    await self._submit_tool_outputs(state, options)
                    self._remember(key, state)
                else:
                    state = await self._start_run(messages, tools, options, state)
                    if key:
                        self._remember(key, state)
                outcome = await self._poll(state, options, deadline)
            except AdapterError as exc:
                if key:
                    self._runs.pop(key, None)
                log_service.log_llm_call(
                    model=self.model_id,
                    caller=self.provider,
                    input_tokens=None,
                    output_tokens=None,
                    duration_ms=int((time.monotonic() - t0) * 1000),
                    status="error",
                    error=str(exc),
                )
                raise

            if key and self.thread_scope == "call" and outcome.status == "completed":
                self._runs.pop(key, None)
            log_service.log_llm_call(
                model=self.model_id,
                caller=self.provider,
                input_tokens=None,
                output_tokens=None,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status=outcome.status,
            )
            return outcome

    async def _start_run(
        self,
        messages: list[Message],
        tools: list[ToolSpec],
        options: CallOptions,
        previous: AssistantRunState | None,
    ) -> AssistantRunState:
        reuse = (
            previous is not None
            and self.thread_scope == "conversation"
            and previous.status == "completed"
        )
        if reuse:
            state = AssistantRunState(
                thread_id=previous.thread_id,
                synced_message_ids=previous.synced_message_ids,
                produced_digests=previous.produced_digests,
            )
        else:
            thread = await self._call(self._client.beta.threads.create(), options)
            state = AssistantRunState(thread_id=thread.id)
            logger.debug(f"Created assistant thread {thread.id}")

        outgoing: list[Message] = list(messages)
        if options.system:
            outgoing.insert(0, SystemMessage(content=options.system, id=_system_message_id(options.system)))

        for message in outgoing:
            if message.id and message.id in state.synced_message_ids:
                continue
            # A reused thread already holds its own replies and submitted tool outputs
            if reuse and isinstance(message, ToolMessage):
                continue
            if reuse and isinstance(message, AssistantMessage) and _digest(message.content) in state.produced_digests:
                continue
            role, content = self._to_thread_message(message)
            if not content:
                continue
            await self._call(
                self._client.beta.threads.messages.create(state.thread_id, role=role, content=content),
                options,
            )
            if message.id:
                state.synced_message_ids.add(message.id)

        run_kwargs: dict[str, Any] = {"assistant_id": self.assistant_id}
        if self.instructions:
            run_kwargs["instructions"] = self.instructions
        if tools:
            run_kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters,
                    },
                }
                for t in tools
            ]
            run_kwargs["tool_choice"] = self._tool_choice(options.tool_choice)

        run = await self._call(
            self._client.beta.threads.runs.create(thread_id=state.thread_id, **run_kwargs),
            options,
        )
        state.run_id = run.id
        state.status = getattr(run, "status", None) or "queued"
        return state

    async def _submit_tool_outputs(self, state: AssistantRunState, options: CallOptions) -> None:
        results = {r.tool_call_id: r for r in options.tool_results}
        tool_outputs: list[dict[str, str]] = []
        for call in state.pending_tool_calls:
            result = results.get(call.id)
            if result is None:
                output = json.dumps({"error": f"No result for tool call {call.id}"})
            else:
                output = json.dumps(result.result, ensure_ascii=False, default=str)
            tool_outputs.append({"tool_call_id": call.id, "output": output})

        logger.debug(f"Submitting {len(tool_outputs)} tool output(s) to run {state.run_id}")
        await self._call(
            self._client.beta.threads.runs.submit_tool_outputs(
                state.run_id,
                thread_id=state.thread_id,
                tool_outputs=tool_outputs,
            ),
            options,
        )
        state.pending_tool_calls = []
        state.status = "queued"

    async def _poll(self, state: AssistantRunState, options: CallOptions, deadline: float) -> RunOutcome:
        while True:
            if time.monotonic() > deadline:
                raise RunTimeoutError(
                    f"Run {state.run_id} did not finish within {self.run_timeout}s",
                    provider=self.provider,
                )
            run = await self._call(
                self._client.beta.threads.runs.retrieve(state.run_id, thread_id=state.thread_id),
                options,
            )
            state.status = run.status

            if run.status == "completed":
                text = await self._latest_assistant_text(state, options)
                if text:
                    state.produced_digests.add(_digest(text))
                return RunOutcome(status="completed", text=text)

            if run.status == "requires_action":
                state.pending_tool_calls = self._pending_tool_calls(run)
                return RunOutcome(status="requires_action", tool_calls=state.pending_tool_calls)

            if run.status in TERMINAL_FAILURES:
                last_error = getattr(getattr(run, "last_error", None), "message", None)
                raise RunFailedError(
                    f"Assistant run {state.run_id} ended with status '{run.status}'",
                    provider=self.provider,
                    last_error=last_error,
                )

            await self._sleep(options)

    async def _latest_assistant_text(self, state: AssistantRunState, options: CallOptions) -> str:
        page = await self._call(
            self._client.beta.threads.messages.list(state.thread_id, order="desc", limit=20),
            options,
        )
        for message in page.data:
            if message.role != "assistant":
                continue
            parts = [
                part.text.value
                for part in message.content
                if getattr(part, "type", None) == "text"
            ]
            return "\n".join(parts)
        return ""

    # --- helpers ---

    async def _call(self, request: Awaitable[Any], options: CallOptions) -> Any:
        """Await one API request, aborting it if the caller cancels meanwhile."""
        task = asyncio.ensure_future(request)
        if options.cancelled:
            task.cancel()
            raise AdapterCancelledError("Generation cancelled", provider=self.provider)
        try:
            if options.cancel is None:
                return await task
            waiter = asyncio.ensure_future(options.cancel.wait())
            try:
                done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                waiter.cancel()
            if task not in done:
                task.cancel()
                raise AdapterCancelledError("Generation cancelled", provider=self.provider)
            return task.result()
        except openai.APIError as exc:
            raise AdapterError(f"Assistant API request failed: {exc}", provider=self.provider) from exc

    async def _sleep(self, options: CallOptions) -> None:
        if options.cancel is None:
            await asyncio.sleep(self.poll_interval)
            return
        try:
            await asyncio.wait_for(options.cancel.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            return
        raise AdapterCancelledError("Generation cancelled", provider=self.provider)

    @staticmethod
    def _to_thread_message(message: Message) -> tuple[str, str]:
        # Threads only accept user and assistant messages.
        if isinstance(message, ToolMessage):
            return "assistant", encode_tool_content(message.results)
        if isinstance(message, AssistantMessage):
            return "assistant", message.content
        return "user", message.content

    @staticmethod
    def _tool_choice(choice: str | None) -> Any:
        if choice in (None, "required"):
            return "required"
        if choice in ("auto", "none"):
            return choice
        return {"type": "function", "function": {"name": choice}}

    @staticmethod
    def _pending_tool_calls(run: Any) -> list[ToolCall]:
        required = getattr(run, "required_action", None)
        submit = getattr(required, "submit_tool_outputs", None)
        calls: list[ToolCall] = []
        for tc in getattr(submit, "tool_calls", None) or []:
            try:
                args = json.loads(tc.function.arguments or "{}")
            except json.JSONDecodeError:
                args = {}
            calls.append(ToolCall(id=tc.id, name=tc.function.name, args=args if isinstance(args, dict) else {}))
        return calls
