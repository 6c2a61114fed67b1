"""Language-model adapter over OpenAI-compatible chat completions.

Covers OpenAI itself plus every backend reachable through an
OpenAI-compatible endpoint (Ollama, Google, Anthropic, OpenRouter).
"""
from __future__ import annotations

import json
import time
from typing import Any, AsyncIterator

import openai

from searchmate.adapters.base import LanguageModel, map_finish_reason
from searchmate.errors import AdapterError
from searchmate.models.messages import (
    AssistantMessage,
    CallOptions,
    Finish,
    FinishReason,
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
)
from searchmate.services import logger as log_service


def _parse_args(raw: str | None) -> dict[str, Any]:
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ChatLanguageModel(LanguageModel):
    def __init__(
        self,
        client: Any,
        model_id: str,
        *,
        provider: str = "openai-chat",
        temperature: float | None = 0,
    ):
        super().__init__(model_id)
        self._client = client
        self.provider = provider
        self.temperature = temperature

    def _to_openai_messages(self, system: str | None, messages: list[Message]) -> list[dict[str, Any]]:
        openai_messages: list[dict[str, Any]] = []
        if system:
            openai_messages.append({"role": "system", "content": system})

        for message in messages:
            if isinstance(message, SystemMessage):
                openai_messages.append({"role": "system", "content": message.content})
            elif isinstance(message, AssistantMessage):
                msg: dict[str, Any] = {"role": "assistant", "content": message.content or None}
                if message.tool_calls:
                    msg["tool_calls"] = [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(call.args)},
                        }
                        for call in message.tool_calls
                    ]
                openai_messages.append(msg)
            elif isinstance(message, ToolMessage):
                for result in message.results:
                    content = json.dumps(result.result, ensure_ascii=False, default=str)
                    if result.is_error:
                        content = f"ERROR: {content}"
                    openai_messages.append(
                        {"role": "tool", "tool_call_id": result.tool_call_id, "content": content}
                    )
            else:
                openai_messages.append({"role": "user", "content": message.content})

        return openai_messages

    def _to_openai_tools(self, tools: list[ToolSpec]) -> list[dict[str, Any]]:
        return [
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

    @staticmethod
    def _tool_choice(choice: str | None) -> Any:
        if choice is None:
            return None
        if choice in ("auto", "required", "none"):
            return choice
        return {"type": "function", "function": {"name": choice}}

    def _request_kwargs(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None,
        options: CallOptions,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model_id,
            "messages": self._to_openai_messages(options.system, messages),
        }
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if options.max_tokens:
            kwargs["max_tokens"] = options.max_tokens
        if tools:
            kwargs["tools"] = self._to_openai_tools(tools)
            tool_choice = self._tool_choice(options.tool_choice)
            if tool_choice is not None:
                kwargs["tool_choice"] = tool_choice
        return kwargs

    def _from_openai_response(self, response: Any) -> GenerateResult:
        choice = response.choices[0]
        message = choice.message
        tool_calls = [
            ToolCall(id=tc.id, name=tc.function.name, args=_parse_args(tc.function.arguments))
            for tc in getattr(message, "tool_calls", None) or []
        ]
        usage = getattr(response, "usage", None)
        return GenerateResult(
            text=getattr(message, "content", None) or "",
            tool_calls=tool_calls,
            finish_reason=map_finish_reason(getattr(choice, "finish_reason", None)),
            usage=Usage(
                prompt_tokens=getattr(usage, "prompt_tokens", None) if usage else None,
                completion_tokens=getattr(usage, "completion_tokens", None) if usage else None,
            ),
        )

    async def generate(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
        options: CallOptions | None = None,
    ) -> GenerateResult:
        options = options or CallOptions()
        self.check_cancelled(options)
        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                **self._request_kwargs(messages, tools, options)
            )
        except openai.APIError as exc:
            log_service.log_llm_call(
                model=self.model_id,
                caller=self.provider,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(exc),
            )
            raise AdapterError(f"Chat completion failed: {exc}", provider=self.provider) from exc

        result = self._from_openai_response(response)
        log_service.log_llm_call(
            model=self.model_id,
            caller=self.provider,
            input_tokens=result.usage.prompt_tokens,
            output_tokens=result.usage.completion_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return result

    async def stream(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
        options: CallOptions | None = None,
    ) -> AsyncIterator[StreamPart]:
        options = options or CallOptions()
        usage = Usage()
        finish_reason: FinishReason = "other"
        # index -> {"id", "name", "arguments"}
        tool_calls: dict[int, dict[str, str]] = {}

        try:
            self.check_cancelled(options)
            stream = await self._client.chat.completions.create(
                **self._request_kwargs(messages, tools, options),
                stream=True,
                stream_options={"include_usage": True},
            )
            try:
                async for chunk in stream:
                    self.check_cancelled(options)
                    chunk_usage = getattr(chunk, "usage", None)
                    if chunk_usage:
                        usage = Usage(
                            prompt_tokens=getattr(chunk_usage, "prompt_tokens", None),
                            completion_tokens=getattr(chunk_usage, "completion_tokens", None),
                        )
                    choices = getattr(chunk, "choices", None) or []
                    if not choices:
                        continue
                    choice = choices[0]
                    if getattr(choice, "finish_reason", None):
                        finish_reason = map_finish_reason(choice.finish_reason)
                    delta = getattr(choice, "delta", None)
                    if not delta:
                        continue
                    text = getattr(delta, "content", None)
                    if text:
                        yield TextDelta(text=text)
                    for tc in getattr(delta, "tool_calls", None) or []:
                        entry = tool_calls.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                        function = getattr(tc, "function", None)
                        if tc.id:
                            entry["id"] = tc.id
                        if function is not None and function.name:
                            entry["name"] = function.name
                        args_delta = (function.arguments if function is not None else None) or ""
                        entry["arguments"] += args_delta
                        yield ToolCallDelta(
                            tool_call_id=entry["id"],
                            tool_name=entry["name"],
                            args_text_delta=args_delta,
                        )
            finally:
                close = getattr(stream, "close", None)
                if close is not None:
                    await close()
        except (openai.APIError, AdapterError) as exc:
            error = exc if isinstance(exc, AdapterError) else AdapterError(
                f"Chat completion stream failed: {exc}", provider=self.provider
            )
            log_service.log_llm_call(model=self.model_id, caller=self.provider, status="error", error=str(error))
            yield StreamError(error=error)
            yield Finish(finish_reason="error", usage=usage)
            return

        for index in sorted(tool_calls):
            entry = tool_calls[index]
            yield ToolCallPart(
                tool_call_id=entry["id"],
                tool_name=entry["name"],
                args=_parse_args(entry["arguments"]),
            )
        log_service.log_llm_call(
            model=self.model_id,
            caller=self.provider,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
        )
        yield Finish(finish_reason=finish_reason, usage=usage)
