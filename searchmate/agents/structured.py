"""Schema-constrained generation on top of the tool-calling contract.

The model is handed one synthetic tool whose parameters are the pydantic
schema, and the call is forced to that tool. Its arguments are the object.
"""
from __future__ import annotations

import json
from typing import Any, AsyncIterator, Generic, TypeVar

from jiter import from_json
from loguru import logger
from pydantic import BaseModel, ValidationError

from searchmate.adapters.base import LanguageModel
from searchmate.errors import StructuredOutputError
from searchmate.models.messages import (
    CallOptions,
    Finish,
    Message,
    StreamError,
    TextDelta,
    ToolCallDelta,
    ToolCallPart,
    ToolSpec,
)

T = TypeVar("T", bound=BaseModel)


def object_tool(schema: type[BaseModel], name: str | None = None) -> ToolSpec:
    return ToolSpec(
        name=name or schema.__name__,
        description=f"Respond with a {schema.__name__} object.",
        parameters=schema.model_json_schema(),
    )


def _validate(schema: type[T], args: dict[str, Any] | None, text: str, provider: str) -> T:
    try:
        if args:
            return schema.model_validate(args)
        if text.strip():
            # Some backends answer in plain JSON instead of calling the tool
            return schema.model_validate_json(text)
    except ValidationError as exc:
        raise StructuredOutputError(
            f"{schema.__name__} failed validation: {exc}", provider=provider
        ) from exc
    raise StructuredOutputError(f"Model returned no {schema.__name__} object", provider=provider)


async def generate_object(
    model: LanguageModel,
    messages: list[Message],
    schema: type[T],
    *,
    system: str | None = None,
    cancel: Any = None,
) -> T:
    tool = object_tool(schema)
    options = CallOptions(system=system, tool_choice=tool.name, cancel=cancel)
    result = await model.generate(messages, [tool], options)
    args = next((call.args for call in result.tool_calls if call.name == tool.name), None)
    return _validate(schema, args, result.text, model.provider)


def _parse_partial(buffer: str) -> dict[str, Any] | None:
    if not buffer:
        return None
    try:
        value = from_json(buffer.encode(), partial_mode="trailing-strings")
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


class ObjectStream(Generic[T]):
    """Streams partial objects as the forced tool's arguments arrive.

    Iterate to receive each new partial dict; ``object`` holds the validated
    result once iteration completes. Adapter errors propagate to the caller.
    """

    def __init__(
        self,
        model: LanguageModel,
        messages: list[Message],
        schema: type[T],
        *,
        system: str | None = None,
        cancel: Any = None,
    ):
        self.model = model
        self.messages = messages
        self.schema = schema
        self.tool = object_tool(schema)
        self.options = CallOptions(system=system, tool_choice=self.tool.name, cancel=cancel)
        self.object: T | None = None
        self.last_partial: dict[str, Any] | None = None

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        buffer = ""
        text = ""
        final_args: dict[str, Any] | None = None

        async for part in self.model.stream(self.messages, [self.tool], self.options):
            if isinstance(part, ToolCallDelta):
                if part.tool_name and part.tool_name != self.tool.name:
                    continue
                buffer += part.args_text_delta
                partial = _parse_partial(buffer)
            elif isinstance(part, TextDelta):
                text += part.text
                partial = _parse_partial(text)
            elif isinstance(part, ToolCallPart):
                if part.tool_name == self.tool.name:
                    final_args = part.args
                continue
            elif isinstance(part, StreamError):
                raise part.error
            elif isinstance(part, Finish):
                break
            else:
                continue

            if partial and partial != self.last_partial:
                self.last_partial = partial
                yield partial

        if final_args is None and buffer:
            try:
                final_args = json.loads(buffer)
            except json.JSONDecodeError:
                logger.warning(f"Discarding malformed {self.schema.__name__} arguments")
        self.object = _validate(self.schema, final_args, text, self.model.provider)


def stream_object(
    model: LanguageModel,
    messages: list[Message],
    schema: type[T],
    *,
    system: str | None = None,
    cancel: Any = None,
) -> ObjectStream[T]:
    return ObjectStream(model, messages, schema, system=system, cancel=cancel)
