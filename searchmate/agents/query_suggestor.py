from __future__ import annotations

import asyncio
from typing import AsyncGenerator

from loguru import logger

from searchmate.adapters.base import LanguageModel
from searchmate.agents.structured import stream_object
from searchmate.errors import AdapterError
from searchmate.llm_client import get_model, is_assistant_backend
from searchmate.models.events import SSEEvent
from searchmate.models.messages import Message, ToolMessage, UserMessage, encode_tool_content
from searchmate.models.structured import RelatedQueries
from searchmate.services import streaming
from searchmate.services.prompt_store import render_prompt


def select_messages(messages: list[Message], *, assistant_backend: bool) -> list[Message]:
    """Messages the suggestor sees.

    The assistant backend gets the first user message; other backends get
    the last message re-tagged as a user message.
    """
    if assistant_backend:
        first = next((m for m in messages if isinstance(m, UserMessage)), None)
        if first is None:
            logger.warning("No user message found in the conversation history")
            return []
        return [first]
    if not messages:
        return []
    last = messages[-1]
    if isinstance(last, ToolMessage):
        return [UserMessage(content=encode_tool_content(last.results))]
    return [UserMessage(content=last.content)]


class QuerySuggestor:
    name = "query_suggestor"

    def __init__(
        self,
        model: LanguageModel | None = None,
        cancel: asyncio.Event | None = None,
        assistant_backend: bool | None = None,
    ):
        self.model = model
        self.cancel = cancel
        self.assistant_backend = assistant_backend
        self.related = RelatedQueries()

    async def run(self, messages: list[Message]) -> AsyncGenerator[SSEEvent, None]:
        assistant_backend = self.assistant_backend
        if assistant_backend is None:
            assistant_backend = is_assistant_backend()
        selected = select_messages(messages, assistant_backend=assistant_backend)
        objects = stream_object(
            self.model or get_model(),
            selected,
            RelatedQueries,
            system=render_prompt("query_suggestor.system_prompt"),
            cancel=self.cancel,
        )
        try:
            async for partial in objects:
                if partial.get("items"):
                    yield streaming.related_partial(partial)
        except AdapterError as e:
            # The answer already stands; related queries are best effort
            logger.warning(f"Query suggestor failed: {e}")
            return

        self.related = objects.object or RelatedQueries()
        yield streaming.related(self.related.queries)
