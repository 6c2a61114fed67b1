from __future__ import annotations

import asyncio
from typing import AsyncGenerator

from loguru import logger

from searchmate.adapters.base import LanguageModel
from searchmate.config import settings
from searchmate.llm_client import get_writer_model
from searchmate.models.events import SSEEvent
from searchmate.models.messages import CallOptions, Message, StreamError, TextDelta
from searchmate.services import streaming
from searchmate.services.prompt_store import render_prompt


class Writer:
    """Writes the answer from tool results when the researcher only gathers them."""

    name = "writer"

    def __init__(
        self,
        model: LanguageModel | None = None,
        cancel: asyncio.Event | None = None,
        max_tokens: int | None = None,
    ):
        self.model = model
        self.cancel = cancel
        self.max_tokens = settings.max_tokens if max_tokens is None else max_tokens
        self.response = ""
        self.has_error = False
        self.error: str | None = None

    async def run(self, messages: list[Message]) -> AsyncGenerator[SSEEvent, None]:
        model = self.model or get_writer_model()
        options = CallOptions(
            system=render_prompt("writer.system_prompt"),
            cancel=self.cancel,
            max_tokens=self.max_tokens,
        )
        async for part in model.stream(messages, None, options):
            if isinstance(part, TextDelta) and part.text:
                self.response += part.text
                yield streaming.answer_delta(self.response)
            elif isinstance(part, StreamError):
                logger.error(f"Writer stream error: {part.error}")
                self.has_error = True
                self.error = str(part.error)
